# src/SoilKrigPy/kriging.py
# SPDX-License-Identifier: MIT
"""
Ordinary kriging on planar coordinates.

The interpolator fits a variogram (:mod:`SoilKrigPy.variogram`) to the
sample values and solves, for every target location ``x₀``, the ordinary
kriging system

.. math::

    \\begin{bmatrix} \\Gamma & \\mathbf{1} \\\\ \\mathbf{1}^T & 0 \\end{bmatrix}
    \\begin{bmatrix} \\mathbf{w} \\\\ \\mu \\end{bmatrix}
    =
    \\begin{bmatrix} \\boldsymbol{\\gamma}_0 \\\\ 1 \\end{bmatrix}

where ``Γᵢⱼ = γ(|xᵢ - xⱼ|)`` and ``γ₀ᵢ = γ(|xᵢ - x₀|)``. The last row
forces the weights to sum to one (unbiasedness). The prediction is
``Σ wᵢ zᵢ`` and the kriging variance is ``Σ wᵢ γ₀ᵢ + μ``.

All targets share one system matrix, so the whole grid is solved in a
single call with one right-hand side per target.

Failure policy
--------------
A singular system (duplicate sample locations, or a numerically
ill-conditioned matrix) aborts the **whole surface** with
:class:`~SoilKrigPy.errors.SingularSystemError`; no partial surfaces are
produced.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from scipy.spatial.distance import cdist

from .errors import SingularSystemError
from .grid import PredictionGrid, PredictionSurface, _finite_points
from .variogram import VariogramFit, fit_variogram


__all__ = [
    "MIN_KRIGING_SAMPLES",
    "KrigingResult",
    "kriging_weights",
    "ordinary_kriging",
    "krige_surface",
]


MIN_KRIGING_SAMPLES = 3

# Reciprocal condition number below which the system is treated as singular.
_RCOND_LIMIT = np.finfo(float).eps


@dataclass(frozen=True, eq=False)
class KrigingResult:
    """Predictions and kriging variances at the requested targets.

    Only the values callers need are kept; ``variogram`` exposes the fit
    diagnostics (model, nugget, sill, range).
    """

    prediction: np.ndarray
    variance: np.ndarray
    variogram: VariogramFit

    def __post_init__(self):
        for name in ("prediction", "variance"):
            arr = np.array(getattr(self, name), dtype=float, copy=True)
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)


# ---------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------


def _clean_inputs(xy, values) -> Tuple[np.ndarray, np.ndarray]:
    """Drop samples with missing values and validate the remainder."""
    xy, z = _finite_points(
        xy, values, min_samples=MIN_KRIGING_SAMPLES, label="Ordinary kriging"
    )
    if np.unique(xy, axis=0).shape[0] < xy.shape[0]:
        raise SingularSystemError(
            "Duplicate sample locations make the kriging system singular."
        )
    return xy, z


def _system_matrix(xy: np.ndarray, fit: VariogramFit) -> np.ndarray:
    n = xy.shape[0]
    a = np.zeros((n + 1, n + 1))
    a[:n, :n] = fit(cdist(xy, xy))
    a[:n, n] = 1.0
    a[n, :n] = 1.0
    return a


def _solve(xy: np.ndarray, target_xy: np.ndarray, fit: VariogramFit):
    """Return ``(weights (m, n), lagrange (m,), gamma0 (n, m))``."""
    n = xy.shape[0]
    a = _system_matrix(xy, fit)
    if 1.0 / np.linalg.cond(a) < _RCOND_LIMIT:
        raise SingularSystemError(
            "Kriging system is numerically singular "
            f"(model={fit.model}, nugget={fit.nugget:.4g}, sill={fit.sill:.4g}, "
            f"range={fit.range:.4g})."
        )

    gamma0 = fit(cdist(xy, target_xy))
    rhs = np.vstack([gamma0, np.ones((1, target_xy.shape[0]))])
    try:
        sol = np.linalg.solve(a, rhs)
    except np.linalg.LinAlgError as e:
        raise SingularSystemError(f"Kriging system could not be solved: {e}") from e
    return sol[:n].T, sol[n], gamma0


def _as_targets(target_xy) -> np.ndarray:
    t = np.asarray(target_xy, dtype=float)
    if t.ndim == 1 and t.size == 2:
        t = t[None, :]
    if t.ndim != 2 or t.shape[1] != 2:
        raise ValueError("target_xy must be an (m, 2) array.")
    return t


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------


def kriging_weights(
    xy: np.ndarray,
    target_xy: np.ndarray,
    variogram: VariogramFit,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Ordinary-kriging weights for each target.

    Parameters
    ----------
    xy : (n, 2) array
        Planar sample coordinates (distinct).
    target_xy : (m, 2) array or (2,) array
        Planar target coordinates.
    variogram : VariogramFit
        Fitted variogram.

    Returns
    -------
    weights : (m, n) array
        Row ``j`` holds the weights of every sample for target ``j``; each
        row sums to one.
    lagrange : (m,) array
        Lagrange multiplier of the unbiasedness constraint.
    """
    xy = np.asarray(xy, dtype=float)
    if np.unique(xy, axis=0).shape[0] < xy.shape[0]:
        raise SingularSystemError(
            "Duplicate sample locations make the kriging system singular."
        )
    weights, lagrange, _ = _solve(xy, _as_targets(target_xy), variogram)
    return weights, lagrange


def ordinary_kriging(
    xy: np.ndarray,
    values: np.ndarray,
    target_xy: np.ndarray,
    *,
    model: str = "auto",
    n_lags: int = 10,
    variogram: Optional[VariogramFit] = None,
) -> KrigingResult:
    """
    Ordinary kriging of *values* at *target_xy*.

    Parameters
    ----------
    xy : (n, 2) array
        Planar sample coordinates.
    values : (n,) array
        Sample values; entries that are ``NaN`` are ignored.
    target_xy : (m, 2) array
        Planar target coordinates, in the same units as *xy*.
    model : str, default "auto"
        Variogram model passed to :func:`~SoilKrigPy.variogram.fit_variogram`.
    n_lags : int, default 10
        Number of empirical variogram bins.
    variogram : VariogramFit, optional
        Use this fit instead of fitting one from the data.

    Returns
    -------
    KrigingResult

    Raises
    ------
    InsufficientDataError
        Fewer than three non-missing samples.
    SingularSystemError
        Duplicate sample locations or a singular system.
    """
    xy, z = _clean_inputs(xy, values)
    targets = _as_targets(target_xy)

    fit = variogram if variogram is not None else fit_variogram(
        xy, z, model=model, n_lags=n_lags
    )

    if targets.shape[0] == 0:
        return KrigingResult(prediction=np.empty(0), variance=np.empty(0), variogram=fit)

    weights, lagrange, gamma0 = _solve(xy, targets, fit)
    prediction = weights @ z
    variance = np.einsum("mn,nm->m", weights, gamma0) + lagrange
    variance = np.clip(variance, 0.0, None)
    return KrigingResult(prediction=prediction, variance=variance, variogram=fit)


def krige_surface(
    samples: pd.DataFrame,
    grid: PredictionGrid,
    *,
    method: str = "ok",
    value_col: str = "value",
    x_col: str = "x",
    y_col: str = "y",
    model: str = "auto",
    n_lags: int = 10,
) -> PredictionSurface:
    """Ordinary-kriging :class:`PredictionSurface` over *grid*.

    *samples* must carry planar coordinates in ``x_col``/``y_col`` in the
    same CRS as ``grid.x``/``grid.y`` (see
    :func:`~SoilKrigPy.grid.with_planar_coords`).
    """
    res = ordinary_kriging(
        samples[[x_col, y_col]].to_numpy(dtype=float),
        samples[value_col].to_numpy(dtype=float),
        grid.xy,
        model=model,
        n_lags=n_lags,
    )
    return PredictionSurface(
        method=method,
        grid=grid,
        values=res.prediction,
        variance=res.variance,
        variogram=res.variogram,
    )

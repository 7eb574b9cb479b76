# src/SoilKrigPy/variogram.py
# SPDX-License-Identifier: MIT
"""
Empirical semivariograms and parametric variogram fits.

This module provides the spatial-dependence model used by ordinary kriging:

- :func:`empirical_variogram` — binned semivariance of sample values as a
  function of planar separation distance.
- :data:`VARIOGRAM_MODELS` — spherical, exponential and Gaussian models in
  the *practical range* parameterisation ``(nugget, psill, range)``.
- :func:`fit_variogram` — weighted least-squares fit of one model, or of the
  spherical and exponential models with the lowest residual sum of squares
  selected (``"auto"``).
- :class:`VariogramFit` — immutable fit result; calling it evaluates the
  fitted semivariance at arbitrary distances.

Key design choices
------------------
* ``γ(0) = 0`` exactly; the nugget applies to strictly positive distances
  only, so kriging remains an exact interpolator at sample locations.
* Bins are weighted by their pair counts during the fit.
* With very few samples the empirical variogram may have fewer non-empty
  bins than model parameters. In that case (or when every fit fails) a
  default model is returned with ``fitted=False``: zero nugget, partial
  sill equal to the sample variance, range equal to half the largest lag.
* Perfectly flat data (all semivariances zero) uses a unit partial sill.
  Kriging weights do not depend on the sill scale, so predictions are
  unaffected.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import numpy as np
from scipy.optimize import OptimizeWarning, curve_fit
from scipy.spatial.distance import pdist


__all__ = [
    "VARIOGRAM_MODELS",
    "AUTO_MODELS",
    "VariogramFit",
    "empirical_variogram",
    "fit_variogram",
    "spherical_model",
    "exponential_model",
    "gaussian_model",
]


# ---------------------------------------------------------------------
# Parametric models
# ---------------------------------------------------------------------


def spherical_model(h, nugget, psill, range_):
    """Spherical model; reaches the sill at ``range_``."""
    h = np.asarray(h, dtype=float)
    r = h / range_
    return np.where(h <= range_, psill * (1.5 * r - 0.5 * r ** 3), psill) + nugget


def exponential_model(h, nugget, psill, range_):
    """Exponential model; ~95% of the sill at ``range_``."""
    h = np.asarray(h, dtype=float)
    return psill * (1.0 - np.exp(-3.0 * h / range_)) + nugget


def gaussian_model(h, nugget, psill, range_):
    """Gaussian model; ~95% of the sill at ``range_``."""
    h = np.asarray(h, dtype=float)
    return psill * (1.0 - np.exp(-((h / (range_ * 4.0 / 7.0)) ** 2))) + nugget


VARIOGRAM_MODELS: Dict[str, Callable] = {
    "spherical": spherical_model,
    "exponential": exponential_model,
    "gaussian": gaussian_model,
}

#: Models tried by ``model="auto"``. The Gaussian model is only used when
#: requested explicitly: without a nugget its kriging matrix is close to
#: rank deficient.
AUTO_MODELS = ("spherical", "exponential")

_N_PARAMS = 3


# ---------------------------------------------------------------------
# Fit result
# ---------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class VariogramFit:
    """Fitted variogram parameters and the empirical variogram behind them.

    Attributes
    ----------
    model :
        Name of the model in :data:`VARIOGRAM_MODELS`.
    nugget, psill, range :
        Model parameters (``range`` in planar distance units).
    rss :
        Count-weighted residual sum of squares against the empirical bins
        (``nan`` when the default parameters were used).
    fitted :
        ``False`` when the default parameters replaced a least-squares fit.
    lags, semivariance, counts :
        Empirical variogram used for the fit.
    """

    model: str
    nugget: float
    psill: float
    range: float
    rss: float
    fitted: bool
    lags: np.ndarray
    semivariance: np.ndarray
    counts: np.ndarray

    @property
    def sill(self) -> float:
        """Total sill (nugget + partial sill)."""
        return float(self.nugget + self.psill)

    def __call__(self, h) -> np.ndarray:
        """Semivariance at distance(s) *h*, with ``γ(0) = 0``."""
        h = np.asarray(h, dtype=float)
        g = VARIOGRAM_MODELS[self.model](h, self.nugget, self.psill, self.range)
        return np.where(h > 0.0, g, 0.0)

    def as_dict(self) -> Dict[str, float]:
        return {
            "model": self.model,
            "nugget": float(self.nugget),
            "sill": self.sill,
            "range": float(self.range),
            "rss": float(self.rss),
            "fitted": bool(self.fitted),
        }


# ---------------------------------------------------------------------
# Empirical variogram
# ---------------------------------------------------------------------


def empirical_variogram(
    xy: np.ndarray,
    values: np.ndarray,
    *,
    n_lags: int = 10,
    max_lag: Optional[float] = None,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Binned empirical semivariance.

    Parameters
    ----------
    xy : (n, 2) array
        Planar sample coordinates.
    values : (n,) array
        Sample values (no NaN).
    n_lags : int, default 10
        Number of equal-width distance bins.
    max_lag : float, optional
        Largest separation distance considered. Defaults to the largest
        pairwise distance.

    Returns
    -------
    lags, semivariance, counts : np.ndarray
        Mean distance, mean ``0.5·(zᵢ - zⱼ)²`` and number of pairs for each
        non-empty bin, ordered by distance.
    """
    xy = np.asarray(xy, dtype=float)
    z = np.asarray(values, dtype=float)
    if xy.ndim != 2 or xy.shape[1] != 2 or xy.shape[0] != z.size:
        raise ValueError("xy must be an (n, 2) array matching the length of values.")
    if n_lags < 1:
        raise ValueError("n_lags must be >= 1.")
    if z.size < 2:
        empty = np.empty(0)
        return empty, empty, np.empty(0, dtype=int)

    d = pdist(xy)
    g = 0.5 * pdist(z[:, None], metric="sqeuclidean")

    if max_lag is None:
        max_lag = float(d.max())
    if max_lag <= 0:
        empty = np.empty(0)
        return empty, empty, np.empty(0, dtype=int)

    keep = d <= max_lag
    d, g = d[keep], g[keep]

    edges = np.linspace(0.0, max_lag, n_lags + 1)
    # right-closed last bin so that d == max_lag is counted
    idx = np.clip(np.digitize(d, edges[1:-1], right=True), 0, n_lags - 1)

    counts = np.bincount(idx, minlength=n_lags)
    sum_d = np.bincount(idx, weights=d, minlength=n_lags)
    sum_g = np.bincount(idx, weights=g, minlength=n_lags)

    nonempty = counts > 0
    counts = counts[nonempty]
    lags = sum_d[nonempty] / counts
    gamma = sum_g[nonempty] / counts
    return lags, gamma, counts.astype(int)


# ---------------------------------------------------------------------
# Fitting
# ---------------------------------------------------------------------


def _default_fit(model, values, lags, gamma, counts, max_lag, psill=None) -> VariogramFit:
    if psill is None:
        psill = float(np.var(values, ddof=1)) if np.size(values) > 1 else 0.0
        if not np.isfinite(psill) or psill <= 0:
            psill = 1.0
    return VariogramFit(
        model=model,
        nugget=0.0,
        psill=float(psill),
        range=0.5 * float(max_lag),
        rss=np.nan,
        fitted=False,
        lags=lags,
        semivariance=gamma,
        counts=counts,
    )


def _fit_one(model, lags, gamma, counts, max_lag):
    gmax = float(gamma.max())
    p0 = [0.05 * gmax, 0.9 * gmax, 0.5 * max_lag]
    bounds = ([0.0, 0.0, 1e-6 * max_lag], [gmax, 2.0 * gmax, 2.0 * max_lag])
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", OptimizeWarning)
        popt, _ = curve_fit(
            VARIOGRAM_MODELS[model],
            lags,
            gamma,
            p0=p0,
            bounds=bounds,
            sigma=1.0 / np.sqrt(counts),
            maxfev=10000,
        )
    resid = VARIOGRAM_MODELS[model](lags, *popt) - gamma
    rss = float(np.sum(counts * resid ** 2))
    return popt, rss


def fit_variogram(
    xy: np.ndarray,
    values: np.ndarray,
    *,
    model: str = "auto",
    n_lags: int = 10,
    max_lag: Optional[float] = None,
) -> VariogramFit:
    """
    Fit a parametric variogram to the empirical semivariance of *values*.

    Parameters
    ----------
    xy : (n, 2) array
        Planar sample coordinates.
    values : (n,) array
        Sample values (no NaN).
    model : {"auto", "spherical", "exponential", "gaussian"}
        Model to fit. ``"auto"`` fits every model in :data:`AUTO_MODELS`
        and keeps the one with the lowest residual sum of squares (ties:
        spherical).
    n_lags : int, default 10
        Number of distance bins.
    max_lag : float, optional
        Largest distance considered (default: largest pairwise distance).

    Returns
    -------
    VariogramFit

    Raises
    ------
    ValueError
        For an unknown model name, or if all samples share one location.
    """
    if model != "auto" and model not in VARIOGRAM_MODELS:
        raise ValueError(
            f"Unknown variogram model {model!r}; expected 'auto' or one of "
            f"{list(VARIOGRAM_MODELS)}."
        )
    lags, gamma, counts = empirical_variogram(xy, values, n_lags=n_lags, max_lag=max_lag)
    if lags.size == 0:
        raise ValueError("Cannot fit a variogram: no pairs of distinct sample locations.")
    if max_lag is None:
        max_lag = float(pdist(np.asarray(xy, dtype=float)).max())

    candidates = list(AUTO_MODELS) if model == "auto" else [model]
    default_model = candidates[0]

    if float(gamma.max()) == 0.0:
        return _default_fit(default_model, values, lags, gamma, counts, max_lag, psill=1.0)
    if lags.size < _N_PARAMS:
        return _default_fit(default_model, values, lags, gamma, counts, max_lag)

    best: Optional[VariogramFit] = None
    for name in candidates:
        try:
            popt, rss = _fit_one(name, lags, gamma, counts, max_lag)
        except (RuntimeError, ValueError):
            continue
        if best is None or rss < best.rss:
            best = VariogramFit(
                model=name,
                nugget=float(popt[0]),
                psill=float(popt[1]),
                range=float(popt[2]),
                rss=rss,
                fitted=True,
                lags=lags,
                semivariance=gamma,
                counts=counts,
            )

    if best is None or best.psill + best.nugget <= 0:
        return _default_fit(default_model, values, lags, gamma, counts, max_lag)
    return best

# src/SoilKrigPy/skewsplit.py
# SPDX-License-Identifier: MIT
"""
Skew-split interpolation: kriging on the core, TIN on the outliers.

Skewed contaminant data violate the stationarity that ordinary kriging
assumes. The skew-split method partitions the samples with an IQR fence,

.. math::

    F_1 = Q_1 - k \\cdot IQR, \\qquad F_2 = Q_3 + k \\cdot IQR,

kriges the *core* samples (``F₁ ≤ value ≤ F₂``), triangulates the
*outlier* samples (``value < F₁`` or ``value > F₂``) and adds the two
surfaces cell by cell. Cells outside the outlier triangulation contribute
zero, so there the combined surface equals the core kriging surface
exactly. The two subsets are treated as independent additive components.

Quartiles use linear interpolation between order statistics (the numpy
default).
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd

from .errors import DegenerateTriangulationError, InsufficientDataError, SingularSystemError
from .grid import PredictionGrid, PredictionSurface, valid_samples
from .kriging import krige_surface
from .tin import MIN_TIN_SAMPLES, tin_surface


__all__ = [
    "DEFAULT_FENCE_MULTIPLIER",
    "FenceSplit",
    "fence_split",
    "combine_surfaces",
    "skew_split_interpolate",
]


DEFAULT_FENCE_MULTIPLIER = 1.25


@dataclass(frozen=True, eq=False)
class FenceSplit:
    """Disjoint core/outlier partition of the samples with defined values."""

    core: pd.DataFrame
    outlier: pd.DataFrame
    q1: float
    q3: float
    iqr: float
    lower: float
    upper: float
    k: float

    def summary(self) -> dict:
        return {
            "n_core": int(len(self.core)),
            "n_outlier": int(len(self.outlier)),
            "q1": self.q1,
            "q3": self.q3,
            "iqr": self.iqr,
            "lower": self.lower,
            "upper": self.upper,
            "k": self.k,
        }


def fence_split(
    samples: pd.DataFrame,
    k: float = DEFAULT_FENCE_MULTIPLIER,
    *,
    value_col: str = "value",
) -> FenceSplit:
    """
    Partition samples into ``core`` and ``outlier`` with an IQR fence.

    Parameters
    ----------
    samples : DataFrame
        Sample table; rows with missing ``value_col`` are left out of both
        subsets.
    k : float, default :data:`DEFAULT_FENCE_MULTIPLIER`
        Fence multiplier (``k >= 0``).
    value_col : str
        Column holding the measured values.

    Returns
    -------
    FenceSplit
        ``core`` and ``outlier`` are copies in the original sample order.
    """
    k = float(k)
    if not np.isfinite(k) or k < 0:
        raise ValueError(f"Fence multiplier k must be >= 0, got {k!r}.")

    defined = valid_samples(samples, value_col=value_col)
    if defined.empty:
        raise InsufficientDataError("No samples with defined values to split.")

    z = defined[value_col].to_numpy(dtype=float)
    q1, q3 = (float(q) for q in np.percentile(z, [25.0, 75.0]))
    iqr = q3 - q1
    lower = q1 - k * iqr
    upper = q3 + k * iqr

    is_outlier = (z < lower) | (z > upper)
    return FenceSplit(
        core=defined.loc[~is_outlier].reset_index(drop=True),
        outlier=defined.loc[is_outlier].reset_index(drop=True),
        q1=q1,
        q3=q3,
        iqr=iqr,
        lower=lower,
        upper=upper,
        k=k,
    )


def combine_surfaces(core: np.ndarray, outlier: np.ndarray) -> np.ndarray:
    """``core + outlier`` with undefined outlier cells counted as zero.

    Undefined core cells stay undefined.
    """
    core = np.asarray(core, dtype=float)
    outlier = np.asarray(outlier, dtype=float)
    if core.shape != outlier.shape:
        raise ValueError(
            f"Surface shapes differ: core {core.shape} vs outlier {outlier.shape}."
        )
    return core + np.where(np.isnan(outlier), 0.0, outlier)


def skew_split_interpolate(
    samples: pd.DataFrame,
    grid: PredictionGrid,
    *,
    k: float = DEFAULT_FENCE_MULTIPLIER,
    value_col: str = "value",
    x_col: str = "x",
    y_col: str = "y",
    model: str = "auto",
    n_lags: int = 10,
    method: str = "combined",
) -> PredictionSurface:
    """
    Combined (core kriging + outlier TIN) surface over *grid*.

    Raises
    ------
    InsufficientDataError, SingularSystemError
        Kriging on the core subset failed ("skew-split not applicable").
    InsufficientDataError, DegenerateTriangulationError
        Fewer than three outliers, or the outliers cannot be triangulated
        (also prefixed "skew-split not applicable").
    """
    split = fence_split(samples, k, value_col=value_col)

    try:
        core = krige_surface(
            split.core,
            grid,
            method=f"{method}:core",
            value_col=value_col,
            x_col=x_col,
            y_col=y_col,
            model=model,
            n_lags=n_lags,
        )
    except (InsufficientDataError, SingularSystemError) as e:
        raise type(e)(f"skew-split not applicable: {e}") from e

    if len(split.outlier) < MIN_TIN_SAMPLES:
        raise InsufficientDataError(
            f"skew-split not applicable: {len(split.outlier)} outlier(s) beyond the "
            f"fence [{split.lower:.4g}, {split.upper:.4g}], TIN needs at least "
            f"{MIN_TIN_SAMPLES}."
        )
    try:
        outlier = tin_surface(
            split.outlier,
            grid,
            method=f"{method}:outlier",
            value_col=value_col,
            x_col=x_col,
            y_col=y_col,
        )
    except (InsufficientDataError, DegenerateTriangulationError) as e:
        raise type(e)(f"skew-split not applicable: {e}") from e

    return PredictionSurface(
        method=method,
        grid=grid,
        values=combine_surfaces(core.values, outlier.values),
        variance=core.variance,
        variogram=core.variogram,
    )

# src/SoilKrigPy/metrics.py
# SPDX-License-Identifier: MIT
"""
Accuracy scoring of prediction surfaces.

This module provides a small, focused set of metrics used to compare the
interpolation methods against the original samples:

- :func:`rmse` — root-mean-square error over complete (obs, pred) pairs.
- :func:`regression_metrics` — MAE, RMSE, R² and the number of pairs in a
  single dict.
- :func:`score_surface` / :func:`score_surfaces` — join every sample to its
  nearest grid point and score the surface value found there.
- :func:`select_best_method` — lowest RMSE wins, ties broken by a fixed
  method preference.

Key design choices
------------------
* Inputs are accepted as any iterable (lists, NumPy arrays, pandas Series).
* Pairs where either the observation or the prediction is missing are
  dropped, so undefined TIN cells never count as zero.
* Outputs are plain ``float`` or ``numpy.nan`` when the metric is undefined
  (no complete pairs, zero variance).
* R² is **not** ``sklearn.metrics.r2_score``. It is the square of the
  Pearson correlation coefficient between observations and predictions.
"""

from __future__ import annotations

from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import mean_absolute_error, mean_squared_error

from .grid import PredictionSurface
from .linker import link_points
from .projection import Projector


__all__ = [
    "DEFAULT_METHOD_PREFERENCE",
    "rmse",
    "regression_metrics",
    "score_surface",
    "score_surfaces",
    "select_best_method",
]


#: Tie-break order for :func:`select_best_method`.
DEFAULT_METHOD_PREFERENCE = ("tin", "ok", "combined")


# ---------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------


def _complete_pairs(
    y_true: Iterable[float],
    y_pred: Iterable[float],
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert *y_true* and *y_pred* to float arrays, verify that they share the
    same shape and drop pairs where either side is missing.

    Raises
    ------
    ValueError
        If the shapes of *y_true* and *y_pred* do not match.
    """
    yt = np.asarray(y_true, dtype=float)
    yp = np.asarray(y_pred, dtype=float)

    if yt.shape != yp.shape:
        raise ValueError(
            f"Shapes of y_true {yt.shape} and y_pred {yp.shape} do not match."
        )
    ok = np.isfinite(yt) & np.isfinite(yp)
    return yt[ok], yp[ok]


# ---------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------


def rmse(y_true: Iterable[float], y_pred: Iterable[float]) -> float:
    """
    Root-mean-square error over complete pairs.

    Returns ``np.nan`` when no complete pair exists. Never negative.
    """
    yt, yp = _complete_pairs(y_true, y_pred)
    if yt.size == 0:
        return np.nan
    return float(np.sqrt(mean_squared_error(yt, yp)))


def regression_metrics(y_true: Iterable[float], y_pred: Iterable[float]) -> Dict[str, float]:
    """
    Compute MAE, RMSE, R² (squared Pearson r) and the pair count ``n``.

    Degenerate cases
    ----------------
    * No complete pairs: every metric is ``np.nan`` and ``n = 0``.
    * Fewer than two pairs, or zero variance on either side: ``R2`` is
      ``np.nan``.
    """
    yt, yp = _complete_pairs(y_true, y_pred)

    if yt.size == 0:
        return {"MAE": np.nan, "RMSE": np.nan, "R2": np.nan, "n": 0}

    mae = float(mean_absolute_error(yt, yp))
    rmse_val = float(np.sqrt(mean_squared_error(yt, yp)))

    r2 = np.nan
    if yt.size >= 2 and np.std(yt) > 0 and np.std(yp) > 0:
        r = float(np.corrcoef(yt, yp)[0, 1])
        r2 = float(r ** 2) if np.isfinite(r) else np.nan

    return {"MAE": mae, "RMSE": rmse_val, "R2": r2, "n": int(yt.size)}


# ---------------------------------------------------------------------
# Surface scoring
# ---------------------------------------------------------------------


def score_surface(
    samples: pd.DataFrame,
    surface: PredictionSurface,
    *,
    projector: Optional[Projector] = None,
    value_col: str = "value",
    lon_col: str = "longitude",
    lat_col: str = "latitude",
) -> Dict[str, float]:
    """
    Score one surface against the samples.

    Every sample is joined to its nearest grid point
    (:func:`~SoilKrigPy.linker.link_points`) and the observed value is
    compared with the surface value there.

    Returns
    -------
    dict
        ``{"method", "rmse", "mae", "r2", "n_pairs"}``.
    """
    joined = link_points(
        samples,
        surface,
        projector=projector,
        lon_col=lon_col,
        lat_col=lat_col,
        value_name="_predicted",
    )
    m = regression_metrics(joined[value_col].to_numpy(), joined["_predicted"].to_numpy())
    return {
        "method": surface.method,
        "rmse": m["RMSE"],
        "mae": m["MAE"],
        "r2": m["R2"],
        "n_pairs": m["n"],
    }


def score_surfaces(
    samples: pd.DataFrame,
    surfaces: Mapping[str, PredictionSurface],
    *,
    projector: Optional[Projector] = None,
    value_col: str = "value",
    lon_col: str = "longitude",
    lat_col: str = "latitude",
) -> pd.DataFrame:
    """One row per method: ``method, rmse, mae, r2, n_pairs``."""
    rows = [
        {
            **score_surface(
                samples,
                surf,
                projector=projector,
                value_col=value_col,
                lon_col=lon_col,
                lat_col=lat_col,
            ),
            "method": name,
        }
        for name, surf in surfaces.items()
    ]
    cols = ["method", "rmse", "mae", "r2", "n_pairs"]
    return pd.DataFrame(rows, columns=cols)


def select_best_method(
    scores,
    preference: Sequence[str] = DEFAULT_METHOD_PREFERENCE,
) -> str:
    """
    Method with the lowest finite RMSE.

    Parameters
    ----------
    scores : DataFrame or mapping
        Output of :func:`score_surfaces`, or ``{method: rmse}``.
    preference : sequence of str
        Tie-break order among methods with exactly equal RMSE. Methods not
        listed rank after listed ones, alphabetically.

    Raises
    ------
    ValueError
        If no method has a finite RMSE.
    """
    if isinstance(scores, pd.DataFrame):
        items = list(zip(scores["method"], scores["rmse"]))
    else:
        items = list(scores.items())

    rank = {m: i for i, m in enumerate(preference)}
    finite = [(str(m), float(v)) for m, v in items if v is not None and np.isfinite(v)]
    if not finite:
        raise ValueError("No method has a finite RMSE.")

    finite.sort(key=lambda mv: (mv[1], rank.get(mv[0], len(rank)), mv[0]))
    return finite[0][0]

# src/SoilKrigPy/linker.py
# SPDX-License-Identifier: MIT
"""
Nearest-neighbour join of arbitrary points onto a prediction surface.

Every target (an original sample, a study participant, ...) is attached to
the grid point with the smallest planar distance. Distances are compared
as exact squared differences, and ties resolve to the grid point that
comes first in grid-generation order (longitude-fastest, see
:mod:`SoilKrigPy.grid`).

The search is brute force over chunks of targets; with tens to hundreds
of targets and a few thousand grid points that is cheap and keeps the
tie-break exact.
"""

from __future__ import annotations

from typing import Dict, Optional

import numpy as np
import pandas as pd

from .errors import EmptySurfaceError
from .grid import PredictionSurface
from .projection import Projector


__all__ = [
    "nearest_grid_index",
    "link_points",
    "linked_correlation",
]


def nearest_grid_index(
    target_xy: np.ndarray,
    grid_xy: np.ndarray,
    *,
    chunk_size: int = 2048,
    return_distance: bool = False,
):
    """
    Index of the nearest grid point for each target.

    Parameters
    ----------
    target_xy : (m, 2) array
        Planar target coordinates.
    grid_xy : (g, 2) array
        Planar grid coordinates.
    chunk_size : int, default 2048
        Number of targets processed per block.
    return_distance : bool, default False
        Also return the planar distance to the selected grid point.

    Returns
    -------
    idx : (m,) int array
        First grid index achieving the minimum distance.
    dist : (m,) float array
        Only when ``return_distance=True``.

    Raises
    ------
    EmptySurfaceError
        If the grid has no points.
    """
    grid_xy = np.asarray(grid_xy, dtype=float).reshape(-1, 2)
    if grid_xy.shape[0] == 0:
        raise EmptySurfaceError("Cannot join points onto an empty grid.")
    t = np.asarray(target_xy, dtype=float).reshape(-1, 2)
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1.")

    idx = np.empty(t.shape[0], dtype=int)
    d2 = np.empty(t.shape[0], dtype=float)
    for start in range(0, t.shape[0], chunk_size):
        block = t[start:start + chunk_size]
        dx = block[:, None, 0] - grid_xy[None, :, 0]
        dy = block[:, None, 1] - grid_xy[None, :, 1]
        sq = dx * dx + dy * dy
        # np.argmin returns the first minimum
        best = np.argmin(sq, axis=1)
        idx[start:start + chunk_size] = best
        d2[start:start + chunk_size] = sq[np.arange(block.shape[0]), best]

    if return_distance:
        return idx, np.sqrt(d2)
    return idx


def link_points(
    targets: pd.DataFrame,
    surface: PredictionSurface,
    *,
    projector: Optional[Projector] = None,
    lon_col: str = "longitude",
    lat_col: str = "latitude",
    value_name: str = "predicted",
) -> pd.DataFrame:
    """
    Attach the nearest grid prediction of *surface* to every target.

    Parameters
    ----------
    targets : DataFrame
        Any table with geographic coordinates in ``lon_col``/``lat_col``.
        Rows with missing coordinates get ``-1``/``NaN`` join results.
    surface : PredictionSurface
        Surface whose grid and values are used.
    projector : Projector, optional
        Must be the projector used for ``surface.grid`` when the grid is
        projected; coordinates are used as-is otherwise.
    lon_col, lat_col : str
        Coordinate columns of *targets*.
    value_name : str, default "predicted"
        Name of the attached prediction column.

    Returns
    -------
    DataFrame
        Copy of *targets* with ``grid_index``, ``grid_longitude``,
        ``grid_latitude``, ``grid_distance`` and ``value_name`` (plus
        ``f"{value_name}_variance"`` when the surface has a variance).
    """
    grid = surface.grid
    if len(grid) == 0:
        raise EmptySurfaceError(f"Surface '{surface.method}' has no grid points.")
    if grid.projected and projector is None:
        raise ValueError("A projector is required to join onto a projected grid.")

    out = targets.copy()
    lon = pd.to_numeric(out[lon_col], errors="coerce").to_numpy(dtype=float)
    lat = pd.to_numeric(out[lat_col], errors="coerce").to_numpy(dtype=float)
    ok = np.isfinite(lon) & np.isfinite(lat)

    if grid.projected:
        x, y = projector.project(lon[ok], lat[ok])
        txy = np.column_stack([np.asarray(x, dtype=float), np.asarray(y, dtype=float)])
    else:
        txy = np.column_stack([lon[ok], lat[ok]])

    idx = np.full(len(out), -1, dtype=int)
    dist = np.full(len(out), np.nan)
    if ok.any():
        idx[ok], dist[ok] = nearest_grid_index(txy, grid.xy, return_distance=True)

    def _take(arr):
        res = np.full(len(out), np.nan)
        res[ok] = np.asarray(arr)[idx[ok]]
        return res

    out["grid_index"] = idx
    out["grid_longitude"] = _take(grid.lon)
    out["grid_latitude"] = _take(grid.lat)
    out["grid_distance"] = dist
    out[value_name] = _take(surface.values)
    if surface.variance is not None:
        out[f"{value_name}_variance"] = _take(surface.variance)
    return out


def linked_correlation(
    joined: pd.DataFrame,
    x_col: str,
    y_col: str,
) -> Dict[str, float]:
    """
    Pearson correlation and least-squares line ``y = slope·x + intercept``
    over rows where both columns are defined.

    Used to relate linked predictions (``x_col``) to an outcome measured on
    the targets (``y_col``). Returns ``NaN`` statistics with fewer than two
    complete pairs or zero variance in either column.
    """
    pair = joined[[x_col, y_col]].apply(pd.to_numeric, errors="coerce").dropna()
    n = int(len(pair))
    res = {"r": np.nan, "slope": np.nan, "intercept": np.nan, "n": n}
    if n < 2:
        return res
    a = pair[x_col].to_numpy(dtype=float)
    b = pair[y_col].to_numpy(dtype=float)
    if np.std(a) == 0 or np.std(b) == 0:
        return res
    slope, intercept = np.polyfit(a, b, 1)
    res["r"] = float(np.corrcoef(a, b)[0, 1])
    res["slope"] = float(slope)
    res["intercept"] = float(intercept)
    return res

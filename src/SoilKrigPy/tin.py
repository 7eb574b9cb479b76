# src/SoilKrigPy/tin.py
# SPDX-License-Identifier: MIT
"""
Triangulated irregular network (TIN) interpolation.

Samples are connected by a Delaunay triangulation and each target inside
the convex hull receives the barycentric (linear) combination of the
three vertex values of its enclosing triangle. Targets outside the hull
are undefined (``NaN``), never zero.

The method is exact at the samples and involves no numerical solve, which
makes it a natural complement to kriging for skewed or clustered data.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
import pandas as pd
from scipy.spatial import Delaunay, QhullError

from .errors import DegenerateTriangulationError
from .grid import PredictionGrid, PredictionSurface, _finite_points


__all__ = [
    "MIN_TIN_SAMPLES",
    "HULL_TOLERANCE",
    "build_triangulation",
    "barycentric_weights",
    "tin_interpolate",
    "tin_surface",
]


MIN_TIN_SAMPLES = 3

# Barycentric slack for the inside-triangle test, so targets that coincide
# with a hull vertex or edge up to rounding are not reported as outside.
HULL_TOLERANCE = 1e-9


def build_triangulation(xy: np.ndarray) -> Delaunay:
    """
    Delaunay triangulation of planar points.

    Raises
    ------
    DegenerateTriangulationError
        If the points are collinear (or coincide), or Qhull fails.
    """
    xy = np.asarray(xy, dtype=float)
    centred = xy - xy.mean(axis=0)
    if xy.shape[0] < 3 or np.linalg.matrix_rank(centred) < 2:
        raise DegenerateTriangulationError(
            "Samples are collinear; a triangulation needs three non-collinear points."
        )
    try:
        return Delaunay(xy)
    except QhullError as e:
        raise DegenerateTriangulationError(f"Delaunay triangulation failed: {e}") from e


def barycentric_weights(
    tri: Delaunay,
    target_xy: np.ndarray,
    *,
    tol: float = HULL_TOLERANCE,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Enclosing-triangle vertices and barycentric weights for each target.

    Targets within *tol* (in barycentric units) of the hull count as inside.

    Returns
    -------
    vertices : (m, 3) int array
        Sample indices of the enclosing triangle, ``-1`` outside the hull.
    weights : (m, 3) float array
        Barycentric weights (sum to one), ``NaN`` outside the hull.
    """
    t = np.asarray(target_xy, dtype=float).reshape(-1, 2)
    simplex = tri.find_simplex(t, tol=tol)
    inside = simplex >= 0

    vertices = np.full((t.shape[0], 3), -1, dtype=int)
    weights = np.full((t.shape[0], 3), np.nan)
    if not inside.any():
        return vertices, weights

    s = simplex[inside]
    trans = tri.transform[s]
    b = np.einsum("ijk,ik->ij", trans[:, :2, :], t[inside] - trans[:, 2, :])
    weights[inside] = np.column_stack([b, 1.0 - b.sum(axis=1)])
    vertices[inside] = tri.simplices[s]
    return vertices, weights


def tin_interpolate(xy: np.ndarray, values: np.ndarray, target_xy: np.ndarray) -> np.ndarray:
    """
    Linear interpolation on a Delaunay triangulation.

    Parameters
    ----------
    xy : (n, 2) array
        Planar sample coordinates.
    values : (n,) array
        Sample values; ``NaN`` entries are ignored.
    target_xy : (m, 2) array
        Planar target coordinates.

    Returns
    -------
    np.ndarray
        ``(m,)`` predictions, ``NaN`` outside the convex hull.

    Raises
    ------
    InsufficientDataError
        Fewer than three non-missing samples.
    DegenerateTriangulationError
        All samples collinear.
    """
    xy, z = _finite_points(xy, values, min_samples=MIN_TIN_SAMPLES, label="TIN interpolation")
    # projected coordinates are large; triangulate relative to the centroid
    origin = xy.mean(axis=0)
    tri = build_triangulation(xy - origin)

    targets = np.asarray(target_xy, dtype=float).reshape(-1, 2) - origin
    vertices, weights = barycentric_weights(tri, targets)
    out = np.full(vertices.shape[0], np.nan)
    inside = vertices[:, 0] >= 0
    out[inside] = np.sum(z[vertices[inside]] * weights[inside], axis=1)
    return out


def tin_surface(
    samples: pd.DataFrame,
    grid: PredictionGrid,
    *,
    method: str = "tin",
    value_col: str = "value",
    x_col: str = "x",
    y_col: str = "y",
) -> PredictionSurface:
    """TIN :class:`PredictionSurface` over *grid* (planar sample columns)."""
    values = tin_interpolate(
        samples[[x_col, y_col]].to_numpy(dtype=float),
        samples[value_col].to_numpy(dtype=float),
        grid.xy,
    )
    return PredictionSurface(method=method, grid=grid, values=values)

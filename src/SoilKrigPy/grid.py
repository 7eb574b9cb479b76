# src/SoilKrigPy/grid.py
# =============================================================================
# MIT License
#
# (c) 2025 The SoilKrigPy authors.
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN
# THE SOFTWARE.
# =============================================================================
"""
Sample tables, prediction grids and prediction surfaces.

This module provides the value types shared by every interpolator:

1) :func:`prepare_samples`
   Validates a raw sample table (``id``, ``longitude``, ``latitude``,
   ``value``) and returns a clean copy. Rows without coordinates are
   dropped; missing ``value`` entries are kept as ``NaN`` so each
   interpolator can decide what "non-missing" means for it.

2) :func:`build_grid`
   Derives a regular lattice over the bounding box of the sample
   coordinates at a fixed step. The lattice is generated in
   **longitude-fastest** order: for each latitude row (ascending), the
   longitudes ascend. A grid point's identity is its position in this
   sequence, and nearest-neighbour ties are broken by that position.

3) :class:`PredictionGrid` / :class:`PredictionSurface`
   Immutable containers. A surface always has exactly one entry per grid
   point; undefined predictions are ``NaN``.

Runtime dependencies
--------------------
- numpy
- pandas
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple

import numpy as np
import pandas as pd

from .errors import InsufficientDataError, InvalidExtentError
from .projection import Projector

if TYPE_CHECKING:
    from .variogram import VariogramFit


__all__ = [
    "REQUIRED_SAMPLE_COLUMNS",
    "prepare_samples",
    "valid_samples",
    "with_planar_coords",
    "PredictionGrid",
    "PredictionSurface",
    "build_grid",
    "project_grid",
]


REQUIRED_SAMPLE_COLUMNS = ("id", "longitude", "latitude", "value")


# ---------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------


def _frozen_array(values, dtype=float) -> np.ndarray:
    """Return a read-only copy of *values*."""
    arr = np.array(values, dtype=dtype, copy=True)
    arr.setflags(write=False)
    return arr


def _axis(lo: float, hi: float, step: float) -> np.ndarray:
    """``lo, lo + step, ...`` up to and including *hi* (within rounding)."""
    n = int(np.floor((hi - lo) / step + 1e-9)) + 1
    ax = lo + step * np.arange(n, dtype=float)
    # the last node lands on hi exactly when the step divides the extent
    if abs(ax[-1] - hi) <= 1e-9 * step:
        ax[-1] = hi
    return ax


def _finite_points(xy, values, *, min_samples: int, label: str) -> Tuple[np.ndarray, np.ndarray]:
    """
    Validate ``(n, 2)`` coordinates against *values* and keep the rows
    where both are finite.

    Raises
    ------
    ValueError
        If the shapes do not match.
    InsufficientDataError
        If fewer than *min_samples* rows remain.
    """
    xy = np.asarray(xy, dtype=float)
    z = np.asarray(values, dtype=float)
    if xy.ndim != 2 or xy.shape[1] != 2 or xy.shape[0] != z.size:
        raise ValueError("xy must be an (n, 2) array matching the length of values.")
    ok = np.isfinite(z) & np.isfinite(xy).all(axis=1)
    xy, z = xy[ok], z[ok]
    if z.size < min_samples:
        raise InsufficientDataError(
            f"{label} needs at least {min_samples} non-missing samples, got {z.size}."
        )
    return xy, z


# ---------------------------------------------------------------------
# Sample tables
# ---------------------------------------------------------------------


def prepare_samples(
    samples: pd.DataFrame,
    *,
    id_col: str = "id",
    lon_col: str = "longitude",
    lat_col: str = "latitude",
    value_col: str = "value",
) -> pd.DataFrame:
    """Validate a sample table and return a clean copy.

    Parameters
    ----------
    samples :
        Table with at least ``[id_col, lon_col, lat_col, value_col]``.
    id_col, lon_col, lat_col, value_col :
        Column names in ``samples``.

    Returns
    -------
    DataFrame
        Copy with float coordinates/values, rows with missing coordinates
        removed, original order preserved and a fresh ``RangeIndex``.

    Raises
    ------
    ValueError
        If columns are missing or ``id`` values are not unique.
    """
    missing = [c for c in (id_col, lon_col, lat_col, value_col) if c not in samples.columns]
    if missing:
        raise ValueError(f"Sample table is missing required columns: {missing}")

    if samples[id_col].duplicated().any():
        dups = samples.loc[samples[id_col].duplicated(), id_col].tolist()
        raise ValueError(f"Sample identifiers are not unique: {dups[:10]}")

    out = samples.copy()
    for c in (lon_col, lat_col, value_col):
        out[c] = pd.to_numeric(out[c], errors="coerce").astype(float)
    out = out.dropna(subset=[lon_col, lat_col]).reset_index(drop=True)
    return out


def valid_samples(samples: pd.DataFrame, *, value_col: str = "value") -> pd.DataFrame:
    """Rows of *samples* whose value is defined (copy)."""
    return samples.loc[samples[value_col].notna()].reset_index(drop=True)


def with_planar_coords(
    samples: pd.DataFrame,
    projector: Optional[Projector] = None,
    *,
    lon_col: str = "longitude",
    lat_col: str = "latitude",
    x_col: str = "x",
    y_col: str = "y",
) -> pd.DataFrame:
    """Return a copy of *samples* with planar ``x``/``y`` columns.

    Without a projector the geographic coordinates are copied as-is.
    """
    out = samples.copy()
    if projector is None:
        out[x_col] = out[lon_col].astype(float)
        out[y_col] = out[lat_col].astype(float)
    else:
        xy = projector.project_frame(out, lon_col=lon_col, lat_col=lat_col)
        out[x_col] = xy[:, 0]
        out[y_col] = xy[:, 1]
    return out


# ---------------------------------------------------------------------
# Grid and surface containers
# ---------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class PredictionGrid:
    """A regular lattice of prediction locations.

    Attributes
    ----------
    lon, lat :
        Geographic coordinates of every grid point, longitude-fastest.
    x, y :
        Planar coordinates of the same points (equal to ``lon``/``lat``
        until the grid is projected).
    resolution :
        Step between neighbouring grid lines, in the units of ``lon``/``lat``.
    shape :
        ``(n_lat, n_lon)``; ``values.reshape(shape)`` gives a raster with
        latitude rows.
    projected :
        Whether ``x``/``y`` hold projected coordinates.
    """

    lon: np.ndarray
    lat: np.ndarray
    x: np.ndarray
    y: np.ndarray
    resolution: float
    shape: Tuple[int, int]
    projected: bool = False

    def __post_init__(self):
        for name in ("lon", "lat", "x", "y"):
            object.__setattr__(self, name, _frozen_array(getattr(self, name)))
        n = self.lon.size
        if not (self.lat.size == self.x.size == self.y.size == n):
            raise ValueError("Grid coordinate arrays must share the same length.")
        if self.shape[0] * self.shape[1] != n:
            raise ValueError(f"Grid shape {self.shape} does not match {n} points.")

    def __len__(self) -> int:
        return int(self.lon.size)

    @property
    def xy(self) -> np.ndarray:
        """``(n, 2)`` array of planar coordinates."""
        return np.column_stack([self.x, self.y])

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {"longitude": self.lon, "latitude": self.lat, "x": self.x, "y": self.y}
        )


@dataclass(frozen=True, eq=False)
class PredictionSurface:
    """Predicted values (and optional variance) for every point of a grid.

    ``values`` uses ``NaN`` for undefined predictions (e.g. TIN cells outside
    the convex hull). ``variogram`` carries the fit diagnostics when the
    surface comes from kriging.
    """

    method: str
    grid: PredictionGrid
    values: np.ndarray
    variance: Optional[np.ndarray] = None
    variogram: Optional["VariogramFit"] = None

    def __post_init__(self):
        object.__setattr__(self, "values", _frozen_array(self.values))
        if self.values.shape != (len(self.grid),):
            raise ValueError(
                f"Surface '{self.method}' has {self.values.size} values for "
                f"{len(self.grid)} grid points."
            )
        if self.variance is not None:
            object.__setattr__(self, "variance", _frozen_array(self.variance))
            if self.variance.shape != self.values.shape:
                raise ValueError("Variance and values must share the same shape.")

    def __len__(self) -> int:
        return int(self.values.size)

    @property
    def n_defined(self) -> int:
        return int(np.isfinite(self.values).sum())

    def to_frame(self, value_name: str = "value") -> pd.DataFrame:
        """Return ``(longitude, latitude, x, y, value[, variance])`` per grid point."""
        out = self.grid.to_frame()
        out[value_name] = self.values
        if self.variance is not None:
            out["variance"] = self.variance
        return out


# ---------------------------------------------------------------------
# Grid builder
# ---------------------------------------------------------------------


def build_grid(
    samples: pd.DataFrame,
    resolution: float,
    *,
    projector: Optional[Projector] = None,
    lon_col: str = "longitude",
    lat_col: str = "latitude",
) -> PredictionGrid:
    """Build a regular lattice covering the bounding box of *samples*.

    Parameters
    ----------
    samples :
        Table with coordinate columns; rows with missing coordinates are
        ignored.
    resolution :
        Grid step ``Δ`` in the units of the coordinate columns (degrees for
        geographic samples).
    projector :
        If given, the planar ``x``/``y`` of every grid point are filled
        from it; otherwise ``x``/``y`` equal ``lon``/``lat``.
    lon_col, lat_col :
        Coordinate column names.

    Returns
    -------
    PredictionGrid
        Points ``(xmin + i·Δ, ymin + j·Δ)`` for ``j`` over latitude rows and
        ``i`` over longitudes within each row.

    Raises
    ------
    ValueError
        If ``resolution`` is not a positive finite number.
    InvalidExtentError
        If fewer than two distinct coordinate pairs exist, or the bounding
        box has zero width or height.
    """
    resolution = float(resolution)
    if not np.isfinite(resolution) or resolution <= 0:
        raise ValueError(f"resolution must be a positive number, got {resolution!r}.")

    coords = samples[[lon_col, lat_col]].apply(pd.to_numeric, errors="coerce").dropna()
    if len(coords.drop_duplicates()) < 2:
        raise InvalidExtentError(
            "At least two samples with distinct coordinates are required to build a grid."
        )

    xmin, xmax = float(coords[lon_col].min()), float(coords[lon_col].max())
    ymin, ymax = float(coords[lat_col].min()), float(coords[lat_col].max())
    if xmax <= xmin or ymax <= ymin:
        raise InvalidExtentError(
            f"Degenerate bounding box: lon [{xmin}, {xmax}], lat [{ymin}, {ymax}]."
        )

    lons = _axis(xmin, xmax, resolution)
    lats = _axis(ymin, ymax, resolution)
    lon_g, lat_g = np.meshgrid(lons, lats)

    grid = PredictionGrid(
        lon=lon_g.ravel(),
        lat=lat_g.ravel(),
        x=lon_g.ravel(),
        y=lat_g.ravel(),
        resolution=resolution,
        shape=(lats.size, lons.size),
    )
    if projector is not None:
        grid = project_grid(grid, projector)
    return grid


def project_grid(grid: PredictionGrid, projector: Projector) -> PredictionGrid:
    """Return a copy of *grid* with planar ``x``/``y`` from *projector*."""
    x, y = projector.project(np.asarray(grid.lon), np.asarray(grid.lat))
    return PredictionGrid(
        lon=grid.lon,
        lat=grid.lat,
        x=np.asarray(x, dtype=float),
        y=np.asarray(y, dtype=float),
        resolution=grid.resolution,
        shape=grid.shape,
        projected=True,
    )

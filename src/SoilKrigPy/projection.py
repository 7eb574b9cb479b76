# src/SoilKrigPy/projection.py
# SPDX-License-Identifier: MIT
"""
Coordinate projection between geographic degrees and a planar CRS.

Distances used by the variogram, the kriging system, the triangulation and
the nearest-neighbour join are all computed in a projected (planar)
coordinate system. This module holds the small configuration object that
names the two coordinate reference systems and the planar unit, and a
stateless :class:`Projector` built from it.

The configuration is validated once (when the projector is created) so an
unknown CRS identifier fails fast with
:class:`~SoilKrigPy.errors.UnsupportedProjectionError` rather than deep
inside an interpolator.

Runtime dependencies
--------------------
- numpy
- pyproj
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union

import numpy as np
from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError

from .errors import UnsupportedProjectionError


ArrayLike = Union[float, np.ndarray]

#: Planar units and their size in metres.
UNIT_SCALE = {
    "m": 1.0,
    "km": 1000.0,
}


@dataclass(frozen=True)
class CRSConfig:
    """Source/target coordinate reference systems and the planar unit.

    Attributes
    ----------
    source :
        Geographic CRS of the input coordinates (any identifier accepted by
        :meth:`pyproj.CRS.from_user_input`, e.g. ``"EPSG:4326"``).
    target :
        Projected CRS used for all distance computations. The default,
        ``"EPSG:5070"`` (NAD83 / Conus Albers), is an equal-area projection
        in metres.
    unit :
        ``"m"`` or ``"km"``. Projected coordinates are divided by the unit
        size, so variogram ranges are expressed in the same unit.
    """

    source: str = "EPSG:4326"
    target: str = "EPSG:5070"
    unit: str = "m"

    def validate(self) -> Tuple[CRS, CRS]:
        """Resolve both CRS and check the unit; return ``(source, target)``."""
        if self.unit not in UNIT_SCALE:
            raise UnsupportedProjectionError(
                f"Unsupported unit {self.unit!r}; expected one of {sorted(UNIT_SCALE)}."
            )
        src = _resolve_crs(self.source)
        tgt = _resolve_crs(self.target)
        if not src.is_geographic:
            raise UnsupportedProjectionError(
                f"Source CRS {self.source!r} is not a geographic (lon/lat) CRS."
            )
        if not tgt.is_projected:
            raise UnsupportedProjectionError(
                f"Target CRS {self.target!r} is not a projected CRS."
            )
        return src, tgt


def _resolve_crs(identifier: str) -> CRS:
    if not isinstance(identifier, str) or not identifier.strip():
        raise UnsupportedProjectionError(f"Invalid CRS identifier: {identifier!r}")
    try:
        return CRS.from_user_input(identifier)
    except CRSError as e:
        raise UnsupportedProjectionError(
            f"Unrecognized CRS identifier {identifier!r}: {e}"
        ) from e


class Projector:
    """Stateless geographic <-> planar transform.

    Parameters
    ----------
    config :
        :class:`CRSConfig`; validated on construction.

    Examples
    --------
    >>> proj = Projector(CRSConfig(unit="km"))
    >>> x, y = proj.project(-90.07, 29.95)
    >>> lon, lat = proj.unproject(x, y)
    """

    def __init__(self, config: CRSConfig = CRSConfig()):
        src, tgt = config.validate()
        self.config = config
        self._scale = UNIT_SCALE[config.unit]
        self._forward = Transformer.from_crs(src, tgt, always_xy=True)
        self._inverse = Transformer.from_crs(tgt, src, always_xy=True)

    @property
    def unit(self) -> str:
        return self.config.unit

    def project(self, lon: ArrayLike, lat: ArrayLike) -> Tuple[ArrayLike, ArrayLike]:
        """Geographic ``(lon, lat)`` in degrees -> planar ``(x, y)`` in ``unit``."""
        x, y = self._forward.transform(lon, lat)
        return _scale(x, 1.0 / self._scale), _scale(y, 1.0 / self._scale)

    def unproject(self, x: ArrayLike, y: ArrayLike) -> Tuple[ArrayLike, ArrayLike]:
        """Planar ``(x, y)`` in ``unit`` -> geographic ``(lon, lat)`` in degrees."""
        xm = _scale(x, self._scale)
        ym = _scale(y, self._scale)
        return self._inverse.transform(xm, ym)

    def project_frame(self, df, *, lon_col: str = "longitude", lat_col: str = "latitude") -> np.ndarray:
        """Return an ``(n, 2)`` array of planar coordinates for a table."""
        lon = np.asarray(df[lon_col], dtype=float)
        lat = np.asarray(df[lat_col], dtype=float)
        x, y = self.project(lon, lat)
        return np.column_stack([np.asarray(x, dtype=float), np.asarray(y, dtype=float)])

    def __repr__(self) -> str:
        c = self.config
        return f"Projector(source={c.source!r}, target={c.target!r}, unit={c.unit!r})"


def _scale(v: ArrayLike, factor: float) -> ArrayLike:
    if np.ndim(v) == 0:
        return float(v) * factor
    return np.asarray(v, dtype=float) * factor


__all__ = ["CRSConfig", "Projector", "UNIT_SCALE"]

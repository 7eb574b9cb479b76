# src/SoilKrigPy/errors.py
# SPDX-License-Identifier: MIT
"""
Error taxonomy for SoilKrigPy.

Every error raised by an interpolator, the grid builder, the projector or
the spatial linker derives from :class:`SoilKrigError`, which itself is a
``ValueError`` so callers that already guard numerical code with
``except ValueError`` keep working.

Undefined per-point predictions (for instance, TIN cells outside the
convex hull) are *not* errors: they are represented as ``numpy.nan``.
"""

from __future__ import annotations


class SoilKrigError(ValueError):
    """Base class for all SoilKrigPy errors."""


class InvalidExtentError(SoilKrigError):
    """Samples do not span a usable bounding box for a grid."""


class InsufficientDataError(SoilKrigError):
    """Too few non-missing samples for the requested interpolator."""


class SingularSystemError(SoilKrigError):
    """The ordinary-kriging linear system cannot be solved."""


class DegenerateTriangulationError(SoilKrigError):
    """Samples are collinear (or otherwise cannot be triangulated)."""


class UnsupportedProjectionError(SoilKrigError):
    """A coordinate reference identifier or unit is not supported."""


class EmptySurfaceError(SoilKrigError):
    """A nearest-neighbour join was requested against an empty grid."""


class MethodFailureWarning(UserWarning):
    """Emitted by the pipeline when one interpolation method fails."""


__all__ = [
    "SoilKrigError",
    "InvalidExtentError",
    "InsufficientDataError",
    "SingularSystemError",
    "DegenerateTriangulationError",
    "UnsupportedProjectionError",
    "EmptySurfaceError",
    "MethodFailureWarning",
]

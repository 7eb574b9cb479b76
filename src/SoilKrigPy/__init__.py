"""
SoilKrigPy
==========

Skew-aware interpolation of soil-contaminant samples and spatial linkage
of the predicted surface to study-participant locations.

The package compares three interpolation methods on a shared prediction
grid and joins the best surface onto arbitrary point tables:

1. Building blocks
   ---------------
   - :class:`CRSConfig`, :class:`Projector` — geographic <-> planar CRS.
   - :func:`prepare_samples`, :func:`build_grid` — sample validation and
     the regular prediction grid (longitude-fastest order).
   - :func:`fit_variogram`, :func:`ordinary_kriging` — ordinary kriging
     with an automatically fitted variogram.
   - :func:`tin_interpolate` — Delaunay/TIN linear interpolation,
     undefined outside the convex hull.
   - :func:`fence_split`, :func:`skew_split_interpolate` — IQR-fence split
     into core (kriged) and outlier (triangulated) samples, summed cell
     by cell.

2. Evaluation and linkage
   ----------------------
   - :func:`score_surfaces`, :func:`select_best_method` — RMSE of each
     surface at the samples' nearest grid points.
   - :func:`link_points`, :func:`linked_correlation` — nearest-grid join
     onto samples or participants, and the downstream correlation.

3. End-to-end
   ----------
   - :class:`PipelineConfig`, :func:`run_pipeline`, :func:`export_results`

Example
-------
    >>> import pandas as pd
    >>> from SoilKrigPy import PipelineConfig, run_pipeline
    >>> cfg = PipelineConfig(resolution=0.01)
    >>> res = run_pipeline(samples_df, cfg, participants=participants_df)
    >>> res.status()
    >>> res.best_method
    'tin'
    >>> res.participants_linked[["id", "predicted"]]
"""

from __future__ import annotations

# Public version (update in sync with pyproject.toml)
__version__ = "0.1.0"

from .errors import (
    SoilKrigError,
    InvalidExtentError,
    InsufficientDataError,
    SingularSystemError,
    DegenerateTriangulationError,
    UnsupportedProjectionError,
    EmptySurfaceError,
    MethodFailureWarning,
)

# ---------------------------------------------------------------------------
# Geometry: projection, grid, surfaces
# ---------------------------------------------------------------------------

from .projection import CRSConfig, Projector
from .grid import (
    PredictionGrid,
    PredictionSurface,
    build_grid,
    prepare_samples,
    project_grid,
    valid_samples,
    with_planar_coords,
)

# ---------------------------------------------------------------------------
# Interpolators
# ---------------------------------------------------------------------------

from .variogram import AUTO_MODELS, VARIOGRAM_MODELS, VariogramFit, empirical_variogram, fit_variogram
from .kriging import KrigingResult, krige_surface, kriging_weights, ordinary_kriging
from .tin import barycentric_weights, build_triangulation, tin_interpolate, tin_surface
from .skewsplit import (
    DEFAULT_FENCE_MULTIPLIER,
    FenceSplit,
    combine_surfaces,
    fence_split,
    skew_split_interpolate,
)

# ---------------------------------------------------------------------------
# Scoring, linkage and pipeline
# ---------------------------------------------------------------------------

from .linker import link_points, linked_correlation, nearest_grid_index
from .metrics import (
    DEFAULT_METHOD_PREFERENCE,
    regression_metrics,
    rmse,
    score_surface,
    score_surfaces,
    select_best_method,
)
from .pipeline import (
    KNOWN_METHODS,
    PipelineConfig,
    PipelineResult,
    export_results,
    run_pipeline,
    set_warning_policy,
    surface_table,
)

__all__ = [
    "__version__",
    # errors
    "SoilKrigError",
    "InvalidExtentError",
    "InsufficientDataError",
    "SingularSystemError",
    "DegenerateTriangulationError",
    "UnsupportedProjectionError",
    "EmptySurfaceError",
    "MethodFailureWarning",
    # geometry
    "CRSConfig",
    "Projector",
    "PredictionGrid",
    "PredictionSurface",
    "build_grid",
    "prepare_samples",
    "project_grid",
    "valid_samples",
    "with_planar_coords",
    # interpolators
    "VARIOGRAM_MODELS",
    "AUTO_MODELS",
    "VariogramFit",
    "empirical_variogram",
    "fit_variogram",
    "KrigingResult",
    "krige_surface",
    "kriging_weights",
    "ordinary_kriging",
    "barycentric_weights",
    "build_triangulation",
    "tin_interpolate",
    "tin_surface",
    "DEFAULT_FENCE_MULTIPLIER",
    "FenceSplit",
    "combine_surfaces",
    "fence_split",
    "skew_split_interpolate",
    # scoring, linkage, pipeline
    "link_points",
    "linked_correlation",
    "nearest_grid_index",
    "DEFAULT_METHOD_PREFERENCE",
    "regression_metrics",
    "rmse",
    "score_surface",
    "score_surfaces",
    "select_best_method",
    "KNOWN_METHODS",
    "PipelineConfig",
    "PipelineResult",
    "export_results",
    "run_pipeline",
    "set_warning_policy",
    "surface_table",
]

# src/SoilKrigPy/pipeline.py
# SPDX-License-Identifier: MIT
"""
SoilKrigPy end-to-end pipeline
==============================

This module wires the components together into a single-pass batch run:

1. validate the configuration (CRS, resolution, methods) once, up front;
2. clean the sample table and derive planar coordinates;
3. build the prediction grid over the sample extent;
4. interpolate with every requested method:

   - ``"ok"``       ordinary kriging on all samples,
   - ``"tin"``      Delaunay/TIN on all samples,
   - ``"combined"`` skew-split (kriging on core + TIN on outliers);

5. score every completed surface by RMSE against the samples and pick the
   best method;
6. join the chosen surface onto the samples and, optionally, onto an
   external participant table.

A failure in one method is recorded in :attr:`PipelineResult.failures`
and reported with a :class:`~SoilKrigPy.errors.MethodFailureWarning`;
the other methods still run. Every intermediate value is a new object;
no stage mutates the output of a previous one.

Runtime dependencies
--------------------
- numpy
- pandas
- scipy
- pyproj
- scikit-learn

Optional
--------
- pyarrow (only when exporting tables to Parquet)
"""

from __future__ import annotations

import json
import os
import warnings
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .errors import MethodFailureWarning, SoilKrigError
from .grid import (
    PredictionGrid,
    PredictionSurface,
    build_grid,
    prepare_samples,
    valid_samples,
    with_planar_coords,
)
from .kriging import krige_surface
from .linker import link_points
from .metrics import DEFAULT_METHOD_PREFERENCE, score_surfaces, select_best_method
from .projection import CRSConfig, Projector
from .skewsplit import DEFAULT_FENCE_MULTIPLIER, FenceSplit, fence_split, skew_split_interpolate
from .tin import tin_surface
from .variogram import VARIOGRAM_MODELS


__all__ = [
    "KNOWN_METHODS",
    "PipelineConfig",
    "PipelineResult",
    "run_pipeline",
    "surface_table",
    "export_results",
    "set_warning_policy",
]


KNOWN_METHODS = ("ok", "tin", "combined")


# ---------------------------------------------------------------------
# Warning policy
# ---------------------------------------------------------------------


def set_warning_policy(silence: bool = True) -> None:
    """
    Configure a conservative warning policy for interactive runs.

    Parameters
    ----------
    silence:
        If ``True`` (default), silence noisy warnings that are not
        actionable in a typical workflow: pandas ``FutureWarning`` and
        SciPy ``OptimizeWarning`` raised while fitting variograms to very
        few lag bins. :class:`MethodFailureWarning` is never silenced.
    """
    warnings.resetwarnings()
    if silence:
        from scipy.optimize import OptimizeWarning

        warnings.filterwarnings("ignore", category=FutureWarning)
        warnings.filterwarnings("ignore", category=OptimizeWarning)
    warnings.filterwarnings("always", category=MethodFailureWarning)


# ---------------------------------------------------------------------
# Small I/O helpers (internal)
# ---------------------------------------------------------------------


def _ensure_parent_dir(path: Optional[str]) -> None:
    """Create the parent directory for *path* if needed (no-op on None)."""
    if not path:
        return
    d = os.path.dirname(str(path)) or "."
    os.makedirs(d, exist_ok=True)


def _save_df(
    df: pd.DataFrame,
    path: Optional[str],
    *,
    parquet_compression: str = "snappy",
) -> Optional[str]:
    """Save a DataFrame to CSV or Parquet depending on the file extension."""
    if path is None:
        return None
    _ensure_parent_dir(path)
    ext = os.path.splitext(path)[1].lower()
    if ext == ".csv":
        df.to_csv(path, index=False)
    elif ext == ".parquet":
        df.to_parquet(path, index=False, compression=parquet_compression)
    else:
        raise ValueError(f"Unsupported extension: {ext}")
    return path


def _save_json(obj: dict, path: Optional[str]) -> Optional[str]:
    """Save a dictionary as a pretty-printed UTF-8 JSON file."""
    if path is None:
        return None
    _ensure_parent_dir(path)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, ensure_ascii=False, indent=2, default=float)
    return path


# ---------------------------------------------------------------------
# Configuration and result containers
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class PipelineConfig:
    """Explicit pipeline parameters.

    Attributes
    ----------
    resolution :
        Grid step in degrees.
    crs :
        Source/target CRS and planar unit.
    fence_k :
        IQR fence multiplier for the skew-split method.
    variogram_model :
        ``"auto"`` or a name in :data:`~SoilKrigPy.variogram.VARIOGRAM_MODELS`.
    n_lags :
        Number of empirical variogram bins.
    methods :
        Methods to run, a subset of :data:`KNOWN_METHODS`.
    method_preference :
        Tie-break order used when selecting the best method.
    """

    resolution: float = 0.01
    crs: CRSConfig = field(default_factory=CRSConfig)
    fence_k: float = DEFAULT_FENCE_MULTIPLIER
    variogram_model: str = "auto"
    n_lags: int = 10
    methods: Tuple[str, ...] = KNOWN_METHODS
    method_preference: Tuple[str, ...] = DEFAULT_METHOD_PREFERENCE

    def validate(self) -> Projector:
        """Check every parameter and return the projector for ``crs``."""
        if not np.isfinite(self.resolution) or self.resolution <= 0:
            raise ValueError(f"resolution must be positive, got {self.resolution!r}.")
        if not np.isfinite(self.fence_k) or self.fence_k < 0:
            raise ValueError(f"fence_k must be >= 0, got {self.fence_k!r}.")
        if self.variogram_model != "auto" and self.variogram_model not in VARIOGRAM_MODELS:
            raise ValueError(f"Unknown variogram model: {self.variogram_model!r}.")
        if int(self.n_lags) < 1:
            raise ValueError("n_lags must be >= 1.")
        unknown = [m for m in self.methods if m not in KNOWN_METHODS]
        if unknown or not self.methods:
            raise ValueError(
                f"methods must be a non-empty subset of {KNOWN_METHODS}, got {self.methods!r}."
            )
        return Projector(self.crs)


@dataclass(frozen=True, eq=False)
class PipelineResult:
    """Everything a run produced.

    ``surfaces`` holds the completed methods; ``failures`` maps each failed
    method to a human-readable reason. ``best_method`` is ``None`` when no
    surface could be scored.
    """

    config: PipelineConfig
    projector: Projector
    samples: pd.DataFrame
    grid: PredictionGrid
    surfaces: Dict[str, PredictionSurface]
    failures: Dict[str, str]
    scores: pd.DataFrame
    best_method: Optional[str]
    fence: Optional[FenceSplit]
    samples_linked: Optional[pd.DataFrame]
    participants_linked: Optional[pd.DataFrame] = None

    def status(self) -> pd.DataFrame:
        """One row per requested method: completed/failed, RMSE and reason."""
        rows = []
        for m in self.config.methods:
            row = {"method": m, "status": "failed", "rmse": np.nan, "reason": self.failures.get(m)}
            if m in self.surfaces:
                row["status"] = "completed"
                hit = self.scores.loc[self.scores["method"] == m, "rmse"]
                row["rmse"] = float(hit.iloc[0]) if not hit.empty else np.nan
            rows.append(row)
        return pd.DataFrame(rows, columns=["method", "status", "rmse", "reason"])


# ---------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------


def run_pipeline(
    samples: pd.DataFrame,
    config: PipelineConfig = PipelineConfig(),
    *,
    participants: Optional[pd.DataFrame] = None,
    link_method: Optional[str] = None,
    id_col: str = "id",
    lon_col: str = "longitude",
    lat_col: str = "latitude",
    value_col: str = "value",
    verbose: bool = False,
) -> PipelineResult:
    """
    Run grid building, interpolation, scoring and linking in one pass.

    Parameters
    ----------
    samples : DataFrame
        Sample table with ``[id_col, lon_col, lat_col, value_col]``.
    config : PipelineConfig
        Validated before anything else runs.
    participants : DataFrame, optional
        External point table (``lon_col``/``lat_col``) to receive the
        predictions of ``link_method``.
    link_method : str, optional
        Surface used for the participant join. Defaults to the best-scoring
        method.
    verbose : bool, default False
        Print one ``[INFO]``/``[WARN]`` line per stage.

    Returns
    -------
    PipelineResult

    Raises
    ------
    UnsupportedProjectionError, ValueError
        Invalid configuration.
    InvalidExtentError
        The samples do not span a grid.
    ValueError
        ``link_method`` names a method that did not complete.
    """
    projector = config.validate()

    clean = prepare_samples(
        samples, id_col=id_col, lon_col=lon_col, lat_col=lat_col, value_col=value_col
    )
    planar = valid_samples(
        with_planar_coords(clean, projector, lon_col=lon_col, lat_col=lat_col),
        value_col=value_col,
    )
    grid = build_grid(
        clean, config.resolution, projector=projector, lon_col=lon_col, lat_col=lat_col
    )
    if verbose:
        print(
            f"[INFO] {len(planar)} samples with values; grid {grid.shape[0]}x{grid.shape[1]} "
            f"({len(grid)} points) at Δ={config.resolution}"
        )

    try:
        fence = fence_split(planar, config.fence_k, value_col=value_col)
    except SoilKrigError:
        fence = None

    builders: Dict[str, Callable[[], PredictionSurface]] = {
        "ok": lambda: krige_surface(
            planar,
            grid,
            value_col=value_col,
            model=config.variogram_model,
            n_lags=config.n_lags,
        ),
        "tin": lambda: tin_surface(planar, grid, value_col=value_col),
        "combined": lambda: skew_split_interpolate(
            planar,
            grid,
            k=config.fence_k,
            value_col=value_col,
            model=config.variogram_model,
            n_lags=config.n_lags,
        ),
    }

    surfaces: Dict[str, PredictionSurface] = {}
    failures: Dict[str, str] = {}
    for method in config.methods:
        try:
            surfaces[method] = builders[method]()
        except SoilKrigError as e:
            failures[method] = f"{type(e).__name__}: {e}"
            warnings.warn(f"Method '{method}' failed: {failures[method]}", MethodFailureWarning)
            if verbose:
                print(f"[WARN] {method}: {failures[method]}")
            continue
        if verbose:
            print(f"[INFO] {method}: {surfaces[method].n_defined}/{len(grid)} cells defined")

    scores = score_surfaces(
        clean,
        surfaces,
        projector=projector,
        value_col=value_col,
        lon_col=lon_col,
        lat_col=lat_col,
    )

    best: Optional[str] = None
    if np.isfinite(scores["rmse"].to_numpy(dtype=float)).any():
        best = select_best_method(scores, config.method_preference)
    if verbose:
        print(f"[INFO] best method: {best}")

    samples_linked = None
    if best is not None:
        samples_linked = link_points(
            clean, surfaces[best], projector=projector, lon_col=lon_col, lat_col=lat_col
        )

    participants_linked = None
    if participants is not None:
        chosen = link_method or best
        if chosen not in surfaces:
            reason = failures.get(chosen, "no completed surface") if chosen else "no completed surface"
            raise ValueError(f"Cannot link participants to method {chosen!r}: {reason}")
        participants_linked = link_points(
            participants, surfaces[chosen], projector=projector, lon_col=lon_col, lat_col=lat_col
        )

    return PipelineResult(
        config=config,
        projector=projector,
        samples=clean,
        grid=grid,
        surfaces=surfaces,
        failures=failures,
        scores=scores,
        best_method=best,
        fence=fence,
        samples_linked=samples_linked,
        participants_linked=participants_linked,
    )


# ---------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------


def surface_table(result: PipelineResult, method: str) -> pd.DataFrame:
    """``(X, Y, value[, variance])`` table of one completed surface.

    ``X``/``Y`` are the geographic grid coordinates.
    """
    if method not in result.surfaces:
        reason = result.failures.get(method, "not requested")
        raise KeyError(f"No surface for method {method!r} ({reason}).")
    tab = result.surfaces[method].to_frame()
    tab = tab.rename(columns={"longitude": "X", "latitude": "Y"}).drop(columns=["x", "y"])
    return tab


def export_results(
    result: PipelineResult,
    out_dir: str,
    *,
    file_format: str = "csv",
    methods: Optional[Sequence[str]] = None,
    parquet_compression: str = "snappy",
) -> Dict[str, str]:
    """
    Write surface tables, scores, linked tables and a JSON run summary.

    Parameters
    ----------
    result : PipelineResult
    out_dir : str
        Output directory (created if needed).
    file_format : {"csv", "parquet"}
    methods : sequence of str, optional
        Surfaces to export (default: all completed).

    Returns
    -------
    dict
        Logical name -> written path.
    """
    if file_format not in {"csv", "parquet"}:
        raise ValueError("file_format must be 'csv' or 'parquet'.")
    ext = f".{file_format}"
    written: Dict[str, str] = {}

    for m in methods if methods is not None else list(result.surfaces):
        written[f"surface_{m}"] = _save_df(
            surface_table(result, m),
            os.path.join(out_dir, f"surface_{m}{ext}"),
            parquet_compression=parquet_compression,
        )

    written["scores"] = _save_df(
        result.scores, os.path.join(out_dir, f"scores{ext}"), parquet_compression=parquet_compression
    )
    if result.samples_linked is not None:
        written["samples_linked"] = _save_df(
            result.samples_linked,
            os.path.join(out_dir, f"samples_linked{ext}"),
            parquet_compression=parquet_compression,
        )
    if result.participants_linked is not None:
        written["participants_linked"] = _save_df(
            result.participants_linked,
            os.path.join(out_dir, f"participants_linked{ext}"),
            parquet_compression=parquet_compression,
        )

    summary = {
        "best_method": result.best_method,
        "failures": result.failures,
        "grid": {"shape": list(result.grid.shape), "resolution": result.grid.resolution},
        "crs": {
            "source": result.config.crs.source,
            "target": result.config.crs.target,
            "unit": result.config.crs.unit,
        },
        "fence": result.fence.summary() if result.fence is not None else None,
        "variograms": {
            m: s.variogram.as_dict() for m, s in result.surfaces.items() if s.variogram is not None
        },
        "scores": result.scores.astype(object).where(result.scores.notna(), None).to_dict(orient="records"),
    }
    written["summary"] = _save_json(summary, os.path.join(out_dir, "summary.json"))
    return written

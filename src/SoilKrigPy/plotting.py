# src/SoilKrigPy/plotting.py
# SPDX-License-Identifier: MIT
"""
Diagnostic figures for prediction surfaces and linked tables.

These helpers only consume pipeline outputs; they are meant for quick
visual checks, not for publication maps.
"""

from __future__ import annotations

from typing import Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .grid import PredictionSurface
from .linker import linked_correlation


__all__ = ["plot_surface", "plot_observed_vs_predicted"]


def plot_surface(
    surface: PredictionSurface,
    samples: Optional[pd.DataFrame] = None,
    *,
    ax=None,
    lon_col: str = "longitude",
    lat_col: str = "latitude",
    value_col: str = "value",
    cmap: str = "viridis",
    title: Optional[str] = None,
):
    """
    Raster view of *surface* on geographic axes, optionally with samples.

    Undefined cells are left blank. Returns the matplotlib ``Axes``.
    """
    if ax is None:
        _, ax = plt.subplots(figsize=(7, 6))

    grid = surface.grid
    n_lat, n_lon = grid.shape
    lon = np.asarray(grid.lon).reshape(grid.shape)[0, :]
    lat = np.asarray(grid.lat).reshape(grid.shape)[:, 0]
    z = np.ma.masked_invalid(np.asarray(surface.values).reshape(n_lat, n_lon))

    mesh = ax.pcolormesh(lon, lat, z, shading="nearest", cmap=cmap)
    ax.figure.colorbar(mesh, ax=ax, label=value_col)

    if samples is not None and len(samples):
        ax.scatter(
            samples[lon_col],
            samples[lat_col],
            c=samples[value_col],
            cmap=cmap,
            norm=mesh.norm,
            edgecolors="k",
            s=30,
        )

    ax.set_xlabel("Longitude")
    ax.set_ylabel("Latitude")
    ax.set_title(title or f"{surface.method} surface")
    return ax


def plot_observed_vs_predicted(
    joined: pd.DataFrame,
    *,
    observed_col: str = "value",
    predicted_col: str = "predicted",
    ax=None,
    title: Optional[str] = None,
):
    """
    Scatter of *observed_col* against *predicted_col* with the fitted
    least-squares line and Pearson ``r`` in the legend.
    """
    if ax is None:
        _, ax = plt.subplots(figsize=(6, 5))

    pair = joined[[predicted_col, observed_col]].dropna()
    ax.scatter(pair[predicted_col], pair[observed_col], s=25, alpha=0.8)

    stats = linked_correlation(joined, predicted_col, observed_col)
    if np.isfinite(stats["slope"]):
        xs = np.linspace(pair[predicted_col].min(), pair[predicted_col].max(), 50)
        ax.plot(
            xs,
            stats["slope"] * xs + stats["intercept"],
            "r-",
            lw=1.5,
            label=f"r = {stats['r']:.2f} (n = {stats['n']})",
        )
        ax.legend(loc="best")

    ax.set_xlabel(predicted_col)
    ax.set_ylabel(observed_col)
    ax.set_title(title or f"{observed_col} vs {predicted_col}")
    ax.grid(True, alpha=0.3)
    return ax

# tests/test_skewsplit.py
import numpy as np
import pandas as pd
import pytest

from SoilKrigPy.errors import InsufficientDataError
from SoilKrigPy.grid import build_grid, with_planar_coords
from SoilKrigPy.kriging import krige_surface
from SoilKrigPy.skewsplit import (
    DEFAULT_FENCE_MULTIPLIER,
    combine_surfaces,
    fence_split,
    skew_split_interpolate,
)


# ---------------------------------------------------------------------
# Synthetic dataset helpers
# ---------------------------------------------------------------------


def _skewed_samples() -> pd.DataFrame:
    """Twelve background samples on a lattice plus a hot spot of three."""
    gx, gy = np.meshgrid(np.linspace(0.0, 10.0, 4), np.linspace(0.0, 10.0, 3))
    core_vals = [9.0, 10.0, 11.0, 12.0, 9.5, 10.5, 11.5, 10.0, 11.0, 9.8, 10.2, 10.8]
    lon = list(gx.ravel()) + [1.0, 2.0, 1.0]
    lat = list(gy.ravel()) + [1.0, 1.0, 2.0]
    return pd.DataFrame(
        {
            "id": range(15),
            "longitude": lon,
            "latitude": lat,
            "value": core_vals + [500.0, 600.0, 700.0],
        }
    )


# ---------------------------------------------------------------------
# Fence split
# ---------------------------------------------------------------------


def test_fence_split_flags_single_high_value():
    df = pd.DataFrame({"id": range(5), "value": [10.0, 12.0, 11.0, 9.0, 200.0]})
    split = fence_split(df, 1.25)

    assert split.q1 == pytest.approx(10.0)
    assert split.q3 == pytest.approx(12.0)
    assert split.upper == pytest.approx(14.5)
    assert split.lower == pytest.approx(7.5)
    assert split.outlier["value"].tolist() == [200.0]
    assert split.core["value"].tolist() == [10.0, 12.0, 11.0, 9.0]


@pytest.mark.parametrize("k", [0.0, 0.5, DEFAULT_FENCE_MULTIPLIER, 3.0])
def test_fence_split_is_a_partition(k):
    rng = np.random.default_rng(11)
    df = pd.DataFrame({"id": range(60), "value": rng.lognormal(1.0, 1.2, 60)})
    df.loc[[3, 17], "value"] = np.nan

    split = fence_split(df, k)

    assert len(split.core) + len(split.outlier) == 58
    assert set(split.core["id"]).isdisjoint(split.outlier["id"])
    assert set(split.core["id"]) | set(split.outlier["id"]) == set(df["id"]) - {3, 17}
    assert split.core["value"].between(split.lower, split.upper).all()
    assert not split.outlier["value"].between(split.lower, split.upper).any()


def test_fence_split_rejects_negative_k_and_empty_values():
    df = pd.DataFrame({"id": [1, 2], "value": [1.0, 2.0]})
    with pytest.raises(ValueError):
        fence_split(df, -0.1)
    with pytest.raises(InsufficientDataError):
        fence_split(df.assign(value=np.nan))


def test_fence_split_summary():
    s = fence_split(_skewed_samples()).summary()
    assert s["n_core"] == 12
    assert s["n_outlier"] == 3
    assert s["k"] == DEFAULT_FENCE_MULTIPLIER


# ---------------------------------------------------------------------
# Combination
# ---------------------------------------------------------------------


def test_combine_surfaces_substitutes_zero_for_undefined_outlier_cells():
    core = np.array([1.0, 2.0, np.nan, 4.0])
    outlier = np.array([np.nan, 10.0, 5.0, np.nan])
    out = combine_surfaces(core, outlier)
    np.testing.assert_array_equal(out[[0, 1, 3]], [1.0, 12.0, 4.0])
    assert np.isnan(out[2])

    with pytest.raises(ValueError):
        combine_surfaces(core, outlier[:3])


def test_combined_surface_equals_core_kriging_outside_outlier_hull():
    samples = with_planar_coords(_skewed_samples())
    grid = build_grid(samples, 0.25)

    combined = skew_split_interpolate(samples, grid)
    core = krige_surface(fence_split(samples).core, grid)

    assert combined.method == "combined"
    lon, lat = grid.lon, grid.lat
    outside = (lon < 1.0) | (lat < 1.0) | (lon + lat > 3.0)
    inside = (lon > 1.0) & (lat > 1.0) & (lon + lat < 3.0)
    assert inside.sum() == 3
    np.testing.assert_allclose(combined.values[outside], core.values[outside])
    assert np.all(combined.values[inside] > core.values[inside] + 400.0)
    np.testing.assert_allclose(combined.variance, core.variance)


def test_skew_split_not_applicable_when_core_is_too_small():
    samples = with_planar_coords(
        pd.DataFrame(
            {
                "id": range(4),
                "longitude": [0.0, 1.0, 0.0, 1.0],
                "latitude": [0.0, 0.0, 1.0, 1.0],
                "value": [1.0, 2.0, 3.0, 4.0],
            }
        )
    )
    grid = build_grid(samples, 0.5)
    with pytest.raises(InsufficientDataError, match="skew-split not applicable"):
        skew_split_interpolate(samples, grid, k=0.0)


def test_skew_split_fails_with_too_few_outliers():
    samples = _skewed_samples().iloc[:13]
    samples = with_planar_coords(samples)
    grid = build_grid(samples, 1.0)
    with pytest.raises(InsufficientDataError):
        skew_split_interpolate(samples, grid)


def test_skew_split_without_outliers_reports_empty_fence():
    samples = with_planar_coords(_skewed_samples().iloc[:12])
    grid = build_grid(samples, 1.0)
    with pytest.raises(InsufficientDataError, match="skew-split not applicable: 0 outlier"):
        skew_split_interpolate(samples, grid)

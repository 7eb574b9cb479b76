# tests/test_grid.py
import numpy as np
import pandas as pd
import pytest

from SoilKrigPy.errors import InsufficientDataError, InvalidExtentError
from SoilKrigPy.grid import (
    _finite_points,
    PredictionGrid,
    PredictionSurface,
    build_grid,
    prepare_samples,
    project_grid,
    valid_samples,
    with_planar_coords,
)
from SoilKrigPy.projection import CRSConfig, Projector


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------


@pytest.fixture
def toy_samples() -> pd.DataFrame:
    """Four samples on a 1 x 0.5 box (binary-exact coordinates)."""
    return pd.DataFrame(
        {
            "id": [1, 2, 3, 4],
            "longitude": [0.0, 1.0, 0.0, 1.0],
            "latitude": [0.0, 0.0, 0.5, 0.5],
            "value": [1.0, 2.0, np.nan, 4.0],
        }
    )


# ---------------------------------------------------------------------
# Sample preparation
# ---------------------------------------------------------------------


def test_prepare_samples_drops_missing_coordinates_and_keeps_missing_values():
    raw = pd.DataFrame(
        {
            "id": [1, 2, 3],
            "longitude": [0.0, None, 1.0],
            "latitude": [0.0, 1.0, "1.0"],
            "value": [5.0, 6.0, None],
        }
    )
    clean = prepare_samples(raw)
    assert clean["id"].tolist() == [1, 3]
    assert clean["latitude"].dtype == float
    assert np.isnan(clean["value"].iloc[1])
    # input untouched
    assert raw["latitude"].iloc[2] == "1.0"


def test_prepare_samples_rejects_duplicate_ids_and_missing_columns(toy_samples):
    dup = toy_samples.copy()
    dup.loc[1, "id"] = 1
    with pytest.raises(ValueError, match="not unique"):
        prepare_samples(dup)
    with pytest.raises(ValueError, match="missing required columns"):
        prepare_samples(toy_samples.drop(columns=["value"]))


def test_valid_samples_filters_missing_values(toy_samples):
    out = valid_samples(toy_samples)
    assert out["id"].tolist() == [1, 2, 4]


def test_with_planar_coords_without_projector_copies_geographic(toy_samples):
    out = with_planar_coords(toy_samples)
    assert "x" not in toy_samples.columns
    np.testing.assert_array_equal(out["x"], toy_samples["longitude"])
    np.testing.assert_array_equal(out["y"], toy_samples["latitude"])


# ---------------------------------------------------------------------
# Grid builder
# ---------------------------------------------------------------------


def test_build_grid_extent_order_and_shape(toy_samples):
    grid = build_grid(toy_samples, 0.25)

    # 5 longitudes (0..1) x 3 latitudes (0..0.5), endpoints included
    assert grid.shape == (3, 5)
    assert len(grid) == 15

    # longitude varies fastest
    np.testing.assert_array_equal(grid.lon[:5], [0.0, 0.25, 0.5, 0.75, 1.0])
    np.testing.assert_array_equal(grid.lat[:5], np.zeros(5))
    assert grid.lat[5] == 0.25
    assert (grid.lon[-1], grid.lat[-1]) == (1.0, 0.5)

    # not projected: planar == geographic
    np.testing.assert_array_equal(grid.x, grid.lon)
    assert not grid.projected


def test_build_grid_is_deterministic(toy_samples):
    g1 = build_grid(toy_samples, 0.1)
    g2 = build_grid(toy_samples.copy(), 0.1)
    np.testing.assert_array_equal(g1.lon, g2.lon)
    np.testing.assert_array_equal(g1.lat, g2.lat)
    assert g1.shape == g2.shape


def test_build_grid_step_not_dividing_extent(toy_samples):
    """The last grid line never exceeds the sample extent."""
    grid = build_grid(toy_samples, 0.3)
    assert grid.lon.max() <= 1.0
    assert grid.lat.max() <= 0.5
    assert grid.shape == (2, 4)


def test_build_grid_last_node_lands_on_extent():
    samples = pd.DataFrame(
        {"longitude": [-76.20, -76.07, -76.13], "latitude": [42.98, 43.09, 43.01]}
    )
    grid = build_grid(samples, 0.01)

    assert grid.shape == (12, 14)
    assert grid.lon.min() == -76.20
    assert grid.lon.max() == -76.07
    assert grid.lat.min() == 42.98
    assert grid.lat.max() == 43.09


def test_grid_arrays_are_read_only(toy_samples):
    grid = build_grid(toy_samples, 0.5)
    with pytest.raises(ValueError):
        grid.lon[0] = 99.0


@pytest.mark.parametrize(
    "coords",
    [
        [(0.0, 0.0)],  # single point
        [(0.0, 0.0), (0.0, 0.0)],  # duplicates only
        [(0.0, 0.0), (1.0, 0.0)],  # zero height
        [(0.0, 0.0), (0.0, 1.0), (0.0, 2.0)],  # zero width
    ],
)
def test_build_grid_degenerate_extent(coords):
    df = pd.DataFrame(coords, columns=["longitude", "latitude"])
    with pytest.raises(InvalidExtentError):
        build_grid(df, 0.1)


@pytest.mark.parametrize("res", [0.0, -0.5, np.nan])
def test_build_grid_rejects_bad_resolution(toy_samples, res):
    with pytest.raises(ValueError):
        build_grid(toy_samples, res)


def test_build_grid_with_projector_fills_planar_coordinates():
    samples = pd.DataFrame(
        {"longitude": [-90.10, -90.00, -90.05], "latitude": [29.90, 29.90, 30.00]}
    )
    proj = Projector(CRSConfig(unit="km"))
    grid = build_grid(samples, 0.05, projector=proj)

    assert grid.projected
    x0, y0 = proj.project(float(grid.lon[0]), float(grid.lat[0]))
    assert grid.x[0] == pytest.approx(x0)
    assert grid.y[0] == pytest.approx(y0)

    # project_grid keeps the geographic arrays
    again = project_grid(build_grid(samples, 0.05), proj)
    np.testing.assert_allclose(again.x, grid.x)
    np.testing.assert_array_equal(again.lon, grid.lon)


# ---------------------------------------------------------------------
# Prediction surface
# ---------------------------------------------------------------------


def test_surface_length_must_match_grid(toy_samples):
    grid = build_grid(toy_samples, 0.5)
    with pytest.raises(ValueError):
        PredictionSurface(method="x", grid=grid, values=np.zeros(len(grid) + 1))


def test_surface_to_frame_and_defined_count(toy_samples):
    grid = build_grid(toy_samples, 0.5)
    vals = np.arange(len(grid), dtype=float)
    vals[0] = np.nan
    surf = PredictionSurface(method="tin", grid=grid, values=vals)

    tab = surf.to_frame()
    assert list(tab.columns) == ["longitude", "latitude", "x", "y", "value"]
    assert len(tab) == len(grid)
    assert surf.n_defined == len(grid) - 1

    # caller's array is not aliased
    vals[1] = -1.0
    assert surf.values[1] == 1.0


def test_empty_grid_is_allowed():
    grid = PredictionGrid(
        lon=np.empty(0), lat=np.empty(0), x=np.empty(0), y=np.empty(0),
        resolution=1.0, shape=(0, 0),
    )
    assert len(grid) == 0
    assert grid.xy.shape == (0, 2)


def test_finite_points_filters_and_counts():
    xy = np.array([[0.0, 0.0], [1.0, np.nan], [2.0, 0.0], [0.0, 2.0]])
    z = np.array([1.0, 2.0, np.nan, 4.0])

    pts, vals = _finite_points(xy, z, min_samples=2, label="Test")
    np.testing.assert_array_equal(pts, [[0.0, 0.0], [0.0, 2.0]])
    np.testing.assert_array_equal(vals, [1.0, 4.0])

    with pytest.raises(InsufficientDataError, match="Test needs at least 3"):
        _finite_points(xy, z, min_samples=3, label="Test")
    with pytest.raises(ValueError):
        _finite_points(xy[:, :1], z, min_samples=1, label="Test")

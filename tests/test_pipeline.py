# tests/test_pipeline.py
import json
import warnings

import numpy as np
import pandas as pd
import pytest

from SoilKrigPy.errors import (
    InvalidExtentError,
    MethodFailureWarning,
    UnsupportedProjectionError,
)
from SoilKrigPy.pipeline import (
    PipelineConfig,
    export_results,
    run_pipeline,
    set_warning_policy,
    surface_table,
)
from SoilKrigPy.projection import CRSConfig


# ---------------------------------------------------------------------
# Synthetic dataset helpers
# ---------------------------------------------------------------------


def _five_samples() -> pd.DataFrame:
    """Four corners of a 0.1° square plus its centre; one hot spot."""
    return pd.DataFrame(
        {
            "id": ["s1", "s2", "s3", "s4", "s5"],
            "longitude": [-90.10, -90.00, -90.10, -90.00, -90.05],
            "latitude": [29.90, 29.90, 30.00, 30.00, 29.95],
            "value": [10.0, 12.0, 11.0, 9.0, 200.0],
        }
    )


def _participants() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "pid": [101, 102, 103],
            "longitude": [-90.051, -90.099, np.nan],
            "latitude": [29.951, 29.902, 29.95],
            "blood_lead": [4.1, 1.2, 2.0],
        }
    )


@pytest.fixture
def run():
    with pytest.warns(MethodFailureWarning, match="combined"):
        res = run_pipeline(
            _five_samples(), PipelineConfig(resolution=0.01), participants=_participants()
        )
    return res


# ---------------------------------------------------------------------
# End-to-end
# ---------------------------------------------------------------------


def test_pipeline_records_failed_method_and_keeps_others(run):
    assert run.grid.shape == (11, 11)
    assert set(run.surfaces) == {"ok", "tin"}
    # a single outlier cannot be triangulated
    assert "InsufficientDataError" in run.failures["combined"]

    assert run.fence is not None
    assert run.fence.outlier["id"].tolist() == ["s5"]

    scores = run.scores.set_index("method")
    assert np.isfinite(scores.loc[["ok", "tin"], "rmse"]).all()
    assert run.best_method in {"ok", "tin"}


def test_pipeline_status_table(run):
    status = run.status().set_index("method")
    assert status.loc["ok", "status"] == "completed"
    assert status.loc["tin", "status"] == "completed"
    assert status.loc["combined", "status"] == "failed"
    assert status.loc["combined", "reason"].startswith("InsufficientDataError")
    assert np.isnan(status.loc["combined", "rmse"])


def test_tin_score_uses_every_sample_when_corners_are_samples():
    rng = np.random.default_rng(21)
    n_inner = 26
    lon = np.concatenate([[-76.20, -76.07, -76.20, -76.07], rng.uniform(-76.18, -76.09, n_inner)])
    lat = np.concatenate([[42.98, 42.98, 43.09, 43.09], rng.uniform(43.00, 43.07, n_inner)])
    samples = pd.DataFrame(
        {
            "id": range(30),
            "longitude": lon,
            "latitude": lat,
            "value": rng.lognormal(3.0, 0.5, 30),
        }
    )

    res = run_pipeline(samples, PipelineConfig(resolution=0.01, methods=("tin",)))

    assert res.scores.set_index("method").loc["tin", "n_pairs"] == len(samples)
    linked = res.samples_linked
    assert linked["predicted"].notna().all()
    corners = linked.iloc[:4]
    np.testing.assert_allclose(corners["predicted"], corners["value"], rtol=1e-9)


def test_pipeline_links_samples_and_participants(run):
    linked = run.samples_linked
    assert len(linked) == 5
    # samples sit on grid nodes, so the exact interpolators reproduce them
    np.testing.assert_allclose(linked["predicted"], linked["value"], rtol=1e-6)

    parts = run.participants_linked
    assert parts["pid"].tolist() == [101, 102, 103]
    assert parts["grid_index"].iloc[2] == -1
    assert np.isnan(parts["predicted"].iloc[2])
    assert parts["grid_longitude"].iloc[0] == pytest.approx(-90.05)
    assert parts["grid_latitude"].iloc[1] == pytest.approx(29.90)


def test_pipeline_link_method_must_have_completed():
    with pytest.warns(MethodFailureWarning):
        with pytest.raises(ValueError, match="combined"):
            run_pipeline(
                _five_samples(),
                PipelineConfig(resolution=0.02),
                participants=_participants(),
                link_method="combined",
            )


def test_pipeline_explicit_link_method_and_subset_of_methods():
    with warnings.catch_warnings():
        warnings.simplefilter("error", MethodFailureWarning)
        res = run_pipeline(
            _five_samples(),
            PipelineConfig(resolution=0.02, methods=("tin",)),
            participants=_participants(),
            link_method="tin",
        )
    assert list(res.surfaces) == ["tin"]
    assert res.failures == {}
    assert res.best_method == "tin"
    assert "predicted_variance" not in res.participants_linked.columns


# ---------------------------------------------------------------------
# Configuration and input validation
# ---------------------------------------------------------------------


@pytest.mark.parametrize(
    "cfg, exc",
    [
        (PipelineConfig(crs=CRSConfig(target="EPSG:999999")), UnsupportedProjectionError),
        (PipelineConfig(crs=CRSConfig(unit="mi")), UnsupportedProjectionError),
        (PipelineConfig(resolution=0.0), ValueError),
        (PipelineConfig(fence_k=-1.0), ValueError),
        (PipelineConfig(variogram_model="cubic"), ValueError),
        (PipelineConfig(methods=("ok", "idw")), ValueError),
        (PipelineConfig(methods=()), ValueError),
    ],
)
def test_invalid_configuration_fails_before_any_work(cfg, exc):
    with warnings.catch_warnings():
        warnings.simplefilter("error", MethodFailureWarning)
        with pytest.raises(exc):
            run_pipeline(_five_samples(), cfg)


def test_degenerate_extent_is_fatal():
    df = _five_samples().assign(latitude=29.9)
    with pytest.raises(InvalidExtentError):
        run_pipeline(df, PipelineConfig(resolution=0.02))


def test_verbose_prints_stage_lines(capsys):
    with pytest.warns(MethodFailureWarning):
        run_pipeline(_five_samples(), PipelineConfig(resolution=0.02), verbose=True)
    out = capsys.readouterr().out
    assert "[INFO]" in out
    assert "[WARN] combined" in out
    assert "best method" in out


# ---------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------


def test_surface_table_columns(run):
    tab = surface_table(run, "ok")
    assert tab.columns.tolist() == ["X", "Y", "value", "variance"]
    assert len(tab) == len(run.grid)
    assert surface_table(run, "tin").columns.tolist() == ["X", "Y", "value"]
    with pytest.raises(KeyError):
        surface_table(run, "combined")


def test_export_results_writes_tables_and_summary(run, tmp_path):
    written = export_results(run, str(tmp_path / "out"))

    assert set(written) == {
        "surface_ok",
        "surface_tin",
        "scores",
        "samples_linked",
        "participants_linked",
        "summary",
    }
    surf = pd.read_csv(written["surface_tin"])
    assert len(surf) == 121

    with open(written["summary"], encoding="utf-8") as f:
        summary = json.load(f)
    assert summary["best_method"] == run.best_method
    assert "combined" in summary["failures"]
    assert summary["grid"]["shape"] == [11, 11]
    assert summary["crs"]["target"] == "EPSG:5070"
    assert summary["fence"]["n_outlier"] == 1
    assert "ok" in summary["variograms"]
    assert {row["method"] for row in summary["scores"]} == {"ok", "tin"}


def test_export_results_rejects_unknown_format(run, tmp_path):
    with pytest.raises(ValueError):
        export_results(run, str(tmp_path), file_format="xlsx")


# ---------------------------------------------------------------------
# Warning policy
# ---------------------------------------------------------------------


def test_set_warning_policy_keeps_method_failures_visible():
    with warnings.catch_warnings(record=True) as rec:
        set_warning_policy(silence=True)
        warnings.warn("noise", FutureWarning)
        warnings.warn("method failed", MethodFailureWarning)
    categories = [w.category for w in rec]
    assert FutureWarning not in categories
    assert MethodFailureWarning in categories

"""
Tests for CLI argument parsing in cli.py.

Uses monkeypatch to intercept StatePipeline construction and save_results,
verifying that argument combinations produce the right settings, input paths
and output directory without reading any data.

Run: uv run pytest tests/test_cli.py -v
"""

from pathlib import Path

import pytest

from census_clusters.cli import main
from census_clusters.config import ELECTIONS_FILE, PROCESSED_DIR, TRACTS_FILE

# ── Helpers ──────────────────────────────────────────────────────────────────


@pytest.fixture
def mock_pipeline(monkeypatch):
    """Patch StatePipeline and save_results to capture calls without running."""
    calls = {"pipelines": [], "saved": []}

    class FakePipeline:
        def __init__(self, settings=None):
            self.settings = settings
            self.run_args = None
            calls["pipelines"].append(self)

        def run(self, tracts_path, elections_path):
            self.run_args = (tracts_path, elections_path)
            return "result"

    def fake_save(output_dir, result):
        calls["saved"].append((output_dir, result))
        return []

    monkeypatch.setattr("census_clusters.cli.StatePipeline", FakePipeline)
    monkeypatch.setattr("census_clusters.cli.save_results", fake_save)
    return calls


# ── Default arguments ────────────────────────────────────────────────────────


class TestDefaultArgs:
    """CLI with no arguments uses config defaults."""

    def test_defaults(self, mock_pipeline):
        """No flags: config paths, year and candidates reach the pipeline."""
        main([])
        pipeline = mock_pipeline["pipelines"][0]
        assert pipeline.settings.year == 2016
        assert pipeline.settings.candidate_a == "Donald Trump"
        assert pipeline.settings.candidate_b == "Hillary Clinton"
        assert pipeline.settings.correlation_threshold == 0.9
        assert pipeline.settings.variance_floor == 0.05
        assert pipeline.settings.cumulative_target is None
        assert pipeline.settings.linkage_method == "complete"
        assert pipeline.run_args == (TRACTS_FILE, ELECTIONS_FILE)

    def test_results_saved(self, mock_pipeline):
        main([])
        assert mock_pipeline["saved"] == [(PROCESSED_DIR, "result")]


# ── Overrides ────────────────────────────────────────────────────────────────


class TestOverrides:
    """CLI flags reach the pipeline settings and output paths."""

    def test_paths(self, mock_pipeline):
        main(["--tracts", "t.csv", "--elections", "e.csv", "-o", "out"])
        assert mock_pipeline["pipelines"][0].run_args == (Path("t.csv"), Path("e.csv"))
        assert mock_pipeline["saved"][0][0] == Path("out")

    def test_election_settings(self, mock_pipeline):
        main(["--year", "2012", "--candidate-a", "Mitt Romney",
              "--candidate-b", "Barack Obama"])
        settings = mock_pipeline["pipelines"][0].settings
        assert settings.year == 2012
        assert settings.candidate_a == "Mitt Romney"
        assert settings.candidate_b == "Barack Obama"

    def test_thresholds(self, mock_pipeline):
        """Correlation threshold and component rule flags map onto settings."""
        main(["--threshold", "0.8", "--variance-floor", "0.1", "--cumulative-target", "0.9"])
        settings = mock_pipeline["pipelines"][0].settings
        assert settings.correlation_threshold == 0.8
        assert settings.variance_floor == 0.1
        assert settings.cumulative_target == 0.9

    @pytest.mark.parametrize("method", ["complete", "single", "average", "centroid"])
    def test_linkage_choices(self, mock_pipeline, method):
        main(["--linkage", method])
        assert mock_pipeline["pipelines"][0].settings.linkage_method == method

    def test_invalid_linkage_exits(self, mock_pipeline):
        """argparse rejects a linkage outside the supported choices."""
        with pytest.raises(SystemExit):
            main(["--linkage", "ward"])
        assert mock_pipeline["pipelines"] == []

"""
Tests for result export in output.py.

Verifies that save_results() writes the feature tables, PCA frames, cluster
event CSVs and manifest with the right filenames and contents.

Run: uv run pytest tests/test_output.py -v
"""

import json

import numpy as np
import polars as pl

from census_clusters.hierarchy import divisive
from census_clusters.output import events_frame, save_results
from census_clusters.pipeline import StatePipeline

# ── events_frame() ───────────────────────────────────────────────────────────


class TestEventsFrame:
    """Cluster events as a flat table."""

    def test_one_row_per_event(self):
        tree = divisive(np.array([[0.0], [1.0], [5.0], [6.0]]), ["A", "B", "C", "D"])
        frame = events_frame(tree)
        assert frame.columns == ["step", "distance", "size", "left", "right"]
        assert frame.height == 3
        first = frame.row(0, named=True)
        assert first == {"step": 0, "distance": 6.0, "size": 4, "left": "A; B", "right": "C; D"}


# ── save_results() ───────────────────────────────────────────────────────────


class TestSaveResults:
    """Files written for a pipeline run."""

    def test_writes_all_files(self, tmp_path, raw_tracts, raw_elections):
        result = StatePipeline().run_frames(raw_tracts, raw_elections)
        out = tmp_path / "processed"
        written = save_results(out, result)

        names = sorted(p.name for p in written)
        assert names == sorted([
            "county_features.parquet",
            "state_features.parquet",
            "pc_scores.parquet",
            "pc_loadings.parquet",
            "explained_variance.parquet",
            "cluster_events_complete.csv",
            "cluster_events_diana.csv",
            "pipeline_manifest.json",
        ])
        assert all(p.exists() for p in written)

    def test_tables_round_trip(self, tmp_path, raw_tracts, raw_elections):
        """Parquet files read back to the frames held in the result."""
        result = StatePipeline().run_frames(raw_tracts, raw_elections)
        save_results(tmp_path, result)

        states = pl.read_parquet(tmp_path / "state_features.parquet")
        assert states["State"].to_list() == result.features["State"].to_list()
        assert "a_leads" in states.columns

        scores = pl.read_parquet(tmp_path / "pc_scores.parquet")
        assert scores.height == result.features.height

        events = pl.read_csv(tmp_path / "cluster_events_diana.csv")
        assert events.height == result.features.height - 1

    def test_manifest_json(self, tmp_path, raw_tracts, raw_elections):
        result = StatePipeline().run_frames(raw_tracts, raw_elections)
        save_results(tmp_path, result)
        with open(tmp_path / "pipeline_manifest.json") as f:
            manifest = json.load(f)
        assert manifest["n_states"] == result.features.height
        assert manifest["settings"]["year"] == 2016
        assert manifest["cleaning"]["rows_dropped"]["zero_population"] == 0

"""File output for pipeline results."""

import json
from pathlib import Path

import polars as pl

from census_clusters.models import ClusterTree
from census_clusters.pipeline import PipelineResult
from census_clusters.reduction import explained_variance_frame, loadings_frame, scores_frame


def events_frame(tree: ClusterTree) -> pl.DataFrame:
    """One row per merge/split event, members joined with '; '."""
    return pl.DataFrame(
        {
            "step": [e.step for e in tree.events],
            "distance": [e.distance for e in tree.events],
            "size": [e.size for e in tree.events],
            "left": ["; ".join(e.left) for e in tree.events],
            "right": ["; ".join(e.right) for e in tree.events],
        },
        schema={
            "step": pl.Int64,
            "distance": pl.Float64,
            "size": pl.Int64,
            "left": pl.String,
            "right": pl.String,
        },
    )


def save_results(output_dir: Path, result: PipelineResult) -> list[Path]:
    """Write tables, cluster events and the run manifest. Returns written paths."""
    print("\n" + "=" * 60)
    print("Saving outputs...")
    print("=" * 60)
    output_dir.mkdir(parents=True, exist_ok=True)

    tables = {
        "county_features.parquet": result.counties,
        "state_features.parquet": result.features,
        "pc_scores.parquet": scores_frame(result.reduction),
        "pc_loadings.parquet": loadings_frame(result.reduction),
        "explained_variance.parquet": explained_variance_frame(result.reduction),
    }
    written = []
    for name, df in tables.items():
        path = output_dir / name
        df.write_parquet(path)
        written.append(path)
        print(f"  {path} ({df.height} rows)")

    for tree in (result.agglomerative, result.divisive):
        path = output_dir / f"cluster_events_{tree.method}.csv"
        events_frame(tree).write_csv(path)
        written.append(path)
        print(f"  {path} ({len(tree.events)} events)")

    path = output_dir / "pipeline_manifest.json"
    with open(path, "w") as f:
        json.dump(result.manifest, f, indent=2, default=str)
    written.append(path)
    print(f"  {path}")
    return written

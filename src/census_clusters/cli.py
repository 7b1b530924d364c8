"""Command-line interface for the state demographic clustering pipeline."""

import argparse
from pathlib import Path

from census_clusters.config import (
    CANDIDATE_A,
    CANDIDATE_B,
    CORRELATION_THRESHOLD,
    ELECTION_YEAR,
    ELECTIONS_FILE,
    LINKAGE_METHOD,
    LINKAGE_METHODS,
    PROCESSED_DIR,
    TRACTS_FILE,
    VARIANCE_FLOOR,
)
from census_clusters.output import save_results
from census_clusters.pipeline import PipelineSettings, StatePipeline


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="census-clusters",
        description="Cluster US states by census-tract demographics and label them "
        "with presidential election results.",
    )
    parser.add_argument(
        "--tracts", type=Path, default=TRACTS_FILE,
        help=f"Per-tract demographic CSV (default: {TRACTS_FILE})",
    )
    parser.add_argument(
        "--elections", type=Path, default=ELECTIONS_FILE,
        help=f"County presidential returns CSV (default: {ELECTIONS_FILE})",
    )
    parser.add_argument(
        "--year", type=int, default=ELECTION_YEAR,
        help=f"Election year to label states with (default: {ELECTION_YEAR})",
    )
    parser.add_argument("--candidate-a", default=CANDIDATE_A)
    parser.add_argument("--candidate-b", default=CANDIDATE_B)
    parser.add_argument(
        "--output", "-o", type=Path, default=PROCESSED_DIR,
        help=f"Output directory (default: {PROCESSED_DIR})",
    )
    parser.add_argument(
        "--threshold", type=float, default=CORRELATION_THRESHOLD,
        help=f"Drop one of any feature pair with |r| above this (default: {CORRELATION_THRESHOLD})",
    )
    parser.add_argument(
        "--variance-floor", type=float, default=VARIANCE_FLOOR,
        help=f"Keep leading PCs explaining at least this share each (default: {VARIANCE_FLOOR})",
    )
    parser.add_argument(
        "--cumulative-target", type=float, default=None,
        help="Instead keep the smallest PC prefix reaching this cumulative share",
    )
    parser.add_argument(
        "--linkage", choices=LINKAGE_METHODS, default=LINKAGE_METHOD,
        help=f"Agglomerative linkage method (default: {LINKAGE_METHOD})",
    )

    args = parser.parse_args(argv)

    settings = PipelineSettings(
        year=args.year,
        candidate_a=args.candidate_a,
        candidate_b=args.candidate_b,
        correlation_threshold=args.threshold,
        variance_floor=args.variance_floor,
        cumulative_target=args.cumulative_target,
        linkage_method=args.linkage,
    )
    pipeline = StatePipeline(settings)
    result = pipeline.run(args.tracts, args.elections)
    save_results(args.output, result)

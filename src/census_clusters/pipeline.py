"""End-to-end pipeline from raw tract and election tables to cluster trees.

Each stage is a method that takes the previous stage's output and returns a
new value; nothing is stored on the pipeline between stages. ``run()`` threads
the outputs through in order and returns them all in a PipelineResult.
"""

import time
from dataclasses import asdict, dataclass, field
from pathlib import Path

import polars as pl

from census_clusters.aggregate import aggregate
from census_clusters.config import (
    A_LEADS,
    CANDIDATE_A,
    CANDIDATE_B,
    CORRELATION_THRESHOLD,
    CUMULATIVE_TARGET,
    ELECTION_YEAR,
    LINKAGE_METHOD,
    STATE,
    VARIANCE_FLOOR,
)
from census_clusters.elections import load_elections, merge_elections, state_vote_shares
from census_clusters.features import PruningReport, select_features
from census_clusters.hierarchy import agglomerative, divisive
from census_clusters.models import ClusterTree
from census_clusters.reduction import Reduction, fit_reduction, orient_pc1
from census_clusters.tracts import clean_tracts, load_tracts


@dataclass(frozen=True)
class PipelineSettings:
    """Tunable policy for one pipeline run."""

    year: int = ELECTION_YEAR
    candidate_a: str = CANDIDATE_A
    candidate_b: str = CANDIDATE_B
    correlation_threshold: float = CORRELATION_THRESHOLD
    variance_floor: float = VARIANCE_FLOOR
    cumulative_target: float | None = CUMULATIVE_TARGET
    linkage_method: str = LINKAGE_METHOD


@dataclass(frozen=True, eq=False)
class PipelineResult:
    """Every intermediate product of one run."""

    tracts: pl.DataFrame
    counties: pl.DataFrame
    states: pl.DataFrame
    features: pl.DataFrame
    pruning: PruningReport
    reduction: Reduction
    agglomerative: ClusterTree
    divisive: ClusterTree
    manifest: dict = field(default_factory=dict)


def _fmt_elapsed(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs:02d}s"


class StatePipeline:
    """Clean, aggregate, merge, prune, reduce and cluster US state demographics."""

    def __init__(self, settings: PipelineSettings | None = None):
        self.settings = settings or PipelineSettings()

    # -- Stages ----------------------------------------------------------------

    def clean(self, raw_tracts: pl.DataFrame) -> tuple[pl.DataFrame, dict]:
        return clean_tracts(raw_tracts)

    def roll_up(self, tracts: pl.DataFrame) -> tuple[pl.DataFrame, pl.DataFrame]:
        counties = aggregate(tracts, "county")
        states = aggregate(tracts, "state")
        print(f"  Aggregated: {counties.height:,} counties, {states.height} states")
        return counties, states

    def merge(self, states: pl.DataFrame, raw_elections: pl.DataFrame) -> pl.DataFrame:
        s = self.settings
        shares = state_vote_shares(raw_elections, s.year, s.candidate_a, s.candidate_b)
        return merge_elections(states, shares)

    def prune(self, features: pl.DataFrame) -> PruningReport:
        return select_features(features, threshold=self.settings.correlation_threshold)

    def reduce(self, features: pl.DataFrame, pruning: PruningReport) -> Reduction:
        s = self.settings
        reduction = fit_reduction(
            features,
            list(pruning.kept),
            label_col=STATE,
            variance_floor=s.variance_floor,
            cumulative_target=s.cumulative_target,
        )
        return orient_pc1(reduction, features[A_LEADS].to_numpy())

    def cluster(self, reduction: Reduction) -> tuple[ClusterTree, ClusterTree]:
        labels = list(reduction.labels)
        agg = agglomerative(reduction.scores, labels, method=self.settings.linkage_method)
        div = divisive(reduction.scores, labels)
        print(f"  Trees: {agg.method} top merge at {agg.heights[-1]:.3f}, "
              f"diana top split at {div.heights[0]:.3f}")
        return agg, div

    # -- Orchestration ---------------------------------------------------------

    def run_frames(
        self, raw_tracts: pl.DataFrame, raw_elections: pl.DataFrame,
    ) -> PipelineResult:
        """Run every stage on in-memory tables."""
        start = time.time()
        step_times: list[tuple[str, float]] = []

        def timed(label, fn, *args):
            t = time.time()
            print(f"\n{label}...")
            out = fn(*args)
            step_times.append((label, time.time() - t))
            return out

        tracts, manifest = timed("Clean tracts", self.clean, raw_tracts)
        counties, states = timed("Aggregate", self.roll_up, tracts)
        features = timed("Merge elections", self.merge, states, raw_elections)
        pruning = timed("Prune features", self.prune, features)
        reduction = timed("Reduce dimensions", self.reduce, features, pruning)
        agg, div = timed("Cluster", self.cluster, reduction)

        print("\nStep timing:")
        for label, secs in step_times:
            print(f"  {label:30s} {_fmt_elapsed(secs):>8s}")
        print(f"  {'Total':30s} {_fmt_elapsed(time.time() - start):>8s}")

        manifest = {
            "cleaning": manifest,
            "settings": asdict(self.settings),
            "n_states": features.height,
            "features_kept": list(pruning.kept),
            "features_dropped": [
                {"column": d.column, "reason": d.reason, "partner": d.partner,
                 "correlation": d.correlation}
                for d in pruning.dropped
            ],
            "n_components": reduction.n_components,
            "component_rule": reduction.rule,
            "explained_variance": reduction.explained_variance_ratio.tolist(),
        }
        return PipelineResult(
            tracts=tracts,
            counties=counties,
            states=states,
            features=features,
            pruning=pruning,
            reduction=reduction,
            agglomerative=agg,
            divisive=div,
            manifest=manifest,
        )

    def run(self, tracts_path: Path, elections_path: Path) -> PipelineResult:
        """Load both input files and run every stage."""
        print("=" * 60)
        print(f"  State demographic clusters ({self.settings.year} election)")
        print(f"  Tracts:    {tracts_path}")
        print(f"  Elections: {elections_path}")
        print("=" * 60)
        return self.run_frames(load_tracts(tracts_path), load_elections(elections_path))

"""
US Census Tracts - Exploratory Data Analysis (Phase 1)

Cleans the per-tract demographic survey, rolls it up to counties and states,
labels each state with its presidential vote shares, and prunes redundant
features before dimensionality reduction.

Usage:
  uv run python analysis/eda.py [--dataset acs2015] [--tracts ...] [--elections ...] \
      [--year 2016] [--threshold 0.9]

Outputs (in results/<dataset>/eda/<date>/):
  - data/:   Parquet files (county and state feature tables, pruned state features)
  - plots/:  PNG visualizations (correlation heatmaps, outcome split per feature)
  - filtering_manifest.json, run_info.json, run_log.txt
"""

from __future__ import annotations

import argparse
import json
import warnings
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import polars as pl
import seaborn as sns

from census_clusters.config import (
    A_LEADS,
    CORRELATION_THRESHOLD,
    ELECTION_COLUMNS,
    ELECTION_YEAR,
    ELECTIONS_FILE,
    LABEL_COLUMNS,
    STATE,
    TRACTS_FILE,
)
from census_clusters.elections import load_elections
from census_clusters.errors import JoinMismatchError
from census_clusters.features import PruningReport, feature_columns
from census_clusters.impute import null_counts
from census_clusters.pipeline import PipelineSettings, StatePipeline
from census_clusters.tracts import load_tracts, numeric_columns

try:
    from analysis.run_context import RunContext
except ModuleNotFoundError:
    from run_context import RunContext

# ── Primer ───────────────────────────────────────────────────────────────────
# Written to results/<dataset>/eda/README.md by RunContext on each run.

EDA_PRIMER = """\
# Exploratory Data Analysis

## Purpose

Turns ~74,000 census tracts into one feature row per state (50 + DC), labeled
with the state's presidential vote shares, and removes redundant features so
PCA sees each demographic signal once.

## Method

1. **Drop margin-of-error columns** (`IncomeErr`, `IncomePerCapErr`).
2. **Exclude** Puerto Rico (no electoral votes) and tracts with zero population.
3. **Impute** missing values: same-county mean first, same-state mean second.
4. **Convert** every percentage field to a whole-person count
   (`round(pct / 100 * TotalPop)`), and weight per-capita income, median
   income and mean commute by population.
5. **Aggregate** by summing to county and state, then divide by total
   population. Summing counts first avoids averaging tract averages.
6. **Merge** state vote shares for the two leading candidates (inner join on
   state name; mismatches are reported and dropped).
7. **Prune** constant columns, exact linear combinations, and one member of
   every pair with |r| above the threshold (the one more correlated with
   everything else), recomputing after each removal.

## Outputs

All outputs land in `results/<dataset>/eda/<date>/`:

| File | Description |
|------|-------------|
| `data/county_features.parquet` | County-level proportions and averages |
| `data/state_features.parquet` | State-level features + vote shares |
| `data/state_features_pruned.parquet` | State, pruned features, vote shares |
| `plots/correlation_before.png` | Feature correlation heatmap before pruning |
| `plots/correlation_after.png` | Heatmap of the kept features |
| `plots/outcome_split.png` | Standardized feature means by election outcome |
| `filtering_manifest.json` | Rows dropped, imputation fills, pruning decisions |

## Caveats

- Occupation and commute shares are published as a percentage of workers,
  not of total population; converting them against total population keeps
  them comparable across states but understates the worker share.
- Median household income is population-weighted across tracts, which
  approximates but is not a true median of the aggregated region.
"""

# ── Constants ────────────────────────────────────────────────────────────────

DEFAULT_DATASET = "acs2015"
OUTCOME_COLORS = {True: "#E81B23", False: "#0015BC"}
TOP_PAIRS = 10  # strongest correlated pairs to print


# ── Helpers ──────────────────────────────────────────────────────────────────


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="US Census Tracts EDA")
    parser.add_argument("--dataset", default=DEFAULT_DATASET)
    parser.add_argument("--tracts", type=Path, default=TRACTS_FILE)
    parser.add_argument("--elections", type=Path, default=ELECTIONS_FILE)
    parser.add_argument("--year", type=int, default=ELECTION_YEAR)
    parser.add_argument(
        "--threshold", type=float, default=CORRELATION_THRESHOLD,
        help="Absolute correlation above which one feature of a pair is dropped",
    )
    return parser.parse_args()


def print_header(title: str) -> None:
    """Print a visually distinct section header to stdout."""
    width = 80
    print(f"\n{'=' * width}")
    print(f"  {title}")
    print(f"{'=' * width}")


def save_fig(fig: plt.Figure, path: Path, dpi: int = 150) -> None:
    """Save a matplotlib figure to disk and close it to free memory."""
    fig.savefig(path, dpi=dpi, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    print(f"  Saved: {path.name}")


# ── 1. Raw Data Summary ─────────────────────────────────────────────────────


def print_tract_summary(raw: pl.DataFrame) -> dict[str, int]:
    """Print tract/state/county counts and missing values per column.

    Returns the missing-value counts for the manifest.
    """
    print_header("RAW TRACT SUMMARY")
    print(f"  Tracts:    {raw.height:,}")
    print(f"  States:    {raw[STATE].n_unique()}")
    print(f"  Columns:   {len(raw.columns)}")

    missing = null_counts(raw, numeric_columns(raw))
    print(f"\n  Columns with missing values: {len(missing)}")
    for col, n in sorted(missing.items(), key=lambda kv: -kv[1]):
        print(f"    {col:16s}  {n:>6,}  ({100 * n / raw.height:5.2f}%)")
    return missing


def print_election_summary(elections: pl.DataFrame, year: int) -> None:
    """Print row count, available years and the leading candidates nationally."""
    print_header("ELECTION TABLE SUMMARY")
    cols = ELECTION_COLUMNS
    years = sorted(elections[cols["year"]].unique().to_list())
    print(f"  Rows:      {elections.height:,}")
    print(f"  Years:     {years}")
    print(f"  Using:     {year}")
    top = (
        elections.filter(pl.col(cols["year"]) == year)
        .group_by(cols["candidate"])
        .agg(pl.col(cols["votes"]).sum().alias("votes"))
        .sort("votes", descending=True)
        .head(5)
    )
    for candidate, votes in top.iter_rows():
        print(f"    {str(candidate):28s}  {int(votes):>14,}")


# ── 2. Descriptive Statistics ───────────────────────────────────────────────


def describe_features(features: pl.DataFrame, columns: list[str]) -> pl.DataFrame:
    """Mean, std, min and max of each feature across states."""
    return pl.DataFrame({
        "feature": columns,
        "mean": [float(features[c].mean()) for c in columns],
        "std": [float(features[c].std()) for c in columns],
        "min": [float(features[c].min()) for c in columns],
        "max": [float(features[c].max()) for c in columns],
    })


def print_descriptive_stats(features: pl.DataFrame, columns: list[str]) -> pl.DataFrame:
    print_header("STATE FEATURE SUMMARY")
    stats = describe_features(features, columns)
    print(f"  {'feature':16s}  {'mean':>12s}  {'std':>12s}  {'min':>12s}  {'max':>12s}")
    for row in stats.iter_rows(named=True):
        print(
            f"  {row['feature']:16s}  {row['mean']:12.4f}  {row['std']:12.4f}  "
            f"{row['min']:12.4f}  {row['max']:12.4f}"
        )
    return stats


def top_correlated_pairs(
    features: pl.DataFrame, columns: list[str], n: int = TOP_PAIRS,
) -> list[tuple[str, str, float]]:
    """The n feature pairs with the largest |r|, strongest first."""
    X = features.select(columns).to_numpy().astype(np.float64)
    corr = np.corrcoef(X, rowvar=False)
    pairs = [
        (columns[i], columns[j], float(corr[i, j]))
        for i in range(len(columns))
        for j in range(i + 1, len(columns))
        if not np.isnan(corr[i, j])
    ]
    return sorted(pairs, key=lambda p: -abs(p[2]))[:n]


def print_pruning_report(report: PruningReport) -> None:
    print_header("FEATURE PRUNING")
    print(f"  Threshold: |r| > {report.threshold}")
    print(f"  Kept ({len(report.kept)}): {', '.join(report.kept)}")
    for d in report.dropped:
        if d.reason == "correlated":
            print(f"    dropped {d.column:16s}  r={d.correlation:+.3f} with {d.partner}")
        else:
            print(f"    dropped {d.column:16s}  ({d.reason.replace('_', ' ')})")


# ── 3. Plots ────────────────────────────────────────────────────────────────


def plot_correlation_heatmap(
    features: pl.DataFrame, columns: list[str], title: str, path: Path,
) -> None:
    """Lower-triangle heatmap of feature correlations."""
    X = features.select(columns).to_numpy().astype(np.float64)
    corr = np.corrcoef(X, rowvar=False)
    mask = np.triu(np.ones_like(corr, dtype=bool), k=1)

    size = max(8, len(columns) * 0.35)
    fig, ax = plt.subplots(figsize=(size, size * 0.85))
    sns.heatmap(
        corr,
        mask=mask,
        cmap="RdBu_r",
        vmin=-1,
        vmax=1,
        center=0,
        square=True,
        xticklabels=columns,
        yticklabels=columns,
        linewidths=0.3,
        cbar_kws={"shrink": 0.6, "label": "Pearson r"},
        ax=ax,
    )
    ax.set_title(title)
    fig.tight_layout()
    save_fig(fig, path)


def plot_outcome_split(features: pl.DataFrame, columns: list[str], out_dir: Path) -> None:
    """Standardized mean of each kept feature, by which candidate led the state."""
    X = features.select(columns).to_numpy().astype(np.float64)
    Z = (X - X.mean(axis=0)) / X.std(axis=0)
    leads = features[A_LEADS].to_numpy().astype(bool)

    fig, ax = plt.subplots(figsize=(10, max(4, len(columns) * 0.35)))
    y = np.arange(len(columns))
    for flag, offset in [(True, -0.2), (False, 0.2)]:
        if not (leads == flag).any():
            continue
        ax.barh(
            y + offset, Z[leads == flag].mean(axis=0), height=0.4,
            color=OUTCOME_COLORS[flag], alpha=0.8,
            label="Candidate A leads" if flag else "Candidate B leads",
        )
    ax.set_yticks(y)
    ax.set_yticklabels(columns)
    ax.axvline(0, color="gray", linewidth=0.8)
    ax.set_xlabel("Mean z-score")
    ax.set_title("Kept Features by Election Outcome")
    ax.legend(loc="best")
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    fig.tight_layout()
    save_fig(fig, out_dir / "outcome_split.png")


# ── 4. Filtering Manifest ───────────────────────────────────────────────────


def save_filtering_manifest(manifest: dict, out_dir: Path) -> None:
    """Save cleaning, join and pruning decisions as JSON.

    Downstream phases load this to reproduce the exact feature set.
    """
    path = out_dir / "filtering_manifest.json"
    with open(path, "w") as f:
        json.dump(manifest, f, indent=2, default=str)
    print(f"  Saved: {path.name}")


# ── Main ─────────────────────────────────────────────────────────────────────


def main() -> None:
    args = parse_args()
    pipeline = StatePipeline(PipelineSettings(
        year=args.year, correlation_threshold=args.threshold,
    ))

    with RunContext(
        dataset=args.dataset,
        analysis_name="eda",
        params=vars(args),
        inputs={"tracts": Path(args.tracts), "elections": Path(args.elections)},
        primer=EDA_PRIMER,
    ) as ctx:
        print(f"US Census Tracts EDA: {args.dataset}")
        print(f"Tracts:    {args.tracts}")
        print(f"Elections: {args.elections}")
        print(f"Output:    {ctx.run_dir}")

        # ── 1. Load ──
        raw_tracts = load_tracts(args.tracts)
        elections = load_elections(args.elections)
        raw_missing = print_tract_summary(raw_tracts)
        print_election_summary(elections, args.year)

        # ── 2. Clean + aggregate ──
        print_header("CLEANING")
        tracts, cleaning = pipeline.clean(raw_tracts)
        print(f"  Dropped columns: {cleaning['columns_dropped']}")

        print_header("AGGREGATION")
        counties, states = pipeline.roll_up(tracts)

        # ── 3. Merge election results ──
        print_header("ELECTION MERGE")
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", JoinMismatchError)
            features = pipeline.merge(states, elections)
        mismatches = [w.message for w in caught if isinstance(w.message, JoinMismatchError)]

        columns = feature_columns(features)
        stats = print_descriptive_stats(features, columns)

        # ── 4. Prune ──
        print_header("STRONGEST CORRELATIONS")
        for a, b, r in top_correlated_pairs(features, columns):
            print(f"    {a:16s} {b:16s}  r={r:+.3f}")
        report = pipeline.prune(features)
        print_pruning_report(report)
        pruned = features.select([STATE, *report.kept, *LABEL_COLUMNS])

        # ── 5. Save ──
        print_header("SAVING DATA")
        counties.write_parquet(ctx.data_dir / "county_features.parquet")
        features.write_parquet(ctx.data_dir / "state_features.parquet")
        pruned.write_parquet(ctx.data_dir / "state_features_pruned.parquet")
        stats.write_parquet(ctx.data_dir / "feature_summary.parquet")
        print("  Saved: county_features.parquet")
        print("  Saved: state_features.parquet")
        print("  Saved: state_features_pruned.parquet")
        print("  Saved: feature_summary.parquet")

        # ── 6. Plots ──
        print_header("GENERATING PLOTS")
        non_constant = [c for c in columns if c not in report.dropped_by("constant")]
        plot_correlation_heatmap(
            features, non_constant, "State Features: Correlation Before Pruning",
            ctx.plots_dir / "correlation_before.png",
        )
        plot_correlation_heatmap(
            features, list(report.kept), "State Features: Correlation After Pruning",
            ctx.plots_dir / "correlation_after.png",
        )
        plot_outcome_split(features, list(report.kept), ctx.plots_dir)

        # ── 7. Manifest ──
        print_header("FILTERING MANIFEST")
        manifest = {
            "tracts_file": str(args.tracts),
            "elections_file": str(args.elections),
            "election_year": args.year,
            "raw_missing": raw_missing,
            "cleaning": cleaning,
            "n_counties": counties.height,
            "n_states_aggregated": states.height,
            "n_states_merged": features.height,
            "join_mismatch": [
                {"demographic_only": m.demographic_only, "election_only": m.election_only}
                for m in mismatches
            ],
            "correlation_threshold": report.threshold,
            "features_kept": list(report.kept),
            "features_dropped": [
                {"column": d.column, "reason": d.reason, "partner": d.partner,
                 "correlation": d.correlation}
                for d in report.dropped
            ],
        }
        save_filtering_manifest(manifest, ctx.run_dir)

        print_header("DONE")
        print(f"  All outputs in: {ctx.run_dir}")
        print(f"  Parquet files:  {len(list(ctx.data_dir.glob('*.parquet')))}")
        print(f"  PNG plots:      {len(list(ctx.plots_dir.glob('*.png')))}")


if __name__ == "__main__":
    main()

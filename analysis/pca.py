"""
US Census Tracts - Principal Component Analysis (Phase 2)

Standardizes the pruned state features, fits a full-rank PCA, and keeps the
leading components that each explain a non-negligible share of variance.

Usage:
  uv run python analysis/pca.py [--dataset acs2015] [--eda-dir ...] \
      [--variance-floor 0.05] [--cumulative-target 0.8]

Outputs (in results/<dataset>/pca/<date>/):
  - data/:   Parquet files (PC scores, loadings, explained variance)
  - plots/:  PNG visualizations (scree, PC1 vs PC2 by election outcome, PC1 density)
  - filtering_manifest.json, run_info.json, run_log.txt
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import polars as pl
from matplotlib.patches import Patch

from census_clusters.config import A_LEADS, STATE, VARIANCE_FLOOR
from census_clusters.features import feature_columns
from census_clusters.reduction import (
    Reduction,
    explained_variance_frame,
    fit_reduction,
    loadings_frame,
    orient_pc1,
    reconstruct,
    scores_frame,
)

try:
    from analysis.run_context import RunContext
except ModuleNotFoundError:
    from run_context import RunContext

# ── Primer ───────────────────────────────────────────────────────────────────
# Written to results/<dataset>/pca/README.md by RunContext on each run.

PCA_PRIMER = """\
# Principal Component Analysis (PCA)

## Purpose

Compresses the pruned state features into a handful of uncorrelated axes so
that distances between states (and therefore the clustering phase) are not
dominated by whichever demographic happens to be measured by many columns.

## Method

1. **Load** `state_features_pruned.parquet` from the EDA phase.
2. **Standardize** each feature to zero mean and unit variance across states.
3. **Fit PCA** with every component.
4. **Select** the leading components that each explain at least 5% of the
   variance (or, with `--cumulative-target`, the smallest prefix reaching it).
5. **Orient PC1** so states where candidate A led have positive scores.
6. **Check** that reconstructing from all components recovers the
   standardized matrix.

## Outputs

| File | Description |
|------|-------------|
| `data/pc_scores.parquet` | Selected PC scores per state + vote shares |
| `data/pc_loadings.parquet` | Selected PC loadings per feature |
| `data/explained_variance.parquet` | Every component's share and cumulative share |
| `plots/scree.png` | Individual and cumulative explained variance |
| `plots/pc_map.png` | PC1 vs PC2, colored by election outcome |
| `plots/pc1_distribution.png` | PC1 density by election outcome |

## Interpretation Guide

- **Scree plot**: the dashed line marks the selection floor. Components below
  it are treated as noise.
- **Loadings**: a feature's loading is its weight in the component; read the
  largest positive and negative loadings together to name the axis.
- **PC map**: separation of colors along an axis means that demographic
  dimension tracks the election outcome.
"""

# ── Constants ────────────────────────────────────────────────────────────────

DEFAULT_DATASET = "acs2015"
OUTCOME_COLORS = {True: "#E81B23", False: "#0015BC"}
TOP_LOADINGS = 5  # per sign, per component
RECONSTRUCTION_TOL = 1e-8


# ── Helpers ──────────────────────────────────────────────────────────────────


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="US Census Tracts PCA")
    parser.add_argument("--dataset", default=DEFAULT_DATASET)
    parser.add_argument("--eda-dir", default=None, help="Override EDA results directory")
    parser.add_argument(
        "--variance-floor", type=float, default=VARIANCE_FLOOR,
        help="Keep leading components explaining at least this share each",
    )
    parser.add_argument(
        "--cumulative-target", type=float, default=None,
        help="Instead keep the smallest prefix reaching this cumulative share",
    )
    return parser.parse_args()


def print_header(title: str) -> None:
    width = 80
    print(f"\n{'=' * width}")
    print(f"  {title}")
    print(f"{'=' * width}")


def save_fig(fig: plt.Figure, path: Path, dpi: int = 150) -> None:
    fig.savefig(path, dpi=dpi, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    print(f"  Saved: {path.name}")


# ── Phase 1: Load Data ──────────────────────────────────────────────────────


def load_pruned_features(eda_dir: Path) -> pl.DataFrame:
    """Load the pruned state feature table from the EDA phase output."""
    return pl.read_parquet(eda_dir / "data" / "state_features_pruned.parquet")


# ── Phase 2: PCA ────────────────────────────────────────────────────────────


def top_loadings(reduction: Reduction, pc: int, n: int = TOP_LOADINGS) -> list[tuple[str, float]]:
    """Features with the largest |loading| on component ``pc`` (1-based)."""
    weights = reduction.loadings[pc - 1]
    order = np.argsort(-np.abs(weights), kind="stable")[:n]
    return [(reduction.features[i], float(weights[i])) for i in order]


def reconstruction_error(reduction: Reduction) -> float:
    """Max absolute error of the full-rank reconstruction of the standardized matrix."""
    return float(np.abs(reconstruct(reduction) - reduction.standardized).max())


def run_pca(
    features: pl.DataFrame,
    variance_floor: float,
    cumulative_target: float | None,
) -> Reduction:
    """Fit, orient and report the PCA."""
    print_header("PCA")
    columns = feature_columns(features)
    print(f"  Matrix: {features.height} states x {len(columns)} features")

    reduction = fit_reduction(
        features, columns, label_col=STATE,
        variance_floor=variance_floor, cumulative_target=cumulative_target,
    )
    reduction = orient_pc1(reduction, features[A_LEADS].to_numpy())

    ev = reduction.explained_variance_ratio
    cumulative = np.cumsum(ev)
    print("\n  Explained variance:")
    for i in range(len(ev)):
        marker = "*" if i < reduction.n_components else " "
        print(f"   {marker}PC{i+1}: {ev[i]:.4f} ({100*ev[i]:.1f}%)  "
              f"cumulative: {100*cumulative[i]:.1f}%")
    print(f"  Selected: {reduction.n_components} components ({reduction.rule})")

    for pc in range(1, reduction.n_components + 1):
        loadings = ", ".join(f"{f} {w:+.2f}" for f, w in top_loadings(reduction, pc))
        print(f"  PC{pc} loadings: {loadings}")
    return reduction


# ── Phase 3: Plots ──────────────────────────────────────────────────────────


def plot_scree(reduction: Reduction, variance_floor: float, out_dir: Path) -> None:
    """Scree plot with individual and cumulative explained variance (2 panels)."""
    ev = reduction.explained_variance_ratio
    cumulative = np.cumsum(ev)
    n = len(ev)
    colors = ["#4C72B0" if i < reduction.n_components else "#BBBBBB" for i in range(n)]

    fig, axes = plt.subplots(1, 2, figsize=(14, 5))

    axes[0].bar(range(1, n + 1), ev, color=colors, edgecolor="black", alpha=0.9)
    for i, v in enumerate(ev):
        axes[0].text(i + 1, v + 0.005, f"{100*v:.1f}%", ha="center", fontsize=8)
    axes[0].axhline(variance_floor, color="red", linestyle="--", alpha=0.5,
                    label=f"{100*variance_floor:.0f}% floor")
    axes[0].set_xlabel("Principal Component")
    axes[0].set_ylabel("Explained Variance Ratio")
    axes[0].set_title("Individual Explained Variance")
    axes[0].legend()
    axes[0].spines["top"].set_visible(False)
    axes[0].spines["right"].set_visible(False)

    axes[1].plot(range(1, n + 1), cumulative, "bo-", markersize=6)
    axes[1].axvline(reduction.n_components, color="red", linestyle="--", alpha=0.5,
                    label=f"{reduction.n_components} selected")
    axes[1].set_xlabel("Number of Components")
    axes[1].set_ylabel("Cumulative Explained Variance")
    axes[1].set_title("Cumulative Variance Explained")
    axes[1].set_ylim(0, 1.05)
    axes[1].legend()
    axes[1].spines["top"].set_visible(False)
    axes[1].spines["right"].set_visible(False)

    fig.tight_layout()
    save_fig(fig, out_dir / "scree.png")


def plot_pc_map(scores: pl.DataFrame, reduction: Reduction, out_dir: Path) -> None:
    """PC1 vs PC2 scatter colored by election outcome, every state labeled."""
    if reduction.n_components < 2:
        print("  Skipping PC map: only one component selected")
        return
    ev = reduction.explained_variance_ratio
    fig, ax = plt.subplots(figsize=(12, 10))

    for flag, color in OUTCOME_COLORS.items():
        subset = scores.filter(pl.col(A_LEADS) == flag)
        if subset.height == 0:
            continue
        ax.scatter(
            subset["PC1"].to_numpy(), subset["PC2"].to_numpy(),
            c=color, s=60, alpha=0.7, edgecolors="black", linewidth=0.5,
        )
    for row in scores.iter_rows(named=True):
        ax.annotate(
            row[STATE], (row["PC1"], row["PC2"]),
            fontsize=7, xytext=(4, 4), textcoords="offset points",
        )

    ax.axhline(0, color="gray", alpha=0.2)
    ax.axvline(0, color="gray", alpha=0.2)
    ax.set_xlabel(f"PC1 ({100*ev[0]:.1f}%)")
    ax.set_ylabel(f"PC2 ({100*ev[1]:.1f}%)")
    ax.set_title("States on the First Two Principal Components")
    ax.legend(handles=[
        Patch(facecolor=OUTCOME_COLORS[True], label="Candidate A leads"),
        Patch(facecolor=OUTCOME_COLORS[False], label="Candidate B leads"),
    ], loc="best")
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)

    fig.tight_layout()
    save_fig(fig, out_dir / "pc_map.png")


def plot_pc1_distribution(scores: pl.DataFrame, out_dir: Path) -> None:
    """Overlapping KDE of PC1 scores by election outcome."""
    import seaborn as sns

    fig, ax = plt.subplots(figsize=(12, 5))
    for flag, color in OUTCOME_COLORS.items():
        subset = scores.filter(pl.col(A_LEADS) == flag)
        if subset.height < 2:
            continue
        sns.kdeplot(
            subset["PC1"].to_numpy(), ax=ax, color=color, fill=True, alpha=0.3,
            label="Candidate A leads" if flag else "Candidate B leads",
        )
    ax.set_xlabel("PC1 Score")
    ax.set_ylabel("Density")
    ax.set_title("PC1 Distribution by Election Outcome")
    ax.legend()
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)

    fig.tight_layout()
    save_fig(fig, out_dir / "pc1_distribution.png")


# ── Phase 4: Filtering Manifest ─────────────────────────────────────────────


def save_filtering_manifest(manifest: dict, out_dir: Path) -> None:
    path = out_dir / "filtering_manifest.json"
    with open(path, "w") as f:
        json.dump(manifest, f, indent=2, default=str)
    print(f"  Saved: {path.name}")


# ── Phase 5: Main ───────────────────────────────────────────────────────────


def main() -> None:
    args = parse_args()
    eda_dir = Path(args.eda_dir) if args.eda_dir else Path(f"results/{args.dataset}/eda/latest")

    with RunContext(
        dataset=args.dataset,
        analysis_name="pca",
        params=vars(args),
        inputs={"eda": eda_dir},
        primer=PCA_PRIMER,
    ) as ctx:
        print(f"US Census Tracts PCA: {args.dataset}")
        print(f"EDA:      {eda_dir}")
        print(f"Output:   {ctx.run_dir}")

        # ── Phase 1: Load data ──
        print_header("LOADING DATA")
        features = load_pruned_features(eda_dir)
        print(f"  States: {features.height}")

        # ── Phase 2: PCA ──
        reduction = run_pca(features, args.variance_floor, args.cumulative_target)
        error = reconstruction_error(reduction)
        status = "OK" if error < RECONSTRUCTION_TOL else "WARNING"
        print(f"  Full-rank reconstruction max error: {error:.2e} ({status})")

        labels = features.select(STATE, "share_a", "share_b", A_LEADS)
        scores = scores_frame(reduction).join(labels, on=STATE, how="left")
        scores.write_parquet(ctx.data_dir / "pc_scores.parquet")
        loadings_frame(reduction).write_parquet(ctx.data_dir / "pc_loadings.parquet")
        explained_variance_frame(reduction).write_parquet(
            ctx.data_dir / "explained_variance.parquet"
        )
        print("  Saved: pc_scores.parquet")
        print("  Saved: pc_loadings.parquet")
        print("  Saved: explained_variance.parquet")

        # ── Phase 3: Plots ──
        print_header("GENERATING PLOTS")
        plot_scree(reduction, args.variance_floor, ctx.plots_dir)
        plot_pc_map(scores, reduction, ctx.plots_dir)
        plot_pc1_distribution(scores, ctx.plots_dir)

        # ── Phase 4: Manifest ──
        print_header("FILTERING MANIFEST")
        manifest = {
            "eda_source": str(eda_dir),
            "features": list(reduction.features),
            "variance_floor": args.variance_floor,
            "cumulative_target": args.cumulative_target,
            "component_rule": reduction.rule,
            "n_components": reduction.n_components,
            "explained_variance": reduction.explained_variance_ratio.tolist(),
            "cumulative_selected": reduction.cumulative_variance,
            "reconstruction_max_error": error,
        }
        save_filtering_manifest(manifest, ctx.run_dir)

        print_header("DONE")
        print(f"  All outputs in: {ctx.run_dir}")
        print(f"  Parquet files:  {len(list(ctx.data_dir.glob('*.parquet')))}")
        print(f"  PNG plots:      {len(list(ctx.plots_dir.glob('*.png')))}")


if __name__ == "__main__":
    main()

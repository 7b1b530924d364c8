"""
US Census Tracts - Hierarchical Clustering (Phase 3)

Builds agglomerative trees under four linkage rules and a divisive (DIANA)
tree over the states' principal component scores, then reads the
dendrograms against the election outcome.

Usage:
  uv run python analysis/clustering.py [--dataset acs2015] [--pca-dir ...] [--k INT]

Outputs (in results/<dataset>/clustering/<date>/):
  - data/:   Parquet files (cluster events, cut assignments, model selection)
  - plots/:  PNG visualizations (dendrograms, silhouette by k)
  - dendrogram_narrative.md, filtering_manifest.json, run_info.json, run_log.txt
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
from scipy.cluster.hierarchy import dendrogram

from census_clusters.config import A_LEADS, LINKAGE_METHODS, MONOTONIC_METHODS, STATE
from census_clusters.hierarchy import (
    agglomerative,
    cophenetic_correlation,
    compare_cuts,
    divisive,
    silhouette_by_k,
)
from census_clusters.models import ClusterTree
from census_clusters.output import events_frame

try:
    from analysis.run_context import RunContext
except ModuleNotFoundError:
    from run_context import RunContext

# ── Primer ───────────────────────────────────────────────────────────────────

CLUSTERING_PRIMER = """\
# Hierarchical Clustering

## Purpose

Asks whether states that look alike demographically also voted alike. The
states are clustered on their principal component scores alone; the
election outcome is only used afterwards to color and describe the result.

## Method

1. **Load** `pc_scores.parquet` from the PCA phase.
2. **Agglomerative** clustering with complete, single, average and centroid
   linkage over Euclidean distances. Complete linkage is the primary tree.
3. **Divisive** clustering with DIANA: repeatedly split the widest cluster by
   peeling off a splinter group of its most dissimilar members.
4. **Evaluate** each tree: cophenetic correlation, monotonicity (centroid
   linkage can invert), silhouette score by number of clusters.
5. **Compare** the primary agglomerative tree with the divisive tree by
   adjusted Rand index at each k.
6. **Narrate** the top of each dendrogram and the composition of its clusters.

## Outputs

| File | Description |
|------|-------------|
| `data/cluster_events_<method>.parquet` | Every merge/split, in algorithm order |
| `data/cluster_assignments.parquet` | Each state's cluster at the chosen k, per tree |
| `data/model_selection.parquet` | Silhouette by k, per tree |
| `plots/dendrogram_<method>.png` | Dendrogram with outcome-colored state labels |
| `plots/silhouette_by_k.png` | Silhouette curves for every tree |
| `dendrogram_narrative.md` | Plain-language reading of the trees |

## Interpretation Guide

- **Dendrogram height** is the linkage distance at which two groups merge
  (or, for DIANA, the diameter of the group being split).
- **Cophenetic correlation** near 1 means the tree preserves the original
  distances well.
- **Label colors** show the election outcome; a branch of one color means
  those states are demographically similar and voted the same way.
"""

# ── Constants ────────────────────────────────────────────────────────────────

DEFAULT_DATASET = "acs2015"
PRIMARY_METHOD = "complete"
K_RANGE = range(2, 9)
DEFAULT_K = 2
TOP_EVENTS = 5
COPHENETIC_THRESHOLD = 0.7
OUTCOME_COLORS = {True: "#E81B23", False: "#0015BC"}


# ── Helpers ──────────────────────────────────────────────────────────────────


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="US Census Tracts Clustering")
    parser.add_argument("--dataset", default=DEFAULT_DATASET)
    parser.add_argument("--pca-dir", default=None, help="Override PCA results directory")
    parser.add_argument(
        "--k", type=int, default=None,
        help="Cut every tree at this many clusters (default: best silhouette)",
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


def load_pc_scores(pca_dir: Path) -> tuple[pl.DataFrame, np.ndarray, list[str]]:
    """Load PC scores; returns (frame, score matrix, state labels)."""
    scores = pl.read_parquet(pca_dir / "data" / "pc_scores.parquet")
    pc_cols = [c for c in scores.columns if c.startswith("PC")]
    return scores, scores.select(pc_cols).to_numpy(), scores[STATE].to_list()


# ── Phase 2: Build Trees ────────────────────────────────────────────────────


def build_trees(X: np.ndarray, labels: list[str]) -> dict[str, ClusterTree]:
    """One agglomerative tree per linkage rule, plus the divisive tree."""
    trees = {method: agglomerative(X, labels, method=method) for method in LINKAGE_METHODS}
    trees["diana"] = divisive(X, labels)
    return trees


def evaluate_trees(trees: dict[str, ClusterTree], X: np.ndarray) -> pl.DataFrame:
    """Cophenetic correlation, monotonicity and top height for each tree."""
    rows = []
    for name, tree in trees.items():
        coph = cophenetic_correlation(tree, X)
        monotonic = tree.is_monotonic()
        top = max(tree.heights)
        if name in MONOTONIC_METHODS and not monotonic:
            print(f"  WARNING: {name} linkage produced an inversion")
        print(
            f"  {name:10s} cophenetic = {coph:.4f} "
            f"({'OK' if coph >= COPHENETIC_THRESHOLD else 'WARNING'})  "
            f"monotonic = {monotonic}  top = {top:.3f}"
        )
        rows.append({
            "method": name,
            "direction": tree.direction,
            "cophenetic_r": coph,
            "monotonic": monotonic,
            "top_height": top,
        })
    return pl.DataFrame(rows)


def find_optimal_k(
    trees: dict[str, ClusterTree], X: np.ndarray, k_range: range,
) -> tuple[pl.DataFrame, int]:
    """Silhouette by k for every tree; optimal k from the primary tree.

    Returns (long-format scores, optimal_k).
    """
    rows = []
    for name, tree in trees.items():
        for k, score in silhouette_by_k(tree, X, k_range).items():
            rows.append({"method": name, "k": k, "silhouette": score})
    scores = pl.DataFrame(
        rows, schema={"method": pl.String, "k": pl.Int64, "silhouette": pl.Float64},
    )

    primary = scores.filter(pl.col("method") == PRIMARY_METHOD).sort("k")
    for row in primary.iter_rows(named=True):
        print(f"    k={row['k']}: silhouette = {row['silhouette']:.4f}")
    if primary.height == 0:
        print(f"  No valid cut; falling back to k={DEFAULT_K}")
        return scores, DEFAULT_K
    best = primary.sort("silhouette", descending=True, maintain_order=True).row(0, named=True)
    print(f"  Optimal k ({PRIMARY_METHOD}): {best['k']} (silhouette = {best['silhouette']:.4f})")
    return scores, int(best["k"])


def cut_assignments(trees: dict[str, ClusterTree], k: int) -> pl.DataFrame:
    """Wide frame: one row per state, one cluster column per tree."""
    labels = list(next(iter(trees.values())).labels)
    columns: dict[str, list] = {STATE: labels}
    for name, tree in trees.items():
        assignment = tree.cut(k)
        columns[name] = [assignment[label] for label in labels]
    return pl.DataFrame(columns)


def compare_with_divisive(
    trees: dict[str, ClusterTree], k_range: range,
) -> dict[int, float]:
    """ARI between the primary agglomerative tree and DIANA at each k."""
    primary, diana = trees[PRIMARY_METHOD], trees["diana"]
    ari: dict[int, float] = {}
    for k in k_range:
        if not 2 <= k < primary.n_leaves:
            continue
        ari[k] = compare_cuts(primary, diana, k)
        print(f"    ARI({PRIMARY_METHOD} vs diana, k={k}): {ari[k]:.4f}")
    return ari


# ── Phase 3: Narrative ──────────────────────────────────────────────────────


def _short(members: tuple[str, ...], limit: int = 6) -> str:
    if len(members) <= limit:
        return ", ".join(members)
    return ", ".join(members[:limit]) + f" (+{len(members) - limit} more)"


def describe_top_events(tree: ClusterTree, n: int = TOP_EVENTS) -> list[str]:
    """Plain-language lines for the events nearest the root of the tree."""
    if tree.direction == "split":
        events = tree.events[:n]
        return [
            f"Split {e.step + 1} (diameter {e.distance:.3f}): "
            f"[{_short(e.left)}] broke away from [{_short(e.right)}]"
            for e in events
        ]
    events = list(reversed(tree.events))[:n]
    return [
        f"Merge {e.step + 1} (distance {e.distance:.3f}): "
        f"[{_short(e.left)}] joined [{_short(e.right)}]"
        for e in events
    ]


def characterize_clusters(assignment: dict[str, int], outcome: dict[str, bool]) -> pl.DataFrame:
    """Cluster sizes, outcome counts and member lists."""
    rows = []
    for cluster in sorted(set(assignment.values())):
        members = [s for s, c in assignment.items() if c == cluster]
        a_count = sum(1 for s in members if outcome.get(s, False))
        rows.append({
            "cluster": cluster,
            "n_states": len(members),
            "a_leads": a_count,
            "b_leads": len(members) - a_count,
            "members": "; ".join(members),
        })
    return pl.DataFrame(rows)


def write_narrative(
    trees: dict[str, ClusterTree],
    outcome: dict[str, bool],
    k: int,
    path: Path,
) -> str:
    """Write the dendrogram narrative as markdown; returns the text."""
    lines = ["# Dendrogram Narrative", ""]
    for name in (PRIMARY_METHOD, "diana"):
        tree = trees[name]
        kind = "divisive" if tree.direction == "split" else "agglomerative"
        lines += [f"## {name} ({kind})", ""]
        lines += [f"- {line}" for line in describe_top_events(tree)]
        lines += ["", f"### Clusters at k={k}", ""]
        lines += ["| Cluster | States | A leads | B leads | Members |",
                  "|---|---|---|---|---|"]
        for row in characterize_clusters(tree.cut(k), outcome).iter_rows(named=True):
            lines.append(
                f"| {row['cluster']} | {row['n_states']} | {row['a_leads']} "
                f"| {row['b_leads']} | {row['members']} |"
            )
        lines.append("")
    text = "\n".join(lines)
    path.write_text(text, encoding="utf-8")
    print(f"  Saved: {path.name}")
    return text


# ── Phase 4: Plots ──────────────────────────────────────────────────────────


def plot_dendrogram(tree: ClusterTree, outcome: dict[str, bool], out_dir: Path) -> None:
    """Full dendrogram with outcome-colored state labels."""
    fig, ax = plt.subplots(figsize=(10, max(8, tree.n_leaves * 0.25)))
    dendrogram(
        tree.linkage_matrix,
        labels=list(tree.labels),
        ax=ax,
        orientation="left",
        leaf_font_size=7,
    )
    for lbl in ax.get_yticklabels():
        state = lbl.get_text()
        if state in outcome:
            lbl.set_color(OUTCOME_COLORS[outcome[state]])

    xlabel = "Cluster diameter" if tree.direction == "split" else "Linkage distance"
    ax.set_xlabel(f"{xlabel} (PC space)")
    ax.set_title(f"States: {tree.method} dendrogram")
    ax.legend(handles=[
        Patch(facecolor=OUTCOME_COLORS[True], label="Candidate A leads"),
        Patch(facecolor=OUTCOME_COLORS[False], label="Candidate B leads"),
    ], loc="best")
    fig.tight_layout()
    save_fig(fig, out_dir / f"dendrogram_{tree.method}.png")


def plot_silhouette(scores: pl.DataFrame, optimal_k: int, out_dir: Path) -> None:
    fig, ax = plt.subplots(figsize=(10, 5))
    for method in scores["method"].unique(maintain_order=True).to_list():
        subset = scores.filter(pl.col("method") == method).sort("k")
        ax.plot(subset["k"].to_list(), subset["silhouette"].to_list(), "o-", label=method)
    ax.axvline(optimal_k, color="red", linestyle="--", alpha=0.5, label=f"k={optimal_k}")
    ax.set_xlabel("Number of clusters (k)")
    ax.set_ylabel("Silhouette score")
    ax.set_title("Silhouette by k")
    ax.legend()
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    fig.tight_layout()
    save_fig(fig, out_dir / "silhouette_by_k.png")


# ── Phase 5: Filtering Manifest ─────────────────────────────────────────────


def save_filtering_manifest(manifest: dict, out_dir: Path) -> None:
    path = out_dir / "filtering_manifest.json"
    with open(path, "w") as f:
        json.dump(manifest, f, indent=2, default=str)
    print(f"  Saved: {path.name}")


# ── Phase 6: Main ───────────────────────────────────────────────────────────


def main() -> None:
    args = parse_args()
    pca_dir = Path(args.pca_dir) if args.pca_dir else Path(f"results/{args.dataset}/pca/latest")

    with RunContext(
        dataset=args.dataset,
        analysis_name="clustering",
        params=vars(args),
        inputs={"pca": pca_dir},
        primer=CLUSTERING_PRIMER,
    ) as ctx:
        print(f"US Census Tracts Clustering: {args.dataset}")
        print(f"PCA:      {pca_dir}")
        print(f"Output:   {ctx.run_dir}")

        # ── Phase 1: Load data ──
        print_header("LOADING DATA")
        scores, X, labels = load_pc_scores(pca_dir)
        outcome = dict(zip(labels, scores[A_LEADS].to_list()))
        print(f"  States: {len(labels)}, components: {X.shape[1]}")

        # ── Phase 2: Trees ──
        print_header("HIERARCHICAL CLUSTERING")
        trees = build_trees(X, labels)
        evaluation = evaluate_trees(trees, X)
        evaluation.write_parquet(ctx.data_dir / "tree_evaluation.parquet")
        for name, tree in trees.items():
            events_frame(tree).write_parquet(ctx.data_dir / f"cluster_events_{name}.parquet")

        print_header("MODEL SELECTION")
        sil_scores, optimal_k = find_optimal_k(trees, X, K_RANGE)
        sil_scores.write_parquet(ctx.data_dir / "model_selection.parquet")
        k = args.k or optimal_k
        if args.k:
            print(f"  Using --k override: {k}")

        assignments = cut_assignments(trees, k)
        assignments = assignments.join(scores.select(STATE, A_LEADS), on=STATE, how="left")
        assignments.write_parquet(ctx.data_dir / "cluster_assignments.parquet")
        print("  Saved: cluster_assignments.parquet")

        print_header("AGGLOMERATIVE VS DIVISIVE")
        ari = compare_with_divisive(trees, K_RANGE)

        # ── Phase 3: Narrative ──
        print_header("DENDROGRAM NARRATIVE")
        text = write_narrative(trees, outcome, k, ctx.run_dir / "dendrogram_narrative.md")
        print(text)

        # ── Phase 4: Plots ──
        print_header("GENERATING PLOTS")
        for tree in trees.values():
            plot_dendrogram(tree, outcome, ctx.plots_dir)
        if sil_scores.height > 0:
            plot_silhouette(sil_scores, k, ctx.plots_dir)

        # ── Phase 5: Manifest ──
        print_header("FILTERING MANIFEST")
        manifest = {
            "pca_source": str(pca_dir),
            "n_states": len(labels),
            "n_components": int(X.shape[1]),
            "primary_method": PRIMARY_METHOD,
            "k": k,
            "optimal_k": optimal_k,
            "trees": evaluation.to_dicts(),
            "ari_primary_vs_diana": {str(key): v for key, v in ari.items()},
        }
        save_filtering_manifest(manifest, ctx.run_dir)

        print_header("DONE")
        print(f"  All outputs in: {ctx.run_dir}")
        print(f"  Parquet files:  {len(list(ctx.data_dir.glob('*.parquet')))}")
        print(f"  PNG plots:      {len(list(ctx.plots_dir.glob('*.png')))}")


if __name__ == "__main__":
    main()

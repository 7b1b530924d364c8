"""Redundant-feature removal for the state feature table.

Three passes, in order:
  1. constant columns (their correlation is undefined)
  2. exact linear combinations of earlier columns (rank test)
  3. pairwise |r| above a threshold, dropping the member of the worst pair
     with the larger mean |r| against everything else, then recomputing

The result is idempotent: pruning an already pruned table removes nothing.
"""

from dataclasses import dataclass

import numpy as np
import polars as pl

from census_clusters.config import CORRELATION_THRESHOLD, IDENTIFIERS, LABEL_COLUMNS
from census_clusters.errors import DegenerateCorrelationError

# Singular values below RANK_TOL * n_rows count as zero.
# Shares derived from counts, e.g. men and women, only sum to 1 within rounding.
RANK_TOL = 1e-8


@dataclass(frozen=True)
class DroppedFeature:
    """One removed column and why it went."""

    column: str
    reason: str  # constant, linear_combination, correlated
    partner: str | None = None
    correlation: float | None = None


@dataclass(frozen=True)
class PruningReport:
    """Columns kept and dropped by select_features()."""

    kept: tuple[str, ...]
    dropped: tuple[DroppedFeature, ...]
    threshold: float

    def dropped_by(self, reason: str) -> list[str]:
        return [d.column for d in self.dropped if d.reason == reason]


def feature_columns(df: pl.DataFrame) -> list[str]:
    """Numeric columns that are neither identifiers nor election labels."""
    return [
        c for c, dtype in df.schema.items()
        if dtype.is_numeric() and c not in IDENTIFIERS and c not in LABEL_COLUMNS
    ]


def _matrix(df: pl.DataFrame, columns: list[str]) -> np.ndarray:
    return df.select(columns).to_numpy().astype(np.float64)


def correlation_matrix(X: np.ndarray) -> np.ndarray:
    """Pearson correlation between columns of X."""
    if X.shape[0] < 2:
        msg = f"Correlation needs at least 2 rows, got {X.shape[0]}"
        raise DegenerateCorrelationError(msg)
    with np.errstate(invalid="ignore", divide="ignore"):
        corr = np.corrcoef(X, rowvar=False)
    corr = np.atleast_2d(corr)
    if np.isnan(corr).any():
        msg = "Correlation matrix is undefined (constant or missing column values)"
        raise DegenerateCorrelationError(msg)
    return corr


def drop_constant_columns(
    df: pl.DataFrame, columns: list[str],
) -> tuple[list[str], list[DroppedFeature]]:
    if not columns:
        return [], []
    X = _matrix(df, columns)
    constant = np.ptp(X, axis=0) == 0 if X.shape[0] else np.ones(len(columns), dtype=bool)
    kept = [c for c, flat in zip(columns, constant) if not flat]
    dropped = [DroppedFeature(c, "constant") for c, flat in zip(columns, constant) if flat]
    return kept, dropped


def drop_linear_combinations(
    df: pl.DataFrame, columns: list[str],
) -> tuple[list[str], list[DroppedFeature]]:
    """Drop columns that add no rank to the standardized columns before them.

    A column that is an exact linear combination of earlier ones (e.g. the male
    share when the female share is already present) adds nothing. With fewer
    rows than columns, columns past the attainable rank are dropped too.
    """
    if not columns:
        return [], []
    X = _matrix(df, columns)
    Z = (X - X.mean(axis=0)) / X.std(axis=0)

    kept: list[str] = []
    kept_idx: list[int] = []
    dropped: list[DroppedFeature] = []
    rank = 0
    for i, col in enumerate(columns):
        new_rank = np.linalg.matrix_rank(Z[:, [*kept_idx, i]], tol=RANK_TOL * len(Z))
        if new_rank > rank:
            kept.append(col)
            kept_idx.append(i)
            rank = new_rank
        else:
            dropped.append(DroppedFeature(col, "linear_combination"))
    return kept, dropped


def prune_correlated_features(
    df: pl.DataFrame,
    columns: list[str],
    threshold: float = CORRELATION_THRESHOLD,
) -> tuple[list[str], list[DroppedFeature]]:
    """Iteratively remove one member of the most correlated pair above threshold.

    Of the pair, the column with the larger mean |r| against all other kept
    columns goes; on a tie the later column goes. The worst pair is the first
    maximum in column order, so the removal sequence is deterministic.
    """
    kept = list(columns)
    dropped: list[DroppedFeature] = []

    while len(kept) > 1:
        corr = correlation_matrix(_matrix(df, kept))
        abs_corr = np.abs(corr)
        np.fill_diagonal(abs_corr, 0.0)
        upper = np.triu(abs_corr, k=1)
        i, j = np.unravel_index(np.argmax(upper), upper.shape)
        if upper[i, j] <= threshold:
            break

        mean_abs = abs_corr.sum(axis=1) / (len(kept) - 1)
        victim, partner = (i, j) if mean_abs[i] > mean_abs[j] else (j, i)
        dropped.append(DroppedFeature(
            column=kept[victim],
            reason="correlated",
            partner=kept[partner],
            correlation=float(corr[i, j]),
        ))
        del kept[victim]

    return kept, dropped


def select_features(
    df: pl.DataFrame,
    columns: list[str] | None = None,
    threshold: float = CORRELATION_THRESHOLD,
) -> PruningReport:
    """Run all three pruning passes over the feature columns of ``df``."""
    columns = feature_columns(df) if columns is None else list(columns)

    kept, constant = drop_constant_columns(df, columns)
    kept, combos = drop_linear_combinations(df, kept)
    kept, correlated = prune_correlated_features(df, kept, threshold)

    report = PruningReport(
        kept=tuple(kept),
        dropped=tuple(constant + combos + correlated),
        threshold=threshold,
    )
    print(f"  Features: {len(columns)} -> {len(kept)} "
          f"(constant: {len(constant)}, linear combinations: {len(combos)}, "
          f"|r| > {threshold}: {len(correlated)})")
    return report

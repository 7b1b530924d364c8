"""Standardization and principal component analysis of the state features."""

from dataclasses import dataclass, replace

import numpy as np
import polars as pl
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from census_clusters.config import CUMULATIVE_TARGET, STATE, VARIANCE_FLOOR


@dataclass(frozen=True, eq=False)
class Reduction:
    """Full-rank PCA of the standardized features plus the selected truncation.

    ``full_scores`` and ``components`` keep every component so the
    standardized matrix can be reconstructed; ``scores`` and ``loadings`` are
    the truncated views used downstream.
    """

    labels: tuple[str, ...]
    features: tuple[str, ...]
    standardized: np.ndarray
    full_scores: np.ndarray
    components: np.ndarray
    explained_variance_ratio: np.ndarray
    explained_variance: np.ndarray
    mean: np.ndarray
    n_components: int
    rule: str

    @property
    def scores(self) -> np.ndarray:
        return self.full_scores[:, : self.n_components]

    @property
    def loadings(self) -> np.ndarray:
        return self.components[: self.n_components]

    @property
    def cumulative_variance(self) -> float:
        return float(self.explained_variance_ratio[: self.n_components].sum())


def standardize(X: np.ndarray) -> tuple[np.ndarray, StandardScaler]:
    """Zero mean, unit (population) variance per column."""
    scaler = StandardScaler()
    return scaler.fit_transform(X), scaler


def select_n_components(
    ratios: np.ndarray,
    variance_floor: float = VARIANCE_FLOOR,
    cumulative_target: float | None = CUMULATIVE_TARGET,
) -> int:
    """How many leading components to keep.

    Default rule: the leading run of components each explaining at least
    ``variance_floor``. With ``cumulative_target`` set: the smallest prefix
    whose cumulative share reaches the target. Never fewer than one.
    """
    if len(ratios) == 0:
        msg = "No components to select from"
        raise ValueError(msg)
    if cumulative_target is not None:
        cumulative = np.cumsum(ratios)
        reached = np.nonzero(cumulative >= cumulative_target - 1e-12)[0]
        return int(reached[0]) + 1 if len(reached) else len(ratios)

    n = 0
    for ratio in ratios:
        if ratio < variance_floor:
            break
        n += 1
    return max(n, 1)


def describe_rule(variance_floor: float, cumulative_target: float | None) -> str:
    if cumulative_target is not None:
        return f"cumulative >= {cumulative_target:.0%}"
    return f"each component >= {variance_floor:.0%}"


def fit_reduction(
    df: pl.DataFrame,
    features: list[str],
    label_col: str = STATE,
    variance_floor: float = VARIANCE_FLOOR,
    cumulative_target: float | None = CUMULATIVE_TARGET,
) -> Reduction:
    """Standardize ``features`` and fit a full-rank PCA, then pick the truncation."""
    X = df.select(features).to_numpy().astype(np.float64)
    Z, _ = standardize(X)
    pca = PCA()
    full_scores = pca.fit_transform(Z)
    ratios = pca.explained_variance_ratio_
    n = select_n_components(ratios, variance_floor, cumulative_target)

    reduction = Reduction(
        labels=tuple(df[label_col].to_list()),
        features=tuple(features),
        standardized=Z,
        full_scores=full_scores,
        components=pca.components_.copy(),
        explained_variance_ratio=ratios.copy(),
        explained_variance=pca.explained_variance_.copy(),
        mean=pca.mean_.copy(),
        n_components=n,
        rule=describe_rule(variance_floor, cumulative_target),
    )
    print(f"  PCA: {len(features)} features, {len(ratios)} components, "
          f"keeping {n} ({reduction.rule}; {100 * reduction.cumulative_variance:.1f}% cumulative)")
    return reduction


def orient_pc1(reduction: Reduction, positive_mask: np.ndarray) -> Reduction:
    """Flip PC1 so rows flagged in ``positive_mask`` have a positive mean score.

    Component signs are arbitrary; fixing PC1 keeps plots comparable across runs.
    """
    positive_mask = np.asarray(positive_mask, dtype=bool)
    if not positive_mask.any() or positive_mask.all():
        return reduction
    pc1 = reduction.full_scores[:, 0]
    if pc1[positive_mask].mean() >= pc1[~positive_mask].mean():
        return reduction

    full_scores = reduction.full_scores.copy()
    components = reduction.components.copy()
    full_scores[:, 0] *= -1
    components[0, :] *= -1
    print("  PC1 sign flipped (candidate A states -> positive)")
    return replace(reduction, full_scores=full_scores, components=components)


def reconstruct(reduction: Reduction, n_components: int | None = None) -> np.ndarray:
    """Back-project scores into the standardized feature space.

    With every component this recovers ``reduction.standardized``.
    """
    k = reduction.components.shape[0] if n_components is None else n_components
    return reduction.full_scores[:, :k] @ reduction.components[:k] + reduction.mean


def scores_frame(reduction: Reduction, label_col: str = STATE) -> pl.DataFrame:
    pc_cols = {f"PC{i+1}": reduction.scores[:, i].tolist() for i in range(reduction.n_components)}
    return pl.DataFrame({label_col: list(reduction.labels), **pc_cols})


def loadings_frame(reduction: Reduction) -> pl.DataFrame:
    pc_cols = {
        f"PC{i+1}": reduction.loadings[i, :].tolist() for i in range(reduction.n_components)
    }
    return pl.DataFrame({"feature": list(reduction.features), **pc_cols})


def explained_variance_frame(reduction: Reduction) -> pl.DataFrame:
    ratios = reduction.explained_variance_ratio
    return pl.DataFrame({
        "component": [f"PC{i+1}" for i in range(len(ratios))],
        "eigenvalue": reduction.explained_variance.tolist(),
        "explained_variance": ratios.tolist(),
        "cumulative": np.cumsum(ratios).tolist(),
        "selected": [i < reduction.n_components for i in range(len(ratios))],
    })

"""Agglomerative and divisive hierarchical clustering of state PC vectors.

Agglomerative trees come straight from scipy's ``linkage``. Divisive trees use
DIANA (Kaufman & Rousseeuw), which neither scipy nor scikit-learn provide:

  1. Pick the current cluster with the largest diameter (max pairwise distance).
  2. Seed a splinter group with its member of highest average dissimilarity.
  3. Move any remaining member whose average distance to the rest exceeds its
     average distance to the splinter; repeat until nobody moves.
  4. Repeat from 1 until every point stands alone.

Ties always resolve to the lowest index, so both trees are reproducible.
"""

import numpy as np
from scipy.cluster.hierarchy import cophenet, linkage
from scipy.spatial.distance import pdist, squareform
from sklearn.metrics import adjusted_rand_score, silhouette_score

from census_clusters.config import LINKAGE_METHOD, LINKAGE_METHODS
from census_clusters.models import ClusterEvent, ClusterTree


def _check_input(X: np.ndarray, labels: list[str]) -> np.ndarray:
    X = np.asarray(X, dtype=np.float64)
    if X.ndim != 2 or X.shape[0] != len(labels):
        msg = f"Expected a 2-D matrix with {len(labels)} rows, got shape {X.shape}"
        raise ValueError(msg)
    if X.shape[0] < 2:
        msg = "Clustering needs at least 2 points"
        raise ValueError(msg)
    return X


def events_from_linkage(Z: np.ndarray, labels: list[str]) -> tuple[ClusterEvent, ...]:
    """Translate a scipy linkage matrix into labeled merge events."""
    n = len(labels)
    members: dict[int, tuple[int, ...]] = {i: (i,) for i in range(n)}
    events = []
    for step, (a, b, dist, _) in enumerate(Z):
        left, right = members[int(a)], members[int(b)]
        members[n + step] = tuple(sorted(left + right))
        events.append(ClusterEvent(
            step=step,
            left=tuple(labels[i] for i in left),
            right=tuple(labels[i] for i in right),
            distance=float(dist),
        ))
    return tuple(events)


def agglomerative(
    X: np.ndarray, labels: list[str], method: str = LINKAGE_METHOD,
) -> ClusterTree:
    """Bottom-up clustering over Euclidean distances with the given linkage."""
    if method not in LINKAGE_METHODS:
        msg = f"Unknown linkage {method!r}; expected one of {LINKAGE_METHODS}"
        raise ValueError(msg)
    X = _check_input(X, labels)
    Z = linkage(X, method=method, metric="euclidean")
    return ClusterTree(
        method=method,
        direction="merge",
        labels=tuple(labels),
        events=events_from_linkage(Z, labels),
        linkage_matrix=Z,
    )


def _diameter(D: np.ndarray, members: list[int]) -> float:
    if len(members) < 2:
        return 0.0
    return float(D[np.ix_(members, members)].max())


def split_cluster(D: np.ndarray, members: list[int]) -> tuple[list[int], list[int]]:
    """Split one cluster into (splinter, remainder) by DIANA's rule."""
    members = sorted(members)
    sub = D[np.ix_(members, members)]
    m = len(members)

    in_splinter = np.zeros(m, dtype=bool)
    in_splinter[int(np.argmax(sub.sum(axis=1) / (m - 1)))] = True

    while (~in_splinter).sum() > 1:
        rest = ~in_splinter
        # Self-distance is zero, so dividing by n_rest - 1 averages over the others
        to_rest = sub[:, rest].sum(axis=1) / (rest.sum() - 1)
        to_splinter = sub[:, in_splinter].mean(axis=1)
        gain = np.where(rest, to_rest - to_splinter, -np.inf)
        best = int(np.argmax(gain))
        if gain[best] <= 0:
            break
        in_splinter[best] = True

    splinter = [members[i] for i in range(m) if in_splinter[i]]
    remainder = [members[i] for i in range(m) if not in_splinter[i]]
    return splinter, remainder


def _linkage_from_splits(
    splits: list[tuple[list[int], list[int], float]], n: int,
) -> np.ndarray:
    """Replay splits last-to-first as merges to get a scipy linkage matrix."""
    ids: dict[frozenset[int], int] = {frozenset([i]): i for i in range(n)}
    rows = []
    for splinter, remainder, height in reversed(splits):
        a, b = ids[frozenset(splinter)], ids[frozenset(remainder)]
        ids[frozenset(splinter) | frozenset(remainder)] = n + len(rows)
        rows.append([min(a, b), max(a, b), height, len(splinter) + len(remainder)])
    return np.array(rows, dtype=np.float64)


def divisive(X: np.ndarray, labels: list[str]) -> ClusterTree:
    """Top-down DIANA clustering over Euclidean distances.

    Each split is recorded at the parent cluster's diameter. Because the
    largest-diameter cluster is always split next, split heights never
    increase from one step to the next.
    """
    X = _check_input(X, labels)
    D = squareform(pdist(X, metric="euclidean"))
    n = X.shape[0]

    clusters: list[list[int]] = [list(range(n))]
    splits: list[tuple[list[int], list[int], float]] = []
    while True:
        candidates = [c for c in clusters if len(c) > 1]
        if not candidates:
            break
        target = max(candidates, key=lambda c: (_diameter(D, c), -min(c)))
        splinter, remainder = split_cluster(D, target)
        clusters.remove(target)
        clusters.extend([splinter, remainder])
        splits.append((splinter, remainder, _diameter(D, target)))

    events = tuple(
        ClusterEvent(
            step=step,
            left=tuple(labels[i] for i in splinter),
            right=tuple(labels[i] for i in remainder),
            distance=height,
        )
        for step, (splinter, remainder, height) in enumerate(splits)
    )
    return ClusterTree(
        method="diana",
        direction="split",
        labels=tuple(labels),
        events=events,
        linkage_matrix=_linkage_from_splits(splits, n),
    )


def cophenetic_correlation(tree: ClusterTree, X: np.ndarray) -> float:
    """Correlation between tree (cophenetic) distances and original distances."""
    coph_corr, _ = cophenet(tree.linkage_matrix, pdist(np.asarray(X, dtype=np.float64)))
    return float(coph_corr)


def silhouette_by_k(tree: ClusterTree, X: np.ndarray, k_range: range) -> dict[int, float]:
    """Silhouette score of the tree cut at each k (skipping degenerate cuts)."""
    scores: dict[int, float] = {}
    for k in k_range:
        if not 2 <= k < tree.n_leaves:
            continue
        assignment = tree.cut(k)
        labels = [assignment[label] for label in tree.labels]
        if len(set(labels)) < 2:
            continue
        scores[k] = float(silhouette_score(X, labels))
    return scores


def compare_cuts(tree_a: ClusterTree, tree_b: ClusterTree, n_clusters: int) -> float:
    """Adjusted Rand index between two trees cut into the same number of clusters."""
    a = tree_a.cut(n_clusters)
    b = tree_b.cut(n_clusters)
    shared = [label for label in tree_a.labels if label in b]
    return float(adjusted_rand_score([a[s] for s in shared], [b[s] for s in shared]))

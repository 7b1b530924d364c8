"""Data classes for hierarchical cluster trees."""

from dataclasses import dataclass

import numpy as np
from scipy.cluster.hierarchy import cut_tree, fcluster, is_monotonic


@dataclass(frozen=True)
class ClusterEvent:
    """One merge (agglomerative) or split (divisive) in a cluster tree.

    For a merge, ``left`` and ``right`` are the two clusters joined at
    ``distance``. For a split, ``left`` is the splinter group and ``right`` the
    remainder of a parent cluster whose diameter was ``distance``.
    """
    step: int
    left: tuple[str, ...]
    right: tuple[str, ...]
    distance: float

    @property
    def size(self) -> int:
        return len(self.left) + len(self.right)

    @property
    def members(self) -> tuple[str, ...]:
        return self.left + self.right


@dataclass(frozen=True, eq=False)
class ClusterTree:
    """Binary hierarchy over labeled points.

    ``events`` are in the order the algorithm produced them: bottom-up merges
    for agglomerative trees, top-down splits for divisive ones.
    ``linkage_matrix`` is the same tree in scipy's bottom-up linkage format,
    so it can be drawn with ``dendrogram`` or re-cut at any level.
    """
    method: str
    direction: str  # merge or split
    labels: tuple[str, ...]
    events: tuple[ClusterEvent, ...]
    linkage_matrix: np.ndarray

    @property
    def n_leaves(self) -> int:
        return len(self.labels)

    @property
    def heights(self) -> list[float]:
        return [e.distance for e in self.events]

    def to_linkage(self) -> np.ndarray:
        return self.linkage_matrix.copy()

    def is_monotonic(self) -> bool:
        """True if no merge sits below one of its children (no inversions)."""
        return bool(is_monotonic(self.linkage_matrix))

    def _relabel(self, raw: np.ndarray) -> dict[str, int]:
        # Number clusters 1..k in order of first appearance among the labels
        order: dict[int, int] = {}
        for value in raw:
            order.setdefault(int(value), len(order) + 1)
        return {label: order[int(v)] for label, v in zip(self.labels, raw)}

    def cut(self, n_clusters: int) -> dict[str, int]:
        """Assign each label to one of ``n_clusters`` clusters."""
        if not 1 <= n_clusters <= self.n_leaves:
            msg = f"n_clusters must be between 1 and {self.n_leaves}, got {n_clusters}"
            raise ValueError(msg)
        if self.is_monotonic():
            raw = cut_tree(self.linkage_matrix, n_clusters=n_clusters).flatten()
        else:
            raw = self._replay_merges(self.n_leaves - n_clusters)
        return self._relabel(raw)

    def _replay_merges(self, n_merges: int) -> np.ndarray:
        # cut_tree miscounts clusters when the linkage has inversions (centroid),
        # so apply the first n_merges rows in row order instead.
        n = self.n_leaves
        parent = list(range(2 * n - 1))

        def find(i: int) -> int:
            while parent[i] != i:
                parent[i] = parent[parent[i]]
                i = parent[i]
            return i

        for row, (a, b) in enumerate(self.linkage_matrix[:n_merges, :2].astype(int)):
            parent[find(a)] = n + row
            parent[find(b)] = n + row
        return np.array([find(i) for i in range(n)])

    def cut_at(self, height: float) -> dict[str, int]:
        """Assign labels to the clusters formed by merges at or below ``height``."""
        raw = fcluster(self.linkage_matrix, t=height, criterion="distance")
        return self._relabel(raw)

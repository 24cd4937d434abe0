"""Density clustering over prompt embeddings — DBSCAN plus epsilon tuning.

Cosine distance is the metric throughout. Both functions accept a
precomputed distance matrix so callers clustering the same points twice
(tune, then cluster) pay the O(n²) cost once.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np

NOISE = -1
_UNASSIGNED = -2


# =============================================================================
# Distances
# =============================================================================


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """``1 - cos(a, b)``; a zero vector is maximally unlike everything (1.0)."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 1.0
    return float(np.clip(1.0 - np.dot(va, vb) / denom, 0.0, 2.0))


def pairwise_cosine_distances(points: Sequence[Sequence[float]]) -> np.ndarray:
    """Symmetric ``n x n`` cosine distance matrix with a zero diagonal."""
    matrix = np.asarray(points, dtype=np.float64)
    if matrix.size == 0:
        return np.zeros((0, 0))
    norms = np.linalg.norm(matrix, axis=1)
    safe = np.where(norms == 0, 1.0, norms)
    unit = matrix / safe[:, None]
    distances = np.clip(1.0 - unit @ unit.T, 0.0, 2.0)
    zero = norms == 0
    distances[zero, :] = 1.0
    distances[:, zero] = 1.0
    np.fill_diagonal(distances, 0.0)
    return distances


# =============================================================================
# DBSCAN
# =============================================================================


@dataclass
class DBSCANResult:
    labels: list[int]  # Cluster id per input point, NOISE for noise
    clusters: list[list[int]] = field(default_factory=list)  # Point indices per cluster id
    noise: list[int] = field(default_factory=list)

    @property
    def n_clusters(self) -> int:
        return len(self.clusters)


def dbscan(
    points: Sequence[Sequence[float]],
    epsilon: float,
    min_points: int,
    distances: np.ndarray | None = None,
) -> DBSCANResult:
    """Classic DBSCAN.

    A point is core when its epsilon-neighborhood, the point itself included,
    holds at least ``min_points`` points. Points are visited in input order
    and neighborhoods are expanded in index order, so the result is fully
    determined by the input order, ``epsilon`` and ``min_points``. A border
    point reachable from two clusters joins the first one to reach it.
    """
    n = len(points)
    if n == 0:
        return DBSCANResult(labels=[])
    if min_points < 1:
        raise ValueError(f"min_points must be >= 1, got {min_points}")
    if distances is None:
        distances = pairwise_cosine_distances(points)

    def region(i: int) -> np.ndarray:
        return np.flatnonzero(distances[i] <= epsilon)

    labels = [_UNASSIGNED] * n
    cluster_id = -1

    for i in range(n):
        if labels[i] != _UNASSIGNED:
            continue
        neighbors = region(i)
        if len(neighbors) < min_points:
            labels[i] = NOISE
            continue

        cluster_id += 1
        labels[i] = cluster_id
        queue = deque(int(j) for j in neighbors if j != i)
        while queue:
            j = queue.popleft()
            if labels[j] == NOISE:
                # Border point, previously written off as noise
                labels[j] = cluster_id
                continue
            if labels[j] != _UNASSIGNED:
                continue
            labels[j] = cluster_id
            j_neighbors = region(j)
            if len(j_neighbors) >= min_points:
                queue.extend(int(k) for k in j_neighbors if labels[k] in (_UNASSIGNED, NOISE))

    clusters: list[list[int]] = [[] for _ in range(cluster_id + 1)]
    noise: list[int] = []
    for index, label in enumerate(labels):
        if label == NOISE:
            noise.append(index)
        else:
            clusters[label].append(index)
    return DBSCANResult(labels=labels, clusters=clusters, noise=noise)


# =============================================================================
# Epsilon Tuning
# =============================================================================


def k_distances(distances: np.ndarray, k: int) -> np.ndarray:
    """Sorted (ascending) distance from each point to its k-th nearest other point."""
    n = distances.shape[0]
    k = max(1, min(k, n - 1))
    # Column 0 of each sorted row is the point itself
    return np.sort(np.sort(distances, axis=1)[:, k])


def tune_epsilon(
    points: Sequence[Sequence[float]],
    min_points: int,
    distances: np.ndarray | None = None,
) -> float:
    """Pick epsilon at the knee of the sorted k-distance curve (k = ``min_points``).

    The knee is the sorted k-distance farthest from the straight line joining
    the first and last values. The result is always one of the observed
    k-distances; flat or tiny curves fall back to their median.
    """
    n = len(points)
    if n < 2:
        return 0.0
    if distances is None:
        distances = pairwise_cosine_distances(points)

    curve = k_distances(distances, min_points)
    lo, hi = float(curve[0]), float(curve[-1])
    if len(curve) < 3 or hi - lo <= 1e-12:
        return float(np.clip(np.median(curve), lo, hi))

    # Normalize both axes so the knee doesn't depend on the point count
    x = np.linspace(0.0, 1.0, len(curve))
    y = (curve - lo) / (hi - lo)
    # Chord runs from (0, 0) to (1, 1); distance from it is |x - y| / sqrt(2)
    knee = int(np.argmax(np.abs(x - y)))
    return float(curve[knee])

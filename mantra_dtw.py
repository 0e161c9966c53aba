"""Dynamic time warping of MFCC sequences under cosine distance."""

from typing import Sequence, Union

import numpy as np

FeatureSequence = Union[np.ndarray, Sequence[Sequence[float]]]


def cosine_similarity(vec1: np.ndarray, vec2: np.ndarray) -> float:
    """Cosine of the angle between two vectors; 0 when either has zero norm."""
    a = np.asarray(vec1, dtype=float)
    b = np.asarray(vec2, dtype=float)
    if a.shape != b.shape:
        raise ValueError(f"Feature dimensions do not match: {a.shape} vs {b.shape}")
    denom = np.linalg.norm(a) * np.linalg.norm(b)
    if denom == 0.0:
        return 0.0
    return float(np.clip(np.dot(a, b) / denom, -1.0, 1.0))


def cosine_distance(vec1: np.ndarray, vec2: np.ndarray) -> float:
    return 1.0 - cosine_similarity(vec1, vec2)


def _as_feature_matrix(seq: FeatureSequence, name: str) -> np.ndarray:
    matrix = np.asarray(seq, dtype=float)
    if matrix.size == 0:
        raise ValueError(f"{name} must contain at least one feature vector")
    if matrix.ndim != 2:
        raise ValueError(f"{name} must be a sequence of vectors, got shape {matrix.shape}")
    return matrix


def cosine_distance_matrix(seq1: np.ndarray, seq2: np.ndarray) -> np.ndarray:
    """Pairwise cosine distances, shape (len(seq1), len(seq2))."""
    norms1 = np.linalg.norm(seq1, axis=1)
    norms2 = np.linalg.norm(seq2, axis=1)
    denom = np.outer(norms1, norms2)
    dots = seq1 @ seq2.T
    similarity = np.zeros_like(dots)
    nonzero = denom > 0
    similarity[nonzero] = dots[nonzero] / denom[nonzero]
    return 1.0 - np.clip(similarity, -1.0, 1.0)


def dtw_cost_matrix(seq1: FeatureSequence, seq2: FeatureSequence) -> np.ndarray:
    """Accumulated DTW cost table of shape (len1 + 1, len2 + 1).

    Row and column 0 are +inf except the origin, so every path starts by
    matching the first vectors of both sequences.
    """
    a = _as_feature_matrix(seq1, "seq1")
    b = _as_feature_matrix(seq2, "seq2")
    if a.shape[1] != b.shape[1]:
        raise ValueError(f"Feature dimensions do not match: {a.shape[1]} vs {b.shape[1]}")

    dist = cosine_distance_matrix(a, b)
    n1, n2 = dist.shape
    cost = np.full((n1 + 1, n2 + 1), np.inf)
    cost[0, 0] = 0.0
    for i in range(1, n1 + 1):
        for j in range(1, n2 + 1):
            cost[i, j] = dist[i - 1, j - 1] + min(
                cost[i - 1, j],
                cost[i, j - 1],
                cost[i - 1, j - 1],
            )
    return cost


def dtw_similarity(seq1: FeatureSequence, seq2: FeatureSequence) -> float:
    """Length-normalized DTW similarity, 1 - cost / (len1 + len2).

    Identical sequences score 1.0. The value is not clamped and drops below
    0 when the average step cost exceeds 1.
    """
    cost = dtw_cost_matrix(seq1, seq2)
    n1, n2 = cost.shape[0] - 1, cost.shape[1] - 1
    return float(1.0 - cost[n1, n2] / (n1 + n2))

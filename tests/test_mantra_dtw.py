"""Unit tests for cosine distance and DTW similarity."""

from __future__ import annotations

import numpy as np
import pytest

from mantra_dtw import (
    cosine_distance,
    cosine_distance_matrix,
    cosine_similarity,
    dtw_cost_matrix,
    dtw_similarity,
)


def test_cosine_similarity_basic_values():
    assert cosine_similarity([1.0, 0.0], [2.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 3.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)
    assert cosine_distance([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(2.0)


def test_cosine_similarity_of_zero_vector_is_zero():
    assert cosine_similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0
    assert cosine_distance([0.0, 0.0], [0.0, 0.0]) == 1.0


def test_cosine_similarity_rejects_dimension_mismatch():
    with pytest.raises(ValueError, match="dimensions do not match"):
        cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])


def test_distance_matrix_agrees_with_pairwise_distance():
    rng = np.random.default_rng(0)
    a = rng.normal(size=(5, 13))
    b = rng.normal(size=(7, 13))
    b[3] = 0.0
    dist = cosine_distance_matrix(a, b)
    assert dist.shape == (5, 7)
    for i in range(5):
        for j in range(7):
            assert dist[i, j] == pytest.approx(cosine_distance(a[i], b[j]))


def test_cost_matrix_boundaries():
    cost = dtw_cost_matrix([[1.0, 0.0], [0.0, 1.0]], [[1.0, 1.0]])
    assert cost.shape == (3, 2)
    assert cost[0, 0] == 0.0
    assert np.all(np.isinf(cost[0, 1:]))
    assert np.all(np.isinf(cost[1:, 0]))


def test_cost_matrix_small_example():
    """A repeated first vector is absorbed by a horizontal step at no cost."""
    seq1 = [[1.0, 0.0], [0.0, 1.0]]
    seq2 = [[1.0, 0.0], [1.0, 0.0], [0.0, 1.0]]
    cost = dtw_cost_matrix(seq1, seq2)
    assert np.allclose(cost[1:, 1:], [[0.0, 0.0, 1.0], [1.0, 1.0, 0.0]])
    assert dtw_similarity(seq1, seq2) == pytest.approx(1.0)


def test_single_vector_compared_with_itself_scores_one():
    v = [0.3, -1.2, 4.5]
    cost = dtw_cost_matrix([v], [v])
    assert cost[1, 1] == pytest.approx(0.0, abs=1e-12)
    assert dtw_similarity([v], [v]) == pytest.approx(1.0)


def test_identity_scores_one():
    seq = np.random.default_rng(1).normal(size=(30, 13))
    assert dtw_similarity(seq, seq) == pytest.approx(1.0, abs=1e-12)


def test_similarity_is_symmetric():
    rng = np.random.default_rng(2)
    seq1 = rng.normal(size=(20, 13))
    seq2 = rng.normal(size=(27, 13))
    assert dtw_similarity(seq1, seq2) == pytest.approx(dtw_similarity(seq2, seq1), rel=1e-12)


def test_time_stretched_sequence_still_matches():
    seq = np.random.default_rng(3).normal(size=(15, 13))
    stretched = np.repeat(seq, 2, axis=0)
    assert dtw_similarity(seq, stretched) == pytest.approx(1.0, abs=1e-12)


def test_opposite_vectors_can_score_below_zero():
    v = np.array([1.0, 2.0, 3.0])
    assert dtw_similarity([v], [-v]) == pytest.approx(0.0)
    # Three steps of cost 2 normalized by 1 + 3.
    assert dtw_similarity([v], [-v, -v, -v]) == pytest.approx(-0.5)


def test_noise_degrades_similarity_monotonically():
    rng = np.random.default_rng(4)
    base = rng.normal(size=(20, 13))
    noise_levels = [0.0, 0.5, 2.0, 8.0]
    means = []
    for level in noise_levels:
        scores = [
            dtw_similarity(base, base + level * rng.normal(size=base.shape))
            for _ in range(10)
        ]
        means.append(np.mean(scores))
    assert means[0] == pytest.approx(1.0)
    assert all(later <= earlier for earlier, later in zip(means, means[1:]))


def test_sequence_dimension_mismatch_raises():
    with pytest.raises(ValueError, match="dimensions do not match"):
        dtw_similarity(np.ones((3, 13)), np.ones((3, 12)))


@pytest.mark.parametrize("empty_first", [True, False])
def test_empty_sequence_raises(empty_first):
    seq = np.ones((4, 13))
    args = ([], seq) if empty_first else (seq, [])
    with pytest.raises(ValueError, match="at least one feature vector"):
        dtw_similarity(*args)


def test_flat_vector_is_not_a_sequence():
    with pytest.raises(ValueError, match="sequence of vectors"):
        dtw_similarity([1.0, 2.0, 3.0], [[1.0, 2.0, 3.0]])

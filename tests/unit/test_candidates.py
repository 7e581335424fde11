"""Tests for best-k candidate bookkeeping."""

import numpy as np
import pytest

from allknn import CandidateSet


def test_new_set_is_empty_with_infinite_threshold():
    candidates = CandidateSet(3, 2, tie_rank=np.arange(5))

    assert np.all(np.isinf(candidates.worst()))
    assert np.array_equal(candidates.counts(), [0, 0, 0])
    assert np.all(candidates.indices == -1)


def test_update_keeps_k_smallest_sorted():
    candidates = CandidateSet(1, 3, tie_rank=np.arange(6))
    candidates.update(0, np.array([[9.0, 1.0, 4.0]]), np.array([0, 1, 2]))
    candidates.update(0, np.array([[0.5, 16.0, 2.0]]), np.array([3, 4, 5]))

    neighbors, distances = candidates.finalize()
    assert np.array_equal(neighbors, [[3, 1, 5]])
    assert np.allclose(distances, [[np.sqrt(0.5), 1.0, np.sqrt(2.0)]])


def test_worst_stays_infinite_until_k_candidates_seen():
    candidates = CandidateSet(1, 3, tie_rank=np.arange(4))
    candidates.update(0, np.array([[1.0, 2.0]]), np.array([0, 1]))
    assert np.isinf(candidates.worst(0))
    assert candidates.counts()[0] == 2

    candidates.update(0, np.array([[3.0]]), np.array([2]))
    assert candidates.worst(0) == 3.0


def test_equal_distances_ordered_by_tie_rank_regardless_of_arrival():
    # Internal index 0 is original point 2, index 1 is original point 0, ...
    tie_rank = np.array([2, 0, 1])
    candidates = CandidateSet(1, 2, tie_rank=tie_rank)
    candidates.update(0, np.array([[1.0]]), np.array([0]))
    candidates.update(0, np.array([[1.0, 1.0]]), np.array([2, 1]))

    assert np.array_equal(candidates.indices, [[1, 2]])


def test_masked_candidates_are_never_inserted():
    candidates = CandidateSet(2, 2, tie_rank=np.arange(3))
    d2 = np.array([[0.0, 1.0, 2.0], [0.0, 1.0, 2.0]])
    valid = np.array([[False, True, True], [True, True, False]])
    candidates.update(slice(0, 2), d2, np.array([0, 1, 2]), valid)

    assert np.array_equal(candidates.indices, [[1, 2], [0, 1]])
    assert np.array_equal(candidates.distances_sq, [[1.0, 2.0], [0.0, 1.0]])


def test_row_arrays_update_only_selected_rows():
    candidates = CandidateSet(3, 1, tie_rank=np.arange(2))
    candidates.update(np.array([0, 2]), np.array([[4.0, 1.0], [0.0, 9.0]]), np.array([0, 1]))

    assert np.array_equal(candidates.indices[:, 0], [1, -1, 0])
    assert np.isinf(candidates.worst(1))


def test_k_must_be_positive():
    with pytest.raises(ValueError):
        CandidateSet(1, 0, tie_rank=np.arange(2))

"""Best-k candidate bookkeeping shared by the search strategies."""

from __future__ import annotations

from typing import Optional, Union

import numpy as np

from .dtypes import HOST_FLOAT_DTYPE, HOST_INDEX_DTYPE

# Sort key for empty slots; larger than any real tie rank.
_NO_RANK = np.iinfo(HOST_INDEX_DTYPE).max

Rows = Union[slice, np.ndarray, int]


class CandidateSet:
    """
    Best-k ``(reference index, squared distance)`` pairs for every query.

    Each row is kept sorted by ascending squared distance, ties ordered by
    ``tie_rank[reference index]`` (the caller's original reference order).
    Unfilled slots hold ``(+inf, -1)``, so the last column of
    ``distances_sq`` is the live pruning threshold of each query: it stays
    ``+inf`` until ``k`` candidates have been seen.

    Attributes:
        k: Number of neighbors kept per query
        distances_sq: ``(n_queries, k)`` squared distances
        indices: ``(n_queries, k)`` reference indices (``-1`` when empty)
    """

    def __init__(self, num_queries: int, k: int, tie_rank: np.ndarray):
        if k < 1:
            raise ValueError(f"k must be >= 1, received {k}")
        self.k = int(k)
        self.distances_sq = np.full((num_queries, self.k), np.inf, dtype=HOST_FLOAT_DTYPE)
        self.indices = np.full((num_queries, self.k), -1, dtype=HOST_INDEX_DTYPE)
        self._ranks = np.full((num_queries, self.k), _NO_RANK, dtype=HOST_INDEX_DTYPE)
        self._tie_rank = np.asarray(tie_rank, dtype=HOST_INDEX_DTYPE)

    @property
    def num_queries(self) -> int:
        return int(self.indices.shape[0])

    def worst(self, rows: Rows = slice(None)) -> np.ndarray:
        """Squared worst-of-k distance for ``rows`` (``inf`` while not full)."""

        return self.distances_sq[rows, -1]

    def counts(self) -> np.ndarray:
        """Number of filled slots per query."""

        return np.sum(self.indices >= 0, axis=1)

    def update(
        self,
        rows: Rows,
        cand_d2: np.ndarray,
        cand_idx: np.ndarray,
        valid: Optional[np.ndarray] = None,
    ) -> None:
        """Merge a candidate block into ``rows``.

        Args:
            rows: Query rows receiving the block (slice or index array).
            cand_d2: ``(n_rows, n_candidates)`` squared distances.
            cand_idx: Reference indices, ``(n_candidates,)`` shared by all
                rows or ``(n_rows, n_candidates)``.
            valid: Optional mask with the shape of ``cand_d2``; masked
                entries are never inserted.
        """

        if isinstance(rows, (int, np.integer)):
            rows = slice(int(rows), int(rows) + 1)
        cand_d2 = np.atleast_2d(np.asarray(cand_d2, dtype=HOST_FLOAT_DTYPE))
        cand_idx = np.broadcast_to(
            np.asarray(cand_idx, dtype=HOST_INDEX_DTYPE), cand_d2.shape
        )
        cand_rank = self._tie_rank[cand_idx]
        if valid is not None:
            cand_d2 = np.where(valid, cand_d2, np.inf)
            cand_idx = np.where(valid, cand_idx, -1)
            cand_rank = np.where(valid, cand_rank, _NO_RANK)

        merged_d2 = np.concatenate([self.distances_sq[rows], cand_d2], axis=1)
        merged_idx = np.concatenate([self.indices[rows], cand_idx], axis=1)
        merged_rank = np.concatenate([self._ranks[rows], cand_rank], axis=1)

        # Last key is primary: distance first, original index second.
        order = np.lexsort((merged_rank, merged_d2), axis=-1)[:, : self.k]
        self.distances_sq[rows] = np.take_along_axis(merged_d2, order, axis=1)
        self.indices[rows] = np.take_along_axis(merged_idx, order, axis=1)
        self._ranks[rows] = np.take_along_axis(merged_rank, order, axis=1)

    def finalize(self) -> tuple[np.ndarray, np.ndarray]:
        """Return ``(indices, distances)`` with Euclidean distances."""

        return self.indices.copy(), np.sqrt(self.distances_sq)


__all__ = ["CandidateSet"]

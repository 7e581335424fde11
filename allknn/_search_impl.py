"""
Exact k-nearest-neighbor strategies.

The naive strategy is a blocked JAX kernel. The tree strategies run on
host buffers: their control flow depends on the data at every step, so
they walk explicit stacks over the node arena and hand each leaf block to
NumPy. Tree strategies work in internal (tree) order and leave remapping
to the caller.

All strategies rank equal distances by original reference index, and the
tree strategies prune only when a bound strictly exceeds the current
threshold. Tree strategies therefore agree with each other exactly. The
naive kernel computes distances in XLA, which may round differently from
NumPy by an ulp; its neighbors match wherever distances are exactly
representable (integer grids) or not tied within rounding.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import NamedTuple

import jax
import jax.numpy as jnp
import numpy as np
from jaxtyping import Array

from ._bounds_impl import (
    box_box_min_dist_sq,
    pairwise_sq_distances,
    point_box_min_dist_sq,
)
from .candidates import CandidateSet
from .dtypes import HOST_FLOAT_DTYPE, HOST_INDEX_DTYPE, INDEX_DTYPE
from .tree import SpaceTree

_VISIT = 0
_UPDATE = 1


@dataclass
class TraversalCounters:
    """Work performed by one search call."""

    distance_evaluations: int = 0
    base_cases: int = 0
    pruned: int = 0


class HostTree(NamedTuple):
    """NumPy view of a :class:`SpaceTree` used during traversal."""

    points_sorted: np.ndarray
    old_from_new: np.ndarray
    new_from_old: np.ndarray
    node_begin: np.ndarray
    node_count: np.ndarray
    left_child: np.ndarray
    right_child: np.ndarray
    bbox_min: np.ndarray
    bbox_max: np.ndarray

    @property
    def num_nodes(self) -> int:
        return int(self.node_begin.shape[0])


def host_view(tree: SpaceTree) -> HostTree:
    """Copy the arrays a traversal needs to the host."""

    def _get(x, dtype):
        return np.asarray(jax.device_get(x), dtype=dtype)

    points = _get(tree.points, HOST_FLOAT_DTYPE)
    old_from_new = _get(tree.old_from_new, HOST_INDEX_DTYPE)
    return HostTree(
        points_sorted=points[old_from_new],
        old_from_new=old_from_new,
        new_from_old=_get(tree.new_from_old, HOST_INDEX_DTYPE),
        node_begin=_get(tree.node_begin, HOST_INDEX_DTYPE),
        node_count=_get(tree.node_count, HOST_INDEX_DTYPE),
        left_child=_get(tree.left_child, HOST_INDEX_DTYPE),
        right_child=_get(tree.right_child, HOST_INDEX_DTYPE),
        bbox_min=_get(tree.bbox_min, HOST_FLOAT_DTYPE),
        bbox_max=_get(tree.bbox_max, HOST_FLOAT_DTYPE),
    )


# ---------------------------------------------
# Naive
# ---------------------------------------------


def _pairwise_squared_distances(queries: Array, points: Array) -> Array:
    """Return squared pairwise distances with shape ``(n_queries, n_points)``."""

    deltas = queries[:, None, :] - points[None, :, :]
    return jnp.sum(deltas * deltas, axis=-1)


def _padded_reference(reference: Array, block_size: int) -> tuple[Array, Array, int]:
    """Pad ``reference`` to whole blocks; padded rows carry id ``-1``."""

    num_points, dim = reference.shape
    num_blocks = -(-num_points // block_size)
    pad = num_blocks * block_size - num_points
    ids = jnp.arange(num_points + pad, dtype=INDEX_DTYPE)
    ids = jnp.where(ids < num_points, ids, -1)
    padded = jnp.concatenate([reference, jnp.zeros((pad, dim), dtype=reference.dtype)], axis=0)
    return padded, ids, num_blocks


def _keep_best(
    best_d2: Array,
    best_idx: Array,
    block_d2: Array,
    block_ids: Array,
    k: int,
) -> tuple[Array, Array]:
    """Keep the ``k`` smallest of the current best and one scored block.

    ``lax.top_k`` returns the lower column on ties. Current entries come
    first and block ids ascend, so equal distances stay ordered by
    reference index.
    """

    merged_d2 = jnp.concatenate([best_d2, block_d2], axis=1)
    merged_idx = jnp.concatenate(
        [best_idx, jnp.broadcast_to(block_ids, block_d2.shape)], axis=1
    )
    neg_d2, cols = jax.lax.top_k(-merged_d2, k)
    return -neg_d2, jnp.take_along_axis(merged_idx, cols, axis=1)


@partial(jax.jit, static_argnames=("k", "exclude_self", "block_size"))
def naive_knn(
    reference: Array,
    queries: Array,
    *,
    k: int,
    exclude_self: bool,
    block_size: int,
) -> tuple[Array, Array]:
    """Brute-force k nearest neighbors, scored one reference block at a time.

    Returns ``(indices, squared distances)`` of shape ``(n_queries, k)`` in
    caller order. ``exclude_self`` requires ``queries`` to be ``reference``
    and drops each query's own row.
    """

    block_size = min(block_size, reference.shape[0])
    dim = reference.shape[1]
    padded, point_ids, num_blocks = _padded_reference(reference, block_size)
    query_ids = jnp.arange(queries.shape[0], dtype=INDEX_DTYPE)[:, None]

    def score_block(block, state):
        start = block * block_size
        block_points = jax.lax.dynamic_slice(padded, (start, 0), (block_size, dim))
        block_ids = jax.lax.dynamic_slice(point_ids, (start,), (block_size,))[None, :]
        drop = block_ids < 0
        if exclude_self:
            drop = drop | (query_ids == block_ids)
        d2 = jnp.where(drop, jnp.inf, _pairwise_squared_distances(queries, block_points))
        return _keep_best(*state, d2, block_ids, k)

    init = (
        jnp.full((queries.shape[0], k), jnp.inf, dtype=queries.dtype),
        jnp.full((queries.shape[0], k), -1, dtype=INDEX_DTYPE),
    )
    best_d2, best_idx = jax.lax.fori_loop(0, num_blocks, score_block, init)
    return best_idx, jnp.maximum(best_d2, 0.0)


# ---------------------------------------------
# Single tree
# ---------------------------------------------


def single_tree_knn(
    reference: HostTree,
    queries: np.ndarray,
    *,
    k: int,
    exclude_self: bool,
    counters: TraversalCounters,
) -> CandidateSet:
    """Depth-first search of the reference tree, one query at a time.

    ``queries`` are in caller order; candidate rows follow that order and
    hold internal reference positions. With ``exclude_self`` query ``j`` is
    original reference point ``j`` and never matches itself.

    A node is skipped only when its box is strictly farther than the
    query's current worst-of-k, so a node holding an equal-distance point
    with a lower reference index is still visited.
    """

    candidates = CandidateSet(queries.shape[0], k, tie_rank=reference.old_from_new)
    lo, hi = reference.bbox_min, reference.bbox_max

    for row in range(queries.shape[0]):
        point = queries[row]
        self_pos = reference.new_from_old[row] if exclude_self else -1
        stack = [(0, float(point_box_min_dist_sq(lo[0], hi[0], point)))]
        while stack:
            node, node_d2 = stack.pop()
            if node_d2 > candidates.worst(row):
                counters.pruned += 1
                continue

            left = reference.left_child[node]
            if left < 0:
                begin = reference.node_begin[node]
                end = begin + reference.node_count[node]
                positions = np.arange(begin, end, dtype=HOST_INDEX_DTYPE)
                d2 = pairwise_sq_distances(point[None, :], reference.points_sorted[begin:end])
                valid = (positions != self_pos)[None, :] if exclude_self else None
                candidates.update(row, d2, positions, valid)
                counters.base_cases += 1
                counters.distance_evaluations += int(end - begin)
                continue

            children = np.array([left, reference.right_child[node]])
            child_d2 = point_box_min_dist_sq(lo[children], hi[children], point)
            near, far = (1, 0) if child_d2[1] < child_d2[0] else (0, 1)
            stack.append((int(children[far]), float(child_d2[far])))
            stack.append((int(children[near]), float(child_d2[near])))

    return candidates


# ---------------------------------------------
# Dual tree
# ---------------------------------------------


def dual_tree_knn(
    query: HostTree,
    reference: HostTree,
    *,
    k: int,
    exclude_self: bool,
    counters: TraversalCounters,
) -> CandidateSet:
    """Simultaneous traversal of a query tree and a reference tree.

    Candidate rows follow the query tree's internal order. ``exclude_self``
    is only meaningful when ``query is reference``; the same internal
    position then denotes the same point.

    ``node_bound[q]`` is an upper bound on the worst-of-k squared distance
    of every query under node ``q``. A node pair is skipped when the gap
    between their boxes strictly exceeds it; an equal gap is still visited
    so ties resolve by reference index as in the naive strategy. The array
    belongs to this call, so the trees themselves are never written.
    """

    candidates = CandidateSet(
        query.points_sorted.shape[0], k, tie_rank=reference.old_from_new
    )
    node_bound = np.full(query.num_nodes, np.inf, dtype=HOST_FLOAT_DTYPE)

    def pair_gaps(q_nodes: np.ndarray, r_nodes: np.ndarray) -> np.ndarray:
        return box_box_min_dist_sq(
            query.bbox_min[q_nodes],
            query.bbox_max[q_nodes],
            reference.bbox_min[r_nodes],
            reference.bbox_max[r_nodes],
        )

    root_gap = float(pair_gaps(np.array([0]), np.array([0]))[0])
    stack = [(_VISIT, 0, 0, root_gap)]
    while stack:
        action, q, r, gap = stack.pop()
        q_left = query.left_child[q]

        if action == _UPDATE:
            children_bound = max(node_bound[q_left], node_bound[query.right_child[q]])
            node_bound[q] = min(node_bound[q], children_bound)
            continue

        if gap > node_bound[q]:
            counters.pruned += 1
            continue

        r_left = reference.left_child[r]
        q_is_leaf = q_left < 0
        r_is_leaf = r_left < 0

        if q_is_leaf and r_is_leaf:
            q_begin = query.node_begin[q]
            q_end = q_begin + query.node_count[q]
            r_begin = reference.node_begin[r]
            r_end = r_begin + reference.node_count[r]
            r_positions = np.arange(r_begin, r_end, dtype=HOST_INDEX_DTYPE)
            d2 = pairwise_sq_distances(
                query.points_sorted[q_begin:q_end],
                reference.points_sorted[r_begin:r_end],
            )
            valid = None
            if exclude_self:
                q_positions = np.arange(q_begin, q_end, dtype=HOST_INDEX_DTYPE)
                valid = q_positions[:, None] != r_positions[None, :]
            rows = slice(q_begin, q_end)
            candidates.update(rows, d2, r_positions, valid)
            node_bound[q] = min(node_bound[q], float(np.max(candidates.worst(rows))))
            counters.base_cases += 1
            counters.distance_evaluations += int(d2.size)
            continue

        q_nodes = [q] if q_is_leaf else [q_left, query.right_child[q]]
        r_nodes = [r] if r_is_leaf else [r_left, reference.right_child[r]]
        pair_q = np.array([qn for qn in q_nodes for _ in r_nodes])
        pair_r = np.array([rn for _ in q_nodes for rn in r_nodes])
        gaps = pair_gaps(pair_q, pair_r)
        order = np.argsort(gaps, kind="stable")

        if not q_is_leaf:
            stack.append((_UPDATE, q, -1, 0.0))
        for i in order[::-1]:
            stack.append((_VISIT, int(pair_q[i]), int(pair_r[i]), float(gaps[i])))

    return candidates


__all__ = [
    "HostTree",
    "TraversalCounters",
    "dual_tree_knn",
    "host_view",
    "naive_knn",
    "single_tree_knn",
]

"""
Midpoint space-partitioning tree construction on host buffers.

Nodes live in an arena of parallel arrays referenced by integer id. The
root is node 0 and children are appended when their parent is split, so
every child id is larger than its parent id. Splits cut the widest
dimension of the node's tight bounding box at the midpoint of its extent;
the point order is permuted in place so each node owns a contiguous range.
"""

from __future__ import annotations

from typing import NamedTuple

import numpy as np

from ._bounds_impl import tight_box
from .dtypes import HOST_FLOAT_DTYPE, HOST_INDEX_DTYPE


class TreeTopology(NamedTuple):
    """
    Space-partitioning tree represented by parallel host arrays.

    Attributes:
        old_from_new: Original index of the point at each internal position
        new_from_old: Internal position of each original point
        node_begin: First internal position owned by each node
        node_count: Number of points owned by each node
        left_child: Left child id for internal nodes (-1 for leaves)
        right_child: Right child id for internal nodes (-1 for leaves)
        parent: Parent id (-1 for the root)
        split_dim: Dimension cut at each internal node (-1 for leaves)
        split_value: Midpoint used for the cut (nan for leaves)
        bbox_min: Tight lower corner of each node's points
        bbox_max: Tight upper corner of each node's points
    """

    old_from_new: np.ndarray
    new_from_old: np.ndarray
    node_begin: np.ndarray
    node_count: np.ndarray
    left_child: np.ndarray
    right_child: np.ndarray
    parent: np.ndarray
    split_dim: np.ndarray
    split_value: np.ndarray
    bbox_min: np.ndarray
    bbox_max: np.ndarray


def _choose_split(lo: np.ndarray, hi: np.ndarray) -> tuple[int, float] | None:
    """Return ``(dim, midpoint)`` for the widest dimension, or ``None``."""

    spread = hi - lo
    # argmax keeps the first maximum, i.e. the lowest dimension on ties.
    dim = int(np.argmax(spread))
    if not spread[dim] > 0.0:
        return None
    return dim, float(0.5 * lo[dim] + 0.5 * hi[dim])


def build_topology(points: np.ndarray, leaf_size: int) -> TreeTopology:
    """Build the tree over ``points`` with at most ``leaf_size`` points per leaf.

    A range whose points cannot be separated by the midpoint cut (all
    coordinates identical, or every point on one side after rounding) is
    kept as a leaf even when it holds more than ``leaf_size`` points.
    """

    if leaf_size < 1:
        raise ValueError("leaf_size must be >= 1")
    points = np.asarray(points, dtype=HOST_FLOAT_DTYPE)
    n = points.shape[0]
    if n < 1:
        raise ValueError("Need at least one point")

    order = np.arange(n, dtype=HOST_INDEX_DTYPE)

    begin: list[int] = []
    count: list[int] = []
    left: list[int] = []
    right: list[int] = []
    parent: list[int] = []
    split_dim: list[int] = []
    split_value: list[float] = []
    lows: list[np.ndarray] = []
    highs: list[np.ndarray] = []

    def new_node(start: int, size: int, parent_id: int) -> int:
        lo, hi = tight_box(points[order[start : start + size]])
        begin.append(start)
        count.append(size)
        left.append(-1)
        right.append(-1)
        parent.append(parent_id)
        split_dim.append(-1)
        split_value.append(np.nan)
        lows.append(lo)
        highs.append(hi)
        return len(begin) - 1

    stack = [new_node(0, n, -1)]
    while stack:
        node = stack.pop()
        start, size = begin[node], count[node]
        if size <= leaf_size:
            continue
        split = _choose_split(lows[node], highs[node])
        if split is None:
            continue
        cut_dim, midpoint = split

        members = order[start : start + size]
        goes_left = points[members, cut_dim] < midpoint
        n_left = int(np.count_nonzero(goes_left))
        if n_left == 0 or n_left == size:
            continue

        order[start : start + size] = np.concatenate(
            [members[goes_left], members[~goes_left]]
        )
        split_dim[node] = cut_dim
        split_value[node] = midpoint
        left[node] = new_node(start, n_left, node)
        right[node] = new_node(start + n_left, size - n_left, node)
        stack.append(right[node])
        stack.append(left[node])

    new_from_old = np.empty(n, dtype=HOST_INDEX_DTYPE)
    new_from_old[order] = np.arange(n, dtype=HOST_INDEX_DTYPE)

    return TreeTopology(
        old_from_new=order,
        new_from_old=new_from_old,
        node_begin=np.asarray(begin, dtype=HOST_INDEX_DTYPE),
        node_count=np.asarray(count, dtype=HOST_INDEX_DTYPE),
        left_child=np.asarray(left, dtype=HOST_INDEX_DTYPE),
        right_child=np.asarray(right, dtype=HOST_INDEX_DTYPE),
        parent=np.asarray(parent, dtype=HOST_INDEX_DTYPE),
        split_dim=np.asarray(split_dim, dtype=HOST_INDEX_DTYPE),
        split_value=np.asarray(split_value, dtype=HOST_FLOAT_DTYPE),
        bbox_min=np.stack(lows).astype(HOST_FLOAT_DTYPE, copy=False),
        bbox_max=np.stack(highs).astype(HOST_FLOAT_DTYPE, copy=False),
    )


__all__ = ["TreeTopology", "build_topology"]

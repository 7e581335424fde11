"""Public space-partitioning tree API for allknn."""

from __future__ import annotations

from dataclasses import dataclass

import jax
import jax.numpy as jnp
import numpy as np
from beartype import beartype
from jaxtyping import Array, ArrayLike, jaxtyped

from . import _tree_impl
from .bounds import HRectBound
from .dtypes import HOST_FLOAT_DTYPE, as_float, as_index
from .errors import InvalidArgumentError

DEFAULT_LEAF_SIZE = 20


@dataclass(frozen=True)
class SpaceTree:
    """Midpoint-split tree over a point set plus its permutation arrays.

    Node ``i`` owns the internal positions
    ``[node_begin[i], node_begin[i] + node_count[i])``; the points at those
    positions are ``points[old_from_new[node_begin[i]:...]]``. The point
    array itself is never reordered.
    """

    points: Array
    old_from_new: Array
    new_from_old: Array
    node_begin: Array
    node_count: Array
    left_child: Array
    right_child: Array
    parent: Array
    split_dim: Array
    split_value: Array
    bbox_min: Array
    bbox_max: Array
    leaf_size: int

    @property
    def num_points(self) -> int:
        """Return the number of points in the tree."""

        return int(self.points.shape[0])

    @property
    def dimension(self) -> int:
        """Return spatial dimensionality of the points."""

        return int(self.points.shape[1])

    @property
    def num_nodes(self) -> int:
        """Return the number of nodes, leaves included."""

        return int(self.node_begin.shape[0])

    @property
    def is_leaf(self) -> Array:
        """Boolean mask over node ids marking leaves."""

        return self.left_child < 0

    @property
    def leaf_nodes(self) -> Array:
        """Leaf node ids ordered by the start of their point range."""

        leaves = jnp.nonzero(self.is_leaf)[0]
        return leaves[jnp.argsort(self.node_begin[leaves])]

    @property
    def num_leaves(self) -> int:
        """Return the number of leaf nodes."""

        return int(jnp.sum(self.is_leaf))

    @property
    def points_sorted(self) -> Array:
        """Points gathered into internal (tree) order."""

        return self.points[self.old_from_new]

    def bound(self, node: int) -> HRectBound:
        """Return the bounding region of ``node``."""

        return HRectBound(lo=self.bbox_min[node], hi=self.bbox_max[node])


def _register_space_tree_pytree() -> None:
    if getattr(SpaceTree, "_allknn_pytree_registered", False):
        return

    def flatten(tree: SpaceTree):
        children = (
            tree.points,
            tree.old_from_new,
            tree.new_from_old,
            tree.node_begin,
            tree.node_count,
            tree.left_child,
            tree.right_child,
            tree.parent,
            tree.split_dim,
            tree.split_value,
            tree.bbox_min,
            tree.bbox_max,
        )
        return children, (tree.leaf_size,)

    def unflatten(aux, children):
        (leaf_size,) = aux
        return SpaceTree(*children, leaf_size=leaf_size)

    jax.tree_util.register_pytree_node(SpaceTree, flatten, unflatten)
    setattr(SpaceTree, "_allknn_pytree_registered", True)


_register_space_tree_pytree()


def validate_points(points: ArrayLike, name: str = "points") -> np.ndarray:
    """Return ``points`` as a host float64 ``(n, dim)`` array or raise."""

    points_arr = np.asarray(jax.device_get(points), dtype=HOST_FLOAT_DTYPE)
    if points_arr.ndim != 2:
        raise InvalidArgumentError(
            f"{name} must have shape (n_points, dim); "
            f"received ndim={points_arr.ndim}"
        )
    if points_arr.shape[0] < 1:
        raise InvalidArgumentError(f"{name} must contain at least one row")
    if points_arr.shape[1] < 1:
        raise InvalidArgumentError(f"{name} must have dim >= 1")
    if not np.all(np.isfinite(points_arr)):
        raise InvalidArgumentError(f"{name} must contain only finite values")
    return points_arr


def validate_leaf_size(leaf_size: int) -> None:
    if leaf_size < 1:
        raise InvalidArgumentError(f"leaf_size must be >= 1, received {leaf_size}")


def tree_from_host(points: np.ndarray, leaf_size: int) -> SpaceTree:
    """Build a tree from already validated host points."""

    topology = _tree_impl.build_topology(points, int(leaf_size))
    return SpaceTree(
        points=as_float(points),
        old_from_new=as_index(topology.old_from_new),
        new_from_old=as_index(topology.new_from_old),
        node_begin=as_index(topology.node_begin),
        node_count=as_index(topology.node_count),
        left_child=as_index(topology.left_child),
        right_child=as_index(topology.right_child),
        parent=as_index(topology.parent),
        split_dim=as_index(topology.split_dim),
        split_value=as_float(topology.split_value),
        bbox_min=as_float(topology.bbox_min),
        bbox_max=as_float(topology.bbox_max),
        leaf_size=int(leaf_size),
    )


@jaxtyped(typechecker=beartype)
def build_tree(points: ArrayLike, *, leaf_size: int = DEFAULT_LEAF_SIZE) -> SpaceTree:
    """Build a midpoint space-partitioning tree over ``points``.

    Args:
        points: Point set with shape ``(n_points, dim)``.
        leaf_size: Maximum number of points stored in a splittable leaf.

    Returns:
        The tree. ``tree.old_from_new`` maps internal positions back to
        rows of ``points``.

    Raises:
        InvalidArgumentError: If ``points`` is empty, not 2-D or not
            finite, or ``leaf_size < 1``.
    """

    validate_leaf_size(leaf_size)
    points_host = validate_points(points)
    return tree_from_host(points_host, leaf_size)


__all__ = [
    "DEFAULT_LEAF_SIZE",
    "SpaceTree",
    "build_tree",
    "tree_from_host",
    "validate_leaf_size",
    "validate_points",
]

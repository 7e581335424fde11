"""Translation of search results from tree order back to caller order."""

from __future__ import annotations

import jax
import jax.numpy as jnp
import numpy as np
from beartype import beartype
from jaxtyping import Array, ArrayLike, jaxtyped

from .dtypes import FLOAT_DTYPE, HOST_FLOAT_DTYPE, HOST_INDEX_DTYPE, INDEX_DTYPE
from .errors import InvalidArgumentError


def _as_permutation(perm: ArrayLike, size: int, name: str) -> np.ndarray:
    perm_arr = np.asarray(jax.device_get(perm), dtype=HOST_INDEX_DTYPE)
    if perm_arr.shape != (size,):
        raise InvalidArgumentError(
            f"{name} must have shape ({size},); received {perm_arr.shape}"
        )
    seen = np.zeros(size, dtype=bool)
    in_range = (perm_arr >= 0) & (perm_arr < size)
    if not np.all(in_range):
        raise InvalidArgumentError(f"{name} contains out-of-range entries")
    seen[perm_arr] = True
    if not np.all(seen):
        raise InvalidArgumentError(f"{name} is not a permutation of [0, {size})")
    return perm_arr


@jaxtyped(typechecker=beartype)
def invert_permutation(old_from_new: ArrayLike) -> Array:
    """Return ``new_from_old`` for a permutation ``old_from_new``."""

    size = int(np.shape(old_from_new)[0])
    perm = _as_permutation(old_from_new, size, "old_from_new")
    inverse = np.empty(size, dtype=HOST_INDEX_DTYPE)
    inverse[perm] = np.arange(size, dtype=HOST_INDEX_DTYPE)
    return jnp.asarray(inverse, dtype=INDEX_DTYPE)


def remap_host(
    neighbors: np.ndarray,
    distances: np.ndarray,
    old_from_new_query: np.ndarray,
    old_from_new_reference: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    """Host implementation of :func:`remap_results` (inputs already checked)."""

    neighbors_out = np.empty_like(neighbors)
    distances_out = np.empty_like(distances)
    neighbors_out[old_from_new_query] = old_from_new_reference[neighbors]
    distances_out[old_from_new_query] = distances
    return neighbors_out, distances_out


@jaxtyped(typechecker=beartype)
def remap_results(
    neighbors: ArrayLike,
    distances: ArrayLike,
    old_from_new_query: ArrayLike,
    old_from_new_reference: ArrayLike,
) -> tuple[Array, Array]:
    """Restore caller ordering of neighbor and distance matrices.

    Row ``j`` of the inputs belongs to the query stored at internal
    position ``j``; it is written to row ``old_from_new_query[j]`` of the
    outputs. Every neighbor index is translated through
    ``old_from_new_reference``. Both permutations must be bijections, so
    each output row is written exactly once.

    Args:
        neighbors: ``(n_queries, k)`` internal reference indices.
        distances: ``(n_queries, k)`` distances matching ``neighbors``.
        old_from_new_query: Query permutation from the query tree.
        old_from_new_reference: Reference permutation from the reference tree.

    Returns:
        Tuple ``(neighbors, distances)`` in original query/reference order.
    """

    neighbors_arr = np.asarray(jax.device_get(neighbors), dtype=HOST_INDEX_DTYPE)
    distances_arr = np.asarray(jax.device_get(distances), dtype=HOST_FLOAT_DTYPE)
    if neighbors_arr.ndim != 2 or neighbors_arr.shape != distances_arr.shape:
        raise InvalidArgumentError(
            "neighbors and distances must be 2-D arrays of identical shape; "
            f"received {neighbors_arr.shape} and {distances_arr.shape}"
        )
    query_perm = _as_permutation(
        old_from_new_query, neighbors_arr.shape[0], "old_from_new_query"
    )
    reference_perm = _as_permutation(
        old_from_new_reference,
        int(np.shape(old_from_new_reference)[0]),
        "old_from_new_reference",
    )
    if neighbors_arr.size and (
        neighbors_arr.min() < 0 or neighbors_arr.max() >= reference_perm.shape[0]
    ):
        raise InvalidArgumentError("neighbors contains out-of-range reference indices")

    neighbors_out, distances_out = remap_host(
        neighbors_arr, distances_arr, query_perm, reference_perm
    )
    return (
        jnp.asarray(neighbors_out, dtype=INDEX_DTYPE),
        jnp.asarray(distances_out, dtype=FLOAT_DTYPE),
    )


__all__ = ["invert_permutation", "remap_host", "remap_results"]

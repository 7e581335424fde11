"""Public all-k-nearest-neighbor search API for allknn."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import NamedTuple, Optional

import jax
import jax.numpy as jnp
import numpy as np
from beartype import beartype
from jaxtyping import Array, ArrayLike, jaxtyped

from . import _search_impl
from .dtypes import FLOAT_DTYPE, HOST_FLOAT_DTYPE, HOST_INDEX_DTYPE, INDEX_DTYPE
from .errors import InvalidArgumentError
from .policies import SearchMode, validate_mode
from .remap import remap_host
from .tree import (
    DEFAULT_LEAF_SIZE,
    SpaceTree,
    tree_from_host,
    validate_leaf_size,
    validate_points,
)

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_SIZE = 2048


@dataclass(frozen=True)
class SearchConfig:
    """Resolved options for one all-k-nearest-neighbor search.

    Attributes:
        k: Number of neighbors per query; ``0 < k < num_reference_points``.
        leaf_size: Maximum points per splittable tree leaf.
        mode: ``"naive"``, ``"single"`` or ``"dual"`` strategy.
        exclude_self: Whether a point may be its own neighbor. ``None``
            excludes it for single-set searches and is ``False`` otherwise.
        block_size: Reference block size of the naive kernel.
    """

    k: int
    leaf_size: int = DEFAULT_LEAF_SIZE
    mode: SearchMode = "dual"
    exclude_self: Optional[bool] = None
    block_size: int = DEFAULT_BLOCK_SIZE


class SearchStatistics(NamedTuple):
    """Work and timing counters reported by a search."""

    mode: str
    distance_evaluations: int
    base_cases: int
    pruned: int
    tree_build_seconds: float
    search_seconds: float


class KNNResult(NamedTuple):
    """Neighbors and distances in caller order, one row per query point.

    ``neighbors[j, i]`` is the reference index of the ``(i+1)``-th nearest
    neighbor of query ``j`` and ``distances[j, i]`` its distance; rows are
    sorted ascending, equal distances by reference index. A kept
    self-match comes first among zero distances.
    """

    neighbors: Array
    distances: Array
    statistics: SearchStatistics


def _validate_k(k: int, num_reference: int) -> None:
    if k <= 0 or k >= num_reference:
        raise InvalidArgumentError(
            f"Invalid k: {k}; must be greater than 0 and less than the number "
            f"of reference points ({num_reference})"
        )


def _validate_block_size(block_size: int) -> None:
    if block_size < 1:
        raise InvalidArgumentError(f"block_size must be >= 1, received {block_size}")


def _validate_dimensions(reference_dim: int, query_dim: int) -> None:
    if reference_dim != query_dim:
        raise InvalidArgumentError(
            "query and reference points must share last-dimension size; "
            f"received {query_dim} and {reference_dim}"
        )


def _resolve_exclude_self(exclude_self: Optional[bool], single_set: bool) -> bool:
    if exclude_self is None:
        return single_set
    if exclude_self and not single_set:
        raise InvalidArgumentError(
            "exclude_self=True requires a single-set search (no separate query set)"
        )
    return bool(exclude_self)


def _run_strategy(
    *,
    mode: SearchMode,
    k: int,
    exclude_self: bool,
    block_size: int,
    reference_points: np.ndarray,
    queries: np.ndarray,
    single_set: bool,
    reference_tree: Optional[SpaceTree],
    query_tree: Optional[SpaceTree],
    counters: _search_impl.TraversalCounters,
) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Return ``(neighbors, distances, query_order, reference_order)``.

    Results are in the strategy's internal order; the two orders are the
    ``old_from_new`` permutations that map them back to caller order.
    """

    num_queries = int(queries.shape[0])
    num_reference = int(reference_points.shape[0])

    if mode == "naive":
        reference_dev = jnp.asarray(reference_points, dtype=FLOAT_DTYPE)
        queries_dev = (
            reference_dev if single_set else jnp.asarray(queries, dtype=FLOAT_DTYPE)
        )
        idx, d2 = _search_impl.naive_knn(
            reference_dev,
            queries_dev,
            k=k,
            exclude_self=exclude_self,
            block_size=block_size,
        )
        counters.distance_evaluations += num_queries * num_reference
        return (
            np.asarray(jax.device_get(idx), dtype=HOST_INDEX_DTYPE),
            np.sqrt(np.asarray(jax.device_get(d2), dtype=HOST_FLOAT_DTYPE)),
            np.arange(num_queries, dtype=HOST_INDEX_DTYPE),
            np.arange(num_reference, dtype=HOST_INDEX_DTYPE),
        )

    reference_host = _search_impl.host_view(reference_tree)
    if mode == "single":
        candidates = _search_impl.single_tree_knn(
            reference_host,
            queries,
            k=k,
            exclude_self=exclude_self,
            counters=counters,
        )
        query_order = np.arange(num_queries, dtype=HOST_INDEX_DTYPE)
    else:
        query_host = reference_host if single_set else _search_impl.host_view(query_tree)
        candidates = _search_impl.dual_tree_knn(
            query_host,
            reference_host,
            k=k,
            exclude_self=exclude_self,
            counters=counters,
        )
        query_order = query_host.old_from_new
    neighbors, distances = candidates.finalize()
    return neighbors, distances, query_order, reference_host.old_from_new


def _execute(
    *,
    mode: SearchMode,
    k: int,
    exclude_self: bool,
    block_size: int,
    leaf_size: int,
    reference_points: np.ndarray,
    query_points: Optional[np.ndarray],
    reference_tree: Optional[SpaceTree] = None,
    query_tree: Optional[SpaceTree] = None,
) -> KNNResult:
    single_set = query_points is None
    queries = reference_points if single_set else query_points
    num_queries = int(queries.shape[0])
    counters = _search_impl.TraversalCounters()

    # A kept self-match ranks first among zero-distance ties: it fills
    # column 0 and the strategy searches the remaining k - 1 slots.
    self_first = single_set and not exclude_self
    search_k = k - 1 if self_first else k

    build_start = time.perf_counter()
    if mode != "naive" and reference_tree is None:
        logger.info("Building reference tree (leaf_size=%d)...", leaf_size)
        reference_tree = tree_from_host(reference_points, leaf_size)
    if mode == "dual" and not single_set and query_tree is None:
        logger.info("Building query tree (leaf_size=%d)...", leaf_size)
        query_tree = tree_from_host(query_points, leaf_size)
    tree_build_seconds = time.perf_counter() - build_start
    if mode != "naive":
        logger.info("Trees built in %.6f s.", tree_build_seconds)

    logger.info("Computing %d nearest neighbors (%s search)...", k, mode)
    search_start = time.perf_counter()
    if search_k > 0:
        neighbors, distances, query_order, reference_order = _run_strategy(
            mode=mode,
            k=search_k,
            exclude_self=single_set,
            block_size=block_size,
            reference_points=reference_points,
            queries=queries,
            single_set=single_set,
            reference_tree=reference_tree,
            query_tree=query_tree,
            counters=counters,
        )
        search_seconds = time.perf_counter() - search_start
        logger.info("Neighbors computed in %.6f s.", search_seconds)
        logger.info("Re-mapping indices...")
        neighbors, distances = remap_host(neighbors, distances, query_order, reference_order)
    else:
        search_seconds = time.perf_counter() - search_start
        neighbors = np.empty((num_queries, 0), dtype=HOST_INDEX_DTYPE)
        distances = np.empty((num_queries, 0), dtype=HOST_FLOAT_DTYPE)

    if self_first:
        own = np.arange(num_queries, dtype=HOST_INDEX_DTYPE)[:, None]
        neighbors = np.concatenate([own, neighbors], axis=1)
        distances = np.concatenate(
            [np.zeros((num_queries, 1), dtype=HOST_FLOAT_DTYPE), distances], axis=1
        )

    statistics = SearchStatistics(
        mode=mode,
        distance_evaluations=int(counters.distance_evaluations),
        base_cases=int(counters.base_cases),
        pruned=int(counters.pruned),
        tree_build_seconds=float(tree_build_seconds),
        search_seconds=float(search_seconds),
    )
    logger.debug(
        "%s search: distance_evaluations=%d, base_cases=%d, pruned=%d",
        mode,
        statistics.distance_evaluations,
        statistics.base_cases,
        statistics.pruned,
    )
    return KNNResult(
        neighbors=jnp.asarray(neighbors, dtype=INDEX_DTYPE),
        distances=jnp.asarray(distances, dtype=FLOAT_DTYPE),
        statistics=statistics,
    )


@jaxtyped(typechecker=beartype)
def search(
    reference: ArrayLike,
    query: Optional[ArrayLike],
    config: SearchConfig,
) -> KNNResult:
    """Find the ``config.k`` nearest reference points of every query point.

    Args:
        reference: Reference points with shape ``(n_reference, dim)``.
        query: Query points with shape ``(n_queries, dim)``, or ``None`` to
            use the reference set as the query set.
        config: Search options.

    Returns:
        :class:`KNNResult` with ``(n_queries, k)`` neighbors and distances
        in the caller's original point order: row ``j`` belongs to query
        ``j`` and column ``i`` holds its ``(i+1)``-th nearest neighbor.
        When a single-set search keeps self-matches, column 0 is the
        query's own index at distance 0, ahead of any duplicates.

    Raises:
        InvalidArgumentError: If any precondition fails. Nothing is built
            before all arguments are checked.
    """

    mode = validate_mode(config.mode)
    validate_leaf_size(config.leaf_size)
    _validate_block_size(config.block_size)
    reference_points = validate_points(reference, "reference")
    query_points = None
    if query is not None:
        query_points = validate_points(query, "query")
        _validate_dimensions(reference_points.shape[1], query_points.shape[1])
    _validate_k(config.k, reference_points.shape[0])
    exclude_self = _resolve_exclude_self(config.exclude_self, query_points is None)

    return _execute(
        mode=mode,
        k=int(config.k),
        exclude_self=exclude_self,
        block_size=int(config.block_size),
        leaf_size=int(config.leaf_size),
        reference_points=reference_points,
        query_points=query_points,
    )


@jaxtyped(typechecker=beartype)
def search_trees(
    reference_tree: SpaceTree,
    query_tree: Optional[SpaceTree] = None,
    *,
    k: int,
    mode: str = "dual",
    exclude_self: Optional[bool] = None,
    block_size: int = DEFAULT_BLOCK_SIZE,
) -> KNNResult:
    """Search with prebuilt trees, reusing them across calls.

    ``query_tree=None`` (or the reference tree itself) runs a single-set
    search where the reference tree doubles as the query tree. Single-tree
    mode only uses the query tree's points; naive mode uses neither tree's
    structure.
    """

    mode = validate_mode(mode)
    _validate_block_size(block_size)
    single_set = query_tree is None or query_tree is reference_tree
    if not single_set:
        _validate_dimensions(reference_tree.dimension, query_tree.dimension)
    _validate_k(k, reference_tree.num_points)
    exclude_self_resolved = _resolve_exclude_self(exclude_self, single_set)

    reference_points = np.asarray(jax.device_get(reference_tree.points), dtype=HOST_FLOAT_DTYPE)
    query_points = None
    if not single_set:
        query_points = np.asarray(jax.device_get(query_tree.points), dtype=HOST_FLOAT_DTYPE)

    return _execute(
        mode=mode,
        k=int(k),
        exclude_self=exclude_self_resolved,
        block_size=int(block_size),
        leaf_size=reference_tree.leaf_size,
        reference_points=reference_points,
        query_points=query_points,
        reference_tree=reference_tree,
        query_tree=None if single_set else query_tree,
    )


@jaxtyped(typechecker=beartype)
def all_knn(
    reference: ArrayLike,
    query: Optional[ArrayLike] = None,
    *,
    k: int,
    leaf_size: int = DEFAULT_LEAF_SIZE,
    mode: str = "dual",
    exclude_self: Optional[bool] = None,
    block_size: int = DEFAULT_BLOCK_SIZE,
) -> tuple[Array, Array]:
    """Convenience function returning ``(neighbors, distances)`` only."""

    config = SearchConfig(
        k=k,
        leaf_size=leaf_size,
        mode=mode,
        exclude_self=exclude_self,
        block_size=block_size,
    )
    result = search(reference, query, config)
    return result.neighbors, result.distances


__all__ = [
    "DEFAULT_BLOCK_SIZE",
    "KNNResult",
    "SearchConfig",
    "SearchStatistics",
    "all_knn",
    "search",
    "search_trees",
]

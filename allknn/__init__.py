"""allknn: exact all-k-nearest-neighbor search over space-partitioning trees."""

from jax import config as _jax_config

# Coordinates and distances are float64; neighbor indices are int64.
_jax_config.update("jax_enable_x64", True)

from .bounds import (
    HRectBound,
    max_distance,
    max_distance_sq,
    min_distance,
    min_distance_sq,
    tight_bounds,
)
from .candidates import CandidateSet
from .dataio import load_points, save_matrix
from .dtypes import FLOAT_DTYPE, INDEX_DTYPE, as_float, as_index
from .errors import DataUnavailableError, InvalidArgumentError
from .policies import SEARCH_MODES, SearchMode, resolve_search_mode
from .remap import invert_permutation, remap_results
from .search import (
    DEFAULT_BLOCK_SIZE,
    KNNResult,
    SearchConfig,
    SearchStatistics,
    all_knn,
    search,
    search_trees,
)
from .tree import DEFAULT_LEAF_SIZE, SpaceTree, build_tree

__version__ = "0.1.0"

__all__ = [
    "CandidateSet",
    "DEFAULT_BLOCK_SIZE",
    "DEFAULT_LEAF_SIZE",
    "DataUnavailableError",
    "FLOAT_DTYPE",
    "HRectBound",
    "INDEX_DTYPE",
    "InvalidArgumentError",
    "KNNResult",
    "SEARCH_MODES",
    "SearchConfig",
    "SearchMode",
    "SearchStatistics",
    "SpaceTree",
    "all_knn",
    "as_float",
    "as_index",
    "build_tree",
    "invert_permutation",
    "load_points",
    "max_distance",
    "max_distance_sq",
    "min_distance",
    "min_distance_sq",
    "remap_results",
    "resolve_search_mode",
    "save_matrix",
    "search",
    "search_trees",
    "tight_bounds",
]

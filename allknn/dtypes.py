"""Local dtype policy for allknn contracts."""

import jax.numpy as jnp
import numpy as np

# Keep neighbor indices and permutations consistent across artifacts.
INDEX_DTYPE = jnp.int64
FLOAT_DTYPE = jnp.float64

# Host-side twins used by tree construction and traversal.
HOST_INDEX_DTYPE = np.int64
HOST_FLOAT_DTYPE = np.float64


def as_index(x):
    """Convert a scalar/array to allknn index dtype."""
    return jnp.asarray(x, dtype=INDEX_DTYPE)


def as_float(x):
    """Convert a scalar/array to allknn coordinate dtype."""
    return jnp.asarray(x, dtype=FLOAT_DTYPE)


__all__ = [
    "FLOAT_DTYPE",
    "HOST_FLOAT_DTYPE",
    "HOST_INDEX_DTYPE",
    "INDEX_DTYPE",
    "as_float",
    "as_index",
]

"""Axis-aligned bounding regions and the distance bounds pruning relies on."""

from __future__ import annotations

from typing import NamedTuple, Union

import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, ArrayLike, jaxtyped

from .dtypes import FLOAT_DTYPE


class HRectBound(NamedTuple):
    """Hyper-rectangle ``[lo, hi]`` with one interval per dimension."""

    lo: Array
    hi: Array

    @property
    def dimension(self) -> int:
        """Return spatial dimensionality of the region."""

        return int(self.lo.shape[-1])

    def contains(self, point: ArrayLike) -> Array:
        """Return ``True`` when ``point`` lies inside the closed region."""

        p = jnp.asarray(point, dtype=FLOAT_DTYPE)
        return jnp.all((p >= self.lo) & (p <= self.hi))


RegionOrPoint = Union[HRectBound, ArrayLike]


def tight_bounds(points: ArrayLike) -> HRectBound:
    """Return the smallest region enclosing every row of ``points``."""

    pts = jnp.asarray(points, dtype=FLOAT_DTYPE)
    return HRectBound(lo=jnp.min(pts, axis=0), hi=jnp.max(pts, axis=0))


def _gaps(bound: HRectBound, other: RegionOrPoint) -> tuple[Array, Array]:
    """Per-dimension (nearest, farthest) separations between the operands."""

    if isinstance(other, HRectBound):
        nearest = jnp.maximum(
            jnp.maximum(other.lo - bound.hi, bound.lo - other.hi),
            0.0,
        )
        farthest = jnp.maximum(other.hi - bound.lo, bound.hi - other.lo)
        return nearest, farthest

    point = jnp.asarray(other, dtype=FLOAT_DTYPE)
    nearest = jnp.maximum(jnp.maximum(bound.lo - point, point - bound.hi), 0.0)
    farthest = jnp.maximum(jnp.abs(point - bound.lo), jnp.abs(point - bound.hi))
    return nearest, farthest


@jaxtyped(typechecker=beartype)
def min_distance_sq(bound: HRectBound, other: RegionOrPoint) -> Array:
    """Squared lower bound on the distance between ``bound`` and ``other``."""

    nearest, _ = _gaps(bound, other)
    return jnp.sum(nearest * nearest, axis=-1)


@jaxtyped(typechecker=beartype)
def max_distance_sq(bound: HRectBound, other: RegionOrPoint) -> Array:
    """Squared upper bound on the distance between ``bound`` and ``other``."""

    _, farthest = _gaps(bound, other)
    return jnp.sum(farthest * farthest, axis=-1)


@jaxtyped(typechecker=beartype)
def min_distance(bound: HRectBound, other: RegionOrPoint) -> Array:
    """Return the minimum Euclidean distance from ``bound`` to a point or region.

    Zero when the operands touch or overlap. The value never exceeds the
    true distance to any point inside ``bound``.
    """

    return jnp.sqrt(min_distance_sq(bound, other))


@jaxtyped(typechecker=beartype)
def max_distance(bound: HRectBound, other: RegionOrPoint) -> Array:
    """Return the maximum Euclidean distance from ``bound`` to a point or region."""

    return jnp.sqrt(max_distance_sq(bound, other))


__all__ = [
    "HRectBound",
    "max_distance",
    "max_distance_sq",
    "min_distance",
    "min_distance_sq",
    "tight_bounds",
]

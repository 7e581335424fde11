"""Host-side bound kernels used during tree construction and traversal.

These mirror :mod:`allknn.bounds` on NumPy buffers and broadcast over
leading axes, so a traversal can score several nodes in one call.
"""

from __future__ import annotations

import numpy as np


def tight_box(points: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Return per-dimension ``(min, max)`` of a non-empty point block."""

    return points.min(axis=0), points.max(axis=0)


def point_box_min_dist_sq(
    lo: np.ndarray,
    hi: np.ndarray,
    point: np.ndarray,
) -> np.ndarray:
    """Squared distance from ``point`` to boxes ``[lo, hi]`` (zero inside)."""

    gap = np.maximum(np.maximum(lo - point, point - hi), 0.0)
    return np.sum(gap * gap, axis=-1)


def box_box_min_dist_sq(
    lo_a: np.ndarray,
    hi_a: np.ndarray,
    lo_b: np.ndarray,
    hi_b: np.ndarray,
) -> np.ndarray:
    """Squared gap between boxes ``a`` and ``b`` (zero when they overlap)."""

    gap = np.maximum(np.maximum(lo_b - hi_a, lo_a - hi_b), 0.0)
    return np.sum(gap * gap, axis=-1)


def pairwise_sq_distances(queries: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Return squared distances with shape ``(n_queries, n_points)``."""

    deltas = queries[:, None, :] - points[None, :, :]
    return np.sum(deltas * deltas, axis=-1)


__all__ = [
    "box_box_min_dist_sq",
    "pairwise_sq_distances",
    "point_box_min_dist_sq",
    "tight_box",
]

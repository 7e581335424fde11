"""Point-file loading and result writing for the allknn command."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Union

import jax
import numpy as np
from jaxtyping import ArrayLike

from .dtypes import HOST_FLOAT_DTYPE
from .errors import DataUnavailableError

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


def _delimiter_for(path: Path) -> Optional[str]:
    """Comma for ``.csv`` files, any whitespace otherwise."""

    return "," if path.suffix.lower() == ".csv" else None


def load_points(path: PathLike) -> np.ndarray:
    """Load a point matrix with one point per line.

    Args:
        path: ``.csv`` (comma-separated) or whitespace-separated text file.

    Returns:
        Float64 array of shape ``(n_points, dim)``.

    Raises:
        DataUnavailableError: If the file is missing, unreadable, empty, or
            has rows of unequal length or non-numeric fields.
    """

    file_path = Path(path)
    if not file_path.is_file():
        raise DataUnavailableError(f"Point file {file_path} not found.")
    try:
        points = np.loadtxt(
            file_path,
            delimiter=_delimiter_for(file_path),
            dtype=HOST_FLOAT_DTYPE,
            ndmin=2,
        )
    except OSError as exc:
        raise DataUnavailableError(f"Point file {file_path} is unreadable: {exc}") from exc
    except ValueError as exc:
        raise DataUnavailableError(f"Point file {file_path} could not be parsed: {exc}") from exc
    if points.size == 0:
        raise DataUnavailableError(f"Point file {file_path} contains no points.")

    logger.info("Loaded %d points of dimension %d from %s", points.shape[0], points.shape[1], file_path)
    return points


def save_matrix(path: PathLike, matrix: ArrayLike) -> None:
    """Write a 2-D matrix with one row per line.

    Integer matrices are written as integers; floating matrices with
    enough digits to round-trip exactly.
    """

    file_path = Path(path)
    data = np.asarray(jax.device_get(matrix))
    if data.ndim == 1:
        data = data[:, None]
    fmt = "%d" if np.issubdtype(data.dtype, np.integer) else "%.17g"
    delimiter = _delimiter_for(file_path) or " "
    np.savetxt(file_path, data, fmt=fmt, delimiter=delimiter)
    logger.info("Saved %d x %d matrix to %s", data.shape[0], data.shape[1], file_path)


__all__ = ["DataUnavailableError", "load_points", "save_matrix"]

"""Search strategy policy helpers for allknn."""

from __future__ import annotations

import logging
from typing import Literal, get_args

from .errors import InvalidArgumentError

logger = logging.getLogger(__name__)

SearchMode = Literal["naive", "single", "dual"]
SEARCH_MODES: tuple[str, ...] = get_args(SearchMode)


def resolve_search_mode(*, naive: bool = False, single_mode: bool = False) -> SearchMode:
    """Map the ``naive``/``single_mode`` flags onto a strategy.

    Naive search overrides single-tree search; with neither flag the
    dual-tree strategy is used.
    """

    if naive:
        if single_mode:
            logger.warning("single_mode ignored because naive is present.")
        return "naive"
    if single_mode:
        return "single"
    return "dual"


def validate_mode(mode: str) -> SearchMode:
    if mode not in SEARCH_MODES:
        raise InvalidArgumentError(
            f"mode must be one of: {', '.join(repr(m) for m in SEARCH_MODES)}; "
            f"received {mode!r}"
        )
    return mode  # type: ignore[return-value]


__all__ = ["SEARCH_MODES", "SearchMode", "resolve_search_mode", "validate_mode"]

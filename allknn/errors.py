"""Exception types raised by allknn."""

from __future__ import annotations


class InvalidArgumentError(ValueError):
    """A search or build argument violates its documented precondition."""


class DataUnavailableError(OSError):
    """A point file is missing, unreadable, or cannot be parsed."""


__all__ = ["DataUnavailableError", "InvalidArgumentError"]

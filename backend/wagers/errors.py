"""Domain errors raised synchronously to callers of the wager services."""

from __future__ import annotations


class WagerError(Exception):
    """Base class for every error surfaced by the resolution engine."""


class NotFoundError(WagerError, LookupError):
    """Raised when a wager or target participation does not exist."""


class UnauthorizedError(WagerError):
    """Raised when the caller may not perform the operation on this wager."""


class InvalidStateError(WagerError):
    """Raised when the wager's state, type, or the request payload forbids the operation.

    Also raised to the losing side of a compare-and-set race.
    """


__all__ = [
    "WagerError",
    "NotFoundError",
    "UnauthorizedError",
    "InvalidStateError",
]

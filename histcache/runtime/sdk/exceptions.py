"""Custom exception types for the history cache."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from .history_cache import UpdateFailure

__all__ = [
    "HistCacheError",
    "MalformedSeriesError",
    "HistoryUpdateError",
    "HassAPIError",
]


class HistCacheError(Exception):
    """Base class for all history cache errors."""
    pass


class MalformedSeriesError(HistCacheError, ValueError):
    """Raised when a series descriptor matches none of the recognised shapes."""
    pass


class HassAPIError(HistCacheError, RuntimeError):
    """Raised when Home Assistant rejects a request or returns an error result."""
    pass


class HistoryUpdateError(HistCacheError):
    """Raised on demand when an update left some gaps unfilled."""

    def __init__(self, failures: Sequence["UpdateFailure"]) -> None:
        self.failures = tuple(failures)
        detail = ", ".join(failure.describe() for failure in self.failures)
        super().__init__(f"{len(self.failures)} history fetch(es) failed: {detail}")

from __future__ import annotations

"""Interfaces for fetching history from an external source.

Concrete implementations live under ``histcache.runtime.io``.
"""

from dataclasses import dataclass
from typing import Iterable, Protocol, Union

import pandas as pd

from .history_coverage import TimestampRange
from .observations import Observation
from .series import AttributeSeries, StateSeries, StatisticSeries

FetchResult = Union[pd.DataFrame, Iterable[Observation], None]


class StateHistoryFetcher(Protocol):
    """Retrieve raw state (or attribute) history for a series."""

    async def fetch(
        self, start: int, end: int, *, series: StateSeries | AttributeSeries
    ) -> FetchResult:
        """Return observations in ``[start, end]`` ordered by timestamp.

        Like Home Assistant, implementations may prepend a copy of the last
        value known before ``start`` when nothing happened exactly at
        ``start``.
        """
        ...


class StatisticsFetcher(Protocol):
    """Retrieve pre-aggregated statistics for a series."""

    async def fetch(
        self, start: int, end: int, *, series: StatisticSeries
    ) -> FetchResult:
        """Return statistic rows in ``[start, end]`` ordered by timestamp."""
        ...


@dataclass(slots=True)
class FetchedHistory:
    """Result of fetching one gap.

    ``range`` is what the fetch proves is cached; it can be narrower than the
    window actually requested from the source.
    """

    range: TimestampRange
    history: list[Observation]


__all__ = [
    "FetchResult",
    "FetchedHistory",
    "StateHistoryFetcher",
    "StatisticsFetcher",
]

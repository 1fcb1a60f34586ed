"""Public API surface for the histcache package."""

from __future__ import annotations

from histcache.runtime.sdk import (
    AttributeSeries,
    HistoryCache,
    HistoryUpdateError,
    MalformedSeriesError,
    Observation,
    SeriesKey,
    StateSeries,
    StatisticSeries,
    TimestampRange,
    UpdateFailure,
    UpdateResult,
    compact_ranges,
    series_key,
    subtract_ranges,
)

__all__ = [
    "AttributeSeries",
    "HistoryCache",
    "HistoryUpdateError",
    "MalformedSeriesError",
    "Observation",
    "SeriesKey",
    "StateSeries",
    "StatisticSeries",
    "TimestampRange",
    "UpdateFailure",
    "UpdateResult",
    "compact_ranges",
    "series_key",
    "subtract_ranges",
]

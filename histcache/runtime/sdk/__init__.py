"""Interval cache engine: range arithmetic, series store and update coordinator."""

from .data_io import FetchedHistory, StateHistoryFetcher, StatisticsFetcher
from .exceptions import (
    HassAPIError,
    HistCacheError,
    HistoryUpdateError,
    MalformedSeriesError,
)
from .history_cache import HistoryCache, UpdateFailure, UpdateResult
from .history_coverage import (
    TimestampRange,
    clip_ranges,
    compact_ranges,
    subtract_ranges,
)
from .history_fetch import fetch_single_range
from .observations import (
    Observation,
    history_to_frame,
    merge_history,
    observations_from_frame,
    trim_history,
)
from .series import (
    AttributeSeries,
    SeriesDescriptor,
    SeriesKey,
    StateSeries,
    StatisticSeries,
    as_descriptor,
    series_key,
)
from .series_store import SeriesState, SeriesStore

__all__ = [
    "AttributeSeries",
    "FetchedHistory",
    "HassAPIError",
    "HistCacheError",
    "HistoryCache",
    "HistoryUpdateError",
    "MalformedSeriesError",
    "Observation",
    "SeriesDescriptor",
    "SeriesKey",
    "SeriesState",
    "SeriesStore",
    "StateHistoryFetcher",
    "StateSeries",
    "StatisticSeries",
    "StatisticsFetcher",
    "TimestampRange",
    "UpdateFailure",
    "UpdateResult",
    "as_descriptor",
    "clip_ranges",
    "compact_ranges",
    "fetch_single_range",
    "history_to_frame",
    "merge_history",
    "observations_from_frame",
    "series_key",
    "subtract_ranges",
    "trim_history",
]

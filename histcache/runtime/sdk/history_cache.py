from __future__ import annotations

"""Interval cache for entity histories.

:class:`HistoryCache` keeps, per series, the ranges it has fully fetched and
the merged history for them. :meth:`HistoryCache.update` fetches only what is
missing from a requested window. Updates run one at a time in call order so
each one computes its gaps against everything earlier calls stored.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Mapping, TypeVar, Union

import pandas as pd

from histcache.foundation.config import CacheConfig

from . import metrics as cache_metrics
from .configuration import get_cache_config
from .data_io import StateHistoryFetcher, StatisticsFetcher
from .exceptions import HistoryUpdateError, MalformedSeriesError
from .history_coverage import RangeLike, TimestampRange, subtract_ranges
from .history_fetch import Clock, fetch_single_range, wall_clock_ms
from .observations import History, history_to_frame
from .series import SeriesDescriptor, SeriesKey, StatisticSeries, as_descriptor, series_key
from .series_store import SeriesStore

logger = logging.getLogger(__name__)

T = TypeVar("T")
SeriesLike = Union[SeriesDescriptor, Mapping[str, Any]]


@dataclass(frozen=True, slots=True)
class UpdateFailure:
    """A series or gap that could not be brought into the cache."""

    series: SeriesLike
    key: SeriesKey | None
    range: TimestampRange | None
    error: BaseException

    def describe(self) -> str:
        target = str(self.key) if self.key is not None else repr(self.series)
        window = f"[{self.range.start}, {self.range.end}]" if self.range else "-"
        return f"{target} {window}: {self.error!r}"


@dataclass(slots=True)
class UpdateResult:
    fetched: list[tuple[SeriesKey, TimestampRange]] = field(default_factory=list)
    failures: list[UpdateFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        if self.failures:
            raise HistoryUpdateError(self.failures)


class _UpdateQueue:
    """FIFO of completion futures; runs one job at a time in call order.

    A job's completion future always resolves with ``None``, so a job that
    raises never stalls the ones queued behind it.
    """

    def __init__(self) -> None:
        self._tail: asyncio.Future[None] | None = None
        self.pending = 0

    async def run(self, job: Callable[[], Awaitable[T]]) -> T:
        loop = asyncio.get_running_loop()
        previous = self._tail
        done: asyncio.Future[None] = loop.create_future()
        self._tail = done
        self.pending += 1
        cache_metrics.update_pending.inc()
        try:
            if previous is not None:
                try:
                    await asyncio.shield(previous)
                except asyncio.CancelledError:
                    # Hand the slot over only once the predecessor settles.
                    previous.add_done_callback(lambda _f: _settle(done))
                    raise
            try:
                return await job()
            finally:
                _settle(done)
        finally:
            self.pending -= 1
            cache_metrics.update_pending.dec()
            if self._tail is done and done.done():
                self._tail = None


def _settle(future: asyncio.Future[None]) -> None:
    if not future.done():
        future.set_result(None)


class HistoryCache:
    """Cache of entity histories filled on demand from history sources."""

    def __init__(
        self,
        states: StateHistoryFetcher,
        statistics: StatisticsFetcher | None = None,
        *,
        clock: Clock | None = None,
        config: CacheConfig | None = None,
    ) -> None:
        self.states = states
        self.statistics = statistics
        self.config = config if config is not None else get_cache_config()
        self._clock = clock or wall_clock_ms
        self._store = SeriesStore()
        self._queue = _UpdateQueue()

    # ------------------------------------------------------------------
    @property
    def pending(self) -> int:
        """Number of updates queued or running."""
        return self._queue.pending

    # ------------------------------------------------------------------
    async def update(
        self,
        range: RangeLike,
        remove_outside_range: bool | None,
        series: Iterable[SeriesLike],
    ) -> UpdateResult:
        """Ensure ``range`` is cached for every entry in ``series``.

        Waits behind every earlier call on this cache. Failures are collected
        in the returned :class:`UpdateResult` rather than raised. Passing
        ``None`` for ``remove_outside_range`` uses the configured default.
        """

        if remove_outside_range is None:
            remove_outside_range = self.config.remove_outside_range
        window = TimestampRange(*range)
        entries = list(series)
        return await self._queue.run(
            lambda: self._run_update(window, remove_outside_range, entries)
        )

    async def _run_update(
        self,
        window: TimestampRange,
        remove_outside_range: bool,
        entries: list[SeriesLike],
    ) -> UpdateResult:
        result = UpdateResult()
        if remove_outside_range:
            self._store.remove_outside_range(window)
            logger.debug(
                "history_cache.trim",
                extra={"start": window.start, "end": window.end},
            )
        unique: dict[SeriesKey, SeriesDescriptor] = {}
        for entry in entries:
            try:
                descriptor = as_descriptor(entry)
                key = series_key(descriptor)
            except MalformedSeriesError as exc:
                logger.warning("history_cache.series_malformed: %s", exc)
                result.failures.append(UpdateFailure(entry, None, None, exc))
                continue
            unique.setdefault(key, descriptor)
        await asyncio.gather(
            *(
                self._update_series(descriptor, key, window, result)
                for key, descriptor in unique.items()
            )
        )
        return result

    async def _update_series(
        self,
        descriptor: SeriesDescriptor,
        key: SeriesKey,
        window: TimestampRange,
        result: UpdateResult,
    ) -> None:
        gaps = subtract_ranges([window], self._store.ranges(key))
        for gap in gaps:
            await self._fill_gap(descriptor, key, gap, result)

    async def _fill_gap(
        self,
        descriptor: SeriesDescriptor,
        key: SeriesKey,
        gap: TimestampRange,
        result: UpdateResult,
    ) -> None:
        kind = "statistics" if isinstance(descriptor, StatisticSeries) else "states"
        extra = {"series": str(key), "start": gap.start, "end": gap.end, "kind": kind}
        logger.debug("history_cache.gap_fetch.start", extra=extra)
        started_at = time.perf_counter()
        try:
            fetched = await fetch_single_range(
                descriptor,
                gap,
                states=self.states,
                statistics=self.statistics,
                now_ms=self._clock,
            )
        except Exception as exc:
            duration_ms = (time.perf_counter() - started_at) * 1000.0
            cache_metrics.observe_gap_fetch(kind, duration_ms, failed=True)
            logger.warning("history_cache.gap_fetch.failed", extra=extra, exc_info=True)
            result.failures.append(UpdateFailure(descriptor, key, gap, exc))
            return

        duration_ms = (time.perf_counter() - started_at) * 1000.0
        cache_metrics.observe_gap_fetch(kind, duration_ms)
        if fetched is None:
            return
        self._store.add(key, fetched.history, fetched.range)
        cache_metrics.observe_merged(kind, len(fetched.history))
        result.fetched.append((key, fetched.range))
        logger.debug(
            "history_cache.gap_fetch.complete",
            extra={**extra, "rows": len(fetched.history)},
        )

    # ------------------------------------------------------------------
    def get_history(self, series: SeriesLike) -> History:
        """Return the cached history for ``series``; empty when unknown."""
        return self._store.history(series_key(as_descriptor(series)))

    def get_history_frame(self, series: SeriesLike) -> pd.DataFrame:
        return history_to_frame(self.get_history(series))

    def covered_ranges(self, series: SeriesLike) -> tuple[TimestampRange, ...]:
        return self._store.ranges(series_key(as_descriptor(series)))

    def clear_cache(self) -> None:
        """Drop all cached state immediately, without waiting for queued updates."""
        self._store.clear()


__all__ = ["HistoryCache", "UpdateFailure", "UpdateResult"]

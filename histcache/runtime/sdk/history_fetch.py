from __future__ import annotations

"""Fetch a single gap and tag its left-edge boundary point."""

import time
from typing import Callable

from .data_io import FetchedHistory, StateHistoryFetcher, StatisticsFetcher
from .history_coverage import RangeLike, TimestampRange
from .observations import observations_from_frame
from .series import SeriesDescriptor, StatisticSeries

Clock = Callable[[], int]


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


async def fetch_single_range(
    series: SeriesDescriptor,
    gap: RangeLike,
    *,
    states: StateHistoryFetcher,
    statistics: StatisticsFetcher | None = None,
    now_ms: Clock = wall_clock_ms,
) -> FetchedHistory | None:
    """Fetch ``gap`` for ``series``, requesting one extra millisecond on the left.

    When asked for ``[start, end]`` the source prepends a copy of the last
    point before ``start`` unless a real point sits exactly at ``start``.
    Requesting ``[start - 1, end]`` puts that point at ``start - 1``, where it
    is flagged as a boundary point. The reported range stays ``[start, end]``
    so the flagged point lies outside the cached coverage and gets fetched
    again by any later overlapping request. The merge keeps it only while it
    is the first point of the series; once real data lands before it, it
    proves to be a copy and is discarded.

    ::

              _________       1st fetch
              * +   +
              ^ kept, first point

        _______               2nd fetch
        *   + * +   +
        ^     ^ dropped, no longer first
        kept

    Returns ``None`` when the whole gap lies in the future.
    """

    start_t, end_t = gap
    end_t = min(end_t, now_ms())
    if end_t < start_t:
        return None

    if isinstance(series, StatisticSeries):
        if statistics is None:
            raise RuntimeError("Statistics fetcher not configured")
        frame = await statistics.fetch(int(start_t) - 1, int(end_t), series=series)
    else:
        frame = await states.fetch(int(start_t) - 1, int(end_t), series=series)

    history = observations_from_frame(frame)
    if history:
        history[0] = history[0].as_boundary()
    return FetchedHistory(range=TimestampRange(start_t, end_t), history=history)


__all__ = ["Clock", "fetch_single_range", "wall_clock_ms"]

from __future__ import annotations

import asyncio

import pytest

from histcache.foundation.common.metrics_factory import get_metric_value
from histcache.foundation.config import CacheConfig
from histcache.runtime.sdk import metrics as cache_metrics
from histcache.runtime.sdk.exceptions import HistoryUpdateError
from histcache.runtime.sdk.history_cache import HistoryCache, UpdateResult
from histcache.runtime.sdk.series import (
    AttributeSeries,
    SeriesKey,
    StateSeries,
    StatisticSeries,
)
from tests.fake_fetcher import FakeHistorySource

TEMP = StateSeries("sensor.temp")
HUMIDITY = StateSeries("sensor.humidity")
NOW = 10_000


def _cache(source: FakeHistorySource, **kwargs) -> HistoryCache:
    return HistoryCache(source, clock=lambda: NOW, **kwargs)


def _windows(source: FakeHistorySource) -> list[tuple[int, int]]:
    return [(start, end) for _series, start, end in source.calls]


async def _until(predicate, *, attempts: int = 100) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.mark.asyncio
async def test_first_update_fetches_expanded_gap_and_records_requested_range() -> None:
    source = FakeHistorySource([(50, "a"), (150, "b")])
    cache = _cache(source)

    result = await cache.update((100, 200), False, [TEMP])

    assert _windows(source) == [(99, 200)]
    assert cache.covered_ranges(TEMP) == ((100, 200),)
    assert result.ok
    assert result.fetched == [(SeriesKey("sensor.temp"), (100, 200))]
    history = cache.get_history(TEMP)
    assert [(o.timestamp, o.value, o.is_boundary) for o in history] == [
        (99, "a", True),
        (150, "b", False),
    ]


@pytest.mark.asyncio
async def test_repeated_update_performs_no_fetch() -> None:
    source = FakeHistorySource([(150, "b")])
    cache = _cache(source)

    await cache.update((100, 200), False, [TEMP])
    result = await cache.update((150, 180), False, [TEMP])
    await cache.update((100, 200), False, [TEMP])

    assert _windows(source) == [(99, 200)]
    assert result.fetched == []


@pytest.mark.asyncio
async def test_only_missing_gaps_are_fetched() -> None:
    source = FakeHistorySource([])
    cache = _cache(source)
    await cache.update((100, 200), False, [TEMP])
    await cache.update((300, 400), False, [TEMP])

    await cache.update((0, 500), False, [TEMP])

    assert _windows(source) == [(99, 200), (299, 400), (-1, 99), (200, 299), (400, 500)]
    assert cache.covered_ranges(TEMP) == ((0, 500),)


@pytest.mark.asyncio
async def test_boundary_copy_is_replaced_once_earlier_data_arrives() -> None:
    source = FakeHistorySource([(50, "a"), (120, "b")])
    cache = _cache(source)

    await cache.update((100, 200), False, [TEMP])
    await cache.update((60, 200), False, [TEMP])
    await cache.update((0, 200), False, [TEMP])

    history = cache.get_history(TEMP)
    assert [(o.timestamp, o.value) for o in history] == [(50, "a"), (120, "b")]
    assert [o.is_boundary for o in history] == [True, False]
    assert cache.covered_ranges(TEMP) == ((0, 200),)


@pytest.mark.asyncio
async def test_updates_run_in_call_order() -> None:
    gate = asyncio.Event()
    source = FakeHistorySource([], gates={1: gate})
    cache = _cache(source)

    first = asyncio.create_task(cache.update((100, 200), False, [TEMP]))
    second = asyncio.create_task(cache.update((150, 300), False, [TEMP]))
    await _until(lambda: len(source.calls) == 1)
    for _ in range(5):
        await asyncio.sleep(0)

    assert cache.pending == 2
    assert len(source.calls) == 1
    gate.set()
    await asyncio.gather(first, second)

    assert _windows(source) == [(99, 200), (200, 300)]
    assert cache.covered_ranges(TEMP) == ((100, 300),)
    assert cache.pending == 0


@pytest.mark.asyncio
async def test_series_are_fetched_concurrently_within_one_update() -> None:
    gate = asyncio.Event()
    source = FakeHistorySource([], gates={1: gate, 2: gate})
    cache = _cache(source)

    task = asyncio.create_task(cache.update((100, 200), False, [TEMP, HUMIDITY]))
    await _until(lambda: len(source.calls) == 2)
    gate.set()
    result = await task

    assert {series for series, _s, _e in source.calls} == {TEMP, HUMIDITY}
    assert len(result.fetched) == 2


@pytest.mark.asyncio
async def test_failed_update_does_not_block_later_updates() -> None:
    source = FakeHistorySource([(150, "b")], fail_on={1})
    cache = _cache(source)

    failed = await cache.update((100, 200), False, [TEMP])
    recovered = await cache.update((100, 200), False, [TEMP])

    assert not failed.ok
    (failure,) = failed.failures
    assert failure.key == SeriesKey("sensor.temp")
    assert failure.range == (100, 200)
    assert isinstance(failure.error, RuntimeError)
    assert recovered.ok
    assert _windows(source) == [(99, 200), (99, 200)]
    assert cache.covered_ranges(TEMP) == ((100, 200),)


@pytest.mark.asyncio
async def test_failed_gap_does_not_stop_sibling_gaps() -> None:
    source = FakeHistorySource([])
    cache = _cache(source)
    await cache.update((100, 200), False, [TEMP])
    source.fail_on = {2}

    result = await cache.update((0, 300), False, [TEMP])

    assert _windows(source) == [(99, 200), (-1, 99), (200, 300)]
    assert [f.range for f in result.failures] == [(0, 99)]
    assert cache.covered_ranges(TEMP) == ((100, 300),)


@pytest.mark.asyncio
async def test_failure_of_one_series_keeps_the_others() -> None:
    source = FakeHistorySource([(150, "b")])
    source.fail_on = {(HUMIDITY, 99, 200)}
    cache = _cache(source)

    result = await cache.update((100, 200), False, [TEMP, HUMIDITY])

    assert [f.key for f in result.failures] == [SeriesKey("sensor.humidity")]
    assert cache.covered_ranges(TEMP) == ((100, 200),)
    assert cache.covered_ranges(HUMIDITY) == ()
    assert cache.get_history(HUMIDITY) == ()
    with pytest.raises(HistoryUpdateError) as excinfo:
        result.raise_for_failures()
    assert excinfo.value.failures == tuple(result.failures)


@pytest.mark.asyncio
async def test_malformed_series_fails_fast_without_fetching() -> None:
    source = FakeHistorySource([])
    cache = _cache(source)

    result = await cache.update(
        (100, 200), False, [{"entity": "sensor.a", "statistic": "mean"}, {"entity": "sensor.temp"}]
    )

    assert _windows(source) == [(99, 200)]
    (failure,) = result.failures
    assert failure.key is None and failure.range is None
    assert isinstance(failure.error, ValueError)
    assert cache.covered_ranges(TEMP) == ((100, 200),)


@pytest.mark.asyncio
async def test_entries_sharing_a_key_are_fetched_once() -> None:
    source = FakeHistorySource([(150, "b")])
    cache = _cache(source)

    result = await cache.update(
        (100, 200), False, [TEMP, {"entity": "sensor.temp"}, StateSeries("sensor.temp")]
    )

    assert source.calls == [(TEMP, 99, 200)]
    assert result.fetched == [(SeriesKey("sensor.temp"), (100, 200))]
    assert [o.timestamp for o in cache.get_history(TEMP)] == [150]


@pytest.mark.asyncio
async def test_statistics_without_fetcher_is_reported_as_failure() -> None:
    cache = _cache(FakeHistorySource([]))

    result = await cache.update((100, 200), False, [StatisticSeries("sensor.e", "sum", "hour")])

    assert len(result.failures) == 1
    assert isinstance(result.failures[0].error, RuntimeError)


@pytest.mark.asyncio
async def test_statistics_series_go_to_statistics_fetcher() -> None:
    states = FakeHistorySource([])
    stats = FakeHistorySource([(120, 4.0)])
    energy = StatisticSeries("sensor.energy", "mean", "hour")
    cache = _cache(states, statistics=stats)

    await cache.update((100, 200), False, [energy, AttributeSeries("sensor.temp", "unit")])

    assert [series for series, _s, _e in stats.calls] == [energy]
    assert [series for series, _s, _e in states.calls] == [AttributeSeries("sensor.temp", "unit")]
    assert [o.timestamp for o in cache.get_history(energy)] == [120]


@pytest.mark.asyncio
async def test_remove_outside_range_trims_before_fetching() -> None:
    source = FakeHistorySource([(5, 1), (60, 2), (100, 3), (160, 4), (300, 5)])
    cache = _cache(source)
    await cache.update((0, 400), False, [TEMP])

    result = await cache.update((50, 150), True, [TEMP])

    assert result.fetched == []
    assert cache.covered_ranges(TEMP) == ((50, 150),)
    assert [o.timestamp for o in cache.get_history(TEMP)] == [5, 60, 100, 160]

    await cache.update((0, 200), True, [TEMP])
    assert _windows(source)[-2:] == [(-1, 49), (150, 200)]
    assert cache.covered_ranges(TEMP) == ((0, 200),)


@pytest.mark.asyncio
async def test_future_part_of_window_is_not_recorded_as_covered() -> None:
    source = FakeHistorySource([])
    clock = {"now": 150}
    cache = HistoryCache(source, clock=lambda: clock["now"])

    await cache.update((100, 200), False, [TEMP])
    assert cache.covered_ranges(TEMP) == ((100, 150),)

    clock["now"] = 500
    await cache.update((100, 200), False, [TEMP])
    assert _windows(source) == [(99, 150), (150, 200)]
    assert cache.covered_ranges(TEMP) == ((100, 200),)


@pytest.mark.asyncio
async def test_cancelled_waiter_hands_over_slot_only_after_predecessor() -> None:
    gate = asyncio.Event()
    source = FakeHistorySource([], gates={1: gate})
    cache = _cache(source)

    first = asyncio.create_task(cache.update((100, 200), False, [TEMP]))
    await _until(lambda: len(source.calls) == 1)
    waiting = asyncio.create_task(cache.update((300, 400), False, [TEMP]))
    await asyncio.sleep(0)
    waiting.cancel()
    third = asyncio.create_task(cache.update((500, 600), False, [TEMP]))
    for _ in range(5):
        await asyncio.sleep(0)

    assert len(source.calls) == 1
    gate.set()
    await asyncio.gather(first, third)
    with pytest.raises(asyncio.CancelledError):
        await waiting

    assert _windows(source) == [(99, 200), (499, 600)]


@pytest.mark.asyncio
async def test_clear_cache_drops_state() -> None:
    source = FakeHistorySource([(150, "b")])
    cache = _cache(source)
    await cache.update((100, 200), False, [TEMP])

    cache.clear_cache()

    assert cache.get_history(TEMP) == ()
    assert cache.covered_ranges(TEMP) == ()
    await cache.update((100, 200), False, [TEMP])
    assert len(source.calls) == 2


@pytest.mark.asyncio
async def test_history_reads() -> None:
    cache = _cache(FakeHistorySource([(150, "b")]))

    assert cache.get_history({"entity": "sensor.unknown"}) == ()
    assert cache.get_history_frame(TEMP).empty

    await cache.update((100, 200), False, [{"entity": "sensor.temp"}])

    frame = cache.get_history_frame(TEMP)
    assert frame["ts"].tolist() == [150]
    assert frame["value"].tolist() == ["b"]


@pytest.mark.asyncio
async def test_update_records_metrics() -> None:
    source = FakeHistorySource([(150, "b")], fail_on={(HUMIDITY, 99, 200)})
    cache = _cache(source)

    await cache.update((100, 200), False, [TEMP, HUMIDITY])

    labels = {"kind": "states"}
    assert get_metric_value(cache_metrics.gap_fetch_total, labels) == 2
    assert get_metric_value(cache_metrics.gap_fetch_failures_total, labels) == 1
    assert get_metric_value(cache_metrics.observations_merged_total, labels) == 1
    assert get_metric_value(cache_metrics.gap_fetch_duration_ms, labels, suffix="_count") == 2
    assert get_metric_value(cache_metrics.update_pending) == 0


def test_update_result_defaults() -> None:
    result = UpdateResult()

    assert result.ok
    result.raise_for_failures()


@pytest.mark.asyncio
async def test_configured_default_for_remove_outside_range() -> None:
    source = FakeHistorySource([(10, 1), (100, 2), (300, 3)])
    cache = HistoryCache(
        source, clock=lambda: NOW, config=CacheConfig(remove_outside_range=True)
    )
    await cache.update((0, 400), False, [TEMP])

    await cache.update((50, 150), None, [TEMP])

    assert cache.covered_ranges(TEMP) == ((50, 150),)
    assert [o.timestamp for o in cache.get_history(TEMP)] == [10, 100, 300]

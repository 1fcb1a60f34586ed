from __future__ import annotations

"""Prometheus metrics for the history cache."""

from histcache.foundation.common.metrics_factory import (
    get_or_create_counter,
    get_or_create_gauge,
    get_or_create_histogram,
    reset_metrics as reset_registered_metrics,
)

_REGISTERED_METRICS: set[str] = set()

gap_fetch_total = get_or_create_counter(
    "histcache_gap_fetch_total",
    "Number of gap fetches issued to a history source",
    ["kind"],
)
_REGISTERED_METRICS.add("histcache_gap_fetch_total")

gap_fetch_failures_total = get_or_create_counter(
    "histcache_gap_fetch_failures_total",
    "Number of gap fetches that raised",
    ["kind"],
)
_REGISTERED_METRICS.add("histcache_gap_fetch_failures_total")

observations_merged_total = get_or_create_counter(
    "histcache_observations_merged_total",
    "Number of fetched observations merged into the cache",
    ["kind"],
)
_REGISTERED_METRICS.add("histcache_observations_merged_total")

gap_fetch_duration_ms = get_or_create_histogram(
    "histcache_gap_fetch_duration_ms",
    "Duration of a single gap fetch in milliseconds",
    ["kind"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
)
_REGISTERED_METRICS.add("histcache_gap_fetch_duration_ms")

update_pending = get_or_create_gauge(
    "histcache_update_pending",
    "Number of cache updates queued or running",
)
_REGISTERED_METRICS.add("histcache_update_pending")


def observe_gap_fetch(kind: str, duration_ms: float, *, failed: bool = False) -> None:
    gap_fetch_total.labels(kind=kind).inc()
    gap_fetch_duration_ms.labels(kind=kind).observe(duration_ms)
    if failed:
        gap_fetch_failures_total.labels(kind=kind).inc()


def observe_merged(kind: str, count: int) -> None:
    if count <= 0:
        return
    observations_merged_total.labels(kind=kind).inc(count)


def reset_metrics() -> None:
    """Reset all cache metrics; intended for tests."""

    reset_registered_metrics(_REGISTERED_METRICS)


__all__ = [
    "gap_fetch_duration_ms",
    "gap_fetch_failures_total",
    "gap_fetch_total",
    "observations_merged_total",
    "observe_gap_fetch",
    "observe_merged",
    "reset_metrics",
    "update_pending",
]

"""Concrete history sources."""

from .hass_fetcher import (
    HassStatesFetcher,
    HassStatisticsFetcher,
    build_fetchers,
)

__all__ = [
    "HassStatesFetcher",
    "HassStatisticsFetcher",
    "build_fetchers",
]

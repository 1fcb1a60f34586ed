from __future__ import annotations

"""Series descriptors and the keys the cache stores them under."""

from dataclasses import dataclass
from typing import Any, Mapping, Union

from .exceptions import MalformedSeriesError

STATISTIC_TYPES: frozenset[str] = frozenset(
    {"mean", "min", "max", "sum", "state", "change"}
)
STATISTIC_PERIODS: frozenset[str] = frozenset(
    {"5minute", "hour", "day", "week", "month"}
)


@dataclass(frozen=True, slots=True)
class StateSeries:
    """Raw state history of an entity."""

    entity: str


@dataclass(frozen=True, slots=True)
class AttributeSeries:
    """History of a single attribute of an entity."""

    entity: str
    attribute: str


@dataclass(frozen=True, slots=True)
class StatisticSeries:
    """Long-term statistics of an entity aggregated over ``period``."""

    entity: str
    statistic: str
    period: str


SeriesDescriptor = Union[StateSeries, AttributeSeries, StatisticSeries]


@dataclass(frozen=True, slots=True)
class SeriesKey:
    """Opaque cache key derived from a descriptor.

    Only :func:`series_key` should build these so two descriptors describing
    the same series always share a key.
    """

    value: str

    def __str__(self) -> str:
        return self.value


def series_key(series: SeriesDescriptor) -> SeriesKey:
    if isinstance(series, AttributeSeries):
        return SeriesKey(f"{series.entity}::{series.attribute}")
    if isinstance(series, StatisticSeries):
        return SeriesKey(
            f"{series.entity}::statistics::{series.statistic}::{series.period}"
        )
    if isinstance(series, StateSeries):
        return SeriesKey(series.entity)
    raise MalformedSeriesError(f"Series malformed: {series!r}")


def _text(data: Mapping[str, Any], name: str) -> str | None:
    value = data.get(name)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise MalformedSeriesError(f"Series field '{name}' must be a non-empty string: {dict(data)!r}")
    return value


def as_descriptor(obj: SeriesDescriptor | Mapping[str, Any]) -> SeriesDescriptor:
    """Return ``obj`` as a descriptor, parsing card-style mappings.

    Accepted mapping shapes are ``{"entity"}``, ``{"entity", "attribute"}``
    and ``{"entity", "statistic", "period"}``; unrelated keys are ignored.
    """

    if isinstance(obj, (StateSeries, AttributeSeries, StatisticSeries)):
        return obj
    if not isinstance(obj, Mapping):
        raise MalformedSeriesError(f"Series malformed: {obj!r}")

    entity = _text(obj, "entity")
    if entity is None:
        raise MalformedSeriesError(f"Series missing 'entity': {dict(obj)!r}")
    attribute = _text(obj, "attribute")
    statistic = _text(obj, "statistic")
    period = _text(obj, "period")

    if statistic is not None or period is not None:
        if attribute is not None:
            raise MalformedSeriesError(
                f"Series cannot combine 'attribute' and 'statistic': {dict(obj)!r}"
            )
        if statistic is None or period is None:
            raise MalformedSeriesError(
                f"Statistic series requires both 'statistic' and 'period': {dict(obj)!r}"
            )
        if statistic not in STATISTIC_TYPES:
            raise MalformedSeriesError(f"Unknown statistic type '{statistic}'")
        if period not in STATISTIC_PERIODS:
            raise MalformedSeriesError(f"Unknown statistic period '{period}'")
        return StatisticSeries(entity, statistic, period)
    if attribute is not None:
        return AttributeSeries(entity, attribute)
    return StateSeries(entity)


__all__ = [
    "AttributeSeries",
    "STATISTIC_PERIODS",
    "STATISTIC_TYPES",
    "SeriesDescriptor",
    "SeriesKey",
    "StateSeries",
    "StatisticSeries",
    "as_descriptor",
    "series_key",
]

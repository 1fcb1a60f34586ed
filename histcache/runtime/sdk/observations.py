from __future__ import annotations

"""Observation type and the pure merge/trim operations over histories."""

from dataclasses import dataclass, replace
from typing import Any, Iterable, Sequence

import pandas as pd

History = tuple["Observation", ...]


@dataclass(frozen=True, slots=True)
class Observation:
    """A timestamped data point.

    ``is_boundary`` marks a point fetched only to resolve the value at the
    left edge of a window. It is kept only while it is the first point of the
    whole series.
    """

    timestamp: int
    value: Any
    is_boundary: bool = False

    def as_boundary(self) -> "Observation":
        return replace(self, is_boundary=True)


def merge_history(
    existing: Iterable[Observation], incoming: Iterable[Observation]
) -> History:
    """Return ``existing`` and ``incoming`` merged into one ordered history.

    The sort is stable, so on equal timestamps the point already cached wins.
    Boundary points are dropped unless they sort first.
    """

    combined = sorted([*existing, *incoming], key=lambda obs: obs.timestamp)
    combined = [
        obs for idx, obs in enumerate(combined) if idx == 0 or not obs.is_boundary
    ]
    merged: list[Observation] = []
    for obs in combined:
        if merged and merged[-1].timestamp == obs.timestamp:
            continue
        merged.append(obs)
    return tuple(merged)


def trim_history(history: Sequence[Observation], window: tuple[float, float]) -> History:
    """Keep points strictly inside ``window`` plus one anchor on each side.

    The left anchor is the last point at or before ``start``; the right anchor
    is the first point at or after ``end``.
    """

    start, end = window
    first: Observation | None = None
    last: Observation | None = None
    kept: list[Observation] = []
    for obs in history:
        if obs.timestamp <= start:
            first = obs
        elif obs.timestamp >= end:
            if last is None:
                last = obs
        else:
            kept.append(obs)
    if first is not None:
        kept.insert(0, first)
    if last is not None:
        kept.append(last)
    return tuple(kept)


def observations_from_frame(frame: pd.DataFrame | Iterable[Observation] | None) -> list[Observation]:
    """Normalise a fetcher result into observations ordered by timestamp.

    DataFrames must carry a ``ts`` column in epoch milliseconds. An
    ``is_boundary`` column, as written by :func:`history_to_frame`, sets the
    boundary flag. The remaining columns form the value payload; a lone
    ``value`` column is unwrapped.
    """

    if frame is None:
        return []
    if not isinstance(frame, pd.DataFrame):
        return sorted(frame, key=lambda obs: obs.timestamp)
    if frame.empty:
        return []
    if "ts" not in frame.columns:
        raise KeyError("fetcher returned frame without 'ts' column")

    df = frame.sort_values("ts", kind="stable")
    payload_columns = [c for c in df.columns if c not in ("ts", "is_boundary")]
    flagged = "is_boundary" in df.columns
    observations: list[Observation] = []
    for row in df.to_dict("records"):
        ts = int(row["ts"])
        if payload_columns == ["value"]:
            value = row["value"]
        else:
            value = {c: row[c] for c in payload_columns}
        observations.append(Observation(ts, value, bool(row["is_boundary"]) if flagged else False))
    return observations


def history_to_frame(history: Sequence[Observation]) -> pd.DataFrame:
    """Return ``history`` as a DataFrame with ``ts`` and ``is_boundary`` columns."""

    records = []
    for obs in history:
        record: dict[str, Any] = {"ts": obs.timestamp}
        if isinstance(obs.value, dict):
            record.update(obs.value)
        else:
            record["value"] = obs.value
        record["is_boundary"] = obs.is_boundary
        records.append(record)
    if not records:
        return pd.DataFrame(columns=["ts", "value", "is_boundary"])
    return pd.DataFrame(records)


__all__ = [
    "History",
    "Observation",
    "history_to_frame",
    "merge_history",
    "observations_from_frame",
    "trim_history",
]

from __future__ import annotations

"""Range arithmetic over inclusive timestamp ranges.

Ranges are inclusive ``(start, end)`` pairs on an integer grid. Two ranges
whose distance is at most ``step`` are adjacent and collapse into one, so with
the default ``step=1`` the ranges ``(0, 9)`` and ``(10, 20)`` describe the same
covered set as ``(0, 20)``.
"""

from typing import Iterable, NamedTuple

NEGATIVE_INFINITY = float("-inf")
POSITIVE_INFINITY = float("inf")


class TimestampRange(NamedTuple):
    start: float
    end: float


RangeLike = tuple[float, float]


def _normalize(ranges: Iterable[RangeLike]) -> list[TimestampRange]:
    return sorted(
        (TimestampRange(start, end) for start, end in ranges if start <= end),
        key=lambda r: r.start,
    )


def compact_ranges(ranges: Iterable[RangeLike], *, step: int = 1) -> list[TimestampRange]:
    """Merge overlapping or adjacent ranges into a sorted disjoint list."""

    merged: list[TimestampRange] = []
    for start, end in _normalize(ranges):
        if merged and start <= merged[-1].end + step:
            last = merged[-1]
            merged[-1] = TimestampRange(last.start, max(last.end, end))
        else:
            merged.append(TimestampRange(start, end))
    return merged


def subtract_ranges(
    targets: Iterable[RangeLike],
    subtracted: Iterable[RangeLike],
    *,
    step: int = 1,
) -> list[TimestampRange]:
    """Return the parts of ``targets`` not covered by ``subtracted``.

    Both inputs are compacted first. For each target the covered ranges that
    intersect it are walked in order; the stretch before each one becomes a
    gap and the cursor jumps past its end. Whatever remains after the last
    covered range is the trailing gap.
    """

    covered = compact_ranges(subtracted, step=step)
    gaps: list[TimestampRange] = []
    for target in compact_ranges(targets, step=step):
        cursor = target.start
        for rng in covered:
            if rng.end < cursor:
                continue
            if rng.start > target.end:
                break
            if rng.start > cursor:
                gaps.append(TimestampRange(cursor, rng.start - step))
            cursor = rng.end + step
            if cursor > target.end:
                break
        if cursor <= target.end:
            gaps.append(TimestampRange(cursor, target.end))
    return [gap for gap in gaps if gap.start <= gap.end]


def clip_ranges(ranges: Iterable[RangeLike], window: RangeLike, *, step: int = 1) -> list[TimestampRange]:
    """Shrink ``ranges`` so nothing outside ``window`` stays covered."""

    start, end = window
    outside = [
        (NEGATIVE_INFINITY, start - step),
        (end + step, POSITIVE_INFINITY),
    ]
    return subtract_ranges(ranges, outside, step=step)


__all__ = [
    "NEGATIVE_INFINITY",
    "POSITIVE_INFINITY",
    "RangeLike",
    "TimestampRange",
    "clip_ranges",
    "compact_ranges",
    "subtract_ranges",
]

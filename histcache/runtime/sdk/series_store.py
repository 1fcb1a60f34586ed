from __future__ import annotations

"""Per-series cached state: covered ranges plus the merged history."""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator

from .history_coverage import RangeLike, TimestampRange, clip_ranges, compact_ranges
from .observations import History, Observation, merge_history, trim_history
from .series import SeriesKey


@dataclass(frozen=True, slots=True)
class SeriesState:
    ranges: tuple[TimestampRange, ...] = ()
    history: History = field(default_factory=tuple)


class SeriesStore:
    """Map of :class:`SeriesKey` to :class:`SeriesState`.

    States are immutable and replaced wholesale, so a reader never sees a
    history that disagrees with its ranges. Entry order carries no meaning.
    """

    def __init__(self) -> None:
        self._series: Dict[SeriesKey, SeriesState] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._series

    def __iter__(self) -> Iterator[SeriesKey]:
        return iter(list(self._series))

    def __len__(self) -> int:
        return len(self._series)

    # ------------------------------------------------------------------
    def add(
        self,
        key: SeriesKey,
        observations: Iterable[Observation],
        range: RangeLike,
    ) -> SeriesState:
        """Merge ``observations`` and mark ``range`` as covered for ``key``."""

        current = self._series.get(key, SeriesState())
        state = SeriesState(
            ranges=tuple(compact_ranges([*current.ranges, range])),
            history=merge_history(current.history, observations),
        )
        self._series[key] = state
        return state

    def remove_outside_range(self, window: RangeLike) -> None:
        """Shrink every series to ``window``, keeping one anchor point per side."""

        self._series = {
            key: SeriesState(
                ranges=tuple(clip_ranges(state.ranges, window)),
                history=trim_history(state.history, window),
            )
            for key, state in self._series.items()
        }

    def ranges(self, key: SeriesKey) -> tuple[TimestampRange, ...]:
        state = self._series.get(key)
        return state.ranges if state is not None else ()

    def history(self, key: SeriesKey) -> History:
        state = self._series.get(key)
        return state.history if state is not None else ()

    def clear(self) -> None:
        self._series = {}


__all__ = ["SeriesState", "SeriesStore"]

"""Clock-edge sampling of the last known signal values."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from vcd_histogram.decoder import UNKNOWN, DecodedValue, IntegerValue

if TYPE_CHECKING:
    from vcd_histogram.dispatch import Change
    from vcd_histogram.symbols import Signal

log = logging.getLogger(__name__)


class Edge(Enum):
    RISING = "rising"
    FALLING = "falling"


@dataclass
class Sample:
    """Watched signal values at one sampling instant."""

    time: int
    values: dict[str, DecodedValue]


class LastValues:
    """Last decoded value of every signal, by identifier code."""

    def __init__(self) -> None:
        self._values: dict[str, DecodedValue] = {}

    def get(self, id_code: str) -> DecodedValue:
        return self._values.get(id_code, UNKNOWN)

    def update(self, id_code: str, value: DecodedValue) -> DecodedValue:
        """Store ``value`` and return the value it replaces."""
        previous = self._values.get(id_code, UNKNOWN)
        self._values[id_code] = value
        return previous

    def __len__(self) -> int:
        return len(self._values)


def clock_level(value: DecodedValue) -> int | None:
    """Level of a clock value (its least significant bit), None if unknown."""
    if isinstance(value, IntegerValue):
        return value.value & 1
    return None


class SamplingController:
    """Decides the sampling instants and snapshots the watched signals.

    With a clock, an instant is a timestamp where the clock made the
    configured edge: rising means a change to 1 from anything other than 1
    (an unknown clock going to 1 counts), falling the reverse. Without a
    clock every timestamp carrying a value change is an instant. Either way a
    timestamp yields at most one sample.
    """

    def __init__(
        self,
        values: LastValues,
        watched: dict[str, Signal],
        clock: Signal | None = None,
        edge: Edge = Edge.RISING,
        start_time: int | None = None,
        end_time: int | None = None,
    ):
        self.values = values
        self.watched = watched  # display name -> signal
        self.clock = clock
        self.edge = edge
        self.start_time = start_time
        self.end_time = end_time
        self.samples = 0
        self._edge_seen = False
        self._last_time: int | None = None

    def on_clock(self, change: Change) -> None:
        """Observer for the clock signal."""
        target = 1 if self.edge is Edge.RISING else 0
        new = clock_level(change.value)
        old = clock_level(change.previous)
        if new == target and old != target:
            self._edge_seen = True

    def in_window(self, time: int) -> bool:
        if self.start_time is not None and time < self.start_time:
            return False
        if self.end_time is not None and time > self.end_time:
            return False
        return True

    def close_timestamp(self, time: int, changed: bool) -> Sample | None:
        """Called once all changes of ``time`` are applied and dispatched."""
        if self._last_time is not None and time < self._last_time:
            raise ValueError(f"Time cannot go backwards: {time} < {self._last_time}")

        if self.clock is None:
            triggered = changed
        else:
            triggered = self._edge_seen
            self._edge_seen = False

        if not triggered or not self.in_window(time) or time == self._last_time:
            return None

        self._last_time = time
        self.samples += 1
        return Sample(
            time=time,
            values={name: self.values.get(sig.id_code) for name, sig in self.watched.items()},
        )

"""Per-signal frequency tables and time series."""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from vcd_histogram.decoder import DecodePolicy, IntegerValue, RealValue
from vcd_histogram.sampling import Sample
from vcd_histogram.symbols import Signal

# All NaNs count under one key; dict lookup matches by identity first
_NAN = float("nan")


class Mode(Enum):
    FREQUENCY = "frequency"
    TIMESERIES = "timeseries"


@dataclass
class WatchedSignal:
    """A watched signal and everything aggregated for it."""

    name: str
    signal: Signal
    policy: DecodePolicy
    table: Counter = field(default_factory=Counter)
    series: list[tuple[int, int | float]] | None = None
    sampled: int = 0  # sampling instants with a known value
    dropped: int = 0  # sampling instants with an unknown value

    @property
    def total(self) -> int:
        return sum(self.table.values())


def table_key(value: IntegerValue | RealValue) -> int | float:
    key = value.value
    if isinstance(key, float) and math.isnan(key):
        return _NAN
    return key


class Aggregator:
    """Counts sampled values; memory grows with distinct values only."""

    def __init__(self, watched: list[WatchedSignal], mode: Mode = Mode.FREQUENCY):
        self.watched = watched
        self.mode = mode
        if mode is Mode.TIMESERIES:
            for w in watched:
                w.series = []

    def consume(self, sample: Sample) -> None:
        for w in self.watched:
            value = sample.values[w.name]
            if not isinstance(value, (IntegerValue, RealValue)):
                w.dropped += 1
                continue
            key = table_key(value)
            w.table[key] += 1
            w.sampled += 1
            if w.series is not None:
                w.series.append((sample.time, key))

"""Run configuration."""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from vcd_histogram.aggregate import Mode
from vcd_histogram.decoder import Interpretation, UnknownPolicy
from vcd_histogram.errors import ConfigurationError
from vcd_histogram.sampling import Edge

INTERPRETATION_SUFFIXES = {"signed": Interpretation.SIGNED, "unsigned": Interpretation.UNSIGNED}


@dataclass(frozen=True)
class WatchSpec:
    """A ``signals`` entry: a name or glob pattern, optionally with a signedness."""

    pattern: str
    interpretation: Interpretation | None = None

    @classmethod
    def parse(cls, entry: str | dict[str, Any]) -> WatchSpec:
        """Parse ``"top.q"``, ``"top.q:signed"`` or ``{"name": ..., "interpretation": ...}``."""
        if isinstance(entry, dict):
            if "name" not in entry:
                raise ConfigurationError(f"signal entry without a name: {entry}")
            interpretation = entry.get("interpretation")
            if interpretation is None:
                return cls(entry["name"])
            if interpretation not in INTERPRETATION_SUFFIXES:
                raise ConfigurationError(
                    f"invalid interpretation {interpretation!r} for {entry['name']}"
                )
            return cls(entry["name"], INTERPRETATION_SUFFIXES[interpretation])

        if not isinstance(entry, str) or not entry:
            raise ConfigurationError(f"invalid signal entry: {entry!r}")
        name, sep, suffix = entry.rpartition(":")
        if sep and suffix in INTERPRETATION_SUFFIXES:
            return cls(name, INTERPRETATION_SUFFIXES[suffix])
        return cls(entry)


def _enum(enum_cls, value, option: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        choices = "|".join(e.value for e in enum_cls)
        raise ConfigurationError(f"invalid {option} {value!r}, expected {choices}") from None


def _optional_int(value, option: str, minimum: int = 0, required: bool = False) -> int | None:
    if value is None and not required:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigurationError(f"invalid {option} {value!r}, expected an integer >= {minimum}")
    return value


@dataclass(frozen=True)
class HistogramConfig:
    """Options for one run. ``signals=None`` watches every declared signal."""

    clock_signal: str | None = None
    edge: Edge = Edge.RISING
    signals: tuple[WatchSpec, ...] | None = None
    mode: Mode = Mode.FREQUENCY
    unknown_policy: UnknownPolicy = UnknownPolicy.SKIP
    integer_width: int | None = 64
    interpretation: Interpretation = Interpretation.UNSIGNED
    max_errors: int | None = 1000
    workers: int = 1
    start_time: int | None = None
    end_time: int | None = None

    def __post_init__(self) -> None:
        set_ = object.__setattr__
        set_(self, "edge", _enum(Edge, self.edge, "edge"))
        set_(self, "mode", _enum(Mode, self.mode, "mode"))
        set_(self, "unknown_policy", _enum(UnknownPolicy, self.unknown_policy, "unknown_policy"))
        set_(self, "interpretation", _enum(Interpretation, self.interpretation, "interpretation"))
        if self.interpretation is Interpretation.REAL:
            raise ConfigurationError("interpretation must be signed or unsigned")
        if self.signals is not None:
            if isinstance(self.signals, (str, dict)):
                raise ConfigurationError("signals must be a list")
            set_(self, "signals", tuple(
                s if isinstance(s, WatchSpec) else WatchSpec.parse(s) for s in self.signals
            ))
        _optional_int(self.integer_width, "integer_width", minimum=1)
        _optional_int(self.max_errors, "max_errors")
        _optional_int(self.workers, "workers", minimum=1, required=True)
        _optional_int(self.start_time, "start_time")
        _optional_int(self.end_time, "end_time")
        if (
            self.start_time is not None
            and self.end_time is not None
            and self.end_time < self.start_time
        ):
            raise ConfigurationError(
                f"end_time {self.end_time} is before start_time {self.start_time}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistogramConfig:
        """Build a config from a JSON-style dict. Unknown keys are rejected."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"unknown configuration option(s): {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_file(cls, path: Path) -> HistogramConfig:
        """Load a JSON configuration file."""
        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"cannot read configuration {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"configuration {path} must be a JSON object")
        return cls.from_dict(data)

    def with_overrides(self, **overrides: Any) -> HistogramConfig:
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **changes)

"""Per-signal observer registry and per-timestamp change dispatch."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Callable

from vcd_histogram.decoder import DecodedValue
from vcd_histogram.sampling import LastValues
from vcd_histogram.symbols import Signal

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Change:
    """A decoded value change delivered to observers."""

    time: int
    signal: Signal
    value: DecodedValue
    previous: DecodedValue


Observer = Callable[[Change], None]


@dataclass(frozen=True)
class WatchHandle:
    """Returned by ``WatcherRegistry.register``; pass to ``unregister``."""

    id_code: str
    observer: Observer = field(compare=False)
    serial: int = 0


class WatcherRegistry:
    """Ordered observers per identifier code."""

    def __init__(self) -> None:
        self._observers: dict[str, list[WatchHandle]] = {}
        self._serials = itertools.count()
        self._dispatching = False
        self._deferred: list[WatchHandle] = []

    def register(self, id_code: str, observer: Observer) -> WatchHandle:
        handle = WatchHandle(id_code, observer, next(self._serials))
        self._observers.setdefault(id_code, []).append(handle)
        return handle

    def unregister(self, handle: WatchHandle) -> None:
        """Remove an observer.

        During a dispatch the removal is applied once the current timestamp
        has been fully delivered.
        """
        if handle not in self._observers.get(handle.id_code, ()):
            raise KeyError(f"Observer not registered: {handle}")
        if self._dispatching:
            if handle not in self._deferred:
                self._deferred.append(handle)
            return
        self._remove(handle)

    def observers(self, id_code: str) -> tuple[WatchHandle, ...]:
        return tuple(self._observers.get(id_code, ()))

    def begin(self) -> None:
        self._dispatching = True

    def end(self) -> None:
        self._dispatching = False
        deferred, self._deferred = self._deferred, []
        for handle in deferred:
            self._remove(handle)

    def _remove(self, handle: WatchHandle) -> None:
        handles = self._observers[handle.id_code]
        handles.remove(handle)
        if not handles:
            del self._observers[handle.id_code]


class Dispatcher:
    """Applies a timestamp's decoded changes, then notifies observers.

    Every change of the timestamp reaches the value cache before the first
    observer runs, so no observer sees a partially applied timestamp.
    """

    def __init__(self, registry: WatcherRegistry, values: LastValues):
        self.registry = registry
        self.values = values

    def dispatch(self, time: int, decoded: list[tuple[Signal, DecodedValue]]) -> list[Change]:
        changes = [
            Change(time, signal, value, self.values.update(signal.id_code, value))
            for signal, value in decoded
        ]

        self.registry.begin()
        try:
            for change in changes:
                for handle in self.registry.observers(change.signal.id_code):
                    handle.observer(change)
        finally:
            self.registry.end()

        log.debug(f"#{time}: dispatched {len(changes)} changes")
        return changes

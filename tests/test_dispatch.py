"""Tests for the watcher registry and dispatcher."""

import pytest

from vcd_histogram.decoder import UNKNOWN, IntegerValue
from vcd_histogram.dispatch import Dispatcher, WatcherRegistry
from vcd_histogram.sampling import LastValues
from vcd_histogram.symbols import Domain, Signal

A = Signal("!", "a", ("top",), 4, Domain.BIT_VECTOR)
B = Signal('"', "b", ("top",), 4, Domain.BIT_VECTOR)


def make():
    registry = WatcherRegistry()
    values = LastValues()
    return registry, values, Dispatcher(registry, values)


def test_observers_run_in_registration_order():
    """Test observers of one signal are called in the order registered."""
    registry, _, dispatcher = make()
    calls = []
    registry.register("!", lambda c: calls.append("first"))
    registry.register("!", lambda c: calls.append("second"))
    registry.register('"', lambda c: calls.append("other"))

    dispatcher.dispatch(0, [(A, IntegerValue(1))])
    assert calls == ["first", "second"]


def test_whole_timestamp_applied_before_observers():
    """Test an observer already sees every change of its timestamp."""
    registry, values, dispatcher = make()
    seen = []
    registry.register("!", lambda c: seen.append(values.get('"')))

    dispatcher.dispatch(5, [(A, IntegerValue(1)), (B, IntegerValue(7))])
    assert seen == [IntegerValue(7)]


def test_change_carries_previous_value():
    """Test each change reports the value it replaced."""
    registry, _, dispatcher = make()
    changes = []
    registry.register("!", changes.append)

    dispatcher.dispatch(0, [(A, IntegerValue(3))])
    dispatcher.dispatch(1, [(A, IntegerValue(4))])
    assert changes[0].previous is UNKNOWN
    assert changes[1].previous == IntegerValue(3)
    assert changes[1].time == 1


def test_unregister_during_dispatch_is_deferred():
    """Test an observer removed mid-timestamp still sees that timestamp."""
    registry, _, dispatcher = make()
    calls = []
    handles = {}

    def remover(change):
        calls.append("remover")
        if "victim" in handles:
            registry.unregister(handles.pop("victim"))

    registry.register("!", remover)
    handles["victim"] = registry.register('"', lambda c: calls.append("victim"))

    dispatcher.dispatch(0, [(A, IntegerValue(1)), (B, IntegerValue(1))])
    assert calls == ["remover", "victim"]

    calls.clear()
    dispatcher.dispatch(1, [(A, IntegerValue(2)), (B, IntegerValue(2))])
    assert calls == ["remover"]


def test_unregister():
    """Test removed observers are no longer called."""
    registry, _, dispatcher = make()
    calls = []
    handle = registry.register("!", calls.append)
    registry.unregister(handle)
    dispatcher.dispatch(0, [(A, IntegerValue(1))])
    assert calls == []
    assert registry.observers("!") == ()


def test_unregister_unknown_handle():
    """Test removing a handle twice raises KeyError."""
    registry, _, _ = make()
    handle = registry.register("!", lambda c: None)
    registry.unregister(handle)
    with pytest.raises(KeyError):
        registry.unregister(handle)

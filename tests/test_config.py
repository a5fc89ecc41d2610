"""Tests for configuration loading."""

import json

import pytest

from vcd_histogram.aggregate import Mode
from vcd_histogram.config import HistogramConfig, WatchSpec
from vcd_histogram.decoder import Interpretation, UnknownPolicy
from vcd_histogram.errors import ConfigurationError
from vcd_histogram.sampling import Edge


def test_defaults():
    config = HistogramConfig()
    assert config.clock_signal is None
    assert config.edge is Edge.RISING
    assert config.signals is None
    assert config.mode is Mode.FREQUENCY
    assert config.unknown_policy is UnknownPolicy.SKIP
    assert config.integer_width == 64


def test_from_file(tmp_path):
    """Test a JSON file sets every option."""
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "clock_signal": "tb.clk",
        "edge": "falling",
        "signals": ["tb.acc:signed", {"name": "tb.gain"}, "tb.dut.*"],
        "mode": "timeseries",
        "unknown_policy": "zero",
        "integer_width": 32,
    }))
    config = HistogramConfig.from_file(path)
    assert config.clock_signal == "tb.clk"
    assert config.edge is Edge.FALLING
    assert config.signals == (
        WatchSpec("tb.acc", Interpretation.SIGNED),
        WatchSpec("tb.gain"),
        WatchSpec("tb.dut.*"),
    )
    assert config.mode is Mode.TIMESERIES
    assert config.unknown_policy is UnknownPolicy.ZERO
    assert config.integer_width == 32


def test_unknown_option():
    with pytest.raises(ConfigurationError, match="clock"):
        HistogramConfig.from_dict({"clock": "clk"})


@pytest.mark.parametrize("option,value", [
    ("edge", "both"),
    ("mode", "csv"),
    ("unknown_policy", "ignore"),
    ("integer_width", 0),
    ("workers", 0),
    ("workers", None),
    ("signals", "clk"),
    ("interpretation", "real"),
])
def test_invalid_values(option, value):
    with pytest.raises(ConfigurationError):
        HistogramConfig.from_dict({option: value})


def test_window_order():
    with pytest.raises(ConfigurationError, match="before start_time"):
        HistogramConfig(start_time=10, end_time=5)


def test_unreadable_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    with pytest.raises(ConfigurationError):
        HistogramConfig.from_file(path)


def test_watch_spec_suffixes():
    """Test only known suffixes are split off a signal name."""
    assert WatchSpec.parse("q:unsigned") == WatchSpec("q", Interpretation.UNSIGNED)
    assert WatchSpec.parse("bus[7:0]") == WatchSpec("bus[7:0]")
    with pytest.raises(ConfigurationError):
        WatchSpec.parse({"name": "q", "interpretation": "float"})


def test_overrides():
    """Test None overrides keep the file values."""
    config = HistogramConfig(clock_signal="clk", signals=["a"])
    updated = config.with_overrides(clock_signal=None, edge="falling", signals=None)
    assert updated.clock_signal == "clk"
    assert updated.edge is Edge.FALLING
    assert updated.signals == (WatchSpec("a"),)

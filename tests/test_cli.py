"""Tests for the command-line interface."""

import json

from click.testing import CliRunner

from vcd_histogram.cli import main


def test_run_writes_tables(clocked_dump, tmp_path):
    """Test the run command writes one file per watched signal."""
    dump = clocked_dump.write(tmp_path / "sim.vcd")
    out = tmp_path / "tables"
    result = CliRunner().invoke(main, ["run", str(dump), str(out), "--clock", "clk", "--signed"])

    assert result.exit_code == 0, result.output
    assert (out / "top.q.tsv").read_text() == "value\tcount\n-1\t1\n1\t1\n"
    assert (out / "top.clk.tsv").exists()


def test_run_with_config_file(clocked_dump, tmp_path):
    """Test options from a config file, with a CLI override."""
    dump = clocked_dump.write(tmp_path / "sim.vcd")
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"clock_signal": "clk", "signals": ["q"], "edge": "falling"}))
    out = tmp_path / "tables"
    result = CliRunner().invoke(
        main, ["run", str(dump), str(out), "-c", str(config), "--edge", "rising"]
    )

    assert result.exit_code == 0, result.output
    assert [p.name for p in out.iterdir()] == ["top.q.tsv"]
    assert (out / "top.q.tsv").read_text() == "value\tcount\n1\t1\n255\t1\n"


def test_run_missing_clock_fails(clocked_dump, tmp_path):
    dump = clocked_dump.write(tmp_path / "sim.vcd")
    out = tmp_path / "tables"
    result = CliRunner().invoke(main, ["run", str(dump), str(out), "--clock", "nope"])
    assert result.exit_code == 1
    assert not out.exists()


def test_signals_lists_declarations(clocked_dump, tmp_path):
    dump = clocked_dump.write(tmp_path / "sim.vcd")
    result = CliRunner().invoke(main, ["signals", str(dump)])
    assert result.exit_code == 0, result.output
    assert "top.clk" in result.output
    assert "top.q" in result.output


def test_signals_filter(clocked_dump, tmp_path):
    dump = clocked_dump.write(tmp_path / "sim.vcd")
    result = CliRunner().invoke(main, ["signals", str(dump), "nothing_here"])
    assert result.exit_code == 0
    assert "No signals matching" in result.output


def test_run_unwritable_output_fails(clocked_dump, tmp_path):
    """Test an output directory that cannot be created exits with status 1."""
    dump = clocked_dump.write(tmp_path / "sim.vcd")
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    result = CliRunner().invoke(main, ["run", str(dump), str(blocker / "out"), "--clock", "clk"])
    assert result.exit_code == 1
    assert result.exception is None or isinstance(result.exception, SystemExit)

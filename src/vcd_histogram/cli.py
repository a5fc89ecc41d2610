"""Command-line interface for vcd-histogram."""

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from vcd_histogram.aggregate import Mode
from vcd_histogram.config import HistogramConfig
from vcd_histogram.decoder import UnknownPolicy
from vcd_histogram.errors import VCDHistogramError
from vcd_histogram.lexer import Lexer, TokenKind, open_dump
from vcd_histogram.pipeline import histogram_file
from vcd_histogram.sampling import Edge
from vcd_histogram.symbols import SymbolTableBuilder

logger = logging.getLogger(__name__)

console = Console()


def setup_logging(verbose: bool):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def _choices(enum_cls) -> click.Choice:
    return click.Choice([e.value for e in enum_cls])


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.pass_context
def main(ctx, verbose):
    """Per-signal value frequency tables from VCD waveform dumps."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@main.command()
@click.argument("dump", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("output", type=click.Path(file_okay=False, path_type=Path))
@click.option("-c", "--config", "config_file", type=click.Path(exists=True, path_type=Path),
              help="JSON configuration file")
@click.option("--clock", help="Clock signal to sample on")
@click.option("--edge", type=_choices(Edge), help="Clock edge to sample on")
@click.option("-s", "--signal", "signals", multiple=True,
              help="Signal name or glob to watch (repeatable, default: all)")
@click.option("--mode", type=_choices(Mode), help="Output frequency tables or time series")
@click.option("--unknown-policy", type=_choices(UnknownPolicy),
              help="What to do with x/z values")
@click.option("--integer-width", type=int, help="Target width for sign extension")
@click.option("--signed", "interpretation", flag_value="signed", default=None,
              help="Decode vectors as two's complement")
@click.option("--unsigned", "interpretation", flag_value="unsigned",
              help="Decode vectors as unsigned (default)")
@click.option("--max-errors", type=int, help="Abort after this many body errors")
@click.option("--workers", type=int, help="Decode threads")
@click.option("--start-time", type=int, help="Ignore sampling instants before this time")
@click.option("--end-time", type=int, help="Stop after this time")
def run(dump: Path, output: Path, config_file: Path | None, clock, edge, signals, mode,
        unknown_policy, integer_width, interpretation, max_errors, workers, start_time,
        end_time):
    """Build value tables for the signals of DUMP and write them to OUTPUT.

    Example:
        vcd-histogram run sim.vcd tables/ --clock tb.clk --signed -s 'tb.dut.acc*'
    """
    try:
        config = HistogramConfig.from_file(config_file) if config_file else HistogramConfig()
        config = config.with_overrides(
            clock_signal=clock,
            edge=edge,
            signals=list(signals) if signals else None,
            mode=mode,
            unknown_policy=unknown_policy,
            integer_width=integer_width,
            interpretation=interpretation,
            max_errors=max_errors,
            workers=workers,
            start_time=start_time,
            end_time=end_time,
        )
        result, report = histogram_file(dump, output, config)
    except VCDHistogramError as e:
        logger.error(str(e))
        raise SystemExit(1)

    table = Table(title=f"{dump.name}: {result.samples} samples")
    table.add_column("Signal", style="cyan")
    table.add_column("Width", justify="right")
    table.add_column("Decode")
    table.add_column("Samples", justify="right")
    table.add_column("Distinct", justify="right")
    table.add_column("Dropped", justify="right")
    table.add_column("File")

    for w in result.watched:
        path = report.written.get(w.name)
        table.add_row(
            w.name,
            str(w.signal.width),
            w.policy.interpretation.value,
            str(w.sampled),
            str(len(w.table)),
            str(w.dropped),
            path.name if path else "[red]failed[/red]",
        )
    console.print(table)

    if result.error_count:
        console.print(f"[yellow]{result.error_count} errors in dump body[/yellow]")
    if report.failed:
        console.print(f"[red]{len(report.failed)} outputs could not be written[/red]")
        raise SystemExit(1)


@main.command()
@click.argument("dump", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("pattern", required=False, default="*")
def signals(dump: Path, pattern: str):
    """List the signals declared in DUMP, optionally filtered by a glob PATTERN."""
    builder = SymbolTableBuilder()
    try:
        with open_dump(dump) as f:
            for token in Lexer(f):
                builder.feed(token)
                if token.kind is TokenKind.ENDDEFINITIONS:
                    break
        symbols = builder.finish()
    except VCDHistogramError as e:
        logger.error(str(e))
        raise SystemExit(1)

    if pattern == "*":
        matches = symbols.declarations()
    else:
        matches = symbols.resolve(pattern if "*" in pattern else f"*{pattern}*")

    table = Table(title=f"Signals in {dump.name} (timescale {symbols.timescale or '?'})")
    table.add_column("Name", style="cyan")
    table.add_column("Id")
    table.add_column("Type")
    table.add_column("Width", justify="right")
    for s in matches:
        table.add_row(s.full_name, s.id_code, s.var_type, str(s.width))
    console.print(table)

    if not matches:
        click.echo(f"No signals matching '{pattern}'")


if __name__ == "__main__":
    main()

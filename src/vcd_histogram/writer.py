"""Tab-delimited output, one file per watched signal."""

from __future__ import annotations

import csv
import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path

from vcd_histogram.aggregate import Mode, WatchedSignal

log = logging.getLogger(__name__)

UNSAFE_CHARS = re.compile(r"[^\w.\-]+")


def format_value(value: int | float) -> str:
    if isinstance(value, float):
        return repr(value)
    return str(value)


def _sort_key(value: int | float) -> tuple[bool, int | float]:
    is_nan = isinstance(value, float) and math.isnan(value)
    return (is_nan, 0 if is_nan else value)


def output_names(names: list[str]) -> dict[str, str]:
    """Map each watched name to a unique, filesystem-safe file name."""
    result: dict[str, str] = {}
    used: set[str] = set()
    for name in names:
        stem = UNSAFE_CHARS.sub("_", name).strip("_") or "signal"
        candidate = f"{stem}.tsv"
        n = 1
        while candidate in used:
            n += 1
            candidate = f"{stem}_{n}.tsv"
        used.add(candidate)
        result[name] = candidate
    return result


@dataclass
class WriteReport:
    written: dict[str, Path] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)


class OutputWriter:
    """Writes frequency tables (``value\\tcount``) or series (``time\\tvalue``)."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def write(self, watched: list[WatchedSignal], mode: Mode = Mode.FREQUENCY) -> WriteReport:
        report = WriteReport()
        if not watched:
            return report

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log.error(f"Cannot create output directory {self.directory}: {e}")
            for w in watched:
                report.failed[w.name] = str(e)
            return report

        names = output_names([w.name for w in watched])

        for w in watched:
            path = self.directory / names[w.name]
            try:
                with open(path, "w", newline="") as f:
                    self._write_one(f, w, mode)
            except OSError as e:
                log.error(f"Failed to write {w.name} to {path}: {e}")
                report.failed[w.name] = str(e)
                continue
            log.info(f"Wrote {w.name} to {path}")
            report.written[w.name] = path

        return report

    def _write_one(self, f, watched: WatchedSignal, mode: Mode) -> None:
        out = csv.writer(f, delimiter="\t", lineterminator="\n")
        if mode is Mode.TIMESERIES:
            out.writerow(["time", "value"])
            for time, value in watched.series or []:
                out.writerow([time, format_value(value)])
        else:
            out.writerow(["value", "count"])
            for value in sorted(watched.table, key=_sort_key):
                out.writerow([format_value(value), watched.table[value]])

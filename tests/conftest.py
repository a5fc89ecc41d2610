"""Shared fixtures: a small VCD builder for generating test dumps."""

from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import Path

import pytest


@dataclass
class DumpVar:
    """A variable declared by the builder."""

    name: str
    width: int
    identifier: str
    var_type: str = "wire"


class DumpBuilder:
    """Builds VCD text: declarations first, then timestamped changes.

    Scopes are entered and left explicitly so tests can nest them; raw lines
    can be inserted anywhere to produce malformed input.
    """

    def __init__(self, timescale: str = "1ns"):
        self._header: list[str] = [
            "$date today $end",
            "$version test builder $end",
            f"$timescale {timescale} $end",
        ]
        self._body: list[str] = []
        self._vars: dict[str, DumpVar] = {}
        self._next_id = ord("!")
        self.end_definitions = True

    def _identifier(self) -> str:
        result = chr(self._next_id)
        self._next_id += 1
        return result

    def scope(self, name: str, kind: str = "module") -> DumpBuilder:
        self._header.append(f"$scope {kind} {name} $end")
        return self

    def upscope(self) -> DumpBuilder:
        self._header.append("$upscope $end")
        return self

    def var(self, name: str, width: int = 1, var_type: str = "wire",
            identifier: str | None = None) -> DumpBuilder:
        identifier = identifier or self._identifier()
        self._vars[name] = DumpVar(name, width, identifier, var_type)
        self._header.append(f"$var {var_type} {width} {identifier} {name} $end")
        return self

    def time(self, t: int) -> DumpBuilder:
        self._body.append(f"#{t}")
        return self

    def set(self, name: str, value: int | str | float) -> DumpBuilder:
        var = self._vars[name]
        if var.var_type == "real":
            self._body.append(f"r{value} {var.identifier}")
        elif var.width == 1 and not (isinstance(value, str) and len(value) > 1):
            self._body.append(f"{value}{var.identifier}")
        elif isinstance(value, str):
            self._body.append(f"b{value} {var.identifier}")
        else:
            self._body.append(f"b{format(value, f'0{var.width}b')} {var.identifier}")
        return self

    def raw(self, line: str, header: bool = False) -> DumpBuilder:
        (self._header if header else self._body).append(line)
        return self

    def text(self) -> str:
        lines = list(self._header)
        if self.end_definitions:
            lines.append("$enddefinitions $end")
        lines.extend(self._body)
        return "\n".join(lines) + "\n"

    def stream(self) -> io.BytesIO:
        return io.BytesIO(self.text().encode())

    def write(self, path: Path) -> Path:
        path.write_text(self.text())
        return path


@pytest.fixture
def builder() -> DumpBuilder:
    return DumpBuilder()


@pytest.fixture
def clocked_dump() -> DumpBuilder:
    """Scenario dump: 1-bit clk and 8-bit q in module top."""
    b = DumpBuilder()
    b.scope("top")
    b.var("clk")
    b.var("q", 8)
    b.upscope()
    b.time(0).set("clk", 1).set("q", "00000001")
    b.time(5).set("clk", 0)
    b.time(10).set("clk", 1).set("q", "11111111")
    return b

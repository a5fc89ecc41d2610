"""Error types raised while reading a dump and building frequency tables."""

from __future__ import annotations

from dataclasses import dataclass


class VCDHistogramError(Exception):
    """Base class for all errors, carrying the location in the dump."""

    def __init__(
        self,
        message: str,
        *,
        line: int | None = None,
        offset: int | None = None,
        time: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.line = line
        self.offset = offset
        self.time = time

    def located(
        self, line: int | None, offset: int | None, time: int | None
    ) -> VCDHistogramError:
        """Fill in any location fields not already set. Returns self."""
        if self.line is None:
            self.line = line
        if self.offset is None:
            self.offset = offset
        if self.time is None:
            self.time = time
        return self

    def __str__(self) -> str:
        where = []
        if self.line is not None:
            where.append(f"line {self.line}")
        if self.offset is not None:
            where.append(f"offset {self.offset}")
        if self.time is not None:
            where.append(f"near #{self.time}")
        if not where:
            return self.message
        return f"{self.message} ({', '.join(where)})"


class StructuralError(VCDHistogramError):
    """Malformed header or declaration section."""


class DuplicateIdentifier(StructuralError):
    """An identifier code was redeclared with a different width."""


class DecodeError(VCDHistogramError):
    """A value token could not be turned into a value."""


class ConfigurationError(VCDHistogramError):
    """The configuration does not fit the dump (or itself)."""


class TooManyErrors(VCDHistogramError):
    """The body produced more per-event errors than allowed."""


@dataclass
class ErrorRecord:
    """A non-fatal error seen while reading the dump body."""

    kind: str  # "malformed", "decode", "unknown", "undeclared", "time"
    message: str
    line: int | None
    offset: int | None
    time: int | None
    signal: str | None = None

    def __str__(self) -> str:
        subject = f"{self.signal}: " if self.signal else ""
        return f"line {self.line}, near #{self.time}: {subject}{self.message}"

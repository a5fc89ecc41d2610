"""Streaming tokenizer for VCD (Value Change Dump) files.

The lexer reads the dump one line at a time and yields tokens lazily, so
memory use does not depend on the size of the file. Header commands are
collected up to their ``$end``; body records are read one whitespace-separated
word at a time:

    #100            timestamp marker
    1!              scalar change of signal ``!``
    b1010 "         vector change of signal ``"``
    r3.14 #         real change of signal ``#``
"""

from __future__ import annotations

import gzip
import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import IO, Any, Iterable, Iterator

from vcd_histogram.errors import StructuralError

log = logging.getLogger(__name__)

WORD_PATTERN = re.compile(r"\S+")

# 4-state Verilog values plus the VHDL std_logic extras some simulators emit
SCALAR_CHARS = frozenset("01xXzZuUwWlLhH-")

SIMULATION_COMMANDS = frozenset({"dumpvars", "dumpall", "dumpon", "dumpoff"})


class TokenKind(Enum):
    """Kinds of token produced by the lexer."""

    COMMENT = "comment"
    DATE = "date"
    VERSION = "version"
    TIMESCALE = "timescale"
    SCOPE = "scope"
    UPSCOPE = "upscope"
    VAR = "var"
    ENDDEFINITIONS = "enddefinitions"
    COMMAND = "command"  # unrecognised $keyword ... $end
    SIMULATION = "simulation"  # $dumpvars, $dumpall, $dumpon, $dumpoff
    END = "end"  # closes a simulation command
    TIME = "time"
    SCALAR = "scalar"
    VECTOR = "vector"
    REAL = "real"
    MALFORMED = "malformed"


CHANGE_KINDS = frozenset({TokenKind.SCALAR, TokenKind.VECTOR, TokenKind.REAL})

BODY_KINDS = CHANGE_KINDS | {
    TokenKind.TIME,
    TokenKind.SIMULATION,
    TokenKind.END,
    TokenKind.MALFORMED,
}


@dataclass(frozen=True)
class ScopeDecl:
    """Payload of a ``$scope`` token."""

    scope_type: str
    name: str


@dataclass(frozen=True)
class VarDecl:
    """Payload of a ``$var`` token."""

    var_type: str
    width: int
    id_code: str
    reference: str
    bit_range: str = ""

    @property
    def name(self) -> str:
        """Reference name, keeping single-bit selects such as ``gpio[3]``."""
        if self.bit_range and ":" not in self.bit_range:
            return self.reference + self.bit_range
        return self.reference


@dataclass(frozen=True)
class ValueChange:
    """Payload of a scalar, vector or real change token."""

    id_code: str
    raw: str


@dataclass(frozen=True)
class Token:
    """A lexed token with its position in the stream."""

    kind: TokenKind
    data: Any
    line: int
    offset: int


@dataclass(frozen=True)
class _Word:
    text: str
    line: int
    offset: int


def open_dump(path: Path) -> IO[bytes]:
    """Open a dump for lexing, transparently handling gzip compression."""
    path = Path(path)
    if path.suffix == ".gz":
        return gzip.open(path, "rb")
    return open(path, "rb")


class Lexer:
    """Lazy, forward-only token stream over a VCD file.

    ``stream`` may be a binary file, a text file, or any iterable of lines.
    Token offsets are byte offsets for binary input and character offsets for
    text input. The lexer can be iterated once; reopen the file to restart.
    """

    def __init__(self, stream: IO[bytes] | IO[str] | Iterable[bytes | str]):
        self._stream = stream
        self._words = self._iter_words()
        self._pushback: list[_Word] = []
        self._definitions_done = False
        self.malformed = 0

    def __iter__(self) -> Iterator[Token]:
        while True:
            word = self._next_word()
            if word is None:
                return
            if word.text.startswith("$"):
                yield self._command(word)
            else:
                yield self._record(word)

    def _iter_words(self) -> Iterator[_Word]:
        offset = 0
        for line_no, line in enumerate(self._stream, start=1):
            if isinstance(line, bytes):
                # latin-1 keeps character index == byte index
                text = line.decode("latin-1")
            else:
                text = line
            for match in WORD_PATTERN.finditer(text):
                yield _Word(match.group(), line_no, offset + match.start())
            offset += len(line)

    def _next_word(self) -> _Word | None:
        if self._pushback:
            return self._pushback.pop()
        return next(self._words, None)

    def _same_line_word(self, word: _Word) -> _Word | None:
        """Return the next word if it is on the same line as ``word``."""
        following = self._next_word()
        if following is None:
            return None
        if following.line != word.line:
            self._pushback.append(following)
            return None
        return following

    def _discard_line(self, word: _Word) -> None:
        while self._same_line_word(word) is not None:
            pass

    def _collect(self, start: _Word) -> list[_Word]:
        """Collect the words of a command up to its closing ``$end``."""
        body: list[_Word] = []
        while True:
            word = self._next_word()
            if word is None:
                raise StructuralError(
                    f"unterminated {start.text} command",
                    line=start.line,
                    offset=start.offset,
                )
            if word.text == "$end":
                return body
            body.append(word)

    def _command(self, word: _Word) -> Token:
        keyword = word.text[1:]

        if keyword == "end":
            if not self._definitions_done:
                raise StructuralError("stray $end", line=word.line, offset=word.offset)
            return Token(TokenKind.END, None, word.line, word.offset)

        if keyword in SIMULATION_COMMANDS:
            return Token(TokenKind.SIMULATION, keyword, word.line, word.offset)

        body = self._collect(word)
        text = " ".join(w.text for w in body)

        if keyword == "var":
            return Token(TokenKind.VAR, self._parse_var(word, body), word.line, word.offset)

        if keyword == "scope":
            if not body:
                raise StructuralError("$scope without a name", line=word.line, offset=word.offset)
            if len(body) == 1:
                decl = ScopeDecl(scope_type="", name=body[0].text)
            else:
                decl = ScopeDecl(scope_type=body[0].text, name=body[1].text)
            return Token(TokenKind.SCOPE, decl, word.line, word.offset)

        if keyword == "upscope":
            return Token(TokenKind.UPSCOPE, None, word.line, word.offset)

        if keyword == "enddefinitions":
            self._definitions_done = True
            return Token(TokenKind.ENDDEFINITIONS, None, word.line, word.offset)

        for kind in (TokenKind.DATE, TokenKind.VERSION, TokenKind.TIMESCALE, TokenKind.COMMENT):
            if keyword == kind.value:
                return Token(kind, text, word.line, word.offset)

        log.debug(f"line {word.line}: ignoring unknown command ${keyword}")
        return Token(TokenKind.COMMAND, (keyword, text), word.line, word.offset)

    def _parse_var(self, start: _Word, body: list[_Word]) -> VarDecl:
        # $var <type> <width> <id> <reference> [<bit range>] $end
        if len(body) < 4:
            raise StructuralError(
                f"$var needs type, width, identifier and name, got {len(body)} fields",
                line=start.line,
                offset=start.offset,
            )
        try:
            width = int(body[1].text)
        except ValueError:
            width = 0
        if width <= 0:
            raise StructuralError(
                f"invalid width {body[1].text!r} for {body[3].text}",
                line=body[1].line,
                offset=body[1].offset,
            )
        return VarDecl(
            var_type=body[0].text,
            width=width,
            id_code=body[2].text,
            reference=body[3].text,
            bit_range="".join(w.text for w in body[4:]),
        )

    def _malformed(self, word: _Word, reason: str) -> Token:
        self.malformed += 1
        log.warning(f"line {word.line}: {reason}: {word.text!r}")
        self._discard_line(word)
        return Token(TokenKind.MALFORMED, f"{reason}: {word.text!r}", word.line, word.offset)

    def _record(self, word: _Word) -> Token:
        text = word.text
        first = text[0]

        if first == "#":
            try:
                time = int(text[1:])
            except ValueError:
                return self._malformed(word, "invalid timestamp")
            if time < 0:
                return self._malformed(word, "negative timestamp")
            return Token(TokenKind.TIME, time, word.line, word.offset)

        if first in "bBrR":
            kind = TokenKind.VECTOR if first in "bB" else TokenKind.REAL
            if len(text) == 1:
                return self._malformed(word, f"{kind.value} change without a value")
            ident = self._same_line_word(word)
            if ident is None:
                return self._malformed(word, f"{kind.value} change without an identifier")
            return Token(kind, ValueChange(ident.text, text[1:]), word.line, word.offset)

        if first in SCALAR_CHARS:
            if len(text) == 1:
                return self._malformed(word, "scalar change without an identifier")
            return Token(TokenKind.SCALAR, ValueChange(text[1:], first), word.line, word.offset)

        return self._malformed(word, "unrecognised value change")

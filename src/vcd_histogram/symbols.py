"""Signal directory built from the VCD header."""

from __future__ import annotations

import fnmatch
import logging
import re
from dataclasses import dataclass, field
from enum import Enum

from vcd_histogram.errors import DuplicateIdentifier, StructuralError
from vcd_histogram.lexer import BODY_KINDS, ScopeDecl, Token, TokenKind, VarDecl

log = logging.getLogger(__name__)

REAL_VAR_TYPES = frozenset({"real", "realtime", "shortreal"})

TIMESCALE_PATTERN = re.compile(r"^(\d+)\s*(s|ms|us|ns|ps|fs)$")


class Domain(Enum):
    BIT_VECTOR = "bit-vector"
    REAL = "real"


class Phase(Enum):
    """Parse lifecycle of a dump."""

    HEADER = "header"
    DECLARATIONS = "declarations"
    BODY = "body"
    DONE = "done"


@dataclass(frozen=True)
class Signal:
    """A declared variable. Immutable once the header has been read."""

    id_code: str
    name: str
    scope: tuple[str, ...]
    width: int
    domain: Domain
    var_type: str = "wire"

    @property
    def full_name(self) -> str:
        return ".".join(self.scope + (self.name,))


@dataclass
class ScopeNode:
    """A node in the scope arena. Links are indices into ``SymbolTable.scopes``."""

    name: str
    scope_type: str
    parent: int | None
    children: list[int] = field(default_factory=list)
    signals: list[str] = field(default_factory=list)  # full names


@dataclass(frozen=True)
class Timescale:
    magnitude: int
    unit: str

    def __str__(self) -> str:
        return f"{self.magnitude}{self.unit}"


def parse_timescale(text: str) -> Timescale:
    """Parse a ``$timescale`` body such as ``1 ns`` or ``10ps``."""
    match = TIMESCALE_PATTERN.match(text.strip())
    if not match:
        raise StructuralError(f"invalid timescale {text!r}")
    return Timescale(int(match.group(1)), match.group(2))


def _glob_escape(pattern: str) -> str:
    # Bus indices like gpio[3] are literal, not character classes
    return re.sub(r"\[(\d+)\]", lambda m: "[[]" + m.group(1) + "[]]", pattern)


@dataclass
class SymbolTable:
    """Identifier code and name lookup for the signals of one dump."""

    signals: dict[str, Signal] = field(default_factory=dict)  # id code -> first declaration
    by_name: dict[str, Signal] = field(default_factory=dict)  # full name -> declaration
    scopes: list[ScopeNode] = field(default_factory=lambda: [ScopeNode("", "", None)])
    date: str = ""
    version: str = ""
    timescale: Timescale | None = None

    def __len__(self) -> int:
        return len(self.by_name)

    def __contains__(self, id_code: str) -> bool:
        return id_code in self.signals

    def declarations(self) -> list[Signal]:
        """All declared names in declaration order, aliases included."""
        return list(self.by_name.values())

    def scope_path(self, index: int) -> tuple[str, ...]:
        """Names from the root down to scope ``index``."""
        names: list[str] = []
        node: int | None = index
        while node is not None and node != 0:
            names.append(self.scopes[node].name)
            node = self.scopes[node].parent
        return tuple(reversed(names))

    def resolve(self, pattern: str) -> list[Signal]:
        """Find declarations by full name, bare name, or glob pattern."""
        exact = self.by_name.get(pattern)
        if exact is not None:
            return [exact]

        if "*" in pattern or "?" in pattern:
            escaped = _glob_escape(pattern)
            return [s for name, s in self.by_name.items() if fnmatch.fnmatchcase(name, escaped)]

        return [s for s in self.by_name.values() if s.name == pattern]


class SymbolTableBuilder:
    """Consumes header tokens and builds a ``SymbolTable``.

    Scopes nest through an explicit stack of arena indices; the builder never
    recurses. ``phase`` follows the HEADER -> DECLARATIONS -> BODY lifecycle.
    """

    def __init__(self) -> None:
        self.table = SymbolTable()
        self.phase = Phase.HEADER
        self._stack: list[int] = [0]
        self._last: Token | None = None

    def feed(self, token: Token) -> None:
        """Apply one header token. Raises StructuralError on misplaced tokens."""
        self._last = token
        if self.phase in (Phase.BODY, Phase.DONE):
            raise StructuralError(
                "declaration after $enddefinitions", line=token.line, offset=token.offset
            )

        kind = token.kind
        if kind in BODY_KINDS:
            raise StructuralError(
                f"{kind.value} record before $enddefinitions",
                line=token.line,
                offset=token.offset,
            )

        if kind is TokenKind.DATE:
            self.table.date = token.data
        elif kind is TokenKind.VERSION:
            self.table.version = token.data
        elif kind is TokenKind.TIMESCALE:
            try:
                self.table.timescale = parse_timescale(token.data)
            except StructuralError as e:
                raise e.located(token.line, token.offset, None)
        elif kind is TokenKind.SCOPE:
            self.phase = Phase.DECLARATIONS
            self._push_scope(token.data)
        elif kind is TokenKind.UPSCOPE:
            if len(self._stack) == 1:
                raise StructuralError(
                    "$upscope without an open scope", line=token.line, offset=token.offset
                )
            self._stack.pop()
        elif kind is TokenKind.VAR:
            self.phase = Phase.DECLARATIONS
            self._add_var(token)
        elif kind is TokenKind.ENDDEFINITIONS:
            self.phase = Phase.BODY
            if len(self._stack) > 1:
                log.warning(f"{len(self._stack) - 1} scope(s) still open at $enddefinitions")

    def finish(self) -> SymbolTable:
        """Return the table. Raises StructuralError if the header never ended."""
        if self.phase is not Phase.BODY:
            last = self._last
            raise StructuralError(
                "missing $enddefinitions",
                line=last.line if last else None,
                offset=last.offset if last else None,
            )
        log.info(
            f"Declared {len(self.table)} names for {len(self.table.signals)} signals "
            f"in {len(self.table.scopes) - 1} scopes"
        )
        return self.table

    def _push_scope(self, decl: ScopeDecl) -> None:
        parent = self._stack[-1]
        index = len(self.table.scopes)
        self.table.scopes.append(ScopeNode(decl.name, decl.scope_type, parent))
        self.table.scopes[parent].children.append(index)
        self._stack.append(index)

    def _add_var(self, token: Token) -> None:
        decl: VarDecl = token.data
        domain = Domain.REAL if decl.var_type in REAL_VAR_TYPES else Domain.BIT_VECTOR
        signal = Signal(
            id_code=decl.id_code,
            name=decl.name,
            scope=self.table.scope_path(self._stack[-1]),
            width=decl.width,
            domain=domain,
            var_type=decl.var_type,
        )

        existing = self.table.signals.get(signal.id_code)
        if existing is not None and existing.width != signal.width:
            raise DuplicateIdentifier(
                f"identifier {signal.id_code!r} redeclared as {signal.full_name} with width "
                f"{signal.width}, was {existing.full_name} with width {existing.width}",
                line=token.line,
                offset=token.offset,
            )
        if existing is None:
            self.table.signals[signal.id_code] = signal

        if signal.full_name in self.table.by_name:
            log.warning(f"line {token.line}: {signal.full_name} declared twice, keeping first")
            return
        self.table.by_name[signal.full_name] = signal
        self.table.scopes[self._stack[-1]].signals.append(signal.full_name)

"""End-to-end processing of one dump: header, body, sampling, aggregation."""

from __future__ import annotations

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Iterable, Iterator

from vcd_histogram.aggregate import Aggregator, WatchedSignal
from vcd_histogram.config import HistogramConfig, WatchSpec
from vcd_histogram.decoder import (
    UNKNOWN,
    DecodedValue,
    DecodePolicy,
    IntegerValue,
    Interpretation,
    RealValue,
    UnknownPolicy,
    decode,
)
from vcd_histogram.dispatch import Dispatcher, Observer, WatcherRegistry, WatchHandle
from vcd_histogram.errors import (
    ConfigurationError,
    DecodeError,
    ErrorRecord,
    StructuralError,
    TooManyErrors,
)
from vcd_histogram.lexer import CHANGE_KINDS, Lexer, Token, TokenKind, open_dump
from vcd_histogram.sampling import LastValues, SamplingController
from vcd_histogram.symbols import Domain, Phase, Signal, SymbolTable, SymbolTableBuilder
from vcd_histogram.writer import OutputWriter, WriteReport

log = logging.getLogger(__name__)

# Error records kept for reporting; the count itself is unbounded
MAX_ERROR_RECORDS = 1000

# Signals nobody watches are decoded only to track the clock and observers
UNWATCHED_POLICY = DecodePolicy(Interpretation.UNSIGNED, UnknownPolicy.SKIP, integer_width=None)

DECLARATION_KINDS = frozenset(
    {TokenKind.SCOPE, TokenKind.UPSCOPE, TokenKind.VAR, TokenKind.ENDDEFINITIONS}
)


@dataclass
class RunResult:
    """Summary of a processed dump."""

    symbols: SymbolTable
    watched: list[WatchedSignal]
    samples: int
    timestamps: int
    last_time: int | None
    error_count: int
    unknown_events: int
    malformed: int
    cancelled: bool
    errors: list[ErrorRecord] = field(default_factory=list)


def _zero(signal: Signal) -> DecodedValue:
    return RealValue(0.0) if signal.domain is Domain.REAL else IntegerValue(0)


class Pipeline:
    """Owns the symbol table, watcher registry, value cache and all tables.

    Typical use::

        pipeline = Pipeline(config)
        with open_dump(path) as f:
            result = pipeline.run(f)
        OutputWriter(outdir).write(result.watched, config.mode)

    ``open`` reads only the header, so observers can be registered with
    ``watch`` before ``process`` reads the body.
    """

    def __init__(self, config: HistogramConfig | None = None):
        self.config = config or HistogramConfig()
        self.phase = Phase.HEADER
        self.symbols: SymbolTable | None = None
        self.values = LastValues()
        self.registry = WatcherRegistry()
        self.dispatcher = Dispatcher(self.registry, self.values)
        self.watched: list[WatchedSignal] = []
        self.controller: SamplingController | None = None
        self.aggregator: Aggregator | None = None
        self.errors: list[ErrorRecord] = []
        self.error_count = 0
        self.unknown_events = 0
        self.timestamps = 0
        self.last_time: int | None = None
        self._policies: dict[str, DecodePolicy] = {}
        self._lexer: Lexer | None = None
        self._tokens: Iterator[Token] | None = None
        self._cancelled = False

    # Setup

    def open(self, stream: IO[bytes] | IO[str] | Iterable[bytes | str]) -> SymbolTable:
        """Read the header and validate the configuration against it."""
        if self._tokens is not None:
            raise RuntimeError("Pipeline already opened")

        lexer = Lexer(stream)
        tokens = iter(lexer)
        builder = SymbolTableBuilder()
        last: Token | None = None
        for token in tokens:
            builder.feed(token)
            self.phase = builder.phase
            last = token
            if builder.phase is Phase.BODY:
                break
        self.symbols = builder.finish()

        try:
            self._setup(self.symbols)
        except ConfigurationError as e:
            raise e.located(last.line, last.offset, None)

        self._lexer = lexer
        self._tokens = tokens
        return self.symbols

    def _resolve_one(self, name: str, what: str) -> Signal:
        matches = self.symbols.resolve(name)
        if not matches:
            raise ConfigurationError(f"{what} {name!r} is not declared in the dump")
        if len({s.full_name for s in matches}) > 1:
            candidates = ", ".join(s.full_name for s in matches[:5])
            raise ConfigurationError(f"{what} {name!r} is ambiguous: {candidates}")
        return matches[0]

    def _watch_list(self) -> list[tuple[Signal, WatchSpec]]:
        if self.config.signals is None:
            return [(s, WatchSpec(s.full_name)) for s in self.symbols.declarations()]

        selected: dict[str, tuple[Signal, WatchSpec]] = {}
        for spec in self.config.signals:
            if "*" in spec.pattern or "?" in spec.pattern:
                matches = self.symbols.resolve(spec.pattern)
                if not matches:
                    raise ConfigurationError(f"signal pattern {spec.pattern!r} matches nothing")
            else:
                matches = [self._resolve_one(spec.pattern, "signal")]
            for signal in matches:
                selected.setdefault(signal.full_name, (signal, spec))
        return list(selected.values())

    def _policy_for(self, signal: Signal, spec: WatchSpec) -> DecodePolicy:
        if signal.domain is Domain.REAL:
            interpretation = Interpretation.REAL
        else:
            interpretation = spec.interpretation or self.config.interpretation

        width = self.config.integer_width
        if interpretation is Interpretation.SIGNED and width is not None and signal.width > width:
            raise ConfigurationError(
                f"{signal.full_name} is {signal.width} bits wide, "
                f"more than integer_width {width}"
            )
        return DecodePolicy(interpretation, self.config.unknown_policy, width)

    def _setup(self, symbols: SymbolTable) -> None:
        config = self.config

        for signal, spec in self._watch_list():
            policy = self._policy_for(signal, spec)
            existing = self._policies.setdefault(signal.id_code, policy)
            if existing != policy:
                raise ConfigurationError(
                    f"{signal.full_name} shares identifier {signal.id_code!r} with another "
                    f"watched signal decoded differently"
                )
            self.watched.append(WatchedSignal(signal.full_name, signal, policy))

        clock = None
        if config.clock_signal is not None:
            clock = self._resolve_one(config.clock_signal, "clock signal")
            if clock.domain is Domain.REAL:
                raise ConfigurationError(f"clock signal {clock.full_name} is real-valued")

        self.controller = SamplingController(
            self.values,
            {w.name: w.signal for w in self.watched},
            clock=clock,
            edge=config.edge,
            start_time=config.start_time,
            end_time=config.end_time,
        )
        if clock is not None:
            self.registry.register(clock.id_code, self.controller.on_clock)
        self.aggregator = Aggregator(self.watched, config.mode)

        clock_text = f"{clock.full_name} ({config.edge.value})" if clock else "every timestamp"
        log.info(f"Watching {len(self.watched)} signals, sampling on {clock_text}")

    def watch(self, name: str, observer: Observer) -> WatchHandle:
        """Register ``observer`` for changes of the signal called ``name``."""
        if self.symbols is None:
            raise RuntimeError("Must call open() before watch()")
        signal = self._resolve_one(name, "signal")
        return self.registry.register(signal.id_code, observer)

    def unwatch(self, handle: WatchHandle) -> None:
        self.registry.unregister(handle)

    def cancel(self) -> None:
        """Stop at the next timestamp boundary, keeping the tables built so far."""
        self._cancelled = True

    # Body

    def _record(
        self,
        kind: str,
        message: str,
        token: Token,
        time: int,
        signal: Signal | None = None,
        counted: bool = True,
    ) -> None:
        """Keep a located ErrorRecord. Only ``counted`` records count toward max_errors."""
        record = ErrorRecord(
            kind=kind,
            message=message,
            line=token.line,
            offset=token.offset,
            time=time,
            signal=signal.full_name if signal else None,
        )
        if len(self.errors) < MAX_ERROR_RECORDS:
            self.errors.append(record)
        if not counted:
            log.debug(str(record))
            return

        self.error_count += 1
        if kind != "malformed":
            # The lexer already warned about malformed lines
            log.warning(str(record))

        limit = self.config.max_errors
        if limit is not None and self.error_count > limit:
            raise TooManyErrors(
                f"more than {limit} errors in the dump body",
                line=token.line,
                offset=token.offset,
                time=time,
            )

    def _decode_one(self, job: tuple[Token, Signal]) -> tuple[DecodedValue, DecodeError | None]:
        token, signal = job
        policy = self._policies.get(signal.id_code, UNWATCHED_POLICY)
        try:
            return decode(token.kind, token.data.raw, signal, policy), None
        except DecodeError as e:
            return UNKNOWN, e

    def _decode_all(
        self, time: int, pending: list[Token], executor: Executor | None
    ) -> list[tuple[Signal, DecodedValue]]:
        jobs: list[tuple[Token, Signal]] = []
        for token in pending:
            signal = self.symbols.signals.get(token.data.id_code)
            if signal is None:
                self._record(
                    "undeclared",
                    f"value change for undeclared identifier {token.data.id_code!r}",
                    token,
                    time,
                )
                continue
            jobs.append((token, signal))

        # Every decode of this timestamp finishes before anything is applied
        if executor is not None:
            results = list(executor.map(self._decode_one, jobs))
        else:
            results = [self._decode_one(job) for job in jobs]

        decoded: list[tuple[Signal, DecodedValue]] = []
        for (token, signal), (value, error) in zip(jobs, results):
            policy = self._policies.get(signal.id_code)
            if error is not None:
                error.located(token.line, token.offset, time)
                if policy is not None and policy.unknown is UnknownPolicy.FAIL:
                    raise error
                self._record("decode", error.message, token, time, signal)
                if policy is not None and policy.unknown is UnknownPolicy.ZERO:
                    value = _zero(signal)
            elif value is UNKNOWN and policy is not None:
                if policy.unknown is UnknownPolicy.FAIL:
                    raise DecodeError(
                        f"unknown bits in {token.data.raw!r} for {signal.full_name}",
                        line=token.line,
                        offset=token.offset,
                        time=time,
                    )
                # $dumpvars starts most signals unknown, so these stay out of max_errors
                self.unknown_events += 1
                self._record(
                    "unknown",
                    f"unknown bits in {token.data.raw!r}",
                    token,
                    time,
                    signal,
                    counted=False,
                )
            decoded.append((signal, value))
        return decoded

    def _flush(self, time: int, pending: list[Token], executor: Executor | None) -> None:
        if not pending:
            return
        decoded = self._decode_all(time, pending, executor)
        self.dispatcher.dispatch(time, decoded)
        sample = self.controller.close_timestamp(time, changed=bool(decoded))
        if sample is not None:
            self.aggregator.consume(sample)
        self.timestamps += 1
        self.last_time = time

    def process(self) -> RunResult:
        """Read the body, sampling and aggregating as it goes."""
        if self._tokens is None:
            raise RuntimeError("Must call open() before process()")

        workers = self.config.workers
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                self._process_body(executor)
        else:
            self._process_body(None)

        log.info(
            f"Processed {self.timestamps} timestamps, {self.controller.samples} samples, "
            f"{self.error_count} errors"
        )
        return self.result()

    def _process_body(self, executor: Executor | None) -> None:
        end_time = self.config.end_time
        pending: list[Token] = []
        time = 0

        for token in self._tokens:
            kind = token.kind

            if kind in CHANGE_KINDS:
                pending.append(token)
            elif kind is TokenKind.TIME:
                if token.data > time:
                    self._flush(time, pending, executor)
                    pending = []
                    if self._cancelled:
                        log.info(f"Cancelled at #{time}")
                        return
                    if end_time is not None and token.data > end_time:
                        log.info(f"Reached end time #{end_time}")
                        self.phase = Phase.DONE
                        return
                    time = token.data
                elif token.data < time:
                    self._record(
                        "time", f"timestamp #{token.data} is before #{time}", token, time
                    )
            elif kind is TokenKind.MALFORMED:
                self._record("malformed", token.data, token, time)
            elif kind in DECLARATION_KINDS:
                raise StructuralError(
                    f"${kind.value} after $enddefinitions",
                    line=token.line,
                    offset=token.offset,
                    time=time,
                )
            else:
                # $dumpvars and friends, comments, unknown commands
                continue

        self._flush(time, pending, executor)
        self.phase = Phase.DONE

    def run(self, stream: IO[bytes] | IO[str] | Iterable[bytes | str]) -> RunResult:
        """Read header and body of ``stream``."""
        self.open(stream)
        return self.process()

    def result(self) -> RunResult:
        return RunResult(
            symbols=self.symbols,
            watched=self.watched,
            samples=self.controller.samples if self.controller else 0,
            timestamps=self.timestamps,
            last_time=self.last_time,
            error_count=self.error_count,
            unknown_events=self.unknown_events,
            malformed=self._lexer.malformed if self._lexer else 0,
            cancelled=self._cancelled,
            errors=list(self.errors),
        )


def histogram_file(
    dump: Path, output_dir: Path, config: HistogramConfig | None = None
) -> tuple[RunResult, WriteReport]:
    """Process ``dump`` and write one table per watched signal to ``output_dir``."""
    pipeline = Pipeline(config)
    with open_dump(dump) as f:
        result = pipeline.run(f)
    report = OutputWriter(output_dir).write(result.watched, pipeline.config.mode)
    return result, report

"""Decoding of raw value tokens into typed values.

Decoding is a pure function of the raw token, the signal descriptor and the
decode policy. Bits that are unknown or high-impedance never silently become
numbers: they produce ``UNKNOWN`` unless the policy substitutes zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from vcd_histogram.errors import DecodeError
from vcd_histogram.lexer import TokenKind
from vcd_histogram.symbols import Domain, Signal

UNKNOWN_BITS = frozenset("xXzZuUwW-")

# Weak drive levels read as their strong counterparts
BIT_VALUES = {"0": "0", "1": "1", "l": "0", "L": "0", "h": "1", "H": "1"}


class Interpretation(Enum):
    UNSIGNED = "unsigned"
    SIGNED = "signed"
    REAL = "real"


class UnknownPolicy(Enum):
    FAIL = "fail"
    ZERO = "zero"
    SKIP = "skip"


@dataclass(frozen=True)
class DecodePolicy:
    """How the values of one signal are decoded."""

    interpretation: Interpretation = Interpretation.UNSIGNED
    unknown: UnknownPolicy = UnknownPolicy.SKIP
    integer_width: int | None = 64  # None: no limit


@dataclass(frozen=True)
class IntegerValue:
    value: int

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class RealValue:
    value: float

    def __str__(self) -> str:
        return repr(self.value)


class Unknown:
    """The value of a signal with unknown bits, or one never assigned."""

    _instance: Unknown | None = None

    def __new__(cls) -> Unknown:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNKNOWN"

    def __str__(self) -> str:
        return "x"


UNKNOWN = Unknown()

DecodedValue = IntegerValue | RealValue | Unknown


def extend_bits(bits: str, width: int) -> str:
    """Left-extend a VCD bit string to ``width`` per the VCD padding rule.

    A leading 0 or 1 pads with 0, a leading x pads with x, a leading z pads
    with z.
    """
    if len(bits) >= width:
        return bits
    lead = bits[0].lower()
    pad = lead if lead in ("x", "z") else "0"
    return pad * (width - len(bits)) + bits


def sign_extend(bits: str, width: int) -> str:
    """Widen a two's complement bit string by replicating its MSB."""
    if len(bits) >= width:
        return bits
    return bits[0] * (width - len(bits)) + bits


def twos_complement(bits: str) -> int:
    """Numeric value of a two's complement bit string."""
    value = int(bits, 2)
    if bits[0] == "1":
        value -= 1 << len(bits)
    return value


def _zero(signal: Signal) -> DecodedValue:
    if signal.domain is Domain.REAL:
        return RealValue(0.0)
    return IntegerValue(0)


def decode_real(raw: str) -> RealValue:
    try:
        return RealValue(float(raw))
    except ValueError:
        raise DecodeError(f"invalid real value {raw!r}") from None


def decode_bits(raw: str, signal: Signal, policy: DecodePolicy) -> DecodedValue:
    """Decode a scalar or vector bit string for ``signal``."""
    if len(raw) > signal.width:
        raise DecodeError(f"{len(raw)} bits given for {signal.width}-bit {signal.full_name}")

    bits = []
    unknown = False
    for char in extend_bits(raw, signal.width):
        if char in UNKNOWN_BITS:
            unknown = True
            continue
        bit = BIT_VALUES.get(char)
        if bit is None:
            raise DecodeError(f"invalid bit {char!r} in {raw!r}")
        bits.append(bit)

    if unknown:
        if policy.unknown is UnknownPolicy.ZERO:
            return _zero(signal)
        return UNKNOWN

    vector = "".join(bits)
    if policy.interpretation is Interpretation.SIGNED:
        if policy.integer_width is not None:
            vector = sign_extend(vector, policy.integer_width)
        return IntegerValue(twos_complement(vector))
    return IntegerValue(int(vector, 2))


def decode(kind: TokenKind, raw: str, signal: Signal, policy: DecodePolicy) -> DecodedValue:
    """Decode one value-change token.

    Raises DecodeError for tokens that are not valid for the signal.
    """
    if kind is TokenKind.REAL:
        if signal.domain is not Domain.REAL:
            raise DecodeError(f"real value {raw!r} for bit-vector {signal.full_name}")
        return decode_real(raw)

    if signal.domain is Domain.REAL:
        raise DecodeError(f"bit value {raw!r} for real {signal.full_name}")
    return decode_bits(raw, signal, policy)

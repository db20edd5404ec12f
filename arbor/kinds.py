"""
Flag value kinds.

Scope
- Scalar kinds bound by the flag schema compiler: bool, duration, float, int,
  int64, string, uint and uint64. Each kind knows how to parse a command-line
  string, how to display a value, its zero value and its default placeholder.
- Maybe: tagged optional value. An absent Maybe and a present Maybe holding
  the zero value are different things, and stay different.
- Value: base class for custom flag values with their own parsing.

Declaring kinds
- bool, int, float, str and datetime.timedelta map to bool, int, float, string
  and duration.
- Int64, Uint and Uint64 are marker types (int subclasses) selecting the
  range-checked integer kinds.
- Maybe[kind] makes any scalar kind optional.

Parsing follows the conventions of command-line flag parsers:
- integers accept base prefixes (0x, 0o, 0b, leading 0 for octal) and report
  "parse error" or "value out of range";
- booleans accept 1, t, T, true, TRUE, True and their false counterparts;
- durations use unit suffixes ("1h30m", "250ms", "1.5s") and display in the
  canonical "1h30m0s" form.
"""
import math
import re
import types
from collections import namedtuple
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import final

from .config import parse_bool
from .faults import UnsupportedFlagError
from .utils import Unset


class ParseError(ValueError):
    """
    The text is not a valid representation of the value kind.
    """

    def __init__(self, message="parse error", /):
        super().__init__(message)


class RangeError(ValueError):
    """
    The text is a valid number, but outside the kind's range.
    """

    def __init__(self, message="value out of range", /):
        super().__init__(message)


class Int64(int):
    """Marker kind: signed 64-bit integer."""


class Uint(int):
    """Marker kind: unsigned 64-bit integer."""


class Uint64(int):
    """Marker kind: unsigned 64-bit integer."""


Kind = namedtuple("Kind", ("name", "type", "parse", "format", "zero", "placeholder"))

_INT64 = (-(1 << 63), (1 << 63) - 1)
_UINT64 = (0, (1 << 64) - 1)
_OCTAL = re.compile(r"[+-]?0[0-7_]+")


def _parse_integer(text, bounds, signed):
    if not text or text != text.strip() or not text.isascii():
        raise ParseError
    if not signed and text[0] in "+-":
        raise ParseError
    try:
        if _OCTAL.fullmatch(text):
            sign = text[0] if text[0] in "+-" else ""
            value = int(sign + text.lstrip("+-")[1:], 8)
        else:
            value = int(text, 0)
    except ValueError:
        raise ParseError from None
    low, high = bounds
    if not low <= value <= high:
        raise RangeError
    return value


def _parse_float(text):
    if not text or text != text.strip() or "_" in text or not text.isascii():
        raise ParseError
    try:
        value = float(text)
    except ValueError:
        raise ParseError from None
    if math.isinf(value) and not re.fullmatch(r"[+-]?(inf|infinity)", text, re.IGNORECASE):
        raise RangeError
    return value


def _format_float(value):
    """
    Shortest representation, switching to exponent form outside [1e-4, 1e6).
    """
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    sign, digits, exponent = Decimal(repr(value)).normalize().as_tuple()
    digits = "".join(map(str, digits))
    point = len(digits) + exponent
    prefix = "-" if sign else ""
    if point - 1 < -4 or point - 1 >= 6:
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        return f"{prefix}{mantissa}e{'-' if point - 1 < 0 else '+'}{abs(point - 1):02d}"
    if point <= 0:
        return f"{prefix}0.{'0' * -point}{digits}"
    if point >= len(digits):
        return f"{prefix}{digits}{'0' * (point - len(digits))}"
    return f"{prefix}{digits[:point]}.{digits[point:]}"


def _parse_bool(text):
    try:
        return parse_bool(text)
    except ValueError:
        raise ParseError from None


# Unit sizes in microseconds.
_UNITS = {
    "ns": Decimal("0.001"),
    "us": Decimal(1),
    "µs": Decimal(1),
    "μs": Decimal(1),
    "ms": Decimal(1000),
    "s": Decimal(1000000),
    "m": Decimal(60000000),
    "h": Decimal(3600000000),
}
_SPAN = re.compile(r"([0-9]*(?:\.[0-9]*)?)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text, /):
    """
    Parse a signed sequence of decimal numbers with unit suffixes ("-1.5h", "2h45m").
    """
    sign = 1
    if text[:1] in ("+", "-"):
        sign, text = (-1 if text[0] == "-" else 1), text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise ParseError
    total, position = Decimal(0), 0
    while position < len(text):
        match = _SPAN.match(text, position)
        if not match or match.group(1) in ("", "."):
            raise ParseError
        try:
            total += Decimal(match.group(1)) * _UNITS[match.group(2)]
        except InvalidOperation:
            raise ParseError from None
        position = match.end()
    try:
        return timedelta(microseconds=int(sign * total))
    except OverflowError:
        raise RangeError from None


def _fraction(value, unit):
    whole, rest = divmod(value, unit)
    if digits := str(rest).rjust(len(str(unit)) - 1, "0").rstrip("0"):
        return f"{whole}.{digits}"
    return str(whole)


def format_duration(value, /):
    """
    Display a timedelta the canonical way: "1h30m0s", "1.5s", "250ms", "0s".
    """
    micros = (value.days * 86400 + value.seconds) * 1000000 + value.microseconds
    if micros == 0:
        return "0s"
    sign, micros = ("-" if micros < 0 else ""), abs(micros)
    if micros < 1000:
        return f"{sign}{micros}µs"
    if micros < 1000000:
        return f"{sign}{_fraction(micros, 1000)}ms"
    seconds, fraction = divmod(micros, 1000000)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    text = _fraction(seconds * 1000000 + fraction, 1000000) + "s"
    if hours or minutes:
        text = f"{minutes}m{text}"
    if hours:
        text = f"{hours}h{text}"
    return sign + text


def quote(text, /):
    """
    Double-quote text for messages, escaping backslashes and quotes.
    """
    return '"%s"' % text.replace("\\", "\\\\").replace('"', '\\"')


BOOL = Kind("bool", bool, _parse_bool, lambda value: "true" if value else "false", False, "")
DURATION = Kind("duration", timedelta, parse_duration, format_duration, timedelta(0), "duration")
FLOAT = Kind("float", float, _parse_float, _format_float, 0.0, "float")
INT = Kind("int", int, lambda text: _parse_integer(text, _INT64, True), str, 0, "int")
INT64 = Kind("int64", Int64, lambda text: _parse_integer(text, _INT64, True), str, 0, "int")
STRING = Kind("string", str, str, str, "", "string")
UINT = Kind("uint", Uint, lambda text: _parse_integer(text, _UINT64, False), str, 0, "uint")
UINT64 = Kind("uint64", Uint64, lambda text: _parse_integer(text, _UINT64, False), str, 0, "uint")

_KINDS = {kind.type: kind for kind in (BOOL, DURATION, FLOAT, INT, INT64, STRING, UINT, UINT64)}


def lookup(kind, /):
    """
    Return the scalar Kind declared by a Python type.

    Raises UnsupportedFlagError for anything that is not a scalar kind.
    """
    try:
        return _KINDS[kind]
    except (KeyError, TypeError):
        raise UnsupportedFlagError(f"unsupported flag type: {getattr(kind, '__name__', kind)!r}") from None


def accepts(kind, value, /):
    """
    Return True when value is acceptable as a default for the scalar kind.
    """
    match kind.name:
        case "bool":
            return isinstance(value, bool)
        case "float":
            return isinstance(value, int | float) and not isinstance(value, bool)
        case "duration":
            return isinstance(value, timedelta)
        case "string":
            return isinstance(value, str)
        case _:
            return isinstance(value, int) and not isinstance(value, bool)


@final
class Maybe:
    """
    Tagged optional value: absent (Maybe()) or present (Maybe(value)).

    The value of an absent Maybe is None; use present (or truthiness) to tell
    "flag not given" apart from "flag given with the zero value".

        >>> Maybe(0).present, Maybe(0).value
        (True, 0)
        >>> Maybe().present, Maybe().value
        (False, None)
    """
    __slots__ = ("_present", "_value")
    __class_getitem__ = classmethod(types.GenericAlias)

    def __init__(self, value=Unset, /):
        self._present = value is not Unset
        self._value = None if value is Unset else value

    @property
    def present(self):
        return self._present

    @property
    def value(self):
        return self._value

    def get(self, default=None, /):
        return self._value if self._present else default

    def __bool__(self):
        return self._present

    def __eq__(self, other):
        if not isinstance(other, Maybe):
            return NotImplemented
        return (self._present, self._value) == (other._present, other._value)

    def __hash__(self):
        return hash((Maybe, self._present, self._value))

    def __repr__(self):
        return f"Maybe({self._value!r})" if self._present else "Maybe()"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo, /):
        return self


class Value:
    """
    Base class for custom flag values.

    Subclasses implement set() (raise ValueError on bad input) and __str__().
    A value whose is_bool_flag() returns True is given without an argument,
    in which case set("true") is called.
    """

    def set(self, text, /):
        raise NotImplementedError

    def is_bool_flag(self):
        return False

    def __str__(self):
        return ""


__all__ = (
    "Kind",
    "Int64",
    "Uint",
    "Uint64",
    "Maybe",
    "Value",
    "ParseError",
    "RangeError",
    "parse_duration",
    "format_duration",
    "quote",
    "lookup",
    "accepts",
    "BOOL",
    "DURATION",
    "FLOAT",
    "INT",
    "INT64",
    "STRING",
    "UINT",
    "UINT64",
)

"""Named functions available to transform expressions at evaluation time."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterator

from ..errors import ArgumentTypeMismatch

# ISO 20022 group status -> legacy response code
STATUS_CODES = {
    "ACSC": "25",
    "ACCP": "00",
    "ACSP": "01",
    "RJCT": "99",
    "CANC": "98",
    "PDNG": "02",
}
DEFAULT_STATUS_CODE = "99"

ISO_PATTERN = "yyyy-MM-dd'T'HH:mm:ss.SSS'Z'"
COMPACT_PATTERN = "yyyyMMddHHmmss"

_MONTHS = [
    "January", "February", "March", "April", "May", "June", "July",
    "August", "September", "October", "November", "December",
]
_DAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


@dataclass(frozen=True)
class Function:
    name: str
    impl: Callable[..., Any]
    min_args: int
    max_args: int | None

    def accepts(self, count: int) -> bool:
        if count < self.min_args:
            return False
        return self.max_args is None or count <= self.max_args

    @property
    def arity(self) -> str:
        if self.max_args is None:
            return f"at least {self.min_args}"
        if self.min_args == self.max_args:
            return str(self.min_args)
        return f"{self.min_args} to {self.max_args}"


class FunctionRegistry:
    def __init__(self) -> None:
        self._functions: dict[str, Function] = {}

    def register(self, name: str, min_args: int = 0, max_args: int | None = 0):
        def decorator(impl):
            self._functions[name] = Function(name, impl, min_args, max_args)
            return impl

        return decorator

    def get(self, name: str) -> Function | None:
        return self._functions.get(name)

    def names(self) -> list[str]:
        return sorted(self._functions)

    def copy(self) -> FunctionRegistry:
        registry = FunctionRegistry()
        registry._functions = dict(self._functions)
        return registry

    def __contains__(self, name) -> bool:
        return name in self._functions

    def __iter__(self) -> Iterator[Function]:
        return iter(self._functions.values())

    def __len__(self) -> int:
        return len(self._functions)


def format_java_pattern(value: datetime, pattern: str) -> str:
    """Format a datetime with a java.time style pattern.

    Letters outside the supported set (e.g. the ``T`` in ``yyyy-MM-ddTHH``)
    are copied literally, as is text in single quotes. ``Z``/``X`` render the
    UTC designator for UTC or naive values and ``+HHMM`` otherwise.
    """
    out = []
    i = 0
    while i < len(pattern):
        c = pattern[i]

        if c == "'":
            end = pattern.find("'", i + 1)
            if end == i + 1:
                out.append("'")
                i += 2
                continue
            if end == -1:
                end = len(pattern)
            out.append(pattern[i + 1:end])
            i = end + 1
            continue

        j = i
        while j < len(pattern) and pattern[j] == c:
            j += 1
        n = j - i
        out.append(_format_field(value, c, n))
        i = j

    return "".join(out)


def _format_field(value: datetime, letter: str, n: int) -> str:
    if letter == "y":
        return f"{value.year % 100:02d}" if n == 2 else f"{value.year:0{n}d}"
    if letter == "M":
        if n >= 4:
            return _MONTHS[value.month - 1]
        if n == 3:
            return _MONTHS[value.month - 1][:3]
        return f"{value.month:0{n}d}"
    if letter == "d":
        return f"{value.day:0{n}d}"
    if letter == "H":
        return f"{value.hour:0{n}d}"
    if letter == "h":
        return f"{(value.hour % 12) or 12:0{n}d}"
    if letter == "m":
        return f"{value.minute:0{n}d}"
    if letter == "s":
        return f"{value.second:0{n}d}"
    if letter == "S":
        return f"{value.microsecond:06d}"[:n].ljust(n, "0")
    if letter == "a":
        return "AM" if value.hour < 12 else "PM"
    if letter == "E":
        name = _DAYS[value.weekday()]
        return name if n >= 4 else name[:3]
    if letter in "ZX":
        offset = value.utcoffset()
        if offset is None or offset == timedelta(0):
            return "Z"
        minutes = int(offset.total_seconds() // 60)
        sign = "+" if minutes >= 0 else "-"
        minutes = abs(minutes)
        return f"{sign}{minutes // 60:02d}{minutes % 60:02d}"
    return letter * n


def _as_datetime(fn: str, position: int, value) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    raise ArgumentTypeMismatch(fn, position, "a date/time", value)


def _as_text(fn: str, position: int, value) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise ArgumentTypeMismatch(fn, position, "a string", value)


def _as_int(fn: str, position: int, value) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ArgumentTypeMismatch(fn, position, "an integer", value)


def to_text(value) -> str:
    """String form used when a datetime is embedded into a larger value."""
    if isinstance(value, datetime):
        return format_java_pattern(value, COMPACT_PATTERN)
    return str(value)


_builtins = FunctionRegistry()


@_builtins.register("now")
def _now(evaluator):
    return evaluator.clock()


@_builtins.register("formatDateTime", 2, 2)
def _format_date_time(evaluator, value, pattern):
    return format_java_pattern(
        _as_datetime("formatDateTime", 1, value), _as_text("formatDateTime", 2, pattern)
    )


@_builtins.register("concat", 0, None)
def _concat(evaluator, *values):
    return "".join(to_text(v) for v in values)


@_builtins.register("subtractDays", 2, 2)
def _subtract_days(evaluator, value, days):
    start = _as_datetime("subtractDays", 1, value)
    count = _as_int("subtractDays", 2, days)
    try:
        return start - timedelta(days=count)
    except OverflowError:
        raise ArgumentTypeMismatch("subtractDays", 2, "a day count within the date range", days)


@_builtins.register("substring", 2, 3)
def _substring(evaluator, value, start, end=None):
    text = _as_text("substring", 1, value)
    start = _as_int("substring", 2, start)

    if end is not None:
        return text[start:_as_int("substring", 3, end)]
    # a start past the end keeps the whole value; negative keeps the last |start| characters
    if start >= len(text):
        return text
    return text[start:]


@_builtins.register("mapStatusToResponseCode", 1, 1)
def _map_status(evaluator, status):
    return STATUS_CODES.get(_as_text("mapStatusToResponseCode", 1, status), DEFAULT_STATUS_CODE)


@_builtins.register("extractSessionId", 1, 1)
def _extract_session_id(evaluator, message_id):
    return _as_text("extractSessionId", 1, message_id)


def default_registry() -> FunctionRegistry:
    """A fresh registry holding the built-in functions; safe to extend."""
    return _builtins.copy()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)

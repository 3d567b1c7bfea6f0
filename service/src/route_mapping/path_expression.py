"""Source field addressing.

A source address is either a literal constant (``constant:<value>``) or a
dotted traversal path into the inbound message (``source.Root.Child``).
The expression itself is format-agnostic: whether the segments walk JSON
object keys or a flattened XML element path is decided by the runtime.
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import ParseError, ParseErrorKind
from .helpers import byte_offset

CONSTANT_PREFIX = "constant:"
SOURCE_ROOT = "source"


@dataclass(frozen=True)
class Constant:
    value: str


@dataclass(frozen=True)
class FieldPath:
    segments: tuple[str, ...]

    def without_root(self, root: str = SOURCE_ROOT) -> FieldPath:
        """Drop a leading root segment, the runtime accepts both forms."""
        if len(self.segments) > 1 and self.segments[0] == root:
            return FieldPath(self.segments[1:])
        return self


PathExpression = Constant | FieldPath


def is_constant(raw: str) -> bool:
    return raw.startswith(CONSTANT_PREFIX)


def parse_path(raw: str) -> PathExpression:
    if is_constant(raw):
        return Constant(raw[len(CONSTANT_PREFIX):])

    if raw == "":
        raise ParseError("empty address", 0, ParseErrorKind.MALFORMED_PATH)

    segments = raw.split(".")
    index = 0
    for segment in segments:
        if segment == "":
            # points at the dot that opens (or closes) the empty segment
            at = index if index < len(raw) else len(raw) - 1
            raise ParseError(
                f"empty path segment in '{raw}'",
                byte_offset(raw, at),
                ParseErrorKind.MALFORMED_PATH,
            )
        index += len(segment) + 1

    return FieldPath(tuple(segments))


def render_path(expr: PathExpression) -> str:
    if isinstance(expr, Constant):
        return CONSTANT_PREFIX + expr.value
    return ".".join(expr.segments)

"""Recursive-descent parser for transform expressions.

    expr        := call | literal | identifier
    call        := name "(" [ expr ("," expr)* ] ")"
    literal     := string | number
    identifier  := part ("." part)*        part := letter (letter|digit|"_")*

Function names are not checked here, unknown functions are rejected when the
expression is evaluated.
"""

import logging
import math
import re

from ..errors import ParseError, ParseErrorKind
from ..helpers import byte_offset
from .ast import Call, Identifier, Literal, Node

logger = logging.getLogger(__name__)

_NUMBER = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_IDENTIFIER = re.compile(r"[A-Za-z][A-Za-z0-9_]*(?:\.[A-Za-z][A-Za-z0-9_]*)*")
_QUOTES = ("'", '"')
# deepest call nesting accepted
MAX_DEPTH = 100


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0
        self.depth = 0

    def error(self, reason: str, pos: int | None = None) -> ParseError:
        if pos is None:
            pos = self.pos
        return ParseError(
            reason, byte_offset(self.text, pos), ParseErrorKind.INVALID_EXPRESSION
        )

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self, ahead: int = 0) -> str:
        i = self.pos + ahead
        return self.text[i] if i < len(self.text) else ""

    def skip_ws(self) -> None:
        while not self.at_end() and self.text[self.pos].isspace():
            self.pos += 1

    def parse(self) -> Node:
        self.skip_ws()
        if self.at_end():
            raise self.error("empty expression")

        node = self.expr()

        self.skip_ws()
        if not self.at_end():
            if self.peek() == ")":
                raise self.error("unbalanced parentheses: unexpected ')'")
            raise self.error(f"unexpected trailing characters '{self.text[self.pos:]}'")
        return node

    def expr(self) -> Node:
        self.skip_ws()
        c = self.peek()

        if c == "":
            raise self.error("expected expression")
        if c in _QUOTES:
            return self.string()
        if c.isdigit() or (c in "+-." and (self.peek(1).isdigit() or self.peek(1) == ".")):
            return self.number()
        if c.isascii() and c.isalpha():
            return self.name()

        raise self.error(f"unexpected character '{c}'")

    def string(self) -> Literal:
        start = self.pos
        quote = self.text[self.pos]
        self.pos += 1
        chars = []

        while True:
            if self.at_end():
                raise self.error("unterminated string literal", start)

            c = self.text[self.pos]
            if c == "\\":
                if self.pos + 1 >= len(self.text):
                    raise self.error("unterminated string literal", start)
                chars.append(self.text[self.pos + 1])
                self.pos += 2
            elif c == quote:
                self.pos += 1
                return Literal("".join(chars))
            else:
                chars.append(c)
                self.pos += 1

    def number(self) -> Literal:
        start = self.pos
        m = _NUMBER.match(self.text, self.pos)
        if m is None:
            raise self.error("invalid number literal")
        self.pos = m.end()

        nxt = self.peek()
        if nxt and (nxt.isalnum() or nxt in "_."):
            raise self.error("invalid number literal", start)

        raw = m.group(0)
        if any(ch in raw for ch in ".eE"):
            value = float(raw)
            if not math.isfinite(value):
                raise self.error("number literal out of range", start)
            return Literal(value)
        try:
            return Literal(int(raw))
        except ValueError:
            # more digits than int() converts
            raise self.error("number literal out of range", start)

    def name(self) -> Node:
        start = self.pos
        m = _IDENTIFIER.match(self.text, self.pos)
        if m is None:
            raise self.error("invalid identifier")
        self.pos = m.end()
        name = m.group(0)

        save = self.pos
        self.skip_ws()
        if self.peek() != "(":
            self.pos = save
            return Identifier(name)

        if "." in name:
            raise self.error(f"invalid function name '{name}'", start)

        open_pos = self.pos
        if self.depth >= MAX_DEPTH:
            raise self.error(f"expression nested too deeply (more than {MAX_DEPTH} calls)", open_pos)
        self.pos += 1
        self.depth += 1
        args = self.arguments(open_pos)
        self.depth -= 1
        return Call(name, tuple(args))

    def arguments(self, open_pos: int) -> list[Node]:
        args: list[Node] = []

        self.skip_ws()
        if self.peek() == ")":
            self.pos += 1
            return args

        while True:
            self.skip_ws()
            if self.peek() in (",", ")"):
                raise self.error("empty argument")
            if self.at_end():
                raise self.error(
                    f"unbalanced parentheses: missing ')' for '(' at offset "
                    f"{byte_offset(self.text, open_pos)}"
                )

            args.append(self.expr())

            self.skip_ws()
            c = self.peek()
            if c == ",":
                self.pos += 1
            elif c == ")":
                self.pos += 1
                return args
            elif c == "":
                raise self.error(
                    f"unbalanced parentheses: missing ')' for '(' at offset "
                    f"{byte_offset(self.text, open_pos)}"
                )
            else:
                raise self.error(f"expected ',' or ')' but found '{c}'")


def parse_transform(text: str) -> Node:
    """Parse a transform expression into its syntax tree, raising ParseError."""
    node = _Parser(text).parse()
    logger.debug("parsed transform %r as %s", text, node)
    return node


def is_valid_transform(text: str) -> bool:
    try:
        parse_transform(text)
    except ParseError:
        return False
    return True

"""Transform expression syntax tree.

Nodes are immutable. Two nodes compare equal iff their canonical renderings
are equal, so ``Literal(1)`` and ``Literal(1.0)`` are different nodes while a
double-quoted and a single-quoted string with the same text are the same.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator


class Node:
    __slots__ = ()

    def render(self) -> str:
        raise NotImplementedError

    def __eq__(self, other) -> bool:
        if not isinstance(other, Node):
            return NotImplemented
        return self.render() == other.render()

    def __hash__(self) -> int:
        return hash(self.render())

    def __str__(self) -> str:
        return self.render()


def quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


@dataclass(frozen=True, eq=False)
class Literal(Node):
    value: str | int | float

    def render(self) -> str:
        if isinstance(self.value, str):
            return quote(self.value)
        return repr(self.value)


@dataclass(frozen=True, eq=False)
class Identifier(Node):
    name: str

    def render(self) -> str:
        return self.name


@dataclass(frozen=True, eq=False)
class Call(Node):
    function: str
    args: tuple[Node, ...] = ()

    def render(self) -> str:
        return f"{self.function}({','.join(a.render() for a in self.args)})"


def render(node: Node) -> str:
    return node.render()


def walk(node: Node) -> Iterator[Node]:
    """Depth-first, parents before children."""
    yield node
    if isinstance(node, Call):
        for arg in node.args:
            yield from walk(arg)


def function_names(node: Node) -> list[str]:
    names = []
    for n in walk(node):
        if isinstance(n, Call) and n.function not in names:
            names.append(n.function)
    return names


def identifiers(node: Node) -> list[str]:
    names = []
    for n in walk(node):
        if isinstance(n, Identifier) and n.name not in names:
            names.append(n.name)
    return names

"""Transform expression language: syntax tree, parser and reference evaluator."""

from .ast import Call, Identifier, Literal, Node, function_names, identifiers, render, walk
from .evaluator import Evaluator, resolve_value
from .functions import FunctionRegistry, default_registry, format_java_pattern
from .parser import is_valid_transform, parse_transform

__all__ = [
    "Call",
    "Evaluator",
    "FunctionRegistry",
    "Identifier",
    "Literal",
    "Node",
    "default_registry",
    "format_java_pattern",
    "function_names",
    "identifiers",
    "is_valid_transform",
    "parse_transform",
    "render",
    "resolve_value",
    "walk",
]

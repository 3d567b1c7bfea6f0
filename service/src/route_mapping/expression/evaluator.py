"""Reference evaluator for transform expressions.

Evaluation runs against a flat, string-keyed record (the fields of the record
being built). It is deterministic for a given clock: ``now()`` reads the
injected clock and nothing else touches the system time.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Mapping

from ..errors import ArityMismatch, EvaluationError, MissingField, UnknownFunction
from .ast import Call, Identifier, Literal, Node
from .functions import ISO_PATTERN, FunctionRegistry, default_registry, format_java_pattern, utc_now

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class Evaluator:
    def __init__(
        self,
        functions: FunctionRegistry | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.functions = functions if functions is not None else default_registry()
        self.clock: Clock = clock if clock is not None else utc_now

    def evaluate(self, node: Node, record: Mapping[str, Any]) -> Any:
        if isinstance(node, Literal):
            return node.value

        if isinstance(node, Identifier):
            if node.name not in record:
                raise MissingField(node.name)
            return record[node.name]

        if isinstance(node, Call):
            fn = self.functions.get(node.function)
            if fn is None:
                raise UnknownFunction(node.function)
            if not fn.accepts(len(node.args)):
                raise ArityMismatch(fn.name, fn.arity, len(node.args))

            args = [self.evaluate(arg, record) for arg in node.args]
            return fn.impl(self, *args)

        raise TypeError(f"not an expression node: {node!r}")

    def evaluate_to_string(self, node: Node, record: Mapping[str, Any]) -> str:
        value = self.evaluate(node, record)
        if isinstance(value, datetime):
            return format_java_pattern(value, ISO_PATTERN)
        return str(value)


def resolve_value(
    evaluator: Evaluator,
    node: Node,
    record: Mapping[str, Any],
    default: str | None = None,
    required: bool = False,
) -> str:
    """Evaluate `node`, falling back to `default` for optional fields.

    Required fields, and optional fields without a default, propagate the
    EvaluationError to the caller.
    """
    try:
        return evaluator.evaluate_to_string(node, record)
    except EvaluationError as e:
        if required or default is None:
            raise
        logger.debug("evaluation of %s failed (%s), using default %r", node, e, default)
        return default

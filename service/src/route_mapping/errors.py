from enum import StrEnum


class MappingError(Exception):
    pass


class ParseErrorKind(StrEnum):
    MALFORMED_PATH = "malformed_path"
    INVALID_EXPRESSION = "invalid_expression"
    INVALID_DOCUMENT = "invalid_document"


class ParseError(MappingError):
    """Malformed path, transform expression or configuration document.

    `offset` is the byte offset (UTF-8) into the text that failed to parse,
    `location` optionally names the rule or key the text came from.
    """

    def __init__(
        self,
        reason: str,
        offset: int = 0,
        kind: ParseErrorKind = ParseErrorKind.INVALID_EXPRESSION,
        location: str | None = None,
    ):
        self.reason = reason
        self.offset = offset
        self.kind = kind
        self.location = location
        super().__init__(str(self))

    def at(self, location: str) -> "ParseError":
        return ParseError(self.reason, self.offset, self.kind, location)

    def __str__(self) -> str:
        msg = f"{self.reason} (at offset {self.offset})"
        if self.location:
            msg = f"{self.location}: {msg}"
        return msg


class ValidationError(MappingError):
    """Well-formed but semantically invalid input; carries every issue found."""

    def __init__(self, issues: list | None = None, message: str | None = None):
        self.issues = list(issues or [])
        if message is None:
            message = "; ".join(str(i) for i in self.issues) or "validation failed"
        super().__init__(message)


class NotFoundError(MappingError):
    def __init__(self, message: str = "Mapping rule not found"):
        super().__init__(message)


class ConflictError(MappingError):
    def __init__(self, message: str = "Target path already mapped"):
        super().__init__(message)


class InitializationError(MappingError):
    pass


class EvaluationError(MappingError):
    pass


class MissingField(EvaluationError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"field '{name}' is not present in the record")


class UnknownFunction(EvaluationError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"unknown function '{name}'")


class ArityMismatch(EvaluationError):
    def __init__(self, name: str, expected: str, got: int):
        self.name = name
        super().__init__(f"{name}() takes {expected} argument(s), got {got}")


class ArgumentTypeMismatch(EvaluationError):
    def __init__(self, name: str, position: int, expected: str, value):
        self.name = name
        self.position = position
        super().__init__(
            f"{name}() argument {position} must be {expected}, "
            f"got {type(value).__name__} {value!r}"
        )

from pydantic import BaseModel

from ..errors import ParseError, ValidationError
from .validation import ValidationIssue


class Error(BaseModel):
    error: str
    offset: int | None = None
    issues: list[ValidationIssue] | None = None

    @staticmethod
    def from_except(e: Exception) -> "Error":
        if isinstance(e, ParseError):
            return Error(error=str(e), offset=e.offset)
        if isinstance(e, ValidationError):
            return Error(error=str(e), issues=e.issues or None)
        return Error(error=str(e))

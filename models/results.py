"""
Structured results and error kinds shared by the pelada components.
"""

from dataclasses import dataclass


class ErrorKind:
    """Kinds of error conditions surfaced to callers."""
    NO_DATA = "noData"
    NO_STATS = "noStats"
    INVALID_INPUT = "invalidInput"
    TRANSIENT_FAILURE = "transientFailure"
    CONSISTENCY_VIOLATION = "consistencyViolation"


@dataclass
class ErrorResult:
    """Tagged error returned instead of raising across a component boundary."""
    kind: str
    message: str = ""


class VoteValidationError(Exception):
    """Raised inside a vote transaction to roll it back before anything is stored."""

    def __init__(self, message: str, kind: str = ErrorKind.CONSISTENCY_VIOLATION):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def to_result(self) -> ErrorResult:
        return ErrorResult(kind=self.kind, message=self.message)

"""
Error taxonomy shared by the service and both transports.
"""

from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class FieldError:
    """A single input validation failure."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class UserServiceError(Exception):
    """Base class for errors the transports translate to a caller response."""

    status_code = 500
    error = "Internal Server Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def detail(self):
        """Value reported to the caller as the error message."""
        return self.message


class ValidationError(UserServiceError):
    """Malformed or missing input."""

    status_code = 400
    error = "Bad Request"

    def __init__(self, errors: List[FieldError]):
        super().__init__("; ".join(str(e) for e in errors) or "Invalid input")
        self.errors = list(errors)

    @property
    def detail(self) -> List[str]:
        return [str(e) for e in self.errors]

    @property
    def fields(self) -> List[str]:
        return [e.field for e in self.errors]


class ConflictError(UserServiceError):
    """Uniqueness violation on email or username."""

    status_code = 409
    error = "Conflict"


class NotFoundError(UserServiceError):
    """The target user does not exist."""

    status_code = 404
    error = "Not Found"


class ConstraintViolation(Exception):
    """
    Raised by a gateway when storage rejects a write on a unique constraint.

    Attributes:
        field: Name of the violated column when it can be determined
    """

    def __init__(self, field: Optional[str] = None):
        super().__init__(f"Unique constraint violation on {field or 'unknown field'}")
        self.field = field

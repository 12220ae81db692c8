"""Domain errors for the custom cake lifecycle."""

from dataclasses import dataclass
from datetime import datetime


class CakeOrderError(Exception):
    """Base class for all domain errors."""


class NotFoundError(CakeOrderError):
    """Raised when a token, tracking code, request or receipt is unknown."""


class ExpiredError(CakeOrderError):
    """Raised when a design session has outlived its TTL."""


class ConflictError(CakeOrderError):
    """Raised when an operation is not allowed from the current state."""

    def __init__(
        self,
        message: str,
        current_status: str | None = None,
        target_status: str | None = None,
    ) -> None:
        super().__init__(message)
        self.current_status = current_status
        self.target_status = target_status


class LeadTimeViolationError(CakeOrderError):
    """Raised when a pickup is earlier than the preparation window allows."""

    def __init__(self, message: str, earliest_pickup: datetime) -> None:
        super().__init__(message)
        self.earliest_pickup = earliest_pickup


@dataclass(frozen=True)
class FieldError:
    """A single invalid input field."""

    field: str
    message: str


class ValidationError(CakeOrderError):
    """Raised when required input is missing or malformed."""

    def __init__(self, errors: list[FieldError]) -> None:
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in errors))
        self.errors = errors

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        """Build an error for one field."""
        return cls([FieldError(field=field, message=message)])

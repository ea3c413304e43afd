"""Error kinds returned by the service layer and their HTTP translation.

Services never raise ``HTTPException``; they hand back an ``Outcome`` and the
routes decide how to report it.
"""
import enum
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from fastapi import HTTPException, status

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    FORBIDDEN = "forbidden"
    INTERNAL = "internal"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@dataclass(frozen=True)
class ServiceError:
    kind: ErrorKind
    message: str

    def as_detail(self) -> dict:
        return {"error": self.kind.value, "message": self.message}


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: Optional[T] = None
    error: Optional[ServiceError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "Outcome[T]":
        return cls(error=ServiceError(kind, message))


def raise_for_outcome(outcome: Outcome[T]) -> T:
    """Return the outcome's value or raise the matching HTTPException"""
    if outcome.error is not None:
        raise HTTPException(
            status_code=outcome.error.kind.status_code,
            detail=outcome.error.as_detail()
        )
    return outcome.value


def validation_detail(errors: Any) -> dict:
    return {
        "error": ErrorKind.VALIDATION.value,
        "message": "Request body or query parameters are invalid",
        "errors": errors,
    }

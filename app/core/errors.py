from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

from fastapi import HTTPException


T = TypeVar("T")


class ErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    INVALID_INPUT = "invalid_input"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INFRASTRUCTURE = "infrastructure"


# Seconds a client should wait before retrying an infrastructure failure
RETRY_AFTER_SECONDS = 1

STATUS_BY_KIND = {
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INFRASTRUCTURE: 503,
}


@dataclass(frozen=True)
class ServiceError:
    kind: ErrorKind
    message: str

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.INFRASTRUCTURE

    def to_http_exception(self) -> HTTPException:
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if self.retryable else None
        return HTTPException(
            status_code=self.status_code, detail=self.message, headers=headers
        )


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a single step: either a value or a typed error, never both.

    `status_code` is only meaningful on success and lets a use case tell
    "created" (201) apart from "already existed" (200).
    """

    value: Optional[T] = None
    error: Optional[ServiceError] = None
    status_code: int = 200

    @property
    def failed(self) -> bool:
        return self.error is not None

    def unwrap(self) -> T:
        """Return the value or raise the matching HTTPException."""
        if self.error is not None:
            raise self.error.to_http_exception()
        return self.value


def ok(value=None, status_code: int = 200) -> Result:
    return Result(value=value, status_code=status_code)


def fail(kind: ErrorKind, message: str) -> Result:
    return Result(error=ServiceError(kind, message))


def propagate(result: Result) -> Result:
    """Re-wrap a failed result so it can be returned from a step with another value type."""
    return Result(error=result.error)

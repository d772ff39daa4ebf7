"""Service-layer error values and their translation to HTTP responses."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TypeVar, Union

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    PERMISSION = "permission"
    BUSINESS_RULE = "business_rule"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    UPSTREAM = "upstream"


_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.PERMISSION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.BUSINESS_RULE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_400_BAD_REQUEST,
    ErrorKind.EXPIRED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UPSTREAM: status.HTTP_403_FORBIDDEN,
}


@dataclass(frozen=True, slots=True)
class ServiceError:
    """A failure reported by a service function instead of raising."""

    message: str
    kind: ErrorKind = ErrorKind.BUSINESS_RULE
    path: str | None = None

    @property
    def status_code(self) -> int:
        return _STATUS_BY_KIND[self.kind]


# Exactly one side of the pair is populated.
Result = Union[tuple[T, None], tuple[None, ServiceError]]


def ok(value: T) -> tuple[T, None]:
    return value, None


def fail(
    message: str,
    kind: ErrorKind = ErrorKind.BUSINESS_RULE,
    path: str | None = None,
) -> tuple[None, ServiceError]:
    return None, ServiceError(message=message, kind=kind, path=path)


class ApiError(HTTPException):
    """HTTP exception rendered as ``{"error": ..., "path": ...}``."""

    def __init__(
        self,
        status_code: int,
        message: str,
        *,
        path: str | None = None,
        extra: dict | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.path = path
        self.extra = extra or {}

    @classmethod
    def from_service_error(cls, error: ServiceError, status_code: int | None = None) -> "ApiError":
        return cls(status_code or error.status_code, error.message, path=error.path)


def unwrap(result: Result[T]) -> T:
    """Return the success value or raise the error as an :class:`ApiError`."""

    value, error = result
    if error is not None:
        raise ApiError.from_service_error(error)
    return value  # type: ignore[return-value]


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    body: dict = {"error": exc.message}
    if exc.path is not None:
        body["path"] = exc.path
    body.update(exc.extra)
    return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    validation = "validation"
    unauthorized = "unauthorized"
    not_found = "not_found"
    conflict = "conflict"
    rate_limited = "rate_limited"
    upstream = "upstream"
    internal = "internal"


STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.validation: 400,
    ErrorKind.unauthorized: 401,
    ErrorKind.not_found: 404,
    ErrorKind.conflict: 400,
    ErrorKind.rate_limited: 429,
    ErrorKind.upstream: 502,
    ErrorKind.internal: 500,
}


class ApiError(Exception):
    """Failure raised by services and rendered as ``{"success": false, "error": ...}``."""

    def __init__(self, kind: ErrorKind, message: str, details: Optional[list[Any]] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": False, "error": self.message}
        if self.details is not None:
            payload["errors"] = self.details
        return payload


def validation_error(message: str, details: Optional[list[Any]] = None) -> ApiError:
    return ApiError(ErrorKind.validation, message, details)


def not_found(message: str) -> ApiError:
    return ApiError(ErrorKind.not_found, message)

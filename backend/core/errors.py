"""Authentication error taxonomy.

Every failure raised by the credential and verification services is an
``AuthError`` tagged with an ``ErrorKind``. Callers dispatch on ``kind``;
there are no per-failure subclasses.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from fastapi import status
from pydantic import BaseModel


class ErrorKind(str, Enum):
    CONFIGURATION = "CONFIGURATION_ERROR"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    AUDIENCE_MISMATCH = "AUDIENCE_MISMATCH"
    ISSUER_MISMATCH = "ISSUER_MISMATCH"
    NOT_FOUND = "NOT_FOUND"
    BAD_REQUEST = "BAD_REQUEST"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    UNAUTHORIZED = "UNAUTHORIZED"
    CONFLICT = "CONFLICT"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]

    @property
    def is_public(self) -> bool:
        """Whether the message may be shown to the client verbatim."""
        return self is not ErrorKind.CONFIGURATION


_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.CONFIGURATION: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.INVALID_TOKEN: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.TOKEN_EXPIRED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.AUDIENCE_MISMATCH: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.ISSUER_MISMATCH: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.BAD_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorKind.TOO_MANY_REQUESTS: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
}

DEFAULT_RETRY_AFTER_SECONDS = 300


class ErrorResponse(BaseModel):
    """Client-facing error body."""

    success: bool = False
    code: str
    message: str
    errors: dict[str, Any] = {}


class AuthError(Exception):
    """A classified authentication failure."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        retry_after: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.retry_after = retry_after
        self.details = details or {}

    def __repr__(self) -> str:
        return f"AuthError(kind={self.kind.name}, message={self.message!r})"

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    def to_response(self) -> ErrorResponse:
        if not self.kind.is_public:
            return ErrorResponse(code=self.kind.value, message="Internal server error")
        errors = dict(self.details)
        if self.kind is ErrorKind.TOO_MANY_REQUESTS:
            errors["retryAfter"] = self.retry_after or DEFAULT_RETRY_AFTER_SECONDS
        return ErrorResponse(code=self.kind.value, message=self.message, errors=errors)

"""Application error taxonomy.

Every error raised on purpose by services and dependencies is an ``AppError``
tagged with one ``ErrorKind``. The API layer maps kinds to HTTP statuses via
``STATUS_BY_KIND`` and renders the uniform error body.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    RATE_LIMITED = "rate_limited"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    DEPENDENCY_UNAVAILABLE = "dependency_unavailable"
    INTERNAL = "internal"


STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTHENTICATION: 401,
    ErrorKind.AUTHORIZATION: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.PAYLOAD_TOO_LARGE: 413,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.INTERNAL: 500,
    ErrorKind.DEPENDENCY_UNAVAILABLE: 503,
}


class AppError(Exception):
    """Base error carrying a kind, a client-safe message and optional field errors."""

    kind: ErrorKind = ErrorKind.INTERNAL
    default_message = "Internal server error"

    def __init__(
        self,
        message: str | None = None,
        *,
        errors: list[dict[str, Any]] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.errors = errors
        self.headers = headers
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]


class ValidationError(AppError):
    kind = ErrorKind.VALIDATION
    default_message = "Invalid data"


class AuthenticationError(AppError):
    kind = ErrorKind.AUTHENTICATION
    default_message = "Authentication required"


class InvalidTokenError(AuthenticationError):
    """Token is malformed, has a bad signature, wrong type or disallowed algorithm."""

    default_message = "Invalid token"


class ExpiredTokenError(AuthenticationError):
    """Token signature is valid but its expiry has passed."""

    default_message = "Token expired"


class AuthorizationError(AppError):
    kind = ErrorKind.AUTHORIZATION
    default_message = "Insufficient permissions"


class NotFoundError(AppError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Resource not found"


class ConflictError(AppError):
    kind = ErrorKind.CONFLICT
    default_message = "Conflict"


class RateLimitError(AppError):
    kind = ErrorKind.RATE_LIMITED
    default_message = "Too many requests. Try again later."


class PayloadTooLargeError(AppError):
    kind = ErrorKind.PAYLOAD_TOO_LARGE
    default_message = "Payload too large"


class DependencyUnavailableError(AppError):
    kind = ErrorKind.DEPENDENCY_UNAVAILABLE
    default_message = "Service temporarily unavailable"


class InternalError(AppError):
    kind = ErrorKind.INTERNAL

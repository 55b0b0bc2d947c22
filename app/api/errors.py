"""Exception handlers and the uniform error body.

Every error leaves the API as ``{"success": false, "message": ..., "errors"?: [...]}``.
Middleware stages cannot rely on exception handlers, so they build the same body
through ``error_response``.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import InterfaceError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import AppError, DependencyUnavailableError, ExpiredTokenError
from app.core.headers import SECURITY_HEADERS
from app.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)

# Tells clients holding a refresh token to call /auth/refresh.
EXPIRED_TOKEN_CHALLENGE = 'Bearer error="invalid_token", error_description="token expired"'

_HTTP_STATUS_MESSAGES: dict[int, str] = {
    400: "Bad request",
    401: "Authentication required",
    403: "Access denied",
    404: "Route not found",
    405: "Method not allowed",
    413: "Payload too large",
    429: "Too many requests",
}

# Documented on every versioned route; the bodies come from the handlers below.
ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Invalid data or request rejected"},
    401: {"model": ErrorResponse, "description": "Missing, invalid or expired token"},
    429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    500: {"model": ErrorResponse, "description": "Internal server error"},
}


def error_response(
    status_code: int,
    message: str,
    errors: list[dict[str, Any]] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "message": message}
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def _field_name(loc: tuple[Any, ...] | list[Any]) -> str:
    # ("body", "email") -> "email"; ("query", "limit") -> "limit"
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header")]
    return ".".join(parts) if parts else "request"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = dict(exc.headers or {})
    if isinstance(exc, ExpiredTokenError):
        headers.setdefault("WWW-Authenticate", EXPIRED_TOKEN_CHALLENGE)
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc.status_code, exc.message, exc.errors, headers or None)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Pydantic request validation failures answer 400 with per-field messages."""
    errors = [
        {"field": _field_name(err.get("loc", ())), "message": err.get("msg", "Invalid value")}
        for err in exc.errors()
    ]
    return error_response(400, "Invalid data", errors)


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if isinstance(exc.detail, str) and exc.detail:
        message = exc.detail
    else:
        message = _HTTP_STATUS_MESSAGES.get(exc.status_code, "Request failed")
    if exc.status_code == 404 and message == "Not Found":
        message = _HTTP_STATUS_MESSAGES[404]
    return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))


async def database_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Database unavailable during %s %s: %s", request.method, request.url.path, exc)
    return error_response(503, DependencyUnavailableError.default_message)


def _generic_handler(show_details: bool):
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error during %s %s", request.method, request.url.path)
        message = str(exc) if show_details and str(exc) else "Internal server error"
        # Rendered outside the middleware stack, so the security headers are added here.
        return error_response(500, message, headers=dict(SECURITY_HEADERS))

    return generic_exception_handler


def register_exception_handlers(app: FastAPI, *, show_details: bool = False) -> None:
    """Register all handlers. ``show_details`` exposes exception text in 500 bodies (never in prod)."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(OperationalError, database_unavailable_handler)
    app.add_exception_handler(InterfaceError, database_unavailable_handler)
    app.add_exception_handler(Exception, _generic_handler(show_details))

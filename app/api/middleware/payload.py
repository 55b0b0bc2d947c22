"""Reject requests whose declared body size exceeds the configured limit."""

from collections.abc import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from app.api.errors import error_response
from app.api.middleware.client import client_address
from app.core.errors import PayloadTooLargeError
from app.core.logging_config import get_security_logger

security_logger = get_security_logger()


class PayloadSizeMiddleware(BaseHTTPMiddleware):
    """
    Checks ``Content-Length`` before any of the body is read.

    Bodies sent without a length (chunked) are capped while being read by the
    inspection stage.
    """

    def __init__(self, app: ASGIApp, *, max_body_bytes: int, trust_proxy_headers: bool = False) -> None:
        super().__init__(app)
        self._max_body_bytes = max_body_bytes
        self._trust_proxy_headers = trust_proxy_headers

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        declared = request.headers.get("content-length")
        if declared is not None:
            try:
                size = int(declared)
            except ValueError:
                return error_response(400, "Invalid request")
            if size > self._max_body_bytes:
                security_logger.warning(
                    "Payload too large: ip=%s path=%s size=%s",
                    client_address(request, self._trust_proxy_headers),
                    request.url.path,
                    size,
                )
                return error_response(413, PayloadTooLargeError.default_message)
        return await call_next(request)

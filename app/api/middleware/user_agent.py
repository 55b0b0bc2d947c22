"""Reject requests without a plausible User-Agent header."""

from collections.abc import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from app.api.errors import error_response
from app.api.middleware.client import client_address
from app.core.logging_config import get_security_logger

security_logger = get_security_logger()


class UserAgentMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, *, min_length: int, trust_proxy_headers: bool = False) -> None:
        super().__init__(app)
        self._min_length = min_length
        self._trust_proxy_headers = trust_proxy_headers

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        user_agent = request.headers.get("user-agent", "")
        if len(user_agent) < self._min_length:
            security_logger.warning(
                "Invalid user agent: ip=%s path=%s user_agent=%r",
                client_address(request, self._trust_proxy_headers),
                request.url.path,
                user_agent,
            )
            return error_response(400, "Invalid request")
        return await call_next(request)

"""Security audit logging. This stage only observes; it never rejects a request."""

import re
from collections.abc import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from app.api.middleware.client import bearer_token, client_address
from app.core.errors import AuthenticationError
from app.core.logging_config import get_security_logger
from app.core.security import TokenService
from app.models import UserRole

security_logger = get_security_logger()

SUSPICIOUS_USER_AGENT = re.compile(
    r"bot|crawler|spider|scan|attack|hack|exploit|nikto|sqlmap|nmap", re.IGNORECASE
)
ADMIN_PATH_MARKER = "/admin"


class SecurityAuditMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, *, tokens: TokenService, trust_proxy_headers: bool = False) -> None:
        super().__init__(app)
        self._tokens = tokens
        self._trust_proxy_headers = trust_proxy_headers

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        ip = client_address(request, self._trust_proxy_headers)
        path = request.url.path
        user_agent = request.headers.get("user-agent", "")

        if SUSPICIOUS_USER_AGENT.search(user_agent):
            security_logger.warning(
                "Suspicious user agent: ip=%s path=%s user_agent=%r", ip, path, user_agent
            )
        if ADMIN_PATH_MARKER in path and not self._is_admin(request):
            security_logger.warning("Unauthorized admin access attempt: ip=%s path=%s", ip, path)

        return await call_next(request)

    def _is_admin(self, request: Request) -> bool:
        token = bearer_token(request)
        if token is None:
            return False
        try:
            claims = self._tokens.verify_access_token(token)
        except AuthenticationError:
            return False
        return claims.role == UserRole.ADMIN.value

"""Per-client request rate limiting.

Every request outside health and docs counts against the general budget. Sensitive
auth endpoints additionally count against their own, tighter budget. Rejections answer
429 with ``Retry-After`` and ``X-RateLimit-*`` headers.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from app.api.errors import error_response
from app.api.middleware.client import client_address
from app.core.logging_config import get_security_logger
from app.services.rate_limiter import FixedWindowRateLimiter, RateLimitResult

if TYPE_CHECKING:
    from app.core.config import Settings

security_logger = get_security_logger()

GENERAL_LIMIT_MESSAGE = "Too many requests from this IP. Try again later."
SKIP_PATHS = ("/", "/health")
SKIP_PREFIXES = ("/docs", "/redoc", "/openapi.json")


@dataclass(frozen=True)
class RateLimitRule:
    """Extra budget for one group of endpoints; paths in a rule share one bucket."""

    name: str
    paths: frozenset[str]
    limit: int
    window_seconds: int
    message: str
    methods: frozenset[str] = frozenset({"POST"})
    # Only requests that end with status >= 400 stay counted.
    skip_successful: bool = False

    def matches(self, method: str, path: str) -> bool:
        return method in self.methods and path in self.paths


def build_rules(settings: "Settings") -> list[RateLimitRule]:
    auth = f"{settings.API_V1_PREFIX}/auth"
    return [
        RateLimitRule(
            name="login",
            paths=frozenset({f"{auth}/login"}),
            limit=settings.LOGIN_RATE_LIMIT_MAX,
            window_seconds=settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS,
            message="Too many login attempts. Try again in 15 minutes.",
            skip_successful=True,
        ),
        RateLimitRule(
            name="register",
            paths=frozenset({f"{auth}/register"}),
            limit=settings.REGISTER_RATE_LIMIT_MAX,
            window_seconds=settings.REGISTER_RATE_LIMIT_WINDOW_SECONDS,
            message="Too many accounts created. Try again in 1 hour.",
        ),
        RateLimitRule(
            name="password-reset",
            paths=frozenset({f"{auth}/forgot-password", f"{auth}/reset-password"}),
            limit=settings.PASSWORD_RESET_RATE_LIMIT_MAX,
            window_seconds=settings.PASSWORD_RESET_RATE_LIMIT_WINDOW_SECONDS,
            message="Too many password reset requests. Try again in 1 hour.",
        ),
    ]


def _rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_seconds),
    }


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        *,
        limiter: FixedWindowRateLimiter,
        settings: "Settings",
    ) -> None:
        super().__init__(app)
        self._limiter = limiter
        self._enabled = settings.RATE_LIMIT_ENABLED
        self._general_limit = settings.RATE_LIMIT_MAX
        self._general_window = settings.RATE_LIMIT_WINDOW_SECONDS
        self._rules = build_rules(settings)
        self._trust_proxy_headers = settings.TRUST_PROXY_HEADERS

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        path = request.url.path.rstrip("/") or "/"
        if not self._enabled or self._should_skip(path):
            return await call_next(request)

        ip = client_address(request, self._trust_proxy_headers)
        result = self._limiter.hit(
            f"general:{ip}", limit=self._general_limit, window_seconds=self._general_window
        )
        if not result.allowed:
            return self._reject(request, ip, result, GENERAL_LIMIT_MESSAGE)

        rule = self._rule_for(request.method, path)
        rule_key = None
        if rule is not None:
            rule_key = f"{rule.name}:{ip}"
            result = self._limiter.hit(rule_key, limit=rule.limit, window_seconds=rule.window_seconds)
            if not result.allowed:
                return self._reject(request, ip, result, rule.message)

        response = await call_next(request)

        if rule is not None and rule.skip_successful and response.status_code < 400:
            self._limiter.undo(rule_key)
        for name, value in _rate_limit_headers(result).items():
            response.headers[name] = value
        return response

    def _rule_for(self, method: str, path: str) -> RateLimitRule | None:
        for rule in self._rules:
            if rule.matches(method, path):
                return rule
        return None

    @staticmethod
    def _should_skip(path: str) -> bool:
        return path in SKIP_PATHS or path.startswith(SKIP_PREFIXES)

    def _reject(self, request: Request, ip: str, result: RateLimitResult, message: str) -> Response:
        security_logger.warning(
            "Rate limit exceeded: ip=%s path=%s limit=%s", ip, request.url.path, result.limit
        )
        headers = _rate_limit_headers(result)
        headers["Retry-After"] = str(result.retry_after)
        return error_response(429, message, headers=headers)

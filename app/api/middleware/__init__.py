"""Security middleware pipeline."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.middleware.audit import SecurityAuditMiddleware
from app.api.middleware.dependencies import random_delay, sanitize_path_params
from app.api.middleware.headers import SecurityHeadersMiddleware
from app.api.middleware.inspection import RequestInspectionMiddleware
from app.api.middleware.payload import PayloadSizeMiddleware
from app.api.middleware.rate_limit import RateLimitMiddleware
from app.api.middleware.user_agent import UserAgentMiddleware
from app.core.config import Settings
from app.core.security import TokenService
from app.services.rate_limiter import FixedWindowRateLimiter

CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Authorization", "X-Requested-With"]
CORS_EXPOSE_HEADERS = ["X-Total-Count"]
CORS_MAX_AGE = 86400


def install_security_pipeline(
    app: FastAPI,
    settings: Settings,
    *,
    tokens: TokenService,
    limiter: FixedWindowRateLimiter,
) -> None:
    """
    Install the stages so that requests pass through them in this order:

    headers, CORS, payload size, user agent, audit, inspection, rate limit.

    Starlette runs the most recently added middleware first, so they are added in reverse.
    """
    trust = settings.TRUST_PROXY_HEADERS
    app.add_middleware(RateLimitMiddleware, limiter=limiter, settings=settings)
    app.add_middleware(
        RequestInspectionMiddleware,
        exempt_fields=settings.INSPECTION_EXEMPT_FIELDS,
        max_body_bytes=settings.MAX_BODY_BYTES,
        trust_proxy_headers=trust,
    )
    app.add_middleware(SecurityAuditMiddleware, tokens=tokens, trust_proxy_headers=trust)
    app.add_middleware(
        UserAgentMiddleware, min_length=settings.MIN_USER_AGENT_LENGTH, trust_proxy_headers=trust
    )
    app.add_middleware(
        PayloadSizeMiddleware, max_body_bytes=settings.MAX_BODY_BYTES, trust_proxy_headers=trust
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
        expose_headers=CORS_EXPOSE_HEADERS,
        max_age=CORS_MAX_AGE,
    )
    app.add_middleware(SecurityHeadersMiddleware)


__all__ = [
    "install_security_pipeline",
    "random_delay",
    "sanitize_path_params",
]

"""FastAPI application entrypoint. No business logic; only wiring and middleware."""

from dotenv import load_dotenv

load_dotenv()

import logging

from fastapi import FastAPI

from app.api.errors import register_exception_handlers
from app.api.middleware import install_security_pipeline
from app.api.v1 import root_router
from app.api.v1 import router as v1_router
from app.core.config import Settings, get_settings
from app.core.logging_config import configure_logging
from app.core.security import TokenService
from app.services.login_throttle import LoginAttemptThrottle
from app.services.notifications import LoggingResetNotifier, ResetNotifier
from app.services.rate_limiter import FixedWindowRateLimiter

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    reset_notifier: ResetNotifier | None = None,
) -> FastAPI:
    """
    Build the application with its own token service, login throttle and rate limiter.

    Everything stateful hangs off ``app.state``, so separate instances (tests, workers)
    never share counters.
    """
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
    )

    tokens = TokenService(settings)
    limiter = FixedWindowRateLimiter()
    app.state.settings = settings
    app.state.token_service = tokens
    app.state.rate_limiter = limiter
    app.state.login_throttle = LoginAttemptThrottle(
        max_attempts=settings.MAX_LOGIN_ATTEMPTS,
        lockout_seconds=settings.LOGIN_LOCKOUT_MINUTES * 60,
        max_keys=settings.LOGIN_THROTTLE_MAX_KEYS,
    )
    app.state.reset_notifier = reset_notifier or LoggingResetNotifier()

    install_security_pipeline(app, settings, tokens=tokens, limiter=limiter)
    register_exception_handlers(app, show_details=not settings.is_production)

    app.include_router(root_router)
    app.include_router(v1_router, prefix=settings.API_V1_PREFIX)

    @app.get("/")
    def root() -> dict[str, str]:
        """Root route; minimal payload for discovery."""
        return {"message": settings.APP_NAME}

    logger.info("Application configured: env=%s prefix=%s", settings.APP_ENV, settings.API_V1_PREFIX)
    return app


app = create_app()

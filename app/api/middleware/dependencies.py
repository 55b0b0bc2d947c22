"""Per-route security dependencies: randomized latency and path-parameter inspection."""

import asyncio
import random
from collections.abc import Awaitable, Callable

from fastapi import Request

from app.api.middleware.client import client_address
from app.api.middleware.inspection import INJECTION_DETECTED
from app.core.errors import ValidationError
from app.core.logging_config import get_security_logger
from app.core.sanitize import is_sql_injection, strip_markup

security_logger = get_security_logger()


def random_delay(range_setting: str) -> Callable[[Request], Awaitable[None]]:
    """
    Dependency that sleeps a random number of milliseconds before the handler runs.

    ``range_setting`` names a ``(min_ms, max_ms)`` setting, read per request so each app
    instance uses its own settings. Flattens response timing on endpoints whose work
    would otherwise reveal whether an account exists.
    """

    async def delay(request: Request) -> None:
        settings = request.app.state.settings
        if not settings.TIMING_DELAY_ENABLED:
            return
        low, high = getattr(settings, range_setting)
        await asyncio.sleep(random.randint(low, high) / 1000)

    return delay


async def sanitize_path_params(request: Request) -> None:
    """Scan path parameters for SQL patterns and hand handlers a markup-free copy."""
    params = request.scope.get("path_params") or {}
    for value in params.values():
        if isinstance(value, str) and is_sql_injection(value):
            settings = request.app.state.settings
            security_logger.warning(
                "SQL injection attempt detected: ip=%s url=%s user_agent=%r",
                client_address(request, settings.TRUST_PROXY_HEADERS),
                request.url.path,
                request.headers.get("user-agent", ""),
            )
            raise ValidationError(INJECTION_DETECTED)
    request.scope["path_params"] = {
        key: strip_markup(value) if isinstance(value, str) else value
        for key, value in params.items()
    }

"""Outbound notifications for auth flows (password reset delivery)."""

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class ResetNotifier(Protocol):
    """Delivers a password-reset token to the account owner. Called as a background task."""

    def send_reset_notification(self, email: str, token: str) -> None: ...


class LoggingResetNotifier:
    """Default notifier: records the request without the token. Deployments plug in real delivery."""

    def send_reset_notification(self, email: str, token: str) -> None:
        logger.info("Password reset notification requested for %s", email)

"""Token retention: delete refresh-token and password-reset rows that have expired."""

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from app.models.base import utcnow
from app.services.credential_store import CredentialStore

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)


def run_retention(
    session: Session, settings: "Settings", now: datetime | None = None
) -> tuple[int, int]:
    """
    Purge expired token rows. Returns (refresh_deleted, reset_deleted).

    Expired rows are already inert for authentication; this only reclaims space.
    Idempotent: safe to run repeatedly.
    """
    if not settings.TOKEN_RETENTION_ENABLED:
        logger.info("Token retention is disabled (TOKEN_RETENTION_ENABLED=false); skipping.")
        return (0, 0)

    cutoff = now or utcnow()
    refresh_deleted, reset_deleted = CredentialStore(session).purge_expired_tokens(cutoff)
    session.commit()

    if refresh_deleted or reset_deleted:
        logger.info(
            "Retention run: cutoff=%s, refresh_deleted=%s, reset_deleted=%s",
            cutoff.isoformat(),
            refresh_deleted,
            reset_deleted,
        )
    return (refresh_deleted, reset_deleted)

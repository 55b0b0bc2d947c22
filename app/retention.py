"""
CLI entrypoint for the token retention job. Run from cron, e.g.:

  python -m app.retention

Or hourly: 0 * * * * cd /path/to/finboard-api && .venv/bin/python -m app.retention
"""

import logging
import sys

from app.core.config import get_settings
from app.core.database import SessionLocal
from app.core.logging_config import configure_logging
from app.services.retention import run_retention

logger = logging.getLogger(__name__)


def main() -> int:
    """Run retention: delete expired refresh and password-reset tokens."""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    db = SessionLocal()
    try:
        refresh_deleted, reset_deleted = run_retention(db, settings)
        logger.info(
            "Retention completed: refresh_deleted=%s reset_deleted=%s",
            refresh_deleted,
            reset_deleted,
        )
        return 0
    except Exception as e:
        logger.exception("Retention job failed: %s", e)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())

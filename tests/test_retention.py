"""Unit and integration tests for token retention: run_retention purges expired rows."""

import unittest
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

from sqlalchemy import func, select

from app.models import PasswordResetToken, RefreshToken
from app.services.credential_store import CredentialStore
from app.services.retention import run_retention
from tests.support import add_user, make_session_factory


class TestRetentionDisabled(unittest.TestCase):
    """When TOKEN_RETENTION_ENABLED is False, run_retention does nothing."""

    def test_returns_zero_and_does_not_query(self) -> None:
        settings = MagicMock()
        settings.TOKEN_RETENTION_ENABLED = False
        session = MagicMock()
        self.assertEqual(run_retention(session, settings), (0, 0))
        session.execute.assert_not_called()
        session.commit.assert_not_called()


class TestRetentionNothingExpired(unittest.TestCase):
    """When no rows have expired, run_retention returns (0, 0) and still commits."""

    def test_returns_zero(self) -> None:
        settings = MagicMock()
        settings.TOKEN_RETENTION_ENABLED = True
        session = MagicMock()
        session.execute.return_value.rowcount = 0
        self.assertEqual(run_retention(session, settings), (0, 0))
        self.assertEqual(session.execute.call_count, 2)
        session.commit.assert_called_once()


class TestRetentionIntegration(unittest.TestCase):
    """In-memory database: expired refresh and reset rows go, live rows stay."""

    def test_purges_expired_rows_only(self) -> None:
        session_factory = make_session_factory()
        alice = add_user(session_factory)
        bob = add_user(session_factory, email="bob@example.com")
        now = datetime.now(UTC)
        with session_factory() as db:
            store = CredentialStore(db)
            store.upsert_refresh_token(user_id=alice, token="live", expires_at=now + timedelta(days=1))
            store.upsert_refresh_token(user_id=bob, token="dead", expires_at=now - timedelta(hours=1))
            store.upsert_reset_token(user_id=alice, token="r" * 64, expires_at=now - timedelta(minutes=5))
            db.commit()

        settings = MagicMock()
        settings.TOKEN_RETENTION_ENABLED = True
        with session_factory() as db:
            self.assertEqual(run_retention(db, settings, now=now), (1, 1))
            # Second run is a no-op.
            self.assertEqual(run_retention(db, settings, now=now), (0, 0))
            remaining = db.execute(select(RefreshToken.token)).scalars().all()
            resets = db.execute(select(func.count(PasswordResetToken.id))).scalar_one()
        self.assertEqual(remaining, ["live"])
        self.assertEqual(resets, 0)


if __name__ == "__main__":
    unittest.main()

"""Shared builders for tests: fast settings, in-memory SQLite and an HTTP client."""

from collections.abc import Generator
from typing import Any

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.core.database import get_db
from app.core.security import hash_password
from app.main import create_app
from app.models import Base, User, UserRole, UserStatus

USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) finboard-tests"
# Passwords avoid ', # and -- so they would also pass the SQL heuristic if it scanned them.
STRONG_PASSWORD = "Str0ng!Pass"
OTHER_PASSWORD = "An0ther!Pass"
TEST_BCRYPT_ROUNDS = 4


def make_settings(**overrides: Any) -> Settings:
    """Test settings: no .env file, cheap bcrypt, no artificial delays, generous rate limits."""
    values: dict[str, Any] = {
        "APP_ENV": "test",
        "DATABASE_URL": "sqlite://",
        "LOG_LEVEL": "WARNING",
        "BCRYPT_ROUNDS": TEST_BCRYPT_ROUNDS,
        "TIMING_DELAY_ENABLED": False,
        "RATE_LIMIT_MAX": 10_000,
        "LOGIN_RATE_LIMIT_MAX": 1_000,
        "REGISTER_RATE_LIMIT_MAX": 1_000,
        "PASSWORD_RESET_RATE_LIMIT_MAX": 1_000,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_session_factory() -> sessionmaker[Session]:
    """Fresh in-memory database with all tables; one connection shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def add_user(
    session_factory: sessionmaker[Session],
    *,
    email: str = "alice@example.com",
    password: str = STRONG_PASSWORD,
    name: str = "Alice Doe",
    role: UserRole = UserRole.USER,
    status: UserStatus = UserStatus.ACTIVE,
) -> int:
    with session_factory() as db:
        user = User(
            name=name,
            email=email.lower(),
            password_hash=hash_password(password, rounds=TEST_BCRYPT_ROUNDS),
            role=role.value,
            status=status.value,
        )
        db.add(user)
        db.commit()
        return user.id


class RecordingNotifier:
    """Reset notifier that keeps every (email, token) it was asked to deliver."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send_reset_notification(self, email: str, token: str) -> None:
        self.sent.append((email, token))


class ApiHarness:
    """An app instance on its own in-memory database, with a client that sends a valid User-Agent."""

    def __init__(self, **setting_overrides: Any) -> None:
        self.settings = make_settings(**setting_overrides)
        self.session_factory = make_session_factory()
        self.notifier = RecordingNotifier()
        self.app = create_app(self.settings, reset_notifier=self.notifier)

        def override_get_db() -> Generator[Session, None, None]:
            db = self.session_factory()
            try:
                yield db
            finally:
                db.close()

        self.app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(self.app, headers={"User-Agent": USER_AGENT})

    @property
    def prefix(self) -> str:
        return self.settings.API_V1_PREFIX

    def url(self, path: str) -> str:
        return f"{self.prefix}{path}"

    def add_user(self, **kwargs: Any) -> int:
        return add_user(self.session_factory, **kwargs)

    def login(self, email: str = "alice@example.com", password: str = STRONG_PASSWORD) -> dict[str, Any]:
        """Log in and return the response ``data``; fails loudly on a non-200."""
        response = self.client.post(self.url("/auth/login"), json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return response.json()["data"]

    @staticmethod
    def bearer(access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    def close(self) -> None:
        self.client.close()

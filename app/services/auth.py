"""Auth flows: register, login, refresh, logout, forgot/reset/change password.

Each method runs one flow against a single DB session and commits only once the flow
has succeeded. Failures are raised as ``AppError`` subclasses; the API layer renders them.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    InvalidTokenError,
    RateLimitError,
    ValidationError,
)
from app.core.logging_config import get_security_logger
from app.core.security import (
    TokenClaims,
    TokenService,
    check_password_strength,
    generate_opaque_token,
    hash_password,
    verify_password,
)
from app.models import User, UserRole
from app.models.base import utcnow
from app.services.credential_store import CredentialStore
from app.services.login_throttle import LoginAttemptThrottle

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)
security_logger = get_security_logger()

INVALID_CREDENTIALS = "Invalid credentials"
ACCOUNT_DISABLED = "Account disabled. Contact the administrator."
TOO_MANY_LOGIN_ATTEMPTS = "Too many login attempts. Try again in 15 minutes."
INVALID_REFRESH_TOKEN = "Invalid or expired refresh token"
INVALID_RESET_TOKEN = "Invalid or expired token"
FORGOT_PASSWORD_MESSAGE = "If the email exists, you will receive reset instructions"


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    refresh_token: str
    user: User


@dataclass(frozen=True)
class ResetRequest:
    """A reset token that must be delivered to ``email``."""

    email: str
    token: str


def _claims_for(user: User) -> TokenClaims:
    return TokenClaims(id=user.id, email=user.email, role=user.role)


def _password_error(reason: str, field: str) -> ValidationError:
    return ValidationError(reason, errors=[{"field": field, "message": reason}])


class AuthService:
    def __init__(
        self,
        db: Session,
        settings: "Settings",
        tokens: TokenService,
        throttle: LoginAttemptThrottle,
    ) -> None:
        self._db = db
        self._settings = settings
        self._tokens = tokens
        self._throttle = throttle
        self._store = CredentialStore(db)

    def register(self, *, name: str, email: str, password: str, role: UserRole) -> User:
        reason = check_password_strength(password)
        if reason:
            raise _password_error(reason, "password")
        if self._store.email_exists(email):
            raise ConflictError("Email already registered")

        password_hash = hash_password(password, rounds=self._settings.BCRYPT_ROUNDS)
        try:
            user = self._store.create_user(
                name=name, email=email, password_hash=password_hash, role=role
            )
            self._db.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent registration of the same email.
            self._db.rollback()
            raise ConflictError("Email already registered") from e
        logger.info("User registered: user_id=%s", user.id)
        return user

    def login(self, *, email: str, password: str, client_key: str) -> LoginResult:
        """
        Authenticate and open a session.

        The throttle is consulted before any credential lookup. Unknown emails and wrong
        passwords count as failures and share one message; disabled accounts do not count.
        """
        if self._throttle.is_blocked(client_key):
            raise RateLimitError(TOO_MANY_LOGIN_ATTEMPTS)

        user = self._store.get_user_by_email(email)
        if user is None:
            self._throttle.record_failure(client_key)
            raise AuthenticationError(INVALID_CREDENTIALS)
        if not user.is_active:
            raise AuthorizationError(ACCOUNT_DISABLED)
        if not verify_password(password, user.password_hash):
            attempts = self._throttle.record_failure(client_key)
            security_logger.info("Failed login: ip=%s attempts=%s", client_key, attempts)
            raise AuthenticationError(INVALID_CREDENTIALS)

        self._throttle.reset(client_key)
        claims = _claims_for(user)
        access_token = self._tokens.issue_access_token(claims)
        refresh_token = self._tokens.issue_refresh_token(claims)
        self._store.touch_last_login(user)
        self._store.upsert_refresh_token(
            user_id=user.id,
            token=refresh_token,
            expires_at=self._tokens.refresh_expires_at(),
        )
        self._db.commit()
        return LoginResult(access_token=access_token, refresh_token=refresh_token, user=user)

    def refresh(self, refresh_token: str) -> tuple[str, User]:
        """Exchange a stored, unexpired refresh token for a new access token (no rotation)."""
        claims = self._tokens.verify_refresh_token(refresh_token)
        session = self._store.get_refresh_session(refresh_token)
        if session is None:
            raise AuthenticationError(INVALID_REFRESH_TOKEN)
        _, user = session
        if user.id != claims.id:
            raise InvalidTokenError()
        if not user.is_active:
            raise AuthorizationError(ACCOUNT_DISABLED)
        return self._tokens.issue_access_token(_claims_for(user)), user

    def logout(self, refresh_token: str | None) -> None:
        if not refresh_token:
            return
        self._store.delete_refresh_token(refresh_token)
        self._db.commit()

    def forgot_password(self, email: str) -> ResetRequest | None:
        """
        Create a reset token for an active account.

        Returns None when there is no such account; callers must answer identically
        in both cases.
        """
        user = self._store.get_active_user_by_email(email)
        if user is None:
            return None
        token = generate_opaque_token()
        expires_at = utcnow() + timedelta(minutes=self._settings.PASSWORD_RESET_EXPIRE_MINUTES)
        self._store.upsert_reset_token(user_id=user.id, token=token, expires_at=expires_at)
        self._db.commit()
        logger.info("Password reset requested: user_id=%s", user.id)
        return ResetRequest(email=user.email, token=token)

    def reset_password(self, *, token: str, new_password: str) -> User:
        """Consume a reset token, set the new password and end every session of the user."""
        reason = check_password_strength(new_password)
        if reason:
            raise _password_error(reason, "newPassword")
        session = self._store.get_reset_session(token)
        if session is None:
            raise ValidationError(INVALID_RESET_TOKEN)
        _, user = session

        password_hash = hash_password(new_password, rounds=self._settings.BCRYPT_ROUNDS)
        sessions_ended = self._store.update_password(user, password_hash)
        self._store.delete_reset_tokens_for_user(user.id)
        self._db.commit()
        logger.info("Password reset: user_id=%s sessions_ended=%s", user.id, sessions_ended)
        return user

    def change_password(self, user: User, *, current_password: str, new_password: str) -> None:
        if not verify_password(current_password, user.password_hash):
            raise ValidationError("Current password is incorrect")
        reason = check_password_strength(new_password)
        if reason:
            raise _password_error(reason, "newPassword")
        password_hash = hash_password(new_password, rounds=self._settings.BCRYPT_ROUNDS)
        sessions_ended = self._store.update_password(user, password_hash)
        self._db.commit()
        logger.info("Password changed: user_id=%s sessions_ended=%s", user.id, sessions_ended)

    def update_profile(self, user: User, *, name: str) -> User:
        self._store.update_profile(user, name=name)
        self._db.commit()
        return user

    def authenticate(self, access_token: str) -> User:
        """Resolve a bearer access token to an existing, active user."""
        claims = self._tokens.verify_access_token(access_token)
        user = self._store.get_user_by_id(claims.id)
        if user is None:
            raise AuthenticationError("User not found")
        if not user.is_active:
            raise AuthorizationError("Account disabled")
        return user

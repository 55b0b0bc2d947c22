"""Password hashing, password policy, opaque tokens and JWT issuance/verification."""

import re
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import bcrypt
import jwt

from app.core.errors import ExpiredTokenError, InvalidTokenError

if TYPE_CHECKING:
    from app.core.config import Settings

# Bcrypt cost (rounds); 12 is a good default for security vs speed.
BCRYPT_ROUNDS = 12
# bcrypt only looks at the first 72 bytes of the input.
BCRYPT_MAX_BYTES = 72

PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 128

# 32 bytes -> 64 hex characters (256 bits of entropy).
OPAQUE_TOKEN_BYTES = 32

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"
REQUIRED_CLAIMS = ["exp", "iat", "sub", "typ", "jti"]

PASSWORD_TOO_SHORT = f"Password must be at least {PASSWORD_MIN_LEN} characters long"
# Character-class rules, checked in order after length; the first failing rule is reported.
PASSWORD_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"\d"), "Password must contain at least one number"),
    (re.compile(r"[^A-Za-z0-9]"), "Password must contain at least one special character"),
)


def hash_password(plain_password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Hash a plain-text password for storage. Do not store plain passwords."""
    pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str, hashed: str) -> bool:
    """
    Verify a plain password against a stored hash.

    Returns False on mismatch. Raises ValueError if the stored hash is not a bcrypt hash.
    """
    pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except (ValueError, TypeError) as e:
        raise ValueError("Stored password hash is malformed") from e


def check_password_strength(password: str) -> str | None:
    """Return None if the password meets the policy, else the reason for the first unmet rule."""
    if len(password) < PASSWORD_MIN_LEN:
        return PASSWORD_TOO_SHORT
    for pattern, reason in PASSWORD_RULES:
        if not pattern.search(password):
            return reason
    return None


def generate_opaque_token() -> str:
    """Random hex token for password resets and other one-time flows."""
    return secrets.token_hex(OPAQUE_TOKEN_BYTES)


@dataclass(frozen=True)
class TokenClaims:
    """Identity carried by access and refresh tokens."""

    id: int
    email: str
    role: str


class TokenService:
    """
    Issue and verify signed JWTs.

    Access and refresh tokens use separate secrets and lifetimes, and carry a ``typ``
    claim so one can never be accepted in place of the other. The signing algorithm is
    pinned from settings on both encode and decode.
    """

    def __init__(self, settings: "Settings") -> None:
        self._algorithm = settings.JWT_ALGORITHM
        self._access_secret = settings.JWT_ACCESS_SECRET.get_secret_value()
        self._refresh_secret = settings.JWT_REFRESH_SECRET.get_secret_value()
        self._access_ttl = timedelta(minutes=settings.JWT_ACCESS_EXPIRE_MINUTES)
        self._refresh_ttl = timedelta(minutes=settings.JWT_REFRESH_EXPIRE_MINUTES)

    def issue_access_token(self, claims: TokenClaims) -> str:
        return self._encode(claims, TOKEN_TYPE_ACCESS, self._access_secret, self._access_ttl)

    def issue_refresh_token(self, claims: TokenClaims) -> str:
        return self._encode(claims, TOKEN_TYPE_REFRESH, self._refresh_secret, self._refresh_ttl)

    def verify_access_token(self, token: str) -> TokenClaims:
        return self._decode(token, TOKEN_TYPE_ACCESS, self._access_secret)

    def verify_refresh_token(self, token: str) -> TokenClaims:
        return self._decode(token, TOKEN_TYPE_REFRESH, self._refresh_secret)

    def refresh_expires_at(self, now: datetime | None = None) -> datetime:
        """Expiry to persist next to a refresh token issued at ``now``."""
        return (now or datetime.now(UTC)) + self._refresh_ttl

    def _encode(self, claims: TokenClaims, token_type: str, secret: str, ttl: timedelta) -> str:
        now = datetime.now(UTC)
        payload: dict[str, Any] = {
            "sub": str(claims.id),
            "email": claims.email,
            "role": claims.role,
            "typ": token_type,
            "iat": now,
            "exp": now + ttl,
            "jti": uuid4().hex,
        }
        return jwt.encode(payload, secret, algorithm=self._algorithm)

    def _decode(self, token: str, token_type: str, secret: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self._algorithm],
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as e:
            raise ExpiredTokenError() from e
        except jwt.PyJWTError as e:
            raise InvalidTokenError() from e

        if payload.get("typ") != token_type:
            raise InvalidTokenError()
        try:
            user_id = int(payload["sub"])
        except (TypeError, ValueError) as e:
            raise InvalidTokenError("Invalid token payload") from e
        email = payload.get("email")
        role = payload.get("role")
        if not isinstance(email, str) or not isinstance(role, str):
            raise InvalidTokenError("Invalid token payload")
        return TokenClaims(id=user_id, email=email, role=role)

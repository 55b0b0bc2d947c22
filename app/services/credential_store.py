"""Persistence for users, refresh tokens and password-reset tokens.

All statements use bound parameters through the ORM / expression language. Token tables
hold one row per user and are written with a native ``INSERT .. ON CONFLICT (user_id)
DO UPDATE`` so concurrent logins for one user cannot leave duplicate rows.

Methods flush but never commit; the calling flow commits once it has finished.
"""

import logging
from datetime import datetime

from sqlalchemy import delete, func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from app.models import PasswordResetToken, RefreshToken, User, UserRole, UserStatus
from app.models.base import utcnow

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CredentialStore:
    """Repository over the three credential tables, bound to one session."""

    def __init__(self, db: Session) -> None:
        self._db = db

    # ---- users ----

    def get_user_by_email(self, email: str) -> User | None:
        """Non-deleted user with this email (any other status)."""
        stmt = select(User).where(
            User.email == normalize_email(email),
            User.status != UserStatus.DELETED.value,
        )
        return self._db.execute(stmt).scalar_one_or_none()

    def get_active_user_by_email(self, email: str) -> User | None:
        stmt = select(User).where(
            User.email == normalize_email(email),
            User.status == UserStatus.ACTIVE.value,
        )
        return self._db.execute(stmt).scalar_one_or_none()

    def get_user_by_id(self, user_id: int) -> User | None:
        stmt = select(User).where(User.id == user_id, User.status != UserStatus.DELETED.value)
        return self._db.execute(stmt).scalar_one_or_none()

    def email_exists(self, email: str) -> bool:
        # Deleted rows still own their email through the unique index.
        stmt = select(func.count(User.id)).where(User.email == normalize_email(email))
        return int(self._db.execute(stmt).scalar_one()) > 0

    def list_users(
        self,
        *,
        status: UserStatus | None = None,
        role: UserRole | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[User], int]:
        """Non-deleted users newest first, optionally filtered, with the total count."""
        conditions = [User.status != UserStatus.DELETED.value]
        if status is not None:
            conditions.append(User.status == status.value)
        if role is not None:
            conditions.append(User.role == role.value)
        if search:
            pattern = f"%{search.strip()}%"
            conditions.append(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
        stmt = select(User).where(*conditions).order_by(User.id.desc()).limit(limit).offset(offset)
        count_stmt = select(func.count(User.id)).where(*conditions)
        users = list(self._db.execute(stmt).scalars().all())
        total = int(self._db.execute(count_stmt).scalar_one())
        return users, total

    def create_user(self, *, name: str, email: str, password_hash: str, role: UserRole) -> User:
        user = User(
            name=name,
            email=normalize_email(email),
            password_hash=password_hash,
            role=role.value,
            status=UserStatus.ACTIVE.value,
            created_at=utcnow(),
        )
        self._db.add(user)
        self._db.flush()
        return user

    def touch_last_login(self, user: User) -> None:
        now = utcnow()
        user.last_login = now
        user.updated_at = now
        self._db.flush()

    def update_profile(self, user: User, *, name: str) -> None:
        user.name = name
        user.updated_at = utcnow()
        self._db.flush()

    def update_password(self, user: User, password_hash: str) -> int:
        """Store a new hash and end every session of the user. Returns refresh rows removed."""
        user.password_hash = password_hash
        user.updated_at = utcnow()
        self._db.flush()
        return self.delete_refresh_tokens_for_user(user.id)

    def change_status(self, user: User, status: UserStatus) -> int:
        """Set status; leaving 'active' ends every session. Returns refresh rows removed."""
        user.status = status.value
        user.updated_at = utcnow()
        self._db.flush()
        if status is UserStatus.ACTIVE:
            return 0
        return self.delete_refresh_tokens_for_user(user.id)

    def change_role(self, user: User, role: UserRole) -> None:
        user.role = role.value
        user.updated_at = utcnow()
        self._db.flush()

    def soft_delete(self, user: User) -> None:
        """Mark the user deleted and drop all of its tokens."""
        refresh_removed = self.change_status(user, UserStatus.DELETED)
        reset_removed = self.delete_reset_tokens_for_user(user.id)
        logger.info(
            "User soft-deleted: user_id=%s refresh_removed=%s reset_removed=%s",
            user.id,
            refresh_removed,
            reset_removed,
        )

    # ---- refresh tokens ----

    def upsert_refresh_token(self, *, user_id: int, token: str, expires_at: datetime) -> None:
        """Insert or overwrite the single refresh token row of the user."""
        self._upsert(RefreshToken, user_id=user_id, token=token, expires_at=expires_at)

    def get_refresh_session(self, token: str, now: datetime | None = None) -> tuple[RefreshToken, User] | None:
        """Unexpired refresh row for this exact token, joined to its non-deleted owner."""
        stmt = (
            select(RefreshToken, User)
            .join(User, User.id == RefreshToken.user_id)
            .where(
                RefreshToken.token == token,
                RefreshToken.expires_at > (now or utcnow()),
                User.status != UserStatus.DELETED.value,
            )
        )
        row = self._db.execute(stmt).first()
        return (row[0], row[1]) if row else None

    def delete_refresh_token(self, token: str) -> int:
        result = self._db.execute(delete(RefreshToken).where(RefreshToken.token == token))
        return int(result.rowcount or 0)

    def delete_refresh_tokens_for_user(self, user_id: int) -> int:
        result = self._db.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
        return int(result.rowcount or 0)

    # ---- password reset tokens ----

    def upsert_reset_token(self, *, user_id: int, token: str, expires_at: datetime) -> None:
        self._upsert(PasswordResetToken, user_id=user_id, token=token, expires_at=expires_at)

    def get_reset_session(
        self, token: str, now: datetime | None = None
    ) -> tuple[PasswordResetToken, User] | None:
        """Unexpired reset row for this token, joined to its non-deleted owner."""
        stmt = (
            select(PasswordResetToken, User)
            .join(User, User.id == PasswordResetToken.user_id)
            .where(
                PasswordResetToken.token == token,
                PasswordResetToken.expires_at > (now or utcnow()),
                User.status != UserStatus.DELETED.value,
            )
        )
        row = self._db.execute(stmt).first()
        return (row[0], row[1]) if row else None

    def delete_reset_tokens_for_user(self, user_id: int) -> int:
        result = self._db.execute(
            delete(PasswordResetToken).where(PasswordResetToken.user_id == user_id)
        )
        return int(result.rowcount or 0)

    # ---- maintenance ----

    def purge_expired_tokens(self, now: datetime | None = None) -> tuple[int, int]:
        """Delete expired refresh and reset rows. Returns (refresh_deleted, reset_deleted)."""
        cutoff = now or utcnow()
        refresh = self._db.execute(delete(RefreshToken).where(RefreshToken.expires_at <= cutoff))
        reset = self._db.execute(
            delete(PasswordResetToken).where(PasswordResetToken.expires_at <= cutoff)
        )
        return int(refresh.rowcount or 0), int(reset.rowcount or 0)

    def _upsert(self, model: type[RefreshToken] | type[PasswordResetToken], **values: object) -> None:
        dialect = self._db.get_bind().dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)
        if insert is None:
            # Without native upsert: replace inside the caller's transaction.
            self._db.execute(delete(model).where(model.user_id == values["user_id"]))
            self._db.execute(model.__table__.insert().values(**values, created_at=utcnow()))
            return
        stmt = insert(model).values(**values, created_at=utcnow())
        stmt = stmt.on_conflict_do_update(
            index_elements=[model.user_id],
            set_={
                "token": stmt.excluded.token,
                "expires_at": stmt.excluded.expires_at,
                "created_at": stmt.excluded.created_at,
            },
        )
        self._db.execute(stmt)

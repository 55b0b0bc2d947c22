"""ORM models for per-user refresh tokens and password-reset tokens.

Both tables hold at most one row per user (unique user_id); writers upsert on user_id.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func

from app.models.base import Base


class RefreshToken(Base):
    """Current refresh token of a user. Replaced on every login; removed on logout."""

    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    token = Column(String(1024), nullable=False, unique=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PasswordResetToken(Base):
    """One-time password-reset token. Consumed (deleted) by a successful reset."""

    __tablename__ = "password_resets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    token = Column(String(128), nullable=False, unique=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

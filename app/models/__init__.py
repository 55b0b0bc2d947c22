"""SQLAlchemy ORM models."""

from app.models.base import Base
from app.models.tokens import PasswordResetToken, RefreshToken
from app.models.user import User, UserRole, UserStatus

__all__ = ["Base", "PasswordResetToken", "RefreshToken", "User", "UserRole", "UserStatus"]

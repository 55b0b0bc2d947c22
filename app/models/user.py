"""ORM model for application users (auth and RBAC)."""

from enum import Enum

from sqlalchemy import Column, DateTime, Integer, String, func

from app.models.base import Base


class UserRole(str, Enum):
    USER = "user"
    MANAGER = "manager"
    ADMIN = "admin"


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    # Soft-delete marker; deleted users are invisible to every auth lookup.
    DELETED = "deleted"


class User(Base):
    """
    User account for JWT authentication and role-based access control.

    email is stored lower-cased so the unique index is case-insensitive in practice.
    Rows are never hard-deleted; status='deleted' is the soft delete.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, default=UserRole.USER.value)
    status = Column(String(32), nullable=False, default=UserStatus.ACTIVE.value, index=True)
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value

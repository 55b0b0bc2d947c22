"""Request/response schemas for admin user management."""

from datetime import datetime

from pydantic import field_validator

from app.models import UserRole, UserStatus
from app.schemas.common import CamelModel


class UserListItem(CamelModel):
    """User entry for admin list (no password)."""

    id: int
    name: str
    email: str
    role: str
    status: str
    last_login: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class UsersListData(CamelModel):
    users: list[UserListItem]
    total: int
    limit: int
    offset: int


class UpdateStatusRequest(CamelModel):
    status: UserStatus

    @field_validator("status")
    @classmethod
    def reject_deleted(cls, v: UserStatus) -> UserStatus:
        if v is UserStatus.DELETED:
            raise ValueError("use DELETE to remove a user")
        return v


class UpdateRoleRequest(CamelModel):
    role: UserRole

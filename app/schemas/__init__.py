"""Pydantic request/response schemas."""

from app.schemas.auth import (
    ChangePasswordRequest,
    CurrentUser,
    ForgotPasswordRequest,
    LoginData,
    LoginRequest,
    LogoutRequest,
    ProfileData,
    RefreshData,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UpdateProfileRequest,
    UserPublic,
    VerifyData,
)
from app.schemas.common import ApiResponse, ErrorResponse, FieldError
from app.schemas.health import HealthResponse, InfoResponse
from app.schemas.users import (
    UpdateRoleRequest,
    UpdateStatusRequest,
    UserListItem,
    UsersListData,
)

__all__ = [
    "ApiResponse",
    "ChangePasswordRequest",
    "CurrentUser",
    "ErrorResponse",
    "FieldError",
    "ForgotPasswordRequest",
    "HealthResponse",
    "InfoResponse",
    "LoginData",
    "LoginRequest",
    "LogoutRequest",
    "ProfileData",
    "RefreshData",
    "RefreshRequest",
    "RegisterRequest",
    "ResetPasswordRequest",
    "UpdateProfileRequest",
    "UpdateRoleRequest",
    "UpdateStatusRequest",
    "UserListItem",
    "UserPublic",
    "UsersListData",
    "VerifyData",
]

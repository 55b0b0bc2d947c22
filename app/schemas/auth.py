"""Request/response schemas for auth endpoints."""

from datetime import datetime

from pydantic import EmailStr, Field

from app.core.security import PASSWORD_MAX_LEN
from app.models import UserRole
from app.schemas.common import CamelModel

NAME_MIN_LEN = 2
NAME_MAX_LEN = 100


class RegisterRequest(CamelModel):
    """Registration data. Password strength is checked by the auth service."""

    name: str = Field(..., min_length=NAME_MIN_LEN, max_length=NAME_MAX_LEN, description="Display name")
    email: EmailStr = Field(..., max_length=255, description="Login email")
    password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LEN, description="Password")
    role: UserRole = Field(default=UserRole.USER, description="user, manager or admin")


class LoginRequest(CamelModel):
    """Credentials for login."""

    email: EmailStr = Field(..., max_length=255, description="Login email")
    password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LEN, description="Password")


class RefreshRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1, description="Refresh token from login")


class LogoutRequest(CamelModel):
    # Optional: when sent, the matching refresh session is ended too.
    refresh_token: str | None = None


class ForgotPasswordRequest(CamelModel):
    email: EmailStr = Field(..., max_length=255)


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1, max_length=128, description="Token from the reset email")
    new_password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LEN)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LEN)
    new_password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LEN)


class UpdateProfileRequest(CamelModel):
    name: str = Field(..., min_length=NAME_MIN_LEN, max_length=NAME_MAX_LEN)


class UserPublic(CamelModel):
    """Safe projection of a user (never includes the password hash)."""

    id: int
    name: str
    email: str
    role: str
    last_login: datetime | None = None


class CurrentUser(CamelModel):
    """Authenticated user (id, email, role) for dependency injection."""

    id: int
    name: str
    email: str
    role: str


class LoginData(CamelModel):
    access_token: str
    refresh_token: str
    user: UserPublic


class RefreshData(CamelModel):
    access_token: str
    user: UserPublic


class VerifyData(CamelModel):
    user: CurrentUser
    valid: bool = True


class ProfileData(CamelModel):
    user: UserPublic

"""Auth routes and auth dependencies (get_current_user, require_roles, require_admin)."""

import logging
from collections.abc import Callable
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.api.middleware import random_delay
from app.api.middleware.client import client_address
from app.core.config import Settings
from app.core.database import get_db
from app.core.errors import AuthenticationError, AuthorizationError, RateLimitError
from app.core.logging_config import get_security_logger
from app.core.security import TokenService
from app.models import User, UserRole
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
from app.schemas.common import ApiResponse
from app.services.auth import FORGOT_PASSWORD_MESSAGE, AuthService
from app.services.notifications import ResetNotifier

logger = logging.getLogger(__name__)
security_logger = get_security_logger()

router = APIRouter()
security = HTTPBearer(auto_error=False)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_reset_notifier(request: Request) -> ResetNotifier:
    return request.app.state.reset_notifier


def get_auth_service(
    request: Request,
    db: Annotated[Session, Depends(get_db)],
) -> AuthService:
    state = request.app.state
    return AuthService(db, state.settings, state.token_service, state.login_throttle)


def _client(request: Request) -> str:
    return client_address(request, request.app.state.settings.TRUST_PROXY_HEADERS)


def _log_action(action: str, request: Request, email: str | None = None) -> None:
    logger.info("Action: %s | email=%s | ip=%s", action, email or "-", _client(request))


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> User:
    """Dependency: require a valid Bearer access token of an active user. 401 or 403 otherwise."""
    if credentials is None:
        raise AuthenticationError("Access token not provided", headers={"WWW-Authenticate": "Bearer"})
    return service.authenticate(credentials.credentials)


def require_roles(*roles: UserRole) -> Callable[[User], User]:
    """Dependency factory: the current user must hold one of ``roles``."""
    allowed = {role.value for role in roles}

    def check_role(current_user: Annotated[User, Depends(get_current_user)]) -> User:
        if current_user.role not in allowed:
            raise AuthorizationError()
        return current_user

    return check_role


require_admin = require_roles(UserRole.ADMIN)
require_manager = require_roles(UserRole.ADMIN, UserRole.MANAGER)


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[ProfileData],
    dependencies=[Depends(random_delay("REGISTER_DELAY_MS"))],
)
def register(
    body: RegisterRequest,
    request: Request,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[ProfileData]:
    """Create an active account. No session is issued; the client logs in afterwards."""
    user = service.register(name=body.name, email=body.email, password=body.password, role=body.role)
    _log_action("REGISTER", request, user.email)
    return ApiResponse(
        message="User created",
        data=ProfileData(user=UserPublic.model_validate(user)),
    )


@router.post(
    "/login",
    response_model=ApiResponse[LoginData],
    dependencies=[Depends(random_delay("LOGIN_DELAY_MS"))],
)
def login(
    body: LoginRequest,
    request: Request,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[LoginData]:
    """
    Authenticate with email and password; returns an access and a refresh token.
    Include the access token in the Authorization header as: Bearer <accessToken>
    """
    client_key = _client(request)
    try:
        result = service.login(email=body.email, password=body.password, client_key=client_key)
    except RateLimitError:
        security_logger.warning(
            "Login blocked by throttle: ip=%s path=%s", client_key, request.url.path
        )
        raise
    _log_action("LOGIN", request, result.user.email)
    return ApiResponse(
        message="Login successful",
        data=LoginData(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            user=UserPublic.model_validate(result.user),
        ),
    )


@router.post("/refresh", response_model=ApiResponse[RefreshData])
def refresh(
    body: RefreshRequest,
    request: Request,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[RefreshData]:
    access_token, user = service.refresh(body.refresh_token)
    _log_action("REFRESH_TOKEN", request, user.email)
    return ApiResponse(
        data=RefreshData(access_token=access_token, user=UserPublic.model_validate(user))
    )


@router.post("/logout", response_model=ApiResponse[None])
def logout(
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[AuthService, Depends(get_auth_service)],
    body: LogoutRequest | None = None,
) -> ApiResponse[None]:
    service.logout(body.refresh_token if body else None)
    _log_action("LOGOUT", request, current_user.email)
    return ApiResponse(message="Logout successful")


@router.post(
    "/forgot-password",
    response_model=ApiResponse[None],
    dependencies=[Depends(random_delay("PASSWORD_RESET_DELAY_MS"))],
)
def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    service: Annotated[AuthService, Depends(get_auth_service)],
    notifier: Annotated[ResetNotifier, Depends(get_reset_notifier)],
) -> ApiResponse[None]:
    """Always answers with the same body, whether or not the email belongs to an account."""
    reset = service.forgot_password(body.email)
    if reset is not None:
        background_tasks.add_task(notifier.send_reset_notification, reset.email, reset.token)
    _log_action("FORGOT_PASSWORD", request, body.email)
    return ApiResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post(
    "/reset-password",
    response_model=ApiResponse[None],
    dependencies=[Depends(random_delay("PASSWORD_RESET_DELAY_MS"))],
)
def reset_password(
    body: ResetPasswordRequest,
    request: Request,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[None]:
    user = service.reset_password(token=body.token, new_password=body.new_password)
    _log_action("RESET_PASSWORD", request, user.email)
    return ApiResponse(message="Password reset successfully")


@router.get("/verify", response_model=ApiResponse[VerifyData])
def verify(
    current_user: Annotated[User, Depends(get_current_user)],
) -> ApiResponse[VerifyData]:
    return ApiResponse(data=VerifyData(user=CurrentUser.model_validate(current_user)))


@router.get("/profile", response_model=ApiResponse[ProfileData])
def get_profile(
    current_user: Annotated[User, Depends(get_current_user)],
) -> ApiResponse[ProfileData]:
    return ApiResponse(data=ProfileData(user=UserPublic.model_validate(current_user)))


@router.put("/profile", response_model=ApiResponse[ProfileData])
def update_profile(
    body: UpdateProfileRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[ProfileData]:
    user = service.update_profile(current_user, name=body.name)
    return ApiResponse(
        message="Profile updated",
        data=ProfileData(user=UserPublic.model_validate(user)),
    )


@router.put("/change-password", response_model=ApiResponse[None])
def change_password(
    body: ChangePasswordRequest,
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[None]:
    """Requires the current password. Ends every session of the user, including this one's refresh token."""
    service.change_password(
        current_user,
        current_password=body.current_password,
        new_password=body.new_password,
    )
    _log_action("CHANGE_PASSWORD", request, current_user.email)
    return ApiResponse(message="Password changed successfully")

"""Admin-only user management routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from app.api.v1.auth import require_admin
from app.core.database import get_db
from app.models import User, UserRole, UserStatus
from app.schemas.common import ApiResponse
from app.schemas.users import UpdateRoleRequest, UpdateStatusRequest, UserListItem, UsersListData
from app.services.users import UserAdminService

router = APIRouter()


def get_user_admin_service(db: Annotated[Session, Depends(get_db)]) -> UserAdminService:
    return UserAdminService(db)


@router.get("", response_model=ApiResponse[UsersListData])
def list_users(
    response: Response,
    _admin: Annotated[User, Depends(require_admin)],
    service: Annotated[UserAdminService, Depends(get_user_admin_service)],
    status: UserStatus | None = None,
    role: UserRole | None = None,
    search: Annotated[str | None, Query(max_length=100)] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> ApiResponse[UsersListData]:
    """List non-deleted users (admin only). The total is also sent as X-Total-Count."""
    users, total = service.list_users(
        status=status, role=role, search=search, limit=limit, offset=offset
    )
    response.headers["X-Total-Count"] = str(total)
    return ApiResponse(
        data=UsersListData(
            users=[UserListItem.model_validate(u) for u in users],
            total=total,
            limit=limit,
            offset=offset,
        )
    )


@router.get("/{user_id}", response_model=ApiResponse[UserListItem])
def get_user(
    user_id: int,
    _admin: Annotated[User, Depends(require_admin)],
    service: Annotated[UserAdminService, Depends(get_user_admin_service)],
) -> ApiResponse[UserListItem]:
    return ApiResponse(data=UserListItem.model_validate(service.get_user(user_id)))


@router.patch("/{user_id}/status", response_model=ApiResponse[UserListItem])
def update_status(
    user_id: int,
    body: UpdateStatusRequest,
    admin: Annotated[User, Depends(require_admin)],
    service: Annotated[UserAdminService, Depends(get_user_admin_service)],
) -> ApiResponse[UserListItem]:
    user = service.change_status(admin, user_id, body.status)
    return ApiResponse(message="Status updated", data=UserListItem.model_validate(user))


@router.patch("/{user_id}/role", response_model=ApiResponse[UserListItem])
def update_role(
    user_id: int,
    body: UpdateRoleRequest,
    admin: Annotated[User, Depends(require_admin)],
    service: Annotated[UserAdminService, Depends(get_user_admin_service)],
) -> ApiResponse[UserListItem]:
    user = service.change_role(admin, user_id, body.role)
    return ApiResponse(message="Role updated", data=UserListItem.model_validate(user))


@router.delete("/{user_id}", response_model=ApiResponse[None])
def delete_user(
    user_id: int,
    admin: Annotated[User, Depends(require_admin)],
    service: Annotated[UserAdminService, Depends(get_user_admin_service)],
) -> ApiResponse[None]:
    """Soft delete: the account keeps its row but loses every token and can no longer log in."""
    service.delete_user(admin, user_id)
    return ApiResponse(message="User deleted")

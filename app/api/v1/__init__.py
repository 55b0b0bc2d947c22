"""API v1 routes."""

from fastapi import APIRouter, Depends

from app.api.errors import ERROR_RESPONSES
from app.api.middleware import sanitize_path_params
from app.api.v1 import auth, health, users
from app.schemas.common import ErrorResponse

router = APIRouter(dependencies=[Depends(sanitize_path_params)], responses=ERROR_RESPONSES)
router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(
    users.router,
    prefix="/admin/users",
    tags=["admin"],
    responses={403: {"model": ErrorResponse, "description": "Admin role required"}},
)

# Mounted at the application root, outside the versioned prefix.
root_router = health.router

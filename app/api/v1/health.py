"""Health check endpoint with database connectivity check, and service info."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.database import check_db_connected, get_db
from app.schemas.health import HealthResponse, InfoResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def get_health(request: Request, db: Annotated[Session, Depends(get_db)]) -> HealthResponse:
    """
    Return service health status and database connectivity.
    Used by load balancers and monitoring.
    """
    db_status = "connected" if check_db_connected(db) else "disconnected"

    return HealthResponse(
        status="ok",
        environment=request.app.state.settings.APP_ENV,
        database=db_status,
    )


@router.get("/api/info", response_model=InfoResponse)
def get_info(request: Request) -> InfoResponse:
    settings = request.app.state.settings
    return InfoResponse(
        name=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.APP_ENV,
    )

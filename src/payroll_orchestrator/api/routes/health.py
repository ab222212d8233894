"""Health check endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_orchestrator.api.dependencies import DbSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    version: str
    database: str
    pending_notifications: int


async def _database_reachable(db: AsyncSession) -> bool:
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Database health check failed", exc_info=True)
        return False
    return True


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request, db: DbSession) -> HealthResponse:
    """Database reachability and notification backlog.

    A reachable API with an unreachable database reports ``degraded``.
    """
    healthy = await _database_reachable(db)
    return HealthResponse(
        status="healthy" if healthy else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=request.app.version,
        database="healthy" if healthy else "unhealthy",
        pending_notifications=request.app.state.emitter.pending_count,
    )


@router.get("/ready")
async def readiness_check(db: DbSession, response: Response) -> dict[str, str]:
    """Ready once the database answers; runs cannot start before that."""
    if not await _database_reachable(db):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unavailable"}
    return {"status": "ready"}


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}

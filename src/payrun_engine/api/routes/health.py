"""Liveness, readiness and health checks."""

import logging
from datetime import datetime

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from payrun_engine.api.dependencies import DbSession
from payrun_engine.config import get_settings
from payrun_engine.models import PayrollRun
from payrun_engine.models.base import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    database: str
    engine_version: str


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession) -> HealthResponse:
    """Report API status and whether the database answers."""
    database = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Database health check failed", exc_info=True)
        database = "unhealthy"

    return HealthResponse(
        status="healthy" if database == "healthy" else "degraded",
        timestamp=utcnow(),
        database=database,
        engine_version=get_settings().engine_version,
    )


@router.get("/ready")
async def readiness_check(db: DbSession, response: Response) -> dict[str, str]:
    """Ready once the payroll schema is reachable."""
    try:
        await db.execute(select(func.count()).select_from(PayrollRun))
    except SQLAlchemyError:
        logger.warning("Payroll schema not reachable", exc_info=True)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not_ready"}
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}

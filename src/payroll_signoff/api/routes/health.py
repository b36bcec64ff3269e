"""Health check endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, status
from pydantic import BaseModel
from sqlalchemy import text

from payroll_signoff import __version__
from payroll_signoff.api.dependencies import CompanyStart, Store
from payroll_signoff.services.month_progression import active_month

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Service health, with the open payroll month when the database answers."""

    status: str
    timestamp: datetime
    database: str
    version: str
    active_month: str | None = None


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(store: Store, start: CompanyStart) -> HealthResponse:
    """Check the database and report which payroll month is open."""
    open_month = None
    try:
        async with store.session_factory() as session:
            await session.execute(text("SELECT 1"))
        open_month = active_month(await store.list_cycles(), start).label
        db_status = "healthy"
    except Exception:
        db_status = "unhealthy"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=db_status,
        version=__version__,
        active_month=open_month,
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check() -> dict[str, str]:
    """Readiness check for container orchestration."""
    return {"status": "ready"}


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}

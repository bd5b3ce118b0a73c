"""
Health Check Endpoints

Provides health and readiness checks for orchestration systems.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Response
from pydantic import BaseModel

from src.config import get_settings
from src.database.connection import check_database_health, get_engine
from src.migrations import MigrationError, MigrationRunner, default_registry

settings = get_settings()
router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


async def _schema_check() -> Dict[str, Any]:
    runner = MigrationRunner(get_engine(), default_registry())
    pending = [m.name for m in await runner.pending()]
    return {
        "status": "healthy" if not pending else "degraded",
        "pending_migrations": pending,
    }


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Comprehensive health check endpoint.

    Checks:
    - Database connectivity
    - Pending schema migrations
    """
    checks: Dict[str, Any] = {}
    overall_status = "healthy"

    db_health = await check_database_health()
    checks["database"] = db_health
    if db_health.get("status") != "healthy":
        overall_status = "unhealthy"
    else:
        try:
            checks["schema"] = await _schema_check()
        except MigrationError as e:
            checks["schema"] = {"status": "unhealthy", "error": str(e)}
        if checks["schema"]["status"] != "healthy":
            overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """Returns 200 while the process is running."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(response: Response) -> Dict[str, str]:
    """
    Returns 200 once the store is reachable and fully migrated.
    """
    db_health = await check_database_health()
    if db_health.get("status") != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}

    try:
        schema = await _schema_check()
    except MigrationError as e:
        response.status_code = 503
        return {"status": "not_ready", "reason": str(e)}

    if schema["pending_migrations"]:
        response.status_code = 503
        return {"status": "not_ready", "reason": "migrations_pending"}
    return {"status": "ready"}

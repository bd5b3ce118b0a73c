"""
Migration Endpoints

Inspect and apply the packaged schema catalog.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncEngine

from src.database.connection import get_engine
from src.migrations import MigrationRunner, default_registry

router = APIRouter()


class MigrationInfo(BaseModel):
    name: str
    position: int
    applied: bool
    applied_at: Optional[datetime] = None


class MigrationStatusResponse(BaseModel):
    migrations: List[MigrationInfo]
    applied: int
    pending: List[str]


class ApplyResponse(BaseModel):
    applied: List[str]
    up_to_date: bool


@router.get("", response_model=MigrationStatusResponse)
async def migration_status(engine: AsyncEngine = Depends(get_engine)) -> MigrationStatusResponse:
    """Applied state of every catalog entry, in apply order."""
    statuses = await MigrationRunner(engine, default_registry()).status()
    return MigrationStatusResponse(
        migrations=[MigrationInfo(**s.to_dict()) for s in statuses],
        applied=sum(1 for s in statuses if s.applied),
        pending=[s.name for s in statuses if not s.applied],
    )


@router.post("/apply", response_model=ApplyResponse)
async def apply_pending_migrations(engine: AsyncEngine = Depends(get_engine)) -> ApplyResponse:
    """
    Apply pending migrations.

    A failing statement surfaces as a 500 naming the migration and the
    statement preview; migrations applied before it stay applied.
    """
    applied = await MigrationRunner(engine, default_registry()).apply_pending()
    return ApplyResponse(applied=applied, up_to_date=not applied)

"""
Trip Facts Endpoints

Dirty-queue inspection and on-demand recompute of trip aggregates.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncEngine

from src.database.connection import get_engine
from src.facts import DirtyQueue, TripFactsManager

router = APIRouter()


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class DirtyQueueResponse(BaseModel):
    total: int
    pending_trips: List[int]
    entries: List[Dict[str, Any]]


class RefreshRequest(BaseModel):
    """Drain the queue (limit) or refresh a single trip (trip_id)"""
    trip_id: Optional[int] = None
    limit: Optional[int] = Field(default=None, ge=1, le=1000)


class RefreshResponse(BaseModel):
    refreshed: int
    removed: int
    consumed_entries: int
    errors: List[str] = []


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/dirty", response_model=DirtyQueueResponse)
async def dirty_queue(
    trip_id: Optional[int] = None,
    limit: int = Query(100, ge=1, le=1000),
    engine: AsyncEngine = Depends(get_engine),
) -> DirtyQueueResponse:
    """Queued dirty signals, oldest first."""
    queue = DirtyQueue(engine)
    entries = await queue.entries(trip_id)
    return DirtyQueueResponse(
        total=await queue.count(trip_id),
        pending_trips=await queue.pending_subjects(limit),
        entries=[e.to_dict() for e in entries[:limit]],
    )


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_facts(
    request: RefreshRequest,
    engine: AsyncEngine = Depends(get_engine),
) -> RefreshResponse:
    """Recompute facts for dirty trips, or for one trip on demand."""
    manager = TripFactsManager(engine)

    if request.trip_id is None:
        result = await manager.refresh_dirty(request.limit)
        return RefreshResponse(
            refreshed=result.refreshed,
            removed=result.removed,
            consumed_entries=result.consumed_entries,
            errors=result.errors,
        )

    mark = await manager.queue.high_water_mark(request.trip_id)
    summary = await manager.refresh_trip_facts(request.trip_id)
    consumed = await manager.queue.consume(request.trip_id, mark) if mark is not None else 0
    return RefreshResponse(
        refreshed=1 if summary else 0,
        removed=0 if summary else 1,
        consumed_entries=consumed,
    )


@router.get("/{trip_id}")
async def get_trip_facts(
    trip_id: int,
    engine: AsyncEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Stored facts of a trip."""
    facts = await TripFactsManager(engine).get_facts(trip_id)
    if facts is None:
        raise HTTPException(status_code=404, detail=f"No facts for trip {trip_id}")
    return facts

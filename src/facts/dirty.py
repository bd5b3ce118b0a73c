"""
Dirty-Queue Access

Triggers installed by the migration catalog append a facts_dirty row for
every insert, update and delete on the tracked tables. This module reads and
drains that queue, and offers mark_dirty() for write paths that must signal
without a trigger (stores lacking trigger support, bulk loaders).

Signals are at-least-once. Several writes before a drain leave several rows
for the same trip; consumers recompute from the base tables, so duplicates
cost time, never correctness.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import structlog
from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncEngine

from src.database.connection import fetch_all
from src.database.models import FactsDirty

logger = structlog.get_logger(__name__)


# Reason prefix per tracked table; the trigger reason is "<prefix>_<operation>"
TRACKED_TABLES: Dict[str, str] = {
    "trips": "trip",
    "trip_days": "tripday",
    "trip_activities": "activity",
    "trip_legs": "leg",
    "trip_client_assignments": "traveler",
    "travel_services": "travel_service",
}

OPERATIONS = ("insert", "update", "delete")


def reason_for(table: str, operation: str) -> str:
    """Reason tag a trigger writes for a table and operation"""
    if table not in TRACKED_TABLES:
        raise ValueError(f"Table is not dirty-tracked: {table}")
    operation = operation.lower()
    if operation not in OPERATIONS:
        raise ValueError(f"Unknown write operation: {operation}")
    return f"{TRACKED_TABLES[table]}_{operation}"


@dataclass
class DirtyEntry:
    """One dirty-queue row"""
    id: int
    trip_id: int
    reason: Optional[str]
    created_at: Optional[datetime]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "trip_id": self.trip_id,
            "reason": self.reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class DirtyQueue:
    """
    Reader/writer for facts_dirty.

    Example:
        queue = DirtyQueue(engine)
        for trip_id in await queue.pending_subjects(limit=50):
            mark = await queue.high_water_mark(trip_id)
            ...recompute...
            await queue.consume(trip_id, mark)
    """

    def __init__(self, engine: AsyncEngine, clock: Callable[[], datetime] = _utcnow):
        self.engine = engine
        self.clock = clock

    async def mark_dirty(self, trip_id: int, reason: str) -> int:
        """Append a signal from application code. Returns the entry id."""
        async with self.engine.begin() as conn:
            result = await conn.execute(
                insert(FactsDirty).values(trip_id=trip_id, reason=reason, created_at=self.clock())
            )
            entry_id = result.inserted_primary_key[0]
        logger.debug("Marked facts dirty", trip_id=trip_id, reason=reason, entry_id=entry_id)
        return entry_id

    async def mark_write(self, table: str, trip_id: int, operation: str) -> int:
        """Signal a write the way the table's trigger would"""
        return await self.mark_dirty(trip_id, reason_for(table, operation))

    async def pending_subjects(self, limit: int = 50) -> List[int]:
        """Distinct dirty trip ids, oldest signal first"""
        oldest = func.min(FactsDirty.id)
        query = (
            select(FactsDirty.trip_id)
            .where(FactsDirty.trip_id.is_not(None))
            .group_by(FactsDirty.trip_id)
            .order_by(oldest)
            .limit(limit)
        )
        async with self.engine.connect() as conn:
            result = await conn.execute(query)
            return [row.trip_id for row in result]

    async def entries(self, trip_id: Optional[int] = None) -> List[DirtyEntry]:
        query = select(FactsDirty.__table__).order_by(FactsDirty.id)
        if trip_id is not None:
            query = query.where(FactsDirty.trip_id == trip_id)
        async with self.engine.connect() as conn:
            result = await conn.execute(query)
            return [
                DirtyEntry(
                    id=row.id,
                    trip_id=row.trip_id,
                    reason=row.reason,
                    created_at=row.created_at,
                )
                for row in result
            ]

    async def count(self, trip_id: Optional[int] = None) -> int:
        query = select(func.count(FactsDirty.id))
        if trip_id is not None:
            query = query.where(FactsDirty.trip_id == trip_id)
        async with self.engine.connect() as conn:
            return (await conn.execute(query)).scalar_one()

    async def high_water_mark(self, trip_id: int) -> Optional[int]:
        """Highest entry id currently queued for a trip"""
        async with self.engine.connect() as conn:
            result = await conn.execute(
                select(func.max(FactsDirty.id)).where(FactsDirty.trip_id == trip_id)
            )
            return result.scalar_one()

    async def consume(self, trip_id: int, up_to_id: Optional[int] = None) -> int:
        """
        Delete entries for a trip.

        With up_to_id only entries at or below that id go, so signals that
        arrived while the consumer was recomputing survive for the next drain.
        """
        query = delete(FactsDirty).where(FactsDirty.trip_id == trip_id)
        if up_to_id is not None:
            query = query.where(FactsDirty.id <= up_to_id)
        async with self.engine.begin() as conn:
            result = await conn.execute(query)
            return result.rowcount

    async def purge_older_than(self, cutoff: datetime) -> int:
        """Drop entries nobody consumed before the cutoff"""
        async with self.engine.begin() as conn:
            result = await conn.execute(delete(FactsDirty).where(FactsDirty.created_at < cutoff))
        if result.rowcount:
            logger.warning("Purged stale dirty entries", count=result.rowcount, cutoff=cutoff.isoformat())
        return result.rowcount

    async def list_triggers(self) -> List[str]:
        """Installed dirty-tracking triggers"""
        rows = await fetch_all(
            self.engine,
            "SELECT name FROM sqlite_master WHERE type = 'trigger' AND name LIKE 'trg_%_dirty' ORDER BY name",
        )
        return [row["name"] for row in rows]

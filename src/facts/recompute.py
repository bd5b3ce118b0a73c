"""
Trip Facts Recompute

Consumer side of the dirty-queue. Each refresh computes a trip's aggregates
from the current base tables and writes them with one upsert, so a facts row
is always a whole snapshot, never an incremental patch.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import structlog
from sqlalchemy import delete, select, text
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from src.config import get_settings
from src.database.models import TripFacts
from .dirty import DirtyQueue

logger = structlog.get_logger(__name__)
settings = get_settings()


@dataclass
class TripFactsSummary:
    """Computed aggregates for one trip"""
    trip_id: int
    total_nights: int
    total_hotels: int
    total_activities: int
    total_cost: float
    transit_minutes: int
    traveler_count: int
    traveler_names: List[str] = field(default_factory=list)
    traveler_emails: List[str] = field(default_factory=list)
    primary_client_email: Optional[str] = None
    primary_client_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RefreshResult:
    """Outcome of one drain of the dirty-queue"""
    refreshed: int = 0
    removed: int = 0
    consumed_entries: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)


def derive_name_from_email(email: Optional[str]) -> Optional[str]:
    """'jane.doe@example.com' -> 'Jane Doe'"""
    if not email:
        return None
    local = email.split("@")[0]
    segments = [s for s in local.replace("_", ".").replace("-", ".").split(".") if s]
    if not segments:
        return None
    return " ".join(s[:1].upper() + s[1:].lower() for s in segments)


def _nights_between(start: Optional[str], end: Optional[str]) -> int:
    if not start or not end:
        return 0
    try:
        delta = (date.fromisoformat(str(end)[:10]) - date.fromisoformat(str(start)[:10])).days
    except ValueError:
        return 0
    return max(delta, 0)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TripFactsManager:
    """
    Recomputes trip_facts rows and drains facts_dirty.

    Example:
        manager = TripFactsManager(engine)
        result = await manager.refresh_dirty(limit=50)
    """

    def __init__(
        self,
        engine: AsyncEngine,
        queue: Optional[DirtyQueue] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.engine = engine
        self.queue = queue or DirtyQueue(engine)
        self.clock = clock

    async def _scalar(self, conn: AsyncConnection, sql: str, **params: Any) -> float:
        value = (await conn.execute(text(sql), params)).scalar()
        return value or 0

    async def _travelers(self, conn: AsyncConnection, trip_id: int, primary_email: Optional[str]):
        rows = (await conn.execute(
            text(
                """
                SELECT a.client_email AS email, c.full_name AS full_name
                FROM trip_client_assignments a
                LEFT JOIN clients c ON c.email = a.client_email
                WHERE a.trip_id = :trip_id
                ORDER BY a.id
                """
            ),
            {"trip_id": trip_id},
        )).all()

        primary_name = None
        if primary_email:
            name_row = (await conn.execute(
                text("SELECT full_name FROM clients WHERE email = :email"),
                {"email": primary_email},
            )).first()
            primary_name = (
                (name_row.full_name or "").strip() if name_row else ""
            ) or derive_name_from_email(primary_email)

        emails: List[str] = []
        names: List[str] = []
        seen_emails = set()
        seen_names = set()

        def add(email: Optional[str], name: Optional[str]) -> None:
            if email and email.lower() not in seen_emails:
                seen_emails.add(email.lower())
                emails.append(email)
            if name and name.lower() not in seen_names:
                seen_names.add(name.lower())
                names.append(name)

        for row in rows:
            add(row.email, (row.full_name or "").strip() or derive_name_from_email(row.email))
        add(primary_email, primary_name)

        return emails, names, primary_name

    async def compute(self, trip_id: int) -> Optional[TripFactsSummary]:
        """Compute a trip's aggregates without writing them. None if the trip is gone."""
        async with self.engine.connect() as conn:
            trip = (await conn.execute(
                text(
                    "SELECT trip_id, primary_client_email, start_date, end_date "
                    "FROM trips WHERE trip_id = :trip_id"
                ),
                {"trip_id": trip_id},
            )).first()
            if trip is None:
                return None

            nights = int(await self._scalar(
                conn,
                "SELECT COALESCE(MAX(day_number) - MIN(day_number) + 1, 0) "
                "FROM trip_days WHERE trip_id = :trip_id",
                trip_id=trip_id,
            ))
            if not nights:
                nights = _nights_between(trip.start_date, trip.end_date)

            total_activities = int(await self._scalar(
                conn,
                "SELECT COUNT(1) FROM trip_activities WHERE trip_id = :trip_id",
                trip_id=trip_id,
            ))

            total_hotels = int(await self._scalar(
                conn,
                "SELECT COUNT(1) FROM trip_activities "
                "WHERE trip_id = :trip_id AND LOWER(activity_type) IN ('hotel', 'lodging')",
                trip_id=trip_id,
            )) + int(await self._scalar(
                conn,
                "SELECT COUNT(1) FROM travel_services "
                "WHERE trip_id = :trip_id AND service_category = 'hotel'",
                trip_id=trip_id,
            ))

            total_cost = float(await self._scalar(
                conn,
                "SELECT COALESCE(SUM(cost), 0) FROM trip_activities WHERE trip_id = :trip_id",
                trip_id=trip_id,
            )) + float(await self._scalar(
                conn,
                "SELECT COALESCE(SUM(total_price), 0) FROM travel_services WHERE trip_id = :trip_id",
                trip_id=trip_id,
            ))

            transit_minutes = int(await self._scalar(
                conn,
                """
                SELECT COALESCE(SUM((strftime('%s', arrive_datetime) - strftime('%s', depart_datetime)) / 60), 0)
                FROM trip_legs
                WHERE trip_id = :trip_id
                  AND depart_datetime IS NOT NULL
                  AND arrive_datetime IS NOT NULL
                """,
                trip_id=trip_id,
            ))

            emails, names, primary_name = await self._travelers(
                conn, trip_id, trip.primary_client_email
            )

        return TripFactsSummary(
            trip_id=trip_id,
            total_nights=nights,
            total_hotels=total_hotels,
            total_activities=total_activities,
            total_cost=round(total_cost, 2),
            transit_minutes=transit_minutes,
            traveler_count=len(emails),
            traveler_names=names,
            traveler_emails=emails,
            primary_client_email=trip.primary_client_email,
            primary_client_name=primary_name,
        )

    async def refresh_trip_facts(self, trip_id: int) -> Optional[TripFactsSummary]:
        """
        Recompute and store one trip's facts.

        The row is replaced in a single statement and its version bumped.
        A trip that no longer exists loses its facts row and yields None.
        """
        summary = await self.compute(trip_id)

        if summary is None:
            async with self.engine.begin() as conn:
                await conn.execute(delete(TripFacts).where(TripFacts.trip_id == trip_id))
            logger.info("Trip gone, facts removed", trip_id=trip_id)
            return None

        values = {
            "trip_id": summary.trip_id,
            "total_nights": summary.total_nights,
            "total_hotels": summary.total_hotels,
            "total_activities": summary.total_activities,
            "total_cost": summary.total_cost,
            "transit_minutes": summary.transit_minutes,
            "traveler_count": summary.traveler_count,
            "traveler_names": json.dumps(summary.traveler_names) if summary.traveler_names else None,
            "traveler_emails": json.dumps(summary.traveler_emails) if summary.traveler_emails else None,
            "primary_client_email": summary.primary_client_email,
            "primary_client_name": summary.primary_client_name,
            "last_computed": self.clock(),
            "version": 1,
        }
        stmt = sqlite_insert(TripFacts).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[TripFacts.trip_id],
            set_={
                **{k: stmt.excluded[k] for k in values if k not in ("trip_id", "version")},
                "version": TripFacts.version + 1,
            },
        )
        async with self.engine.begin() as conn:
            await conn.execute(stmt)

        logger.debug("Trip facts refreshed", trip_id=trip_id, total_cost=summary.total_cost)
        return summary

    async def refresh_dirty(self, limit: Optional[int] = None) -> RefreshResult:
        """
        Drain the dirty-queue.

        For each pending trip: note the newest queued entry, recompute, then
        consume entries up to that mark. A trip whose recompute fails keeps
        its entries for the next drain.
        """
        limit = limit or settings.cache.facts_refresh_batch
        result = RefreshResult()

        for trip_id in await self.queue.pending_subjects(limit):
            mark = await self.queue.high_water_mark(trip_id)
            try:
                summary = await self.refresh_trip_facts(trip_id)
            except SQLAlchemyError as e:
                logger.error("Trip facts refresh failed", trip_id=trip_id, error=str(e))
                result.errors.append(f"Failed to refresh trip {trip_id}: {e}")
                continue

            if summary is None:
                result.removed += 1
            else:
                result.refreshed += 1
            result.consumed_entries += await self.queue.consume(trip_id, mark)

        logger.info(
            "Dirty-queue drained",
            refreshed=result.refreshed,
            removed=result.removed,
            consumed=result.consumed_entries,
            failed=result.failed,
        )
        return result

    async def get_facts(self, trip_id: int) -> Optional[Dict[str, Any]]:
        """Stored facts row for a trip, JSON columns decoded"""
        async with self.engine.connect() as conn:
            row = (await conn.execute(
                select(TripFacts.__table__).where(TripFacts.trip_id == trip_id)
            )).first()
        if row is None:
            return None

        facts = dict(row._mapping)
        for column in ("traveler_names", "traveler_emails"):
            facts[column] = json.loads(facts[column]) if facts[column] else []
        if facts.get("last_computed"):
            facts["last_computed"] = facts["last_computed"].isoformat()
        return facts

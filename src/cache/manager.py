"""
Search Cache Manager

Table-backed cache of external travel searches:
- travel_search_cache holds one index row per (query hash, category) with
  its expiry
- travel_services holds the result items, flattened for filtering, with the
  full payload kept as JSON
- travel_search_results links each query to the items of its latest
  response; one item can belong to many queries

Items attached to a trip (owned) get a far-future expiry and are never
touched by invalidation or sweeps. Cache failures are logged and degrade to
a miss or a skipped write; they never reach the search caller.
"""

import hashlib
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

import structlog
from prometheus_client import Counter
from sqlalchemy import DateTime, case, delete, func, literal, or_, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from src.database.models import TravelSearchCache, TravelSearchResult, TravelService
from .keys import generate_search_hash
from .policies import DEFAULT_POLICIES, CachePolicy, get_policy

logger = structlog.get_logger(__name__)

# Expiry of owned items
DURABLE_EXPIRY = datetime(9999, 12, 31, 23, 59, 59)

CACHE_LOOKUPS = Counter(
    "travel_cache_lookups_total",
    "Search cache lookups",
    ["category", "outcome"],
)
CACHE_WRITES = Counter(
    "travel_cache_writes_total",
    "Search cache writes",
    ["category", "status"],
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class CacheLookup:
    """Result of a cache probe"""
    hit: bool
    results: List[Dict[str, Any]] = field(default_factory=list)
    needs_refresh: bool = False
    expires_at: Optional[datetime] = None
    search_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hit": self.hit,
            "results": self.results,
            "needs_refresh": self.needs_refresh,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "search_hash": self.search_hash,
        }


@dataclass
class InvalidationCriteria:
    """Filters for invalidate(); at least one must be set"""
    category: Optional[str] = None
    source_platform: Optional[str] = None
    location: Optional[str] = None
    older_than: Optional[datetime] = None

    def is_empty(self) -> bool:
        return not any((self.category, self.source_platform, self.location, self.older_than))


@dataclass
class SweepResult:
    index_removed: int = 0
    items_removed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"index_removed": self.index_removed, "items_removed": self.items_removed}


def _location(item: Mapping[str, Any]) -> Dict[str, Any]:
    location = item.get("location")
    if isinstance(location, Mapping):
        return {
            "location_city": location.get("city"),
            "location_state": location.get("state"),
            "location_country": location.get("country"),
            "latitude": location.get("latitude", item.get("latitude")),
            "longitude": location.get("longitude", item.get("longitude")),
        }
    return {
        "location_city": item.get("location_city") or item.get("city") or location,
        "location_state": item.get("location_state") or item.get("state"),
        "location_country": item.get("location_country") or item.get("country"),
        "latitude": item.get("latitude"),
        "longitude": item.get("longitude"),
    }


def _rating(item: Mapping[str, Any]) -> Dict[str, Any]:
    rating = item.get("rating")
    if isinstance(rating, Mapping):
        return {"rating_overall": rating.get("overall"), "rating_count": rating.get("count")}
    return {"rating_overall": rating, "rating_count": item.get("rating_count") or item.get("review_count")}


class CacheManager:
    """
    Search cache over travel_search_cache / travel_services.

    Example:
        cache = CacheManager(engine)
        search_hash = generate_search_hash("hotel", params)
        lookup = await cache.check_cache_hit(search_hash, "hotel")
        if not lookup.hit:
            results = await provider.search(params)
            await cache.cache_search_results(search_hash, "hotel", params, results, "provider")
    """

    def __init__(
        self,
        engine: AsyncEngine,
        policies: Mapping[str, CachePolicy] = DEFAULT_POLICIES,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.engine = engine
        self.policies = policies
        self.clock = clock

    def policy(self, category: str) -> CachePolicy:
        return get_policy(category, self.policies)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def check_cache_hit(self, search_hash: str, category: str) -> CacheLookup:
        """
        Probe the cache for a query.

        A hit requires a live index row. It is flagged needs_refresh once the
        entry is older than ttl - refresh_threshold, and counts as an access.
        Only members of the query's latest response are returned, and of those
        only owned or unexpired items.
        """
        policy = self.policy(category)
        now = self.clock()

        try:
            async with self.engine.connect() as conn:
                entry = (await conn.execute(
                    select(TravelSearchCache.__table__).where(
                        TravelSearchCache.search_params_hash == search_hash,
                        TravelSearchCache.service_category == category,
                        TravelSearchCache.expires_at > now,
                    )
                )).first()

            if entry is None:
                CACHE_LOOKUPS.labels(category=category, outcome="miss").inc()
                return CacheLookup(hit=False, search_hash=search_hash)

            async with self.engine.begin() as conn:
                await conn.execute(
                    update(TravelSearchCache)
                    .where(TravelSearchCache.id == entry.id)
                    .values(
                        last_accessed=now,
                        access_count=func.coalesce(TravelSearchCache.access_count, 0) + 1,
                    )
                )

            async with self.engine.connect() as conn:
                payloads = (await conn.execute(
                    select(TravelService.service_data_json)
                    .join(TravelSearchResult, TravelSearchResult.service_row_id == TravelService.id)
                    .where(
                        TravelSearchResult.search_params_hash == search_hash,
                        TravelSearchResult.service_category == category,
                        or_(TravelService.cache_expires_at > now, TravelService.trip_id.is_not(None)),
                    )
                    .order_by(TravelService.total_price, TravelService.id)
                )).scalars().all()
        except SQLAlchemyError as e:
            logger.warning("Cache lookup failed", search_hash=search_hash, category=category, error=str(e))
            CACHE_LOOKUPS.labels(category=category, outcome="error").inc()
            return CacheLookup(hit=False, search_hash=search_hash)

        CACHE_LOOKUPS.labels(category=category, outcome="hit").inc()
        needs_refresh = now >= entry.created_at + policy.refresh_after
        logger.debug(
            "Cache hit",
            search_hash=search_hash,
            category=category,
            results=len(payloads),
            needs_refresh=needs_refresh,
        )
        return CacheLookup(
            hit=True,
            results=[json.loads(payload) for payload in payloads],
            needs_refresh=needs_refresh,
            expires_at=entry.expires_at,
            search_hash=search_hash,
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _flatten(
        self,
        item: Mapping[str, Any],
        category: str,
        source: str,
        search_hash: Optional[str],
        owner_id: Optional[int],
        now: datetime,
        expires_at: datetime,
        fallback_start: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = json.dumps(item, sort_keys=True, default=str)
        service_id = item.get("service_id") or item.get("id")
        if service_id is None:
            service_id = hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]

        base_price = float(item.get("base_price", item.get("price", 0)) or 0)
        start_date = (
            item.get("start_date")
            or item.get("check_in")
            or item.get("departure_date")
            or fallback_start
            or ""
        )

        row = {
            "trip_id": owner_id,
            "search_session_id": item.get("search_session_id"),
            "search_params_hash": search_hash,
            "service_id": str(service_id),
            "service_category": category,
            "service_name": item.get("name") or item.get("service_name") or item.get("title") or str(service_id),
            "service_description": item.get("description"),
            "base_price": base_price,
            "total_price": float(item.get("total_price", base_price) or 0),
            "currency": item.get("currency", "USD"),
            "price_unit": item.get("price_unit"),
            "is_available": bool(item.get("is_available", True)),
            "start_date": str(start_date)[:10],
            "end_date": (str(item["end_date"])[:10] if item.get("end_date") else None),
            "source_platform": item.get("source_platform") or source,
            "source_url": item.get("source_url"),
            "booking_url": item.get("booking_url"),
            "service_data_json": payload,
            "created_at": now,
            "updated_at": now,
            "cache_expires_at": DURABLE_EXPIRY if owner_id is not None else expires_at,
        }
        row.update(_location(item))
        row.update(_rating(item))
        return row

    async def _upsert_items(self, conn: AsyncConnection, rows: List[Dict[str, Any]]) -> List[int]:
        """Upsert flattened rows; returns their row ids in input order, without repeats"""
        stmt = sqlite_insert(TravelService)
        owner = func.coalesce(stmt.excluded.trip_id, TravelService.trip_id)
        replaced = {
            column: stmt.excluded[column]
            for column in rows[0]
            if column not in ("service_id", "source_platform", "start_date", "service_category",
                              "trip_id", "search_params_hash", "cache_expires_at")
        }
        stmt = stmt.on_conflict_do_update(
            index_elements=[
                TravelService.service_id,
                TravelService.source_platform,
                TravelService.start_date,
                TravelService.service_category,
            ],
            set_={
                **replaced,
                "trip_id": owner,
                "search_params_hash": func.coalesce(
                    stmt.excluded.search_params_hash, TravelService.search_params_hash
                ),
                "cache_expires_at": case(
                    (owner.is_not(None), literal(DURABLE_EXPIRY, DateTime())),
                    else_=stmt.excluded.cache_expires_at,
                ),
            },
        )
        await conn.execute(stmt, rows)

        keys = [
            (row["service_id"], row["source_platform"], row["start_date"], row["service_category"])
            for row in rows
        ]
        found = await conn.execute(
            select(
                TravelService.id,
                TravelService.service_id,
                TravelService.source_platform,
                TravelService.start_date,
                TravelService.service_category,
            ).where(
                TravelService.service_id.in_(list({key[0] for key in keys})),
                TravelService.service_category.in_(list({key[3] for key in keys})),
            )
        )
        ids = {
            (r.service_id, r.source_platform, r.start_date, r.service_category): r.id
            for r in found
        }
        return [ids[key] for key in dict.fromkeys(keys)]

    async def cache_search_results(
        self,
        search_hash: str,
        category: str,
        params: Mapping[str, Any],
        results: List[Mapping[str, Any]],
        source: str,
        duration_ms: Optional[int] = None,
    ) -> bool:
        """
        Store a search response.

        Runs as one transaction: items are upserted, the query's membership is
        rewritten to exactly this response, unowned items dropped from it and
        no longer in any other query are deleted, and the index row is
        replaced with a fresh expiry.
        """
        policy = self.policy(category)
        now = self.clock()
        expires_at = now + policy.ttl

        try:
            params_json = json.dumps(dict(params), sort_keys=True, default=str)
            fallback_start = params.get("check_in") or params.get("start_date")
            rows = [
                self._flatten(item, category, source, search_hash, None, now, expires_at, fallback_start)
                for item in results
            ]
            membership = (
                (TravelSearchResult.search_params_hash == search_hash)
                & (TravelSearchResult.service_category == category)
            )

            async with self.engine.begin() as conn:
                item_ids = await self._upsert_items(conn, rows) if rows else []

                previous = set((await conn.execute(
                    select(TravelSearchResult.service_row_id).where(membership)
                )).scalars().all())
                await conn.execute(delete(TravelSearchResult).where(membership))
                if item_ids:
                    await conn.execute(
                        sqlite_insert(TravelSearchResult),
                        [
                            {
                                "search_params_hash": search_hash,
                                "service_category": category,
                                "service_row_id": item_id,
                                "created_at": now,
                            }
                            for item_id in item_ids
                        ],
                    )

                superseded = previous.difference(item_ids)
                if superseded:
                    await conn.execute(
                        delete(TravelService).where(
                            TravelService.id.in_(list(superseded)),
                            TravelService.trip_id.is_(None),
                            TravelService.id.not_in(select(TravelSearchResult.service_row_id)),
                        )
                    )

                await conn.execute(
                    sqlite_insert(TravelSearchCache)
                    .prefix_with("OR REPLACE")
                    .values(
                        search_params_hash=search_hash,
                        service_category=category,
                        search_params_json=params_json,
                        result_count=len(rows),
                        search_duration_ms=duration_ms,
                        source_platform=source,
                        created_at=now,
                        expires_at=expires_at,
                        last_accessed=now,
                        access_count=1,
                    )
                )
        except (SQLAlchemyError, TypeError, ValueError) as e:
            logger.warning("Failed to cache search results", search_hash=search_hash, category=category, error=str(e))
            CACHE_WRITES.labels(category=category, status="failed").inc()
            return False

        CACHE_WRITES.labels(category=category, status="ok").inc()
        logger.info(
            "Cached search results",
            search_hash=search_hash,
            category=category,
            results=len(rows),
            superseded=len(superseded),
            expires_at=expires_at.isoformat(),
        )
        return True

    async def cache_item(
        self,
        item: Mapping[str, Any],
        search_hash: Optional[str] = None,
        owner_id: Optional[int] = None,
        source: str = "manual",
    ) -> bool:
        """
        Store one item, optionally attaching it to a trip.

        An owned item expires at DURABLE_EXPIRY. A later unowned write of the
        same item keeps the existing owner. With a search_hash the item joins
        that query's results. An item that cannot be flattened (bad price) is
        logged and skipped.
        """
        category = item.get("category") or item.get("service_category")
        if not category:
            raise ValueError("Item has no category")
        policy = self.policy(category)
        now = self.clock()

        try:
            row = self._flatten(item, category, source, search_hash, owner_id, now, now + policy.ttl)
            async with self.engine.begin() as conn:
                item_ids = await self._upsert_items(conn, [row])
                if search_hash:
                    await conn.execute(
                        sqlite_insert(TravelSearchResult)
                        .values(
                            search_params_hash=search_hash,
                            service_category=category,
                            service_row_id=item_ids[0],
                            created_at=now,
                        )
                        .on_conflict_do_nothing()
                    )
        except (SQLAlchemyError, TypeError, ValueError) as e:
            logger.warning(
                "Failed to cache item",
                service_id=item.get("service_id") or item.get("id"),
                category=category,
                error=str(e),
            )
            CACHE_WRITES.labels(category=category, status="failed").inc()
            return False

        CACHE_WRITES.labels(category=category, status="ok").inc()
        logger.debug("Cached item", service_id=row["service_id"], category=category, owner_id=owner_id)
        return True

    async def get_or_fetch(
        self,
        category: str,
        params: Mapping[str, Any],
        fetch: Callable[[], Awaitable[List[Mapping[str, Any]]]],
        source: str,
    ) -> CacheLookup:
        """
        Serve a search from cache or from the provider.

        On a miss the provider is called and its response cached; hit=False
        in the returned lookup means the results are fresh.
        """
        search_hash = generate_search_hash(category, params)
        lookup = await self.check_cache_hit(search_hash, category)
        if lookup.hit:
            return lookup

        started = time.perf_counter()
        results = await fetch()
        duration_ms = int((time.perf_counter() - started) * 1000)
        await self.cache_search_results(search_hash, category, params, results, source, duration_ms)
        return CacheLookup(hit=False, results=[dict(r) for r in results], search_hash=search_hash)

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    async def invalidate(self, criteria: Optional[InvalidationCriteria] = None, **filters: Any) -> int:
        """
        Delete unowned items matching every given filter.

        Index rows of every query the items belonged to go too, so the next
        lookup misses instead of returning a partial result set. Returns the
        item count. A category without a cache policy is rejected with
        UnknownCategoryError rather than matching nothing.
        """
        criteria = criteria or InvalidationCriteria(**filters)
        if criteria.is_empty():
            raise ValueError("Invalidation requires at least one criterion")

        conditions = [TravelService.trip_id.is_(None)]
        if criteria.category:
            self.policy(criteria.category)
            conditions.append(TravelService.service_category == criteria.category)
        if criteria.source_platform:
            conditions.append(TravelService.source_platform == criteria.source_platform)
        if criteria.location:
            pattern = f"%{criteria.location}%"
            conditions.append(or_(
                TravelService.location_city.ilike(pattern),
                TravelService.location_state.ilike(pattern),
                TravelService.location_country.ilike(pattern),
            ))
        if criteria.older_than:
            conditions.append(TravelService.created_at < criteria.older_than)

        async with self.engine.begin() as conn:
            affected = (await conn.execute(
                select(TravelSearchResult.search_params_hash, TravelSearchResult.service_category)
                .join(TravelService, TravelService.id == TravelSearchResult.service_row_id)
                .where(*conditions)
                .distinct()
            )).all()

            # Membership rows cascade with their items
            removed = (await conn.execute(delete(TravelService).where(*conditions))).rowcount

            for search_hash, category in affected:
                await conn.execute(
                    delete(TravelSearchCache).where(
                        TravelSearchCache.search_params_hash == search_hash,
                        TravelSearchCache.service_category == category,
                    )
                )

        logger.info(
            "Cache invalidated",
            items=removed,
            queries=len(affected),
            category=criteria.category,
            source_platform=criteria.source_platform,
            location=criteria.location,
        )
        return removed

    async def sweep_expired(self) -> SweepResult:
        """Delete expired index rows and expired unowned items"""
        now = self.clock()
        async with self.engine.begin() as conn:
            index_removed = (await conn.execute(
                delete(TravelSearchCache).where(TravelSearchCache.expires_at <= now)
            )).rowcount
            items_removed = (await conn.execute(
                delete(TravelService).where(
                    TravelService.trip_id.is_(None),
                    TravelService.cache_expires_at <= now,
                )
            )).rowcount

        result = SweepResult(index_removed=index_removed, items_removed=items_removed)
        logger.info("Cache sweep complete", **result.to_dict())
        return result

    async def stats(self) -> Dict[str, Any]:
        now = self.clock()
        live = case((TravelSearchCache.expires_at > now, 1), else_=0)
        async with self.engine.connect() as conn:
            per_category = (await conn.execute(
                select(
                    TravelSearchCache.service_category,
                    func.count(TravelSearchCache.id),
                    func.sum(live),
                    func.sum(TravelSearchCache.access_count),
                ).group_by(TravelSearchCache.service_category)
            )).all()
            total_items, owned_items = (await conn.execute(
                select(func.count(TravelService.id), func.count(TravelService.trip_id))
            )).one()

        categories = {
            category: {
                "entries": entries,
                "live": int(live_count or 0),
                "expired": entries - int(live_count or 0),
                "total_hits": int(hits or 0),
            }
            for category, entries, live_count, hits in per_category
        }
        return {
            "categories": categories,
            "entries": sum(c["entries"] for c in categories.values()),
            "items": {"total": total_items, "owned": owned_items},
        }

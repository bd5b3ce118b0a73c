"""
Prefect Workflow Orchestration - Store Maintenance

Scheduled upkeep of the travel data store:
- Search cache sweep of expired entries and unowned items
- Purge of dirty-queue rows nobody consumed within the retention window
- Drain of the dirty-queue into trip_facts

These flows are the primary reclamation path; the insert-sampled cleanup
trigger installed by the migrations only backs them up.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from prefect import flow, get_run_logger, task

from src.cache import CacheManager
from src.config import get_settings
from src.database.connection import build_engine
from src.facts import DirtyQueue, TripFactsManager
from src.migrations import apply_migrations

settings = get_settings()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="apply_schema_migrations",
    description="Bring the store schema up to date",
)
async def apply_schema_migrations(database_url: Optional[str] = None) -> list:
    logger = get_run_logger()
    engine = build_engine(database_url)
    try:
        applied = await apply_migrations(engine)
    finally:
        await engine.dispose()
    logger.info(f"Migrations applied: {applied or 'none'}")
    return applied


@task(
    name="sweep_search_cache",
    description="Delete expired cache index rows and unowned items",
    retries=2,
    retry_delay_seconds=30,
)
async def sweep_search_cache(database_url: Optional[str] = None) -> dict:
    logger = get_run_logger()
    engine = build_engine(database_url)
    try:
        result = await CacheManager(engine).sweep_expired()
    finally:
        await engine.dispose()
    logger.info(
        f"Cache sweep: {result.index_removed} index rows, {result.items_removed} items removed"
    )
    return result.to_dict()


@task(
    name="purge_dirty_queue",
    description="Drop dirty-queue rows older than the retention window",
    retries=2,
    retry_delay_seconds=30,
)
async def purge_dirty_queue(
    database_url: Optional[str] = None,
    retention_days: Optional[int] = None,
) -> int:
    logger = get_run_logger()
    retention_days = retention_days or settings.cache.dirty_retention_days
    cutoff = _utcnow() - timedelta(days=retention_days)

    engine = build_engine(database_url)
    try:
        purged = await DirtyQueue(engine).purge_older_than(cutoff)
    finally:
        await engine.dispose()
    if purged:
        logger.warning(f"Purged {purged} dirty rows older than {retention_days} days")
    return purged


@task(
    name="drain_dirty_queue",
    description="Recompute trip facts for dirty trips",
    retries=1,
    retry_delay_seconds=60,
)
async def drain_dirty_queue(
    database_url: Optional[str] = None,
    limit: Optional[int] = None,
) -> dict:
    logger = get_run_logger()
    engine = build_engine(database_url)
    try:
        result = await TripFactsManager(engine).refresh_dirty(limit)
    finally:
        await engine.dispose()

    logger.info(
        f"Facts drain: {result.refreshed} refreshed, {result.removed} removed, "
        f"{result.failed} failed"
    )
    for error in result.errors:
        logger.error(error)
    return {
        "refreshed": result.refreshed,
        "removed": result.removed,
        "consumed_entries": result.consumed_entries,
        "errors": result.errors,
    }


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="cache_maintenance",
    description="Sweep the search cache and purge stale dirty-queue rows",
)
async def cache_maintenance(database_url: Optional[str] = None) -> dict:
    """
    Periodic store maintenance.

    Steps:
    1. Sweep expired search cache entries
    2. Purge dirty-queue rows past retention
    """
    logger = get_run_logger()
    logger.info("Starting cache maintenance")

    sweep = await sweep_search_cache(database_url)
    purged = await purge_dirty_queue(database_url)

    return {
        "run_at": _utcnow().isoformat(),
        "sweep": sweep,
        "dirty_purged": purged,
        "status": "success",
    }


@flow(
    name="refresh_trip_facts",
    description="Drain the dirty-queue into trip_facts",
)
async def refresh_trip_facts_flow(
    database_url: Optional[str] = None,
    limit: Optional[int] = None,
    migrate_first: bool = False,
) -> dict:
    """
    Recompute facts for every trip with queued dirty signals.

    Trips whose recompute fails keep their signals and are retried on the
    next run; the flow reports them but does not fail.
    """
    if migrate_first:
        await apply_schema_migrations(database_url)
    return await drain_dirty_queue(database_url, limit)


# =============================================================================
# DEPLOYMENT CONFIGURATION
# =============================================================================

if __name__ == "__main__":
    import asyncio

    asyncio.run(cache_maintenance())

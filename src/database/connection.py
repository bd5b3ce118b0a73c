"""
Database Connection Management

Async SQLAlchemy 2.0 engine for the relational store.

The store is treated as executing one statement per round trip: every
helper in this module that writes opens its own short transaction, so each
statement commits independently and nothing relies on multi-statement
rollback.
"""

from typing import Any, Dict, List, Mapping, Optional

import structlog
from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from src.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()

# Global engine
_engine: Optional[AsyncEngine] = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: Optional[str] = None, echo: Optional[bool] = None) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    SQLite connections get foreign key enforcement switched on, and the parent
    directory of a file database is created when missing.

    Args:
        url: Database URL, defaults to the configured one
        echo: Echo SQL statements, defaults to the configured flag

    Returns:
        AsyncEngine: A new, unshared engine
    """
    url = url or settings.database.url
    echo = settings.database.echo if echo is None else echo

    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:"):
        from pathlib import Path
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(url, echo=echo, future=True)

    if parsed.get_backend_name() == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    return engine


async def init_database(url: Optional[str] = None) -> AsyncEngine:
    """
    Initialize the process-wide database engine.

    Returns:
        AsyncEngine: The initialized database engine
    """
    global _engine

    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine

    _engine = build_engine(url)

    # Verify connection
    try:
        async with _engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info(
            "Database connection established",
            url=_engine.url.render_as_string(hide_password=True),
        )
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        raise

    return _engine


async def close_database() -> None:
    """
    Close the database connection pool.
    """
    global _engine

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        logger.info("Database connection pool closed")


def get_engine() -> AsyncEngine:
    """
    Get the database engine.

    Raises:
        RuntimeError: If database is not initialized
    """
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _engine


async def execute_statement(
    engine: AsyncEngine,
    statement: str,
    params: Optional[Mapping[str, Any]] = None,
) -> int:
    """
    Execute a single raw statement in its own round trip.

    The statement is passed to the driver untouched (no bind-parameter
    parsing), so trigger bodies and literal colons survive as written.

    Returns:
        int: Rows affected as reported by the driver
    """
    async with engine.begin() as conn:
        if params:
            result = await conn.execute(text(statement), dict(params))
        else:
            result = await conn.exec_driver_sql(statement)
        return result.rowcount


async def fetch_all(
    engine: AsyncEngine,
    query: str,
    params: Optional[Mapping[str, Any]] = None,
) -> List[Dict[str, Any]]:
    """Run a read query and return its rows as dictionaries."""
    async with engine.connect() as conn:
        result = await conn.execute(text(query), dict(params or {}))
        return [dict(row._mapping) for row in result]


async def table_exists(engine: AsyncEngine, name: str) -> bool:
    """Check the SQLite catalog for a table."""
    rows = await fetch_all(
        engine,
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = :name",
        {"name": name},
    )
    return bool(rows)


async def check_database_health(engine: Optional[AsyncEngine] = None) -> dict:
    """
    Check database health status.

    Returns:
        dict: Health status with latency information
    """
    import time

    try:
        engine = engine or get_engine()
        start = time.perf_counter()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        latency_ms = (time.perf_counter() - start) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
        }

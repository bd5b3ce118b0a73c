"""
Migration Runner

Applies the registry's pending migrations against the store, one statement
per round trip:

- Bookkeeping table created on demand
- Pending set computed in registry order
- Fail fast: the first failing statement aborts the run
- A migration is recorded only after all of its statements succeeded

There is no transactional rollback to lean on. A run that died midway is
retried from the first statement of the failed migration, so schema
statements are written with IF NOT EXISTS and duplicate ADD COLUMN errors
are tolerated. Concurrent runners are not serialized; one deploy pipeline
invokes apply_pending() at a time.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

import structlog
from prometheus_client import Counter
from sqlalchemy import insert, select
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from src.config import get_settings
from src.database.connection import execute_statement
from src.database.models import SchemaMigration
from .registry import Migration, MigrationRegistry, default_registry
from .splitter import split_statements

logger = structlog.get_logger(__name__)
settings = get_settings()


# =============================================================================
# METRICS
# =============================================================================

MIGRATIONS_APPLIED = Counter(
    "travel_migrations_applied_total",
    "Total number of migrations applied",
)

MIGRATION_FAILURES = Counter(
    "travel_migration_failures_total",
    "Total number of migrations that failed to apply",
    ["migration"],
)


BOOKKEEPING_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT UNIQUE NOT NULL,
  applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
)
"""


class MigrationError(RuntimeError):
    """A migration statement failed or the bookkeeping table could not be read"""

    def __init__(
        self,
        migration: Optional[str],
        statement: Optional[str] = None,
        cause: Optional[BaseException] = None,
        preview_chars: int = 100,
    ):
        self.migration = migration
        self.statement = statement
        self.cause = cause
        self.statement_preview = _preview(statement, preview_chars) if statement else None

        if statement is not None:
            message = f"Migration {migration} failed at statement: {self.statement_preview}"
        else:
            message = f"Migration bookkeeping failed: {migration}"
        if cause is not None:
            message = f"{message} ({cause})"
        super().__init__(message)


@dataclass
class MigrationStatus:
    """Applied state of one registry entry"""
    name: str
    position: int
    applied: bool
    applied_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "position": self.position,
            "applied": self.applied,
            "applied_at": self.applied_at.isoformat() if self.applied_at else None,
        }


def _preview(statement: str, limit: int) -> str:
    return " ".join(statement.split())[:limit]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _is_duplicate_column(statement: str, error: SQLAlchemyError) -> bool:
    """ALTER TABLE ... ADD COLUMN against a column that already exists"""
    normalized = " ".join(statement.upper().split())
    if not normalized.startswith("ALTER TABLE") or " ADD " not in normalized:
        return False
    return "duplicate column name" in str(getattr(error, "orig", error)).lower()


def _is_missing_table(error: SQLAlchemyError) -> bool:
    return "no such table" in str(getattr(error, "orig", error)).lower()


class MigrationRunner:
    """
    Tracks and applies migrations from a registry.

    Example:
        runner = MigrationRunner(engine, default_registry())
        applied = await runner.apply_pending()
    """

    def __init__(
        self,
        engine: AsyncEngine,
        registry: MigrationRegistry,
        preview_chars: Optional[int] = None,
    ):
        self.engine = engine
        self.registry = registry
        self.preview_chars = preview_chars or settings.database.statement_preview_chars

    async def ensure_bookkeeping(self) -> None:
        """Create the applied-migrations table if it does not exist"""
        await execute_statement(self.engine, BOOKKEEPING_DDL)

    async def _applied_rows(self) -> Dict[str, Optional[datetime]]:
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(
                    select(SchemaMigration.name, SchemaMigration.applied_at)
                )
                return {row.name: row.applied_at for row in result}
        except OperationalError as e:
            if _is_missing_table(e):
                logger.info("Migration bookkeeping table not found, nothing applied yet")
                return {}
            raise MigrationError("schema_migrations unreadable", cause=e) from e
        except DBAPIError as e:
            raise MigrationError("schema_migrations unreadable", cause=e) from e

    async def list_applied(self) -> Set[str]:
        """
        Names of already-applied migrations.

        A missing bookkeeping table reads as an empty set. Any other read
        failure raises MigrationError.
        """
        return set(await self._applied_rows())

    async def pending(self) -> List[Migration]:
        """Registry entries not yet applied, in apply order"""
        applied = await self.list_applied()
        return [m for m in self.registry if m.name not in applied]

    async def status(self) -> List[MigrationStatus]:
        """Applied state of every registry entry"""
        rows = await self._applied_rows()
        return [
            MigrationStatus(
                name=m.name,
                position=position,
                applied=m.name in rows,
                applied_at=rows.get(m.name),
            )
            for position, m in enumerate(self.registry)
        ]

    async def _apply_one(self, migration: Migration) -> None:
        statements = split_statements(migration.sql)
        if not statements:
            logger.warning("Migration contains no statements", migration=migration.name)

        for index, statement in enumerate(statements, start=1):
            logger.debug(
                "Executing migration statement",
                migration=migration.name,
                index=index,
                total=len(statements),
                statement=_preview(statement, self.preview_chars),
            )
            try:
                await execute_statement(self.engine, statement)
            except SQLAlchemyError as e:
                if _is_duplicate_column(statement, e):
                    logger.info(
                        "Column already present, skipping statement",
                        migration=migration.name,
                        statement=_preview(statement, self.preview_chars),
                    )
                    continue
                MIGRATION_FAILURES.labels(migration=migration.name).inc()
                logger.error(
                    "Migration statement failed",
                    migration=migration.name,
                    index=index,
                    statement=_preview(statement, self.preview_chars),
                    error=str(getattr(e, "orig", e)),
                )
                raise MigrationError(
                    migration.name,
                    statement,
                    getattr(e, "orig", e),
                    preview_chars=self.preview_chars,
                ) from e

        async with self.engine.begin() as conn:
            await conn.execute(
                insert(SchemaMigration).values(name=migration.name, applied_at=_utcnow())
            )

    async def apply_pending(self) -> List[str]:
        """
        Apply every pending migration in registry order.

        Returns:
            Names applied by this call, empty when already up to date

        Raises:
            MigrationError: on the first failing statement; the failing
                migration is not recorded and later ones are not attempted
        """
        await self.ensure_bookkeeping()
        applied = await self.list_applied()

        logger.info(
            "Checking migrations",
            applied=len(applied),
            available=len(self.registry),
        )

        did: List[str] = []
        for migration in self.registry:
            if migration.name in applied:
                continue

            logger.info("Applying migration", migration=migration.name)
            await self._apply_one(migration)
            MIGRATIONS_APPLIED.inc()
            did.append(migration.name)
            logger.info("Applied migration", migration=migration.name)

        if not did:
            logger.info("Schema up to date")
        return did


async def apply_migrations(
    engine: AsyncEngine,
    registry: Optional[MigrationRegistry] = None,
) -> List[str]:
    """Apply all pending migrations of the packaged catalog (or the given one)"""
    runner = MigrationRunner(engine, registry or default_registry())
    return await runner.apply_pending()

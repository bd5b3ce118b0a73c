"""
Migration Registry

An ordered, immutable catalog of named migrations. Registration order is
the apply order; the numeric prefixes in names are for humans only.

Published entries must never be edited or reordered: stores that already
applied a migration only remember its name.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)


class DuplicateMigrationError(ValueError):
    """Raised when two catalog entries share a name"""


@dataclass(frozen=True)
class Migration:
    """A named block of schema-definition text"""
    name: str
    sql: str
    description: Optional[str] = None


class MigrationRegistry:
    """
    Immutable ordered collection of migrations.

    Constructed once at startup and passed explicitly to the runner.

    Example:
        registry = MigrationRegistry([
            Migration("001_init", "CREATE TABLE IF NOT EXISTS t (id INTEGER);"),
        ])
        runner = MigrationRunner(engine, registry)
    """

    def __init__(self, migrations: Iterable[Migration]):
        entries: Tuple[Migration, ...] = tuple(migrations)
        seen = set()
        for migration in entries:
            if not migration.name:
                raise ValueError("Migration name must not be empty")
            if migration.name in seen:
                raise DuplicateMigrationError(f"Duplicate migration name: {migration.name}")
            seen.add(migration.name)
        self._migrations = entries

    def __iter__(self) -> Iterator[Migration]:
        return iter(self._migrations)

    def __len__(self) -> int:
        return len(self._migrations)

    def __contains__(self, name: object) -> bool:
        return any(m.name == name for m in self._migrations)

    @property
    def names(self) -> List[str]:
        """Migration names in apply order"""
        return [m.name for m in self._migrations]

    def get(self, name: str) -> Migration:
        for migration in self._migrations:
            if migration.name == name:
                return migration
        raise KeyError(name)

    def position(self, name: str) -> int:
        """Zero-based apply position of a migration"""
        return self.names.index(name)

    def extended(self, *migrations: Migration) -> "MigrationRegistry":
        """Return a new registry with entries appended after the existing ones"""
        return MigrationRegistry(self._migrations + tuple(migrations))


def default_registry() -> MigrationRegistry:
    """Build the packaged migration catalog"""
    from src.migrations.versions import CATALOG

    registry = MigrationRegistry(CATALOG)
    logger.debug("Migration registry built", migrations=len(registry))
    return registry

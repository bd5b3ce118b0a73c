"""
Schema Migrations Module

Ordered, named migrations applied exactly once per store.
"""
from .registry import DuplicateMigrationError, Migration, MigrationRegistry, default_registry
from .runner import MigrationError, MigrationRunner, MigrationStatus, apply_migrations
from .splitter import split_statements

__all__ = [
    "DuplicateMigrationError",
    "Migration",
    "MigrationRegistry",
    "default_registry",
    "MigrationError",
    "MigrationRunner",
    "MigrationStatus",
    "apply_migrations",
    "split_statements",
]

"""
Unit Tests - Migration Registry
"""
import pytest

from src.migrations import DuplicateMigrationError, Migration, MigrationRegistry, default_registry


def _migration(name: str) -> Migration:
    return Migration(name, f"CREATE TABLE IF NOT EXISTS t_{name} (id INTEGER);")


class TestMigrationRegistry:
    """Tests for MigrationRegistry"""

    def test_preserves_registration_order(self):
        registry = MigrationRegistry([_migration("010_b"), _migration("002_a")])

        assert registry.names == ["010_b", "002_a"]
        assert registry.position("002_a") == 1
        assert len(registry) == 2

    def test_rejects_duplicate_names(self):
        with pytest.raises(DuplicateMigrationError):
            MigrationRegistry([_migration("001"), _migration("001")])

    def test_rejects_empty_name(self):
        with pytest.raises(ValueError):
            MigrationRegistry([_migration("")])

    def test_lookup(self):
        registry = MigrationRegistry([_migration("001")])

        assert "001" in registry
        assert "002" not in registry
        assert registry.get("001").name == "001"
        with pytest.raises(KeyError):
            registry.get("002")

    def test_extended_returns_new_registry(self):
        registry = MigrationRegistry([_migration("001")])

        longer = registry.extended(_migration("002"))

        assert registry.names == ["001"]
        assert longer.names == ["001", "002"]

    def test_extended_rejects_duplicates(self):
        registry = MigrationRegistry([_migration("001")])

        with pytest.raises(DuplicateMigrationError):
            registry.extended(_migration("001"))


class TestDefaultRegistry:
    def test_packaged_catalog_order(self):
        assert default_registry().names == [
            "001_core_trip_tables",
            "002_trip_facts_system",
            "003_enhanced_trip_structure",
            "004_travel_services_core",
            "005_travel_services_triggers",
            "006_trip_facts_travelers",
            "007_travel_search_results",
        ]

    def test_every_entry_has_sql(self):
        for migration in default_registry():
            assert migration.sql.strip()

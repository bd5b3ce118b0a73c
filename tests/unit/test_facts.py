"""
Unit Tests - Trip Facts Recompute
"""
import pytest

from src.cache import CacheManager
from src.database.connection import execute_statement
from src.facts import DirtyQueue, TripFactsManager, derive_name_from_email


@pytest.fixture
async def seeded_trip(migrated_engine, create_trip, insert_row):
    """Trip 1 with days, activities, a leg, travelers and an owned hotel"""
    engine = migrated_engine
    await insert_row(engine, "clients", {"email": "owner@example.com", "full_name": "Olivia Owner"})
    await insert_row(engine, "clients", {"email": "jane.doe@example.com", "full_name": None})
    await create_trip(engine, 1, "owner@example.com", "2030-05-01", "2030-05-05")

    for day in (1, 2, 3):
        await insert_row(engine, "trip_days", {"trip_id": 1, "day_number": day})

    await insert_row(engine, "trip_activities", {"trip_id": 1, "activity_type": "hotel", "cost": 200.0})
    await insert_row(engine, "trip_activities", {"trip_id": 1, "activity_type": "tour", "cost": 50.5})
    await insert_row(engine, "trip_activities", {"trip_id": 1, "activity_type": "meal", "cost": None})

    await insert_row(engine, "trip_legs", {
        "trip_id": 1,
        "leg_order": 1,
        "depart_datetime": "2030-05-01 08:00:00",
        "arrive_datetime": "2030-05-01 10:30:00",
    })

    await insert_row(engine, "trip_client_assignments", {"trip_id": 1, "client_email": "jane.doe@example.com"})
    await insert_row(engine, "trip_client_assignments", {"trip_id": 1, "client_email": "owner@example.com"})

    await CacheManager(engine).cache_item(
        {
            "id": "hotel-1",
            "category": "hotel",
            "name": "Harbor Hotel",
            "price": 300.0,
            "start_date": "2030-05-01",
            "location": {"city": "Lisbon", "country": "Portugal"},
        },
        owner_id=1,
    )
    return engine


class TestCompute:
    async def test_aggregates(self, seeded_trip):
        summary = await TripFactsManager(seeded_trip).compute(1)

        assert summary.total_nights == 3
        assert summary.total_activities == 3
        assert summary.total_hotels == 2
        assert summary.total_cost == 550.5
        assert summary.transit_minutes == 150

    async def test_travelers(self, seeded_trip):
        summary = await TripFactsManager(seeded_trip).compute(1)

        assert summary.traveler_count == 2
        assert summary.traveler_emails == ["jane.doe@example.com", "owner@example.com"]
        assert summary.traveler_names == ["Jane Doe", "Olivia Owner"]
        assert summary.primary_client_name == "Olivia Owner"

    async def test_nights_fall_back_to_trip_dates(self, migrated_engine, create_trip):
        await create_trip(migrated_engine, 2, None, "2030-01-01", "2030-01-04")

        summary = await TripFactsManager(migrated_engine).compute(2)

        assert summary.total_nights == 3
        assert summary.traveler_count == 0

    async def test_missing_trip(self, migrated_engine):
        assert await TripFactsManager(migrated_engine).compute(99) is None


class TestRefresh:
    async def test_refresh_dirty_writes_facts_and_drains(self, seeded_trip):
        manager = TripFactsManager(seeded_trip)

        result = await manager.refresh_dirty()
        facts = await manager.get_facts(1)

        assert result.refreshed == 1
        assert result.failed == 0
        assert result.consumed_entries >= 10
        assert await DirtyQueue(seeded_trip).count() == 0
        assert facts["total_cost"] == 550.5
        assert facts["traveler_names"] == ["Jane Doe", "Olivia Owner"]
        assert facts["version"] == 1
        assert facts["last_computed"]

    async def test_recompute_is_idempotent(self, seeded_trip):
        manager = TripFactsManager(seeded_trip)

        first = await manager.refresh_trip_facts(1)
        second = await manager.refresh_trip_facts(1)
        facts = await manager.get_facts(1)

        assert first == second
        assert facts["version"] == 2

    async def test_later_write_is_picked_up(self, seeded_trip, insert_row):
        manager = TripFactsManager(seeded_trip)
        await manager.refresh_dirty()

        await insert_row(seeded_trip, "trip_activities", {"trip_id": 1, "activity_type": "tour", "cost": 10})
        assert await DirtyQueue(seeded_trip).pending_subjects() == [1]

        await manager.refresh_dirty()
        facts = await manager.get_facts(1)

        assert facts["total_activities"] == 4
        assert facts["total_cost"] == 560.5

    async def test_deleted_trip_loses_facts(self, seeded_trip):
        manager = TripFactsManager(seeded_trip)
        await manager.refresh_dirty()

        await execute_statement(seeded_trip, "DELETE FROM trips WHERE trip_id = 1")
        result = await manager.refresh_dirty()

        assert result.removed == 1
        assert await manager.get_facts(1) is None
        assert await DirtyQueue(seeded_trip).count(1) == 0

    async def test_get_facts_missing(self, migrated_engine):
        assert await TripFactsManager(migrated_engine).get_facts(5) is None


class TestDeriveName:
    def test_dotted_local_part(self):
        assert derive_name_from_email("jane.doe@example.com") == "Jane Doe"

    def test_underscores_and_dashes(self):
        assert derive_name_from_email("JOHN_mc-coy@example.com") == "John Mc Coy"

    def test_empty(self):
        assert derive_name_from_email(None) is None
        assert derive_name_from_email("") is None

"""
Unit Tests - Search Cache Manager
"""
from datetime import datetime

import pytest

from src.cache import DURABLE_EXPIRY, CacheManager, InvalidationCriteria, generate_search_hash
from src.database.connection import execute_statement, fetch_all

HOTEL_PARAMS = {"destination": "Lisbon", "check_in": "2030-06-01", "check_out": "2030-06-04", "adults": 2}
FLIGHT_PARAMS = {"origin": "JFK", "destination": "LIS", "departure_date": "2030-06-01"}

HOTELS = [
    {"id": "h-2", "name": "Alfama Suites", "price": 180.0, "location": {"city": "Lisbon", "country": "Portugal"}},
    {"id": "h-1", "name": "Harbor Hotel", "price": 120.0, "location": {"city": "Lisbon", "country": "Portugal"}},
]
FLIGHTS = [
    {"id": "f-1", "name": "TP 202", "price": 540.0, "departure_date": "2030-06-01", "location": "Lisbon"},
]


@pytest.fixture
def cache(migrated_engine, clock) -> CacheManager:
    return CacheManager(migrated_engine, clock=clock)


async def _store_hotels(cache, params=HOTEL_PARAMS, results=HOTELS, source="test"):
    search_hash = generate_search_hash("hotel", params)
    assert await cache.cache_search_results(search_hash, "hotel", params, results, source, duration_ms=42)
    return search_hash


class TestLookup:
    async def test_miss_on_empty_cache(self, cache):
        lookup = await cache.check_cache_hit("0" * 16, "hotel")

        assert not lookup.hit
        assert lookup.results == []

    async def test_hit_returns_items_by_price(self, cache):
        search_hash = await _store_hotels(cache)

        lookup = await cache.check_cache_hit(search_hash, "hotel")

        assert lookup.hit
        assert not lookup.needs_refresh
        assert [r["id"] for r in lookup.results] == ["h-1", "h-2"]
        assert lookup.results[0] == HOTELS[1]
        assert lookup.expires_at == datetime(2030, 1, 2, 12, 0, 0)

    async def test_hit_counts_access(self, cache, migrated_engine, clock):
        search_hash = await _store_hotels(cache)
        clock.advance(minutes=5)

        await cache.check_cache_hit(search_hash, "hotel")
        await cache.check_cache_hit(search_hash, "hotel")
        rows = await fetch_all(migrated_engine, "SELECT access_count, last_accessed FROM travel_search_cache")

        assert rows[0]["access_count"] == 3
        assert rows[0]["last_accessed"].startswith("2030-01-01 12:05:00")

    async def test_needs_refresh_inside_threshold(self, cache, clock):
        search_hash = await _store_hotels(cache)

        clock.advance(hours=19, minutes=59)
        assert not (await cache.check_cache_hit(search_hash, "hotel")).needs_refresh

        clock.advance(minutes=1)
        lookup = await cache.check_cache_hit(search_hash, "hotel")
        assert lookup.hit
        assert lookup.needs_refresh

    async def test_miss_after_ttl(self, cache, clock):
        search_hash = await _store_hotels(cache)

        clock.advance(hours=24, minutes=1)

        assert not (await cache.check_cache_hit(search_hash, "hotel")).hit

    async def test_flight_policy(self, cache, clock):
        search_hash = generate_search_hash("flight", FLIGHT_PARAMS)
        await cache.cache_search_results(search_hash, "flight", FLIGHT_PARAMS, FLIGHTS, "test")

        clock.advance(hours=1, minutes=31)
        assert (await cache.check_cache_hit(search_hash, "flight")).needs_refresh

        clock.advance(minutes=30)
        assert not (await cache.check_cache_hit(search_hash, "flight")).hit

    async def test_category_scoped(self, cache):
        search_hash = await _store_hotels(cache)

        assert not (await cache.check_cache_hit(search_hash, "package")).hit

    async def test_store_failure_degrades_to_miss(self, engine, clock):
        unmigrated = CacheManager(engine, clock=clock)

        assert not (await unmigrated.check_cache_hit("0" * 16, "hotel")).hit
        assert await unmigrated.cache_search_results("0" * 16, "hotel", HOTEL_PARAMS, HOTELS, "test") is False


class TestWrites:
    async def test_refresh_replaces_index_row(self, cache, migrated_engine, clock):
        search_hash = await _store_hotels(cache)
        clock.advance(hours=21)
        await _store_hotels(cache)

        rows = await fetch_all(migrated_engine, "SELECT COUNT(*) AS n FROM travel_search_cache")
        lookup = await cache.check_cache_hit(search_hash, "hotel")

        assert rows[0]["n"] == 1
        assert not lookup.needs_refresh
        assert lookup.expires_at == datetime(2030, 1, 3, 9, 0, 0)

    async def test_refresh_drops_items_missing_from_new_response(self, cache, migrated_engine, clock):
        search_hash = await _store_hotels(cache)
        clock.advance(hours=21)
        await _store_hotels(cache, results=[HOTELS[1]])
        clock.advance(hours=4)

        lookup = await cache.check_cache_hit(search_hash, "hotel")
        rows = await fetch_all(migrated_engine, "SELECT service_id FROM travel_services")

        assert lookup.hit
        assert [r["id"] for r in lookup.results] == ["h-1"]
        assert [r["service_id"] for r in rows] == ["h-1"]

    async def test_expired_item_hidden_behind_live_entry(self, cache, migrated_engine):
        search_hash = await _store_hotels(cache)
        await execute_statement(
            migrated_engine,
            "UPDATE travel_services SET cache_expires_at = '2000-01-01 00:00:00.000000' WHERE service_id = 'h-2'",
        )

        lookup = await cache.check_cache_hit(search_hash, "hotel")

        assert lookup.hit
        assert [r["id"] for r in lookup.results] == ["h-1"]

    async def test_item_shared_between_queries(self, cache, migrated_engine):
        first = await _store_hotels(cache)
        second = await _store_hotels(cache, {**HOTEL_PARAMS, "adults": 1}, [HOTELS[1]])

        first_lookup = await cache.check_cache_hit(first, "hotel")
        second_lookup = await cache.check_cache_hit(second, "hotel")
        rows = await fetch_all(migrated_engine, "SELECT COUNT(*) AS n FROM travel_services")

        assert first != second
        assert [r["id"] for r in first_lookup.results] == ["h-1", "h-2"]
        assert [r["id"] for r in second_lookup.results] == ["h-1"]
        assert rows[0]["n"] == 2

    async def test_refresh_keeps_item_another_query_returns(self, cache, clock):
        first = await _store_hotels(cache)
        second = await _store_hotels(cache, {**HOTEL_PARAMS, "adults": 1}, [HOTELS[0]])
        clock.advance(hours=1)

        await _store_hotels(cache, results=[HOTELS[1]])

        assert [r["id"] for r in (await cache.check_cache_hit(first, "hotel")).results] == ["h-1"]
        assert [r["id"] for r in (await cache.check_cache_hit(second, "hotel")).results] == ["h-2"]

    async def test_items_upserted_not_duplicated(self, cache, migrated_engine):
        await _store_hotels(cache)
        await _store_hotels(cache)

        rows = await fetch_all(migrated_engine, "SELECT COUNT(*) AS n FROM travel_services")

        assert rows[0]["n"] == 2

    async def test_flattened_columns(self, cache, migrated_engine):
        await _store_hotels(cache)

        rows = await fetch_all(
            migrated_engine,
            "SELECT service_name, total_price, start_date, location_city, location_country "
            "FROM travel_services WHERE service_id = 'h-1'",
        )

        assert rows == [{
            "service_name": "Harbor Hotel",
            "total_price": 120.0,
            "start_date": "2030-06-01",
            "location_city": "Lisbon",
            "location_country": "Portugal",
        }]

    async def test_cache_item_requires_category(self, cache):
        with pytest.raises(ValueError):
            await cache.cache_item({"id": "x", "name": "No category", "price": 1})

    async def test_cache_item_with_bad_price_is_skipped(self, cache, migrated_engine):
        item = {"id": "x", "category": "hotel", "name": "Unpriced", "price": "N/A"}

        assert await cache.cache_item(item) is False
        rows = await fetch_all(migrated_engine, "SELECT COUNT(*) AS n FROM travel_services")
        assert rows[0]["n"] == 0

    async def test_bad_price_in_response_skips_write(self, cache):
        search_hash = generate_search_hash("hotel", HOTEL_PARAMS)
        results = [*HOTELS, {"id": "h-3", "name": "Unpriced", "price": "N/A"}]

        assert await cache.cache_search_results(search_hash, "hotel", HOTEL_PARAMS, results, "test") is False
        assert not (await cache.check_cache_hit(search_hash, "hotel")).hit

    async def test_cache_item_joins_query(self, cache):
        search_hash = await _store_hotels(cache)
        extra = {"id": "h-3", "category": "hotel", "name": "Rossio Rooms", "price": 95.0, "start_date": "2030-06-01"}

        assert await cache.cache_item(extra, search_hash=search_hash, source="test")
        lookup = await cache.check_cache_hit(search_hash, "hotel")

        assert [r["id"] for r in lookup.results] == ["h-3", "h-1", "h-2"]

    async def test_get_or_fetch(self, cache):
        calls = []

        async def fetch():
            calls.append(1)
            return HOTELS

        first = await cache.get_or_fetch("hotel", HOTEL_PARAMS, fetch, "test")
        second = await cache.get_or_fetch("hotel", HOTEL_PARAMS, fetch, "test")

        assert not first.hit
        assert second.hit
        assert len(calls) == 1
        assert len(second.results) == 2


class TestOwnership:
    async def _owned_hotel(self, cache, create_trip, migrated_engine):
        await create_trip(migrated_engine, 1)
        item = {**HOTELS[1], "category": "hotel", "start_date": "2030-06-01", "source_platform": "test"}
        assert await cache.cache_item(item, owner_id=1)
        return item

    async def test_owned_item_gets_durable_expiry(self, cache, create_trip, migrated_engine):
        await self._owned_hotel(cache, create_trip, migrated_engine)

        rows = await fetch_all(migrated_engine, "SELECT trip_id, cache_expires_at FROM travel_services")

        assert rows[0]["trip_id"] == 1
        assert rows[0]["cache_expires_at"].startswith("9999-12-31")

    async def test_unowned_write_keeps_owner(self, cache, create_trip, migrated_engine):
        await self._owned_hotel(cache, create_trip, migrated_engine)

        await _store_hotels(cache)
        rows = await fetch_all(
            migrated_engine,
            "SELECT trip_id, cache_expires_at, search_params_hash FROM travel_services WHERE service_id = 'h-1'",
        )

        assert rows[0]["trip_id"] == 1
        assert rows[0]["cache_expires_at"].startswith(str(DURABLE_EXPIRY.year))
        assert rows[0]["search_params_hash"] is not None

    async def test_owned_item_survives_sweep_and_invalidation(self, cache, create_trip, migrated_engine, clock):
        await self._owned_hotel(cache, create_trip, migrated_engine)
        await _store_hotels(cache)

        assert await cache.invalidate(category="hotel") == 1
        clock.advance(days=30)
        await cache.sweep_expired()

        rows = await fetch_all(migrated_engine, "SELECT service_id FROM travel_services")
        assert [r["service_id"] for r in rows] == ["h-1"]


class TestInvalidation:
    async def test_requires_criteria(self, cache):
        with pytest.raises(ValueError):
            await cache.invalidate(InvalidationCriteria())

    async def test_no_matches(self, cache):
        await _store_hotels(cache)

        assert await cache.invalidate(source_platform="elsewhere") == 0

    async def test_scoped_by_category(self, cache):
        hotel_hash = await _store_hotels(cache)
        flight_hash = generate_search_hash("flight", FLIGHT_PARAMS)
        await cache.cache_search_results(flight_hash, "flight", FLIGHT_PARAMS, FLIGHTS, "test")

        removed = await cache.invalidate(InvalidationCriteria(category="hotel"))

        assert removed == 2
        assert not (await cache.check_cache_hit(hotel_hash, "hotel")).hit
        assert (await cache.check_cache_hit(flight_hash, "flight")).hit

    async def test_scoped_by_age(self, cache, clock):
        old_hash = await _store_hotels(cache)
        cutoff = clock.advance(hours=1)
        clock.advance(hours=1)
        new_params = {**HOTEL_PARAMS, "destination": "Porto"}
        new_results = [{"id": "h-9", "name": "Ribeira Inn", "price": 90.0, "location": {"city": "Porto"}}]
        new_hash = await _store_hotels(cache, new_params, new_results)

        removed = await cache.invalidate(older_than=cutoff)

        assert removed == 2
        assert not (await cache.check_cache_hit(old_hash, "hotel")).hit
        assert (await cache.check_cache_hit(new_hash, "hotel")).hit

    async def test_location_substring_case_insensitive(self, cache):
        await _store_hotels(cache)

        assert await cache.invalidate(location="lisb") == 2

    async def test_unknown_category_rejected(self, cache):
        from src.cache import UnknownCategoryError

        with pytest.raises(UnknownCategoryError):
            await cache.invalidate(category="cruise")


class TestMaintenance:
    async def test_sweep_removes_expired(self, cache, clock):
        await _store_hotels(cache)
        flight_hash = generate_search_hash("flight", FLIGHT_PARAMS)
        await cache.cache_search_results(flight_hash, "flight", FLIGHT_PARAMS, FLIGHTS, "test")

        clock.advance(hours=3)
        result = await cache.sweep_expired()

        assert result.index_removed == 1
        assert result.items_removed == 1
        assert not (await cache.check_cache_hit(flight_hash, "flight")).hit

    async def test_stats(self, cache, clock):
        search_hash = await _store_hotels(cache)
        flight_hash = generate_search_hash("flight", FLIGHT_PARAMS)
        await cache.cache_search_results(flight_hash, "flight", FLIGHT_PARAMS, FLIGHTS, "test")
        await cache.check_cache_hit(search_hash, "hotel")

        clock.advance(hours=3)
        stats = await cache.stats()

        assert stats["entries"] == 2
        assert stats["categories"]["hotel"] == {"entries": 1, "live": 1, "expired": 0, "total_hits": 2}
        assert stats["categories"]["flight"]["expired"] == 1
        assert stats["items"] == {"total": 3, "owned": 0}

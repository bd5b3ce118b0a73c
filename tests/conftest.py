"""
Test Suite Configuration
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import pytest

from src.config import Settings
from src.database.connection import build_engine, execute_statement
from src.migrations import apply_migrations


class FrozenClock:
    """Injectable clock that only moves when told to"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'store.db'}"


@pytest.fixture
async def engine(db_url):
    """Engine over an empty store file"""
    engine = build_engine(db_url, echo=False)
    yield engine
    await engine.dispose()


@pytest.fixture
async def migrated_engine(engine):
    """Engine over a store with the packaged catalog applied"""
    await apply_migrations(engine)
    return engine


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2030, 1, 1, 12, 0, 0))


@pytest.fixture
def insert_row():
    """Insert a row with named parameters through the one-statement helper"""

    async def _insert(engine, table: str, values: Dict[str, Any]) -> int:
        columns = ", ".join(values)
        placeholders = ", ".join(f":{name}" for name in values)
        return await execute_statement(
            engine,
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            values,
        )

    return _insert


@pytest.fixture
def create_trip(insert_row):
    """Insert a trip with an explicit id"""

    async def _create(
        engine,
        trip_id: int,
        primary_client_email: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> int:
        await insert_row(engine, "trips", {
            "trip_id": trip_id,
            "trip_name": f"Trip {trip_id}",
            "primary_client_email": primary_client_email,
            "start_date": start_date,
            "end_date": end_date,
        })
        return trip_id

    return _create

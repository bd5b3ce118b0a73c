"""Trip facts table, dirty-queue and the first dirty-tracking triggers."""

from src.migrations.registry import Migration

MIGRATION = Migration(
    name="002_trip_facts_system",
    description="Fact table and dirty tracking for computed trip metrics",
    sql="""
-- 002_trip_facts_system
-- Purpose: fact table and dirty-tracking for computed trip metrics

BEGIN TRANSACTION;

CREATE TABLE IF NOT EXISTS trip_facts (
  trip_id INTEGER PRIMARY KEY,
  total_nights INTEGER DEFAULT 0,
  total_hotels INTEGER DEFAULT 0,
  total_activities INTEGER DEFAULT 0,
  total_cost REAL DEFAULT 0,
  transit_minutes INTEGER DEFAULT 0,
  last_computed DATETIME,
  version INTEGER DEFAULT 1
);

-- No uniqueness: every tracked write leaves at least one signal
CREATE TABLE IF NOT EXISTS facts_dirty (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  trip_id INTEGER NOT NULL,
  reason TEXT,
  created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_facts_dirty_trip ON facts_dirty(trip_id);
CREATE INDEX IF NOT EXISTS idx_facts_dirty_created ON facts_dirty(created_at);

CREATE TRIGGER IF NOT EXISTS trg_trips_ai_dirty
AFTER INSERT ON trips
BEGIN
  INSERT INTO facts_dirty(trip_id, reason) VALUES (NEW.trip_id, 'trip_insert');
END;

CREATE TRIGGER IF NOT EXISTS trg_trips_au_dirty
AFTER UPDATE ON trips
BEGIN
  INSERT INTO facts_dirty(trip_id, reason) VALUES (NEW.trip_id, 'trip_update');
END;

CREATE TRIGGER IF NOT EXISTS trg_trips_ad_dirty
AFTER DELETE ON trips
BEGIN
  INSERT INTO facts_dirty(trip_id, reason) VALUES (OLD.trip_id, 'trip_delete');
END;

CREATE TRIGGER IF NOT EXISTS trg_tripdays_ai_dirty
AFTER INSERT ON trip_days
BEGIN
  INSERT INTO facts_dirty(trip_id, reason) VALUES (NEW.trip_id, 'tripday_insert');
END;

CREATE TRIGGER IF NOT EXISTS trg_tripdays_au_dirty
AFTER UPDATE ON trip_days
BEGIN
  INSERT INTO facts_dirty(trip_id, reason) VALUES (NEW.trip_id, 'tripday_update');
END;

CREATE TRIGGER IF NOT EXISTS trg_tripdays_ad_dirty
AFTER DELETE ON trip_days
BEGIN
  INSERT INTO facts_dirty(trip_id, reason) VALUES (OLD.trip_id, 'tripday_delete');
END;

COMMIT;
""",
)

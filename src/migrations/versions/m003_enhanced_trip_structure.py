"""Trip legs and activities, both feeding the trip facts."""

from src.migrations.registry import Migration

MIGRATION = Migration(
    name="003_enhanced_trip_structure",
    description="Trip legs and activities with dirty tracking",
    sql="""
-- 003_enhanced_trip_structure
-- Purpose: trip legs and activities tables

CREATE TABLE IF NOT EXISTS trip_legs (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  trip_id INTEGER NOT NULL,
  leg_order INTEGER NOT NULL,
  from_location TEXT,
  to_location TEXT,
  depart_datetime TEXT,
  arrive_datetime TEXT,
  transport_mode TEXT, -- flight, train, car, ferry, walk
  distance_km REAL,
  FOREIGN KEY (trip_id) REFERENCES trips(trip_id) ON DELETE CASCADE
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_trip_legs_unique ON trip_legs(trip_id, leg_order);

CREATE TABLE IF NOT EXISTS trip_activities (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  trip_id INTEGER NOT NULL,
  day_id INTEGER,
  activity_type TEXT, -- attraction, tour, meal, hotel, transfer, misc
  title TEXT,
  start_time TEXT,
  end_time TEXT,
  location TEXT,
  cost REAL,
  currency TEXT DEFAULT 'USD',
  metadata_json TEXT,
  FOREIGN KEY (trip_id) REFERENCES trips(trip_id) ON DELETE CASCADE,
  FOREIGN KEY (day_id) REFERENCES trip_days(id) ON DELETE SET NULL
);

CREATE INDEX IF NOT EXISTS idx_activities_trip ON trip_activities(trip_id);
CREATE INDEX IF NOT EXISTS idx_activities_day ON trip_activities(day_id);

CREATE TRIGGER IF NOT EXISTS trg_activities_ai_dirty
AFTER INSERT ON trip_activities
BEGIN
  INSERT INTO facts_dirty(trip_id, reason) VALUES (NEW.trip_id, 'activity_insert');
END;

CREATE TRIGGER IF NOT EXISTS trg_activities_au_dirty
AFTER UPDATE ON trip_activities
BEGIN
  INSERT INTO facts_dirty(trip_id, reason) VALUES (NEW.trip_id, 'activity_update');
END;

CREATE TRIGGER IF NOT EXISTS trg_activities_ad_dirty
AFTER DELETE ON trip_activities
BEGIN
  INSERT INTO facts_dirty(trip_id, reason) VALUES (OLD.trip_id, 'activity_delete');
END;

CREATE TRIGGER IF NOT EXISTS trg_legs_ai_dirty
AFTER INSERT ON trip_legs
BEGIN
  INSERT INTO facts_dirty(trip_id, reason) VALUES (NEW.trip_id, 'leg_insert');
END;

CREATE TRIGGER IF NOT EXISTS trg_legs_au_dirty
AFTER UPDATE ON trip_legs
BEGIN
  INSERT INTO facts_dirty(trip_id, reason) VALUES (NEW.trip_id, 'leg_update');
END;

CREATE TRIGGER IF NOT EXISTS trg_legs_ad_dirty
AFTER DELETE ON trip_legs
BEGIN
  INSERT INTO facts_dirty(trip_id, reason) VALUES (OLD.trip_id, 'leg_delete');
END;
""",
)

"""Core trip tables: clients, trips, trip days and traveler assignments."""

from src.migrations.registry import Migration

MIGRATION = Migration(
    name="001_core_trip_tables",
    description="Base tables the trip facts are derived from",
    sql="""
-- 001_core_trip_tables
-- Purpose: clients, trips, days and traveler assignments

CREATE TABLE IF NOT EXISTS clients (
  email TEXT PRIMARY KEY,
  full_name TEXT,
  phone TEXT,
  created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS trips (
  trip_id INTEGER PRIMARY KEY AUTOINCREMENT,
  trip_name TEXT NOT NULL,
  status TEXT DEFAULT 'planning',
  primary_client_email TEXT,
  start_date TEXT,
  end_date TEXT,
  created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
  updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_trips_status ON trips(status);
CREATE INDEX IF NOT EXISTS idx_trips_primary_client ON trips(primary_client_email);

CREATE TABLE IF NOT EXISTS trip_days (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  trip_id INTEGER NOT NULL,
  day_number INTEGER NOT NULL,
  day_date TEXT,
  title TEXT,
  FOREIGN KEY (trip_id) REFERENCES trips(trip_id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_trip_days_trip ON trip_days(trip_id);

CREATE TABLE IF NOT EXISTS trip_client_assignments (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  trip_id INTEGER NOT NULL,
  client_email TEXT NOT NULL,
  role TEXT DEFAULT 'traveler',
  created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
  FOREIGN KEY (trip_id) REFERENCES trips(trip_id) ON DELETE CASCADE,
  UNIQUE(trip_id, client_email)
);

CREATE INDEX IF NOT EXISTS idx_trip_client_assignments_email
  ON trip_client_assignments(client_email);
""",
)

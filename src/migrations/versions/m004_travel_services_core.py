"""Search cache index and the denormalized travel services table."""

from src.migrations.registry import Migration

MIGRATION = Migration(
    name="004_travel_services_core",
    description="Unified travel services and search cache tables",
    sql="""
-- 004_travel_services_core
-- Purpose: cached search results (flattened filters + full payload) and the cache index

CREATE TABLE IF NOT EXISTS travel_services (
  id INTEGER PRIMARY KEY AUTOINCREMENT,

  -- Search context
  trip_id INTEGER,
  search_session_id TEXT,
  search_params_hash TEXT,

  -- Core identification
  service_id TEXT NOT NULL,
  service_category TEXT NOT NULL CHECK (service_category IN ('hotel', 'flight', 'rental_car', 'transfer', 'excursion', 'package')),
  service_name TEXT NOT NULL,
  service_description TEXT,

  -- Pricing (flattened for queries)
  base_price REAL NOT NULL,
  total_price REAL NOT NULL,
  currency TEXT DEFAULT 'USD',
  price_unit TEXT,

  -- Availability
  is_available BOOLEAN DEFAULT 1,
  start_date TEXT NOT NULL,
  end_date TEXT,

  -- Location
  location_city TEXT,
  location_state TEXT,
  location_country TEXT,
  latitude REAL,
  longitude REAL,

  -- Quality metrics
  rating_overall REAL,
  rating_count INTEGER,

  -- Source information
  source_platform TEXT NOT NULL,
  source_url TEXT,
  booking_url TEXT,

  -- Complete service object as JSON
  service_data_json TEXT NOT NULL,

  created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
  updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
  cache_expires_at DATETIME,

  FOREIGN KEY (trip_id) REFERENCES trips(trip_id) ON DELETE SET NULL,
  UNIQUE(service_id, source_platform, start_date, service_category)
);

CREATE INDEX IF NOT EXISTS idx_travel_services_trip_id ON travel_services(trip_id);
CREATE INDEX IF NOT EXISTS idx_travel_services_category ON travel_services(service_category);
CREATE INDEX IF NOT EXISTS idx_travel_services_location_dates ON travel_services(location_city, start_date, end_date);
CREATE INDEX IF NOT EXISTS idx_travel_services_price ON travel_services(total_price, currency);
CREATE INDEX IF NOT EXISTS idx_travel_services_source ON travel_services(source_platform, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_travel_services_expires ON travel_services(cache_expires_at);
CREATE INDEX IF NOT EXISTS idx_travel_services_search_params ON travel_services(search_params_hash, service_category);

CREATE TABLE IF NOT EXISTS travel_search_cache (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  search_params_hash TEXT NOT NULL,
  service_category TEXT NOT NULL,
  search_params_json TEXT NOT NULL,
  result_count INTEGER DEFAULT 0,
  search_duration_ms INTEGER,
  source_platform TEXT NOT NULL,
  created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
  expires_at DATETIME NOT NULL,
  last_accessed DATETIME DEFAULT CURRENT_TIMESTAMP,
  access_count INTEGER DEFAULT 1,
  UNIQUE(search_params_hash, service_category)
);

CREATE INDEX IF NOT EXISTS idx_travel_search_cache_expires ON travel_search_cache(expires_at);
CREATE INDEX IF NOT EXISTS idx_travel_search_cache_category ON travel_search_cache(service_category);
CREATE INDEX IF NOT EXISTS idx_travel_search_cache_platform ON travel_search_cache(source_platform);
""",
)

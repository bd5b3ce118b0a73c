"""Dirty tracking for owned travel services and the fallback cache sweep."""

from src.migrations.registry import Migration

MIGRATION = Migration(
    name="005_travel_services_triggers",
    description="Integrate travel services with the facts dirty-queue",
    sql="""
-- 005_travel_services_triggers
-- Purpose: owned services mark their trip dirty; occasional expired-row sweep

CREATE TRIGGER IF NOT EXISTS trg_travel_services_ai_dirty
AFTER INSERT ON travel_services
WHEN NEW.trip_id IS NOT NULL
BEGIN
  INSERT INTO facts_dirty(trip_id, reason) VALUES (NEW.trip_id, 'travel_service_insert');
END;

CREATE TRIGGER IF NOT EXISTS trg_travel_services_au_dirty
AFTER UPDATE ON travel_services
WHEN NEW.trip_id IS NOT NULL OR OLD.trip_id IS NOT NULL
BEGIN
  INSERT INTO facts_dirty(trip_id, reason)
  VALUES (COALESCE(NEW.trip_id, OLD.trip_id), 'travel_service_update');
END;

CREATE TRIGGER IF NOT EXISTS trg_travel_services_ad_dirty
AFTER DELETE ON travel_services
WHEN OLD.trip_id IS NOT NULL
BEGIN
  INSERT INTO facts_dirty(trip_id, reason) VALUES (OLD.trip_id, 'travel_service_delete');
END;

-- Fallback reclamation on every 100th cache index insert; the scheduled
-- cache_maintenance flow is the primary sweep
CREATE TRIGGER IF NOT EXISTS trg_travel_search_cache_cleanup
AFTER INSERT ON travel_search_cache
WHEN NEW.id % 100 = 0
BEGIN
  DELETE FROM travel_search_cache
  WHERE expires_at < datetime('now')
    AND id != NEW.id;

  DELETE FROM travel_services
  WHERE cache_expires_at < datetime('now')
    AND trip_id IS NULL;

  DELETE FROM facts_dirty
  WHERE created_at < datetime('now', '-30 days');
END;
""",
)

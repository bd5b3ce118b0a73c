"""Traveler details on trip facts and dirty tracking for assignments."""

from src.migrations.registry import Migration

MIGRATION = Migration(
    name="006_trip_facts_travelers",
    description="Extend trip_facts with traveler details",
    sql="""
-- 006_trip_facts_travelers
-- Purpose: traveler columns on trip_facts; assignments mark facts dirty

ALTER TABLE trip_facts ADD COLUMN traveler_count INTEGER DEFAULT 0;
ALTER TABLE trip_facts ADD COLUMN traveler_names TEXT;
ALTER TABLE trip_facts ADD COLUMN traveler_emails TEXT;
ALTER TABLE trip_facts ADD COLUMN primary_client_email TEXT;
ALTER TABLE trip_facts ADD COLUMN primary_client_name TEXT;

CREATE INDEX IF NOT EXISTS idx_trip_facts_primary_email
  ON trip_facts(primary_client_email);

CREATE TRIGGER IF NOT EXISTS trg_trip_client_assignments_ai_dirty
AFTER INSERT ON trip_client_assignments
BEGIN
  INSERT INTO facts_dirty(trip_id, reason) VALUES (NEW.trip_id, 'traveler_insert');
END;

CREATE TRIGGER IF NOT EXISTS trg_trip_client_assignments_au_dirty
AFTER UPDATE ON trip_client_assignments
BEGIN
  INSERT INTO facts_dirty(trip_id, reason) VALUES (NEW.trip_id, 'traveler_update');
END;

CREATE TRIGGER IF NOT EXISTS trg_trip_client_assignments_ad_dirty
AFTER DELETE ON trip_client_assignments
BEGIN
  INSERT INTO facts_dirty(trip_id, reason) VALUES (OLD.trip_id, 'traveler_delete');
END;
""",
)

"""Query membership of cached items, so one item can serve several searches."""

from src.migrations.registry import Migration

MIGRATION = Migration(
    name="007_travel_search_results",
    description="Link cached items to every search that returned them",
    sql="""
-- 007_travel_search_results
-- Purpose: (query hash, category) -> item membership; rewritten on every refresh

CREATE TABLE IF NOT EXISTS travel_search_results (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  search_params_hash TEXT NOT NULL,
  service_category TEXT NOT NULL,
  service_row_id INTEGER NOT NULL,
  created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
  FOREIGN KEY (service_row_id) REFERENCES travel_services(id) ON DELETE CASCADE,
  UNIQUE(search_params_hash, service_category, service_row_id)
);

CREATE INDEX IF NOT EXISTS idx_travel_search_results_service ON travel_search_results(service_row_id);

-- Items cached before this migration belong to the query that last wrote them
INSERT OR IGNORE INTO travel_search_results (search_params_hash, service_category, service_row_id)
SELECT search_params_hash, service_category, id
FROM travel_services
WHERE search_params_hash IS NOT NULL;
""",
)

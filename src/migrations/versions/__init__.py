"""
Packaged migration catalog.

Append new migrations at the end of CATALOG. Never edit, rename or reorder
an entry that has shipped.
"""

from . import (
    m001_core_trip_tables,
    m002_trip_facts_system,
    m003_enhanced_trip_structure,
    m004_travel_services_core,
    m005_travel_services_triggers,
    m006_trip_facts_travelers,
    m007_travel_search_results,
)

CATALOG = [
    m001_core_trip_tables.MIGRATION,
    m002_trip_facts_system.MIGRATION,
    m003_enhanced_trip_structure.MIGRATION,
    m004_travel_services_core.MIGRATION,
    m005_travel_services_triggers.MIGRATION,
    m006_trip_facts_travelers.MIGRATION,
    m007_travel_search_results.MIGRATION,
]

__all__ = ["CATALOG"]

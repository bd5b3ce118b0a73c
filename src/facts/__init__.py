"""
Trip Facts Module
"""
from .dirty import DirtyEntry, DirtyQueue, TRACKED_TABLES, reason_for
from .recompute import RefreshResult, TripFactsManager, TripFactsSummary, derive_name_from_email

__all__ = [
    "DirtyEntry",
    "DirtyQueue",
    "TRACKED_TABLES",
    "reason_for",
    "RefreshResult",
    "TripFactsManager",
    "TripFactsSummary",
    "derive_name_from_email",
]

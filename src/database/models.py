"""
Database Models - Travel Store Schema

ORM mappings of the tables created by the migration catalog in
``src.migrations.versions``. Migrations own the DDL; these classes exist so
application code can query and write the tables with SQLAlchemy constructs.
Keep the two in step when a migration adds a column.

Base Tables:
- Client, Trip, TripDay, TripClientAssignment, TripActivity, TripLeg

Derived Facts:
- TripFacts: precomputed per-trip aggregates
- FactsDirty: dirty-queue consumed by the facts recompute

Search Cache:
- TravelSearchCache: one row per cached query shape (hash + category)
- TravelService: denormalized cached result rows
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# ENUMERATIONS
# =============================================================================

class ServiceCategory(str, Enum):
    """Travel service categories stored in travel_services.service_category"""
    HOTEL = "hotel"
    FLIGHT = "flight"
    RENTAL_CAR = "rental_car"
    TRANSFER = "transfer"
    EXCURSION = "excursion"
    PACKAGE = "package"


# =============================================================================
# BOOKKEEPING
# =============================================================================

class SchemaMigration(Base):
    """Applied-migrations membership set"""
    __tablename__ = "schema_migrations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime)


# =============================================================================
# BASE TABLES
# =============================================================================

class Client(Base):
    __tablename__ = "clients"

    email: Mapped[str] = mapped_column(Text, primary_key=True)
    full_name: Mapped[Optional[str]] = mapped_column(Text)
    phone: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime)


class Trip(Base):
    """Aggregate root for trip facts"""
    __tablename__ = "trips"

    trip_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trip_name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, default="planning")
    primary_client_email: Mapped[Optional[str]] = mapped_column(Text)
    start_date: Mapped[Optional[str]] = mapped_column(Text)  # YYYY-MM-DD
    end_date: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)


class TripDay(Base):
    __tablename__ = "trip_days"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trip_id: Mapped[int] = mapped_column(ForeignKey("trips.trip_id"), nullable=False)
    day_number: Mapped[int] = mapped_column(Integer, nullable=False)
    day_date: Mapped[Optional[str]] = mapped_column(Text)
    title: Mapped[Optional[str]] = mapped_column(Text)


class TripClientAssignment(Base):
    __tablename__ = "trip_client_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trip_id: Mapped[int] = mapped_column(ForeignKey("trips.trip_id"), nullable=False)
    client_email: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[Optional[str]] = mapped_column(Text, default="traveler")
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        UniqueConstraint("trip_id", "client_email"),
    )


class TripActivity(Base):
    __tablename__ = "trip_activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trip_id: Mapped[int] = mapped_column(ForeignKey("trips.trip_id"), nullable=False)
    day_id: Mapped[Optional[int]] = mapped_column(ForeignKey("trip_days.id"))
    activity_type: Mapped[Optional[str]] = mapped_column(Text)  # attraction, tour, meal, hotel, ...
    title: Mapped[Optional[str]] = mapped_column(Text)
    start_time: Mapped[Optional[str]] = mapped_column(Text)
    end_time: Mapped[Optional[str]] = mapped_column(Text)
    location: Mapped[Optional[str]] = mapped_column(Text)
    cost: Mapped[Optional[float]] = mapped_column(Float)
    currency: Mapped[Optional[str]] = mapped_column(Text, default="USD")
    metadata_json: Mapped[Optional[str]] = mapped_column(Text)


class TripLeg(Base):
    __tablename__ = "trip_legs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trip_id: Mapped[int] = mapped_column(ForeignKey("trips.trip_id"), nullable=False)
    leg_order: Mapped[int] = mapped_column(Integer, nullable=False)
    from_location: Mapped[Optional[str]] = mapped_column(Text)
    to_location: Mapped[Optional[str]] = mapped_column(Text)
    depart_datetime: Mapped[Optional[str]] = mapped_column(Text)  # YYYY-MM-DD HH:MM:SS
    arrive_datetime: Mapped[Optional[str]] = mapped_column(Text)
    transport_mode: Mapped[Optional[str]] = mapped_column(Text)
    distance_km: Mapped[Optional[float]] = mapped_column(Float)


# =============================================================================
# DERIVED FACTS
# =============================================================================

class TripFacts(Base):
    """
    Precomputed trip aggregates.

    Eventually consistent with the base tables: stale between a write and
    the next drain of facts_dirty for the trip.
    """
    __tablename__ = "trip_facts"

    trip_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    total_nights: Mapped[int] = mapped_column(Integer, default=0)
    total_hotels: Mapped[int] = mapped_column(Integer, default=0)
    total_activities: Mapped[int] = mapped_column(Integer, default=0)
    total_cost: Mapped[float] = mapped_column(Float, default=0)
    transit_minutes: Mapped[int] = mapped_column(Integer, default=0)
    traveler_count: Mapped[int] = mapped_column(Integer, default=0)
    traveler_names: Mapped[Optional[str]] = mapped_column(Text)  # JSON array
    traveler_emails: Mapped[Optional[str]] = mapped_column(Text)  # JSON array
    primary_client_email: Mapped[Optional[str]] = mapped_column(Text)
    primary_client_name: Mapped[Optional[str]] = mapped_column(Text)
    last_computed: Mapped[Optional[datetime]] = mapped_column(DateTime)
    version: Mapped[int] = mapped_column(Integer, default=1)


class FactsDirty(Base):
    """Dirty-queue entry: the facts of trip_id are stale because of reason"""
    __tablename__ = "facts_dirty"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trip_id: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("idx_facts_dirty_trip", "trip_id"),
    )


# =============================================================================
# SEARCH CACHE
# =============================================================================

class TravelSearchCache(Base):
    """
    Cache index entry.

    One row per (search_params_hash, service_category). A refresh replaces
    the row rather than mutating it.
    """
    __tablename__ = "travel_search_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    search_params_hash: Mapped[str] = mapped_column(Text, nullable=False)
    service_category: Mapped[str] = mapped_column(Text, nullable=False)
    search_params_json: Mapped[str] = mapped_column(Text, nullable=False)
    result_count: Mapped[int] = mapped_column(Integer, default=0)
    search_duration_ms: Mapped[Optional[int]] = mapped_column(Integer)
    source_platform: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    last_accessed: Mapped[Optional[datetime]] = mapped_column(DateTime)
    access_count: Mapped[int] = mapped_column(Integer, default=1)

    __table_args__ = (
        UniqueConstraint("search_params_hash", "service_category"),
    )


class TravelService(Base):
    """
    Cached search result item.

    Flattened filter columns alongside the full payload in service_data_json.
    Rows with a trip_id are owned by that trip and outlive cache expiry.
    """
    __tablename__ = "travel_services"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Search context
    trip_id: Mapped[Optional[int]] = mapped_column(ForeignKey("trips.trip_id"))
    search_session_id: Mapped[Optional[str]] = mapped_column(Text)
    search_params_hash: Mapped[Optional[str]] = mapped_column(Text)

    # Identification
    service_id: Mapped[str] = mapped_column(Text, nullable=False)
    service_category: Mapped[str] = mapped_column(Text, nullable=False)
    service_name: Mapped[str] = mapped_column(Text, nullable=False)
    service_description: Mapped[Optional[str]] = mapped_column(Text)

    # Pricing
    base_price: Mapped[float] = mapped_column(Float, nullable=False)
    total_price: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[Optional[str]] = mapped_column(Text, default="USD")
    price_unit: Mapped[Optional[str]] = mapped_column(Text)

    # Availability
    is_available: Mapped[Optional[bool]] = mapped_column(Boolean, default=True)
    start_date: Mapped[str] = mapped_column(Text, nullable=False)
    end_date: Mapped[Optional[str]] = mapped_column(Text)

    # Location
    location_city: Mapped[Optional[str]] = mapped_column(Text)
    location_state: Mapped[Optional[str]] = mapped_column(Text)
    location_country: Mapped[Optional[str]] = mapped_column(Text)
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)

    # Quality
    rating_overall: Mapped[Optional[float]] = mapped_column(Float)
    rating_count: Mapped[Optional[int]] = mapped_column(Integer)

    # Source
    source_platform: Mapped[str] = mapped_column(Text, nullable=False)
    source_url: Mapped[Optional[str]] = mapped_column(Text)
    booking_url: Mapped[Optional[str]] = mapped_column(Text)

    service_data_json: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    cache_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        UniqueConstraint("service_id", "source_platform", "start_date", "service_category"),
    )


class TravelSearchResult(Base):
    """
    Membership of a cached item in a query's result set.

    Rewritten per (search_params_hash, service_category) on every refresh.
    Removed with the item it points at.
    """
    __tablename__ = "travel_search_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    search_params_hash: Mapped[str] = mapped_column(Text, nullable=False)
    service_category: Mapped[str] = mapped_column(Text, nullable=False)
    service_row_id: Mapped[int] = mapped_column(
        ForeignKey("travel_services.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        UniqueConstraint("search_params_hash", "service_category", "service_row_id"),
        Index("idx_travel_search_results_service", "service_row_id"),
    )

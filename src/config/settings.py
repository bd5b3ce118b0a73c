"""
Travel Data Store
Centralized Configuration Management

This module provides configuration management using Pydantic settings with
environment variable support, validation, and type safety.
"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Relational store configuration"""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    url: str = Field(
        default="sqlite+aiosqlite:///./data/travel.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(default=False, description="Echo SQL statements")
    statement_preview_chars: int = Field(
        default=100,
        description="Characters of a failing migration statement kept for diagnosis",
    )

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured store speaks the SQLite dialect"""
        return self.url.startswith("sqlite")


class CacheSettings(BaseSettings):
    """Search cache and maintenance configuration"""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    hash_length: int = Field(default=16, description="Hex characters kept from the search digest")
    sweep_interval_minutes: int = Field(default=60, description="Interval of the scheduled cache sweep")
    dirty_retention_days: int = Field(default=30, description="Age after which unconsumed dirty rows are dropped")
    facts_refresh_batch: int = Field(default=50, description="Subjects recomputed per facts drain")

    @field_validator("hash_length")
    @classmethod
    def validate_hash_length(cls, v: int) -> int:
        """Keep the digest prefix within a SHA-256 hex string"""
        if not 8 <= v <= 64:
            raise ValueError("hash_length must be between 8 and 64")
        return v


class MonitoringSettings(BaseSettings):
    """Monitoring and Observability Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE", description="Log file path")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="travel-data-store", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")
    apply_migrations_on_startup: bool = Field(
        default=True,
        alias="APPLY_MIGRATIONS_ON_STARTUP",
        description="Apply pending migrations when the API starts",
    )

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()


# Convenience function for accessing settings
settings = get_settings()

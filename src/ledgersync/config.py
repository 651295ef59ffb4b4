"""Centralized configuration management for LedgerSync.

This module provides a Pydantic Settings-based configuration system that
consolidates database, provider and sync settings with environment variable
integration, type validation, and clear error handling.
"""

import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseModel):
    """Local store configuration settings."""

    model_config = ConfigDict(frozen=True)

    path: Path = Field(
        default=Path("data/duckdb/ledgersync.duckdb"),
        description="Path to DuckDB database file",
    )
    create_dirs: bool = Field(
        default=True, description="Automatically create database directories"
    )

    @field_validator("path")
    @classmethod
    def validate_database_path(cls, v: Path) -> Path:
        """Ensure database path has correct extension."""
        if not str(v).endswith((".db", ".duckdb")):
            raise ValueError("Database path must end with .db or .duckdb")
        return v


class ProviderConfig(BaseModel):
    """Stripe API configuration settings.

    Caps bound how many records a single run may fetch per stream. Incremental
    caps are tuned to exceed normal per-period volume; full caps are used when a
    resync is forced to repair missing history.
    """

    model_config = ConfigDict(frozen=True)

    api_base: str = Field(
        default="https://api.stripe.com", description="Stripe API base URL"
    )
    timeout_seconds: float = Field(
        default=30.0, gt=0, le=300, description="Per-request timeout in seconds"
    )
    page_size: int = Field(
        default=50, ge=1, le=100, description="Records requested per page"
    )
    unit_scale: int = Field(
        default=100, ge=1, description="Minor units per major currency unit"
    )
    incremental_transaction_cap: int = Field(default=120, ge=1)
    full_transaction_cap: int = Field(default=1000, ge=1)
    incremental_payout_cap: int = Field(default=50, ge=1)
    full_payout_cap: int = Field(default=100, ge=1)

    @field_validator("api_base")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so paths can be appended directly."""
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_caps(self) -> "ProviderConfig":
        """A full resync must never fetch less than an incremental run."""
        if self.full_transaction_cap < self.incremental_transaction_cap:
            raise ValueError(
                "full_transaction_cap must be >= incremental_transaction_cap"
            )
        if self.full_payout_cap < self.incremental_payout_cap:
            raise ValueError("full_payout_cap must be >= incremental_payout_cap")
        return self


class SyncConfig(BaseModel):
    """Persistence settings for sync runs."""

    model_config = ConfigDict(frozen=True)

    batch_size: int = Field(
        default=50, ge=1, le=1000, description="Records written per upsert batch"
    )
    placeholder_description: str = Field(
        default="Stripe Transaction",
        description="Description used when a record carries none",
    )


class LedgerSyncSettings(BaseSettings):
    """Main application settings with environment variable integration.

    Environment variables are loaded with the LEDGERSYNC_ prefix.
    For nested configs, use double underscores: LEDGERSYNC_DATABASE__PATH
    """

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)

    debug: bool = Field(default=False, description="Enable debug mode")
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Application environment"
    )

    def __init__(self, **kwargs: Any):
        """Initialize settings with legacy environment variable overrides.

        Args:
            **kwargs: Additional configuration overrides
        """
        if "database" not in kwargs:
            duckdb_path = os.getenv("DUCKDB_PATH")
            if duckdb_path:
                kwargs["database"] = DatabaseConfig(path=Path(duckdb_path))

        if "provider" not in kwargs:
            api_base = os.getenv("STRIPE_API_BASE")
            if api_base:
                kwargs["provider"] = ProviderConfig(api_base=api_base)

        super().__init__(**kwargs)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="LEDGERSYNC_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate application environment."""
        if v == "production" and os.getenv("DEBUG", "").lower() in ("true", "1"):
            raise ValueError("DEBUG mode cannot be enabled in production")
        return v

    def create_directories(self) -> None:
        """Create the directory holding the local store."""
        self.database.path.parent.mkdir(parents=True, exist_ok=True)


_settings: LedgerSyncSettings | None = None


def get_settings() -> LedgerSyncSettings:
    """Get the cached settings instance, loading it on first use.

    Returns:
        LedgerSyncSettings: The configuration instance

    Raises:
        ValueError: If configuration is missing or invalid
    """
    global _settings

    if _settings is not None:
        return _settings

    try:
        settings = LedgerSyncSettings()
        if settings.database.create_dirs:
            settings.create_directories()
    except Exception as e:
        raise ValueError(f"Configuration error: {e}") from e

    _settings = settings
    return settings


def reload_settings() -> LedgerSyncSettings:
    """Reload settings from environment variables.

    Useful for testing or when environment variables change at runtime.

    Returns:
        LedgerSyncSettings: The reloaded configuration instance
    """
    clear_settings_cache()
    return get_settings()


def clear_settings_cache() -> None:
    """Drop the cached settings so the next access reloads them."""
    global _settings
    _settings = None


def get_database_path() -> Path:
    """Get the configured database path.

    Returns:
        Path: The database path
    """
    return get_settings().database.path

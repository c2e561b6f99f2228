"""Pydantic models for store configuration and connection results."""

from typing import Literal

from pydantic import BaseModel, Field

from collection_migrate.adapters.sql import DEFAULT_LOCK_KEY


# ============================================================================
# Configuration Models
# ============================================================================


class StoreProfile(BaseModel):
    """Store connection profile from migrate.toml."""

    url: str = ""
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    provider: Literal["postgres", "sqlite", "memory"] = "postgres"


class MigrationSettings(BaseModel):
    """The ``[migrations]`` table of migrate.toml."""

    dir: str = "migrations"
    collections_table: str = "_collections"
    markers_table: str = "_migrations"
    lock_key: int = DEFAULT_LOCK_KEY


class MigrateConfig(BaseModel):
    """Complete configuration from migrate.toml."""

    profiles: dict[str, StoreProfile]
    migrations: MigrationSettings = Field(default_factory=MigrationSettings)


# ============================================================================
# Connection Result
# ============================================================================


class ConnectionResult(BaseModel):
    """Result of connect_and_check()."""

    success: bool
    profile_name: str | None = None
    collection_count: int = 0
    applied_count: int = 0
    error: str | None = None

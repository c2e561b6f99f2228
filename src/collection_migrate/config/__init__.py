"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from collection_migrate.config import load_config, StoreProfile, MigrateConfig
"""

from collection_migrate.config.loader import load_config
from collection_migrate.config.models import (
    ConnectionResult,
    MigrateConfig,
    MigrationSettings,
    StoreProfile,
)

__all__ = [
    "load_config",
    "MigrateConfig",
    "MigrationSettings",
    "StoreProfile",
    "ConnectionResult",
]

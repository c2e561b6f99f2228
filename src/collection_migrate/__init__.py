"""collection-migrate: versioned collection schema migrations.

Applies and rolls back full snapshots of collection schemas (fields, access
rules, indexes and options) against a store, with one atomic unit of work
per migration and an applied-marker per migration name.

Usage:
    from collection_migrate import MigrationRunner, load_migrations, get_store
    from collection_migrate import Snapshot, import_collections, export_collections
    from collection_migrate import InMemoryStore, AsyncSqlStore
"""

__version__ = "0.1.0"

# Errors
from collection_migrate.errors import (
    MigrateError,
    MigrationError,
    PartialApplyError,
    SchemaError,
    StoreError,
    ValidationError,
)

# Schema
from collection_migrate.schema.importer import export_collections, import_collections
from collection_migrate.schema.models import (
    CollectionSchema,
    ImportResult,
    SchemaValidationResult,
    Snapshot,
)
from collection_migrate.schema.validators import validate_snapshot

# Adapters
from collection_migrate.adapters.base import CollectionStore, UnitOfWork
from collection_migrate.adapters.memory import InMemoryStore
from collection_migrate.adapters.sql import AsyncSqlStore

# Migrations
from collection_migrate.migrations.loader import load_migrations
from collection_migrate.migrations.models import NOOP, AppliedMarker, MigrationRecord
from collection_migrate.migrations.runner import MigrationRunner

# Config
from collection_migrate.config.loader import load_config
from collection_migrate.config.models import MigrateConfig, StoreProfile

# Factory
from collection_migrate.factory import (
    ProfileNotFoundError,
    connect_and_check,
    get_store,
    resolve_url,
)

__all__ = [
    # Errors
    "MigrateError",
    "ValidationError",
    "SchemaError",
    "StoreError",
    "MigrationError",
    "PartialApplyError",
    # Schema
    "CollectionSchema",
    "Snapshot",
    "ImportResult",
    "SchemaValidationResult",
    "import_collections",
    "export_collections",
    "validate_snapshot",
    # Adapters
    "CollectionStore",
    "UnitOfWork",
    "InMemoryStore",
    "AsyncSqlStore",
    # Migrations
    "NOOP",
    "AppliedMarker",
    "MigrationRecord",
    "MigrationRunner",
    "load_migrations",
    # Config
    "load_config",
    "MigrateConfig",
    "StoreProfile",
    # Factory
    "get_store",
    "connect_and_check",
    "ProfileNotFoundError",
    "resolve_url",
]

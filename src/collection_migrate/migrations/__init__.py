"""Migration records, loading, running and snapshot generation.

Usage:
    from collection_migrate.migrations import MigrationRunner, load_migrations

    runner = MigrationRunner(store, load_migrations("migrations"))
    await runner.apply_pending()
"""

from collection_migrate.migrations.loader import load_migrations, sort_migrations
from collection_migrate.migrations.models import (
    NOOP,
    AppliedMarker,
    MigrationRecord,
    MigrationStatus,
)
from collection_migrate.migrations.runner import MigrationRunner
from collection_migrate.migrations.templates import (
    render_snapshot_migration,
    write_snapshot_migration,
)

__all__ = [
    "NOOP",
    "AppliedMarker",
    "MigrationRecord",
    "MigrationStatus",
    "MigrationRunner",
    "load_migrations",
    "sort_migrations",
    "render_snapshot_migration",
    "write_snapshot_migration",
]

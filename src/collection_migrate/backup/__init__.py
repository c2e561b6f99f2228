"""Backup and restore of collection schemas.

Usage:
    from collection_migrate.backup import backup_collections, restore_collections
"""

from collection_migrate.backup.backup_restore import (
    backup_collections,
    load_snapshot_file,
    parse_snapshot_data,
    restore_collections,
    validate_backup,
)
from collection_migrate.backup.models import BackupFile, BackupMetadata

__all__ = [
    "BackupFile",
    "BackupMetadata",
    "backup_collections",
    "restore_collections",
    "validate_backup",
    "load_snapshot_file",
    "parse_snapshot_data",
]

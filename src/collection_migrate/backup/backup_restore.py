"""Backup and restore of collection schemas as JSON files.

A backup is the output of ``export_collections`` wrapped in a small
metadata envelope.  Restoring a backup is an ordinary
``import_collections`` call, so it is validated and applied atomically.

Usage:
    from collection_migrate.backup.backup_restore import (
        backup_collections,
        restore_collections,
        validate_backup,
    )

    # Backup
    path = await backup_collections(store)

    # Restore
    result = await restore_collections(store, path, delete_missing=True)

    # Validate (sync -- local file read only)
    report = validate_backup(path)
"""

import json
import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from collection_migrate.adapters.base import CollectionStore
from collection_migrate.errors import ValidationError
from collection_migrate.schema.importer import export_collections, import_collections
from collection_migrate.schema.models import (
    CollectionSchema,
    FieldError,
    ImportResult,
    SchemaValidationResult,
    Snapshot,
    utc_timestamp,
)
from collection_migrate.schema.validators import validate_snapshot
from collection_migrate.backup.models import BackupFile, BackupMetadata

logger = logging.getLogger(__name__)


def parse_snapshot_data(data: Any) -> Snapshot:
    """Build a snapshot from decoded JSON.

    Accepts a backup envelope (``{"metadata": ..., "collections": [...]}``)
    or a plain list of collection records in canonical or PocketBase export
    layout.

    Raises:
        ValidationError: If the data is not a list of valid collection
            records.
    """
    if isinstance(data, dict) and "collections" in data:
        data = data["collections"]

    if not isinstance(data, list):
        raise ValidationError(
            [FieldError(message="Expected a list of collections or a backup envelope")]
        )

    return Snapshot.from_list(data)


def load_snapshot_file(path: str | Path) -> Snapshot:
    """Load a snapshot from a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValidationError: If the file is not valid JSON or not a snapshot.
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Snapshot file not found: {file_path}")

    try:
        data = json.loads(file_path.read_text())
    except json.JSONDecodeError as e:
        raise ValidationError(
            [FieldError(message=f"Invalid JSON: {e}")],
            message=f"Invalid JSON in {file_path.name}: {e}",
        ) from e

    return parse_snapshot_data(data)


async def backup_collections(
    store: CollectionStore,
    output_path: str | None = None,
    metadata: dict | None = None,
) -> str:
    """Export the live schema to a JSON backup file.

    Args:
        store: Store implementing the ``CollectionStore`` protocol.
        output_path: Path to save backup file.  When ``None``, generates a
            timestamped path under ``./backups/``.
        metadata: Optional extra metadata merged into the backup's
            ``metadata`` section.

    Returns:
        Path to the created backup file.

    Example:
        path = await backup_collections(store, metadata={"profile": "local"})
    """
    if output_path is None:
        backups_dir = Path.cwd() / "backups"
        backups_dir.mkdir(exist_ok=True)
        timestamp = datetime.now().strftime("%Y-%m-%d-%H%M%S")
        output_path = str(backups_dir / f"collections-{timestamp}.json")

    async with store.unit_of_work() as uow:
        snapshot = await export_collections(uow)

    backup = BackupFile(
        metadata=BackupMetadata(
            created_at=utc_timestamp(),
            collection_count=len(snapshot.collections),
            **(metadata or {}),
        ),
        collections=snapshot.to_list(),
    )

    output_path_obj = Path(output_path)
    output_path_obj.parent.mkdir(parents=True, exist_ok=True)
    output_path_obj.write_text(backup.model_dump_json(indent=2))

    logger.info(f"Backed up {len(snapshot.collections)} collection(s) to {output_path}")
    return output_path


async def restore_collections(
    store: CollectionStore,
    path: str | Path,
    delete_missing: bool = False,
    predicate: Callable[[CollectionSchema], bool] | None = None,
    dry_run: bool = False,
) -> ImportResult:
    """Import a backup or snapshot file into the store.

    Args:
        store: Store implementing the ``CollectionStore`` protocol.
        path: Backup envelope or plain snapshot JSON file.
        delete_missing: Passed to ``import_collections``.
        predicate: Passed to ``import_collections``.
        dry_run: When ``True``, compute the changes and roll them back.

    Returns:
        ``ImportResult`` describing the (would-be) changes.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValidationError, SchemaError: If the snapshot is invalid.
        StoreError: If the store fails.
    """
    snapshot = load_snapshot_file(path)

    uow = await store.begin()
    try:
        result = await import_collections(
            uow, snapshot, delete_missing=delete_missing, predicate=predicate
        )
    except BaseException:
        await uow.rollback()
        raise

    if dry_run:
        await uow.rollback()
        logger.info(f"Dry run of {path}: {result.format_report()}")
        return result

    try:
        await uow.commit()
    except Exception:
        await uow.rollback()
        raise

    logger.info(f"Restored {path}: {result.format_report()}")
    return result


def validate_backup(path: str | Path) -> SchemaValidationResult:
    """Validate a backup or snapshot file without touching any store.

    Checks that the file parses and that the snapshot is internally
    consistent (``validate_snapshot`` with no live schema).

    Example:
        report = validate_backup("backups/collections-2024-01-01-120000.json")
        print(report.format_report())
    """
    try:
        snapshot = load_snapshot_file(path)
    except FileNotFoundError as e:
        return SchemaValidationResult(valid=False, errors=[FieldError(message=str(e))])
    except ValidationError as e:
        return SchemaValidationResult(valid=False, errors=e.errors)

    return validate_snapshot(snapshot)

"""Discovery and loading of migration files.

A migration file is a Python module in the migrations directory that
defines:

- ``SEQUENCE`` (int, required): execution order.  Ordering never depends
  on the file name.
- ``up(uow)`` (required): applies the migration, usually by calling
  ``import_collections``.
- ``down(uow)`` (optional): reverts it.  May return ``NOOP``.
- ``NAME`` (optional): marker name; defaults to the file stem.

Files whose name starts with ``_`` or ``.`` are ignored.

Usage:
    from collection_migrate.migrations.loader import load_migrations

    records = load_migrations("migrations")
"""

import importlib.util
import inspect
import logging
from collections.abc import Iterable
from pathlib import Path
from types import ModuleType

from collection_migrate.errors import MigrationError
from collection_migrate.migrations.models import MigrationRecord

logger = logging.getLogger(__name__)

_MODULE_PREFIX = "collection_migrate_migrations"


def _import_file(path: Path) -> ModuleType:
    module_name = f"{_MODULE_PREFIX}.{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise MigrationError(f"Cannot load migration file: {path}")

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise MigrationError(f"Failed to import migration {path.name}: {e}") from e
    return module


def record_from_module(module: ModuleType, default_name: str, source: Path | None = None) -> MigrationRecord:
    """Build a ``MigrationRecord`` from a loaded migration module.

    Raises:
        MigrationError: If ``SEQUENCE`` or ``up`` is missing or invalid.
    """
    sequence = getattr(module, "SEQUENCE", None)
    # bool is an int subclass but never a valid sequence
    if not isinstance(sequence, int) or isinstance(sequence, bool):
        raise MigrationError(f"Migration {default_name} must define an integer SEQUENCE")

    up = getattr(module, "up", None)
    if not callable(up):
        raise MigrationError(f"Migration {default_name} must define an up(uow) function")

    down = getattr(module, "down", None)
    if down is not None and not callable(down):
        raise MigrationError(f"Migration {default_name}: down must be callable")

    name = getattr(module, "NAME", None) or default_name
    description = inspect.getdoc(module) or ""

    return MigrationRecord(
        name=name,
        sequence=sequence,
        up=up,
        down=down,
        description=description.splitlines()[0] if description else "",
        source=source,
    )


def sort_migrations(records: Iterable[MigrationRecord]) -> list[MigrationRecord]:
    """Sort records by sequence, rejecting duplicate names or sequences.

    Raises:
        MigrationError: If two records share a name or a sequence.
    """
    ordered = sorted(records, key=lambda r: r.sequence)

    seen_names: dict[str, MigrationRecord] = {}
    seen_sequences: dict[int, MigrationRecord] = {}
    for record in ordered:
        if record.name in seen_names:
            raise MigrationError(f"Duplicate migration name: {record.name}")
        if record.sequence in seen_sequences:
            other = seen_sequences[record.sequence]
            raise MigrationError(
                f"Duplicate migration sequence {record.sequence}: {other.name} and {record.name}"
            )
        seen_names[record.name] = record
        seen_sequences[record.sequence] = record

    return ordered


def load_migrations(directory: str | Path) -> list[MigrationRecord]:
    """Load every migration file in a directory.

    Args:
        directory: Directory containing migration ``.py`` files.

    Returns:
        Records sorted by ascending sequence.

    Raises:
        FileNotFoundError: If the directory does not exist.
        MigrationError: If a file is invalid or two records clash.
    """
    migrations_dir = Path(directory)
    if not migrations_dir.is_dir():
        raise FileNotFoundError(f"Migrations directory not found: {migrations_dir}")

    records: list[MigrationRecord] = []
    for path in sorted(migrations_dir.glob("*.py")):
        if path.name.startswith(("_", ".")):
            continue
        module = _import_file(path)
        records.append(record_from_module(module, path.stem, source=path))

    ordered = sort_migrations(records)
    logger.debug(f"Discovered {len(ordered)} migrations in {migrations_dir}")
    return ordered

"""Generation of snapshot migration files.

A snapshot migration imports a full collections snapshot with
``delete_missing=True`` on ``up`` and re-imports the schema that was live
when the file was generated on ``down``, so it is reversible.

Usage:
    from collection_migrate.migrations.templates import write_snapshot_migration

    path = write_snapshot_migration("migrations", target, previous=live)
"""

import pprint
import time
from pathlib import Path

from collection_migrate.schema.models import Snapshot, utc_timestamp

_TEMPLATE = '''"""Collections snapshot{title}.

Generated {generated_at}.
"""

from collection_migrate import Snapshot, import_collections

SEQUENCE = {sequence}

SNAPSHOT = {snapshot}

PREVIOUS = {previous}


async def up(uow):
    await import_collections(uow, Snapshot.from_list(SNAPSHOT), delete_missing=True)


async def down(uow):
    await import_collections(uow, Snapshot.from_list(PREVIOUS), delete_missing=True)
'''


def _literal(snapshot: Snapshot) -> str:
    records = [
        {k: v for k, v in record.items() if k not in ("created", "updated")}
        for record in snapshot.to_list()
    ]
    return pprint.pformat(records, indent=4, width=88, sort_dicts=False)


def render_snapshot_migration(
    snapshot: Snapshot,
    sequence: int,
    previous: Snapshot | None = None,
    title: str = "",
) -> str:
    """Render the source of a snapshot migration module.

    Args:
        snapshot: Schema applied by ``up``.
        sequence: Value of the module's ``SEQUENCE``.
        previous: Schema restored by ``down``.  ``None`` means an empty
            schema, so ``down`` deletes every non-system collection.
        title: Optional suffix for the module docstring.

    Returns:
        Python source code.
    """
    return _TEMPLATE.format(
        title=f": {title}" if title else "",
        generated_at=utc_timestamp(),
        sequence=sequence,
        snapshot=_literal(snapshot),
        previous=_literal(previous or Snapshot()),
    )


def write_snapshot_migration(
    directory: str | Path,
    snapshot: Snapshot,
    previous: Snapshot | None = None,
    sequence: int | None = None,
    name: str = "collections_snapshot",
) -> Path:
    """Write a new snapshot migration file.

    Args:
        directory: Migrations directory (created if missing).
        snapshot: Schema applied by ``up``.
        previous: Schema restored by ``down``.
        sequence: Explicit sequence; defaults to the current Unix time.
        name: File name suffix.

    Returns:
        Path to the written file, ``<sequence>_<name>.py``.

    Raises:
        FileExistsError: If the file already exists.
    """
    if sequence is None:
        sequence = int(time.time())

    migrations_dir = Path(directory)
    migrations_dir.mkdir(parents=True, exist_ok=True)
    path = migrations_dir / f"{sequence}_{name}.py"
    if path.exists():
        raise FileExistsError(f"Migration file already exists: {path}")

    title = "" if name == "collections_snapshot" else name.replace("_", " ")
    path.write_text(render_snapshot_migration(snapshot, sequence, previous, title=title))
    return path

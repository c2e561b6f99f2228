"""Migration records and applied markers.

A ``MigrationRecord`` pairs an ``up`` and a ``down`` function with a name
and an explicit, typed ``sequence`` that defines execution order.  An
``AppliedMarker`` is the persisted proof that a record has run.

Usage:
    from collection_migrate.migrations.models import MigrationRecord, NOOP

    async def up(uow):
        await import_collections(uow, SNAPSHOT, delete_missing=True)

    async def down(uow):
        return NOOP  # one-way

    record = MigrationRecord(name="initial", sequence=1, up=up, down=down)
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from collection_migrate.schema.models import utc_timestamp


class _Noop:
    """Sentinel returned by ``down`` functions that intentionally do nothing."""

    _instance: "_Noop | None" = None

    def __new__(cls) -> "_Noop":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOOP"


NOOP = _Noop()

MigrationFunc = Callable[[Any], Awaitable[Any] | Any]


@dataclass(frozen=True)
class MigrationRecord:
    """A named, ordered pair of apply/revert operations.

    Attributes:
        name: Unique name, used as the applied-marker key.
        sequence: Execution order (ascending for apply, descending for revert).
        up: Called with the unit of work to apply the migration.
        down: Called with the unit of work to revert it.  ``None`` means the
            migration is one-way.
        description: Human-readable summary (module docstring for file
            migrations).
        source: File the record was loaded from, if any.
    """

    name: str
    sequence: int
    up: MigrationFunc
    down: MigrationFunc | None = None
    description: str = ""
    source: Path | None = None

    @property
    def display_name(self) -> str:
        """Human-readable name for logs."""
        if self.name.startswith(f"{self.sequence}_"):
            return self.name
        return f"{self.sequence}_{self.name}"

    @property
    def reversible(self) -> bool:
        return self.down is not None


class AppliedMarker(BaseModel):
    """Persisted proof that a migration record has been applied."""

    name: str
    sequence: int
    applied_at: str = Field(default_factory=utc_timestamp)


class MigrationStatus(BaseModel):
    """Applied state of one migration, as reported by ``MigrationRunner.status()``.

    ``known`` is False for markers whose migration file no longer exists.
    """

    name: str
    sequence: int
    applied: bool = False
    applied_at: str | None = None
    known: bool = True
    description: str = ""

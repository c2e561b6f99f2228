"""Migration runner -- applies and reverts migration records.

Each record runs in its own unit of work together with its applied-marker
write, so a record is either fully applied (schema changes and marker
committed) or not at all.  Whole runs are serialised through the store's
global lock, and each record re-checks its marker inside its own unit of
work, so a record applied by another process is skipped.  The first
failure stops the run.

Usage:
    from collection_migrate.migrations.loader import load_migrations
    from collection_migrate.migrations.runner import MigrationRunner

    runner = MigrationRunner(store, load_migrations("migrations"))
    applied = await runner.apply_pending()
    reverted = await runner.revert_last(1)
"""

import inspect
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from collection_migrate.errors import (
    MigrateError,
    MigrationError,
    PartialApplyError,
)
from collection_migrate.migrations.loader import sort_migrations
from collection_migrate.migrations.models import (
    NOOP,
    AppliedMarker,
    MigrationFunc,
    MigrationRecord,
    MigrationStatus,
)

if TYPE_CHECKING:
    from collection_migrate.adapters.base import CollectionStore, UnitOfWork

logger = logging.getLogger(__name__)


async def _call(func: MigrationFunc, uow: "UnitOfWork") -> Any:
    """Call a migration function, awaiting it when it is async."""
    result = func(uow)
    if inspect.isawaitable(result):
        result = await result
    return result


class MigrationRunner:
    """Applies pending migrations and reverts applied ones.

    Args:
        store: Store implementing the ``CollectionStore`` protocol.
        migrations: Known migration records, in any order.

    Raises:
        MigrationError: If two records share a name or a sequence.

    Example:
        runner = MigrationRunner(store, load_migrations("migrations"))
        count = await runner.apply_pending()
    """

    def __init__(self, store: "CollectionStore", migrations: Iterable[MigrationRecord]) -> None:
        self.store = store
        self.migrations = sort_migrations(migrations)
        self._by_name = {m.name: m for m in self.migrations}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def applied(self) -> list[AppliedMarker]:
        """Applied markers, read fresh from the store."""
        async with self.store.unit_of_work() as uow:
            return await uow.get_applied_markers()

    async def pending(self) -> list[MigrationRecord]:
        """Records without an applied marker, in ascending sequence."""
        markers = await self.applied()
        return self._pending_from(markers)

    def _pending_from(self, markers: list[AppliedMarker]) -> list[MigrationRecord]:
        applied_names = {m.name for m in markers}
        return [m for m in self.migrations if m.name not in applied_names]

    async def status(self) -> list[MigrationStatus]:
        """Applied state of every known record plus orphaned markers.

        Ordered by sequence.  Markers whose record is no longer known are
        reported with ``known=False``.
        """
        markers = {m.name: m for m in await self.applied()}
        statuses: list[MigrationStatus] = []
        for record in self.migrations:
            marker = markers.get(record.name)
            statuses.append(
                MigrationStatus(
                    name=record.name,
                    sequence=record.sequence,
                    applied=marker is not None,
                    applied_at=marker.applied_at if marker else None,
                    description=record.description,
                )
            )
        for name, marker in markers.items():
            if name not in self._by_name:
                statuses.append(
                    MigrationStatus(
                        name=name,
                        sequence=marker.sequence,
                        applied=True,
                        applied_at=marker.applied_at,
                        known=False,
                    )
                )
        return sorted(statuses, key=lambda s: (s.sequence, s.name))

    # ------------------------------------------------------------------
    # Apply / revert
    # ------------------------------------------------------------------

    async def apply_pending(self) -> int:
        """Apply every pending record in ascending sequence.

        Returns:
            Number of records applied.

        Raises:
            ValidationError, SchemaError: A record's snapshot is invalid.
            StoreError: The store failed; the failing record has no marker
                and the whole run can be retried.
            MigrationError: Migration code raised any other exception.
            PartialApplyError: Rolling back the failing record failed.
        """
        count = 0
        async with self.store.lock():
            markers = await self.applied()
            pending = self._pending_from(markers)
            if not pending:
                logger.info("No pending migrations")
                return 0

            last_applied = max((m.sequence for m in markers), default=None)
            for record in pending:
                if last_applied is not None and record.sequence < last_applied:
                    logger.warning(
                        f"Applying {record.display_name} out of order "
                        f"(latest applied sequence is {last_applied})"
                    )
                if await self._run(record, revert=False):
                    count += 1

        logger.info(f"Applied {count} migration(s)")
        return count

    async def revert_last(self, n: int = 1) -> int:
        """Revert the last ``n`` applied records in descending sequence.

        A record whose ``down`` is missing or returns ``NOOP`` is treated as
        one-way: its marker is still removed so it can be applied again.

        Args:
            n: Number of applied records to revert.  Values larger than the
                number of applied records revert everything.

        Returns:
            Number of records reverted.

        Raises:
            MigrationError: An applied marker has no known record, or
                migration code raised.
            StoreError, PartialApplyError: As for ``apply_pending``.
        """
        if n <= 0:
            return 0

        count = 0
        async with self.store.lock():
            markers = await self.applied()
            to_revert = sorted(markers, key=lambda m: (m.sequence, m.name), reverse=True)[:n]
            for marker in to_revert:
                record = self._by_name.get(marker.name)
                if record is None:
                    raise MigrationError(
                        f"Cannot revert {marker.name}: migration file not found"
                    )
                if await self._run(record, revert=True):
                    count += 1

        logger.info(f"Reverted {count} migration(s)")
        return count

    async def _run(self, record: MigrationRecord, revert: bool) -> bool:
        """Run one record's up or down inside its own unit of work.

        The marker is re-read inside the unit of work, so a record that
        another runner applied (or reverted) in the meantime is skipped.

        Returns:
            ``True`` if the record ran, ``False`` if it was skipped.
        """
        action = "Reverting" if revert else "Applying"

        uow = await self.store.begin()
        try:
            applied = {m.name for m in await uow.get_applied_markers()}
        except BaseException:
            await uow.rollback()
            raise
        if (record.name in applied) != revert:
            state = "already reverted" if revert else "already applied"
            logger.info(f"Skipping migration {record.display_name}: {state}")
            await uow.rollback()
            return False

        try:
            logger.info(f"{action} migration {record.display_name}")
            if revert:
                result = NOOP if record.down is None else await _call(record.down, uow)
                if result is NOOP:
                    logger.warning(
                        f"Migration {record.display_name} has no reversal; "
                        f"clearing its applied marker only"
                    )
                await uow.delete_marker(record.name)
            else:
                await _call(record.up, uow)
                await uow.save_marker(AppliedMarker(name=record.name, sequence=record.sequence))
        except BaseException as e:
            logger.error(f"{action} migration {record.display_name} failed: {e}")
            try:
                await uow.rollback()
            except Exception as rollback_error:
                raise PartialApplyError(
                    f"Rollback of {record.display_name} failed: {rollback_error}"
                ) from e
            if isinstance(e, MigrateError) or not isinstance(e, Exception):
                raise
            raise MigrationError(f"Migration {record.display_name} failed: {e}") from e

        try:
            await uow.commit()
        except Exception as e:
            logger.error(f"Commit of {record.display_name} failed: {e}")
            await uow.rollback()
            raise
        return True

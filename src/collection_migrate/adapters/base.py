"""Store protocol definitions.

Defines the ``CollectionStore`` and ``UnitOfWork`` Protocols that all store
adapters implement.  All I/O methods are ``async def`` -- the library is
async-first.

A unit of work is the only way to read or mutate a store: it sees one
consistent state and commits or rolls back atomically.

Usage:
    from collection_migrate.adapters.base import CollectionStore

    async def rename(store: CollectionStore) -> None:
        async with store.unit_of_work() as uow:
            posts = await uow.get_collection_by_name("posts")
            posts.name = "articles"
            await uow.save_collection(posts)
"""

import logging
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import TYPE_CHECKING, Protocol

from collection_migrate.errors import PartialApplyError

if TYPE_CHECKING:
    from collection_migrate.migrations.models import AppliedMarker
    from collection_migrate.schema.models import CollectionSchema

logger = logging.getLogger(__name__)


class UnitOfWork(Protocol):
    """A scoped set of store reads and mutations.

    Mutations become visible to other units of work only after ``commit()``.
    After ``commit()`` or ``rollback()`` the unit of work must not be used.
    """

    async def list_collections(self) -> "list[CollectionSchema]":
        """Return every live collection, ordered by creation."""
        ...

    async def get_collection_by_id(self, collection_id: str) -> "CollectionSchema | None":
        """Return the collection with this id, or ``None``."""
        ...

    async def get_collection_by_name(self, name: str) -> "CollectionSchema | None":
        """Return the collection with this name (case-insensitive), or ``None``."""
        ...

    async def save_collection(self, collection: "CollectionSchema") -> "CollectionSchema":
        """Create or replace a collection (matched by id).

        Sets ``created`` on first save and ``updated`` on every save, and
        returns the stored copy.

        Raises:
            SchemaError: If another collection already uses the name.
            StoreError: If the store fails.
        """
        ...

    async def delete_collection(self, collection_id: str) -> None:
        """Delete a collection.  Deleting a missing id is a no-op."""
        ...

    async def get_applied_markers(self) -> "list[AppliedMarker]":
        """Return applied markers ordered by ascending sequence."""
        ...

    async def save_marker(self, marker: "AppliedMarker") -> None:
        """Persist an applied marker (replacing one with the same name)."""
        ...

    async def delete_marker(self, name: str) -> None:
        """Delete the applied marker for a migration name."""
        ...

    async def commit(self) -> None:
        """Make all mutations visible.

        Raises:
            StoreError: If the commit fails; nothing is applied.
        """
        ...

    async def rollback(self) -> None:
        """Discard all mutations."""
        ...


class CollectionStore(Protocol):
    """Store interface consumed by the importer and the migration runner."""

    async def begin(self) -> UnitOfWork:
        """Start a new unit of work."""
        ...

    def unit_of_work(self) -> AbstractAsyncContextManager[UnitOfWork]:
        """Unit of work committed on success and rolled back on error."""
        ...

    def lock(self) -> AbstractAsyncContextManager[None]:
        """Global lock serialising migration runs."""
        ...

    async def close(self) -> None:
        """Release connections and other resources."""
        ...


@asynccontextmanager
async def open_unit_of_work(store: CollectionStore) -> AsyncIterator[UnitOfWork]:
    """Shared ``unit_of_work()`` implementation for store adapters.

    Commits when the block exits normally, rolls back when it raises.  A
    rollback that itself fails raises ``PartialApplyError`` chained to the
    original error.
    """
    uow = await store.begin()
    try:
        yield uow
    except BaseException as original:
        try:
            await uow.rollback()
        except Exception as e:
            logger.error(f"Rollback failed after {original!r}: {e}")
            raise PartialApplyError(f"Rollback failed: {e}") from original
        raise
    try:
        await uow.commit()
    except Exception:
        await uow.rollback()
        raise

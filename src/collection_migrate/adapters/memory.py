"""In-memory store adapter.

Provides ``InMemoryStore``, a process-local implementation of the
``CollectionStore`` protocol.  Each unit of work operates on a private copy
of the committed state, and units of work are serialised, so commit and
rollback are exact.  Used for dry runs, the ``memory`` profile provider and
tests.

Usage:
    from collection_migrate.adapters.memory import InMemoryStore

    store = InMemoryStore()
    async with store.unit_of_work() as uow:
        await import_collections(uow, snapshot)
"""

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import TYPE_CHECKING

from collection_migrate.adapters.base import open_unit_of_work
from collection_migrate.errors import SchemaError, StoreError
from collection_migrate.schema.models import CollectionSchema, FieldError, utc_timestamp

if TYPE_CHECKING:
    from collection_migrate.migrations.models import AppliedMarker


class InMemoryUnitOfWork:
    """Unit of work over a private copy of an ``InMemoryStore``'s state."""

    def __init__(
        self,
        store: "InMemoryStore",
        collections: dict[str, CollectionSchema],
        markers: "dict[str, AppliedMarker]",
    ) -> None:
        self._store = store
        self._collections = collections
        self._markers = markers
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise StoreError("Unit of work is already committed or rolled back")

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def list_collections(self) -> list[CollectionSchema]:
        self._check_open()
        return [c.model_copy(deep=True) for c in self._collections.values()]

    async def get_collection_by_id(self, collection_id: str) -> CollectionSchema | None:
        self._check_open()
        found = self._collections.get(collection_id)
        return found.model_copy(deep=True) if found is not None else None

    async def get_collection_by_name(self, name: str) -> CollectionSchema | None:
        self._check_open()
        lowered = name.lower()
        for c in self._collections.values():
            if c.name.lower() == lowered:
                return c.model_copy(deep=True)
        return None

    async def save_collection(self, collection: CollectionSchema) -> CollectionSchema:
        self._check_open()
        lowered = collection.name.lower()
        for other in self._collections.values():
            if other.id != collection.id and other.name.lower() == lowered:
                raise SchemaError([
                    FieldError(
                        collection_id=collection.id,
                        collection_name=collection.name,
                        path="name",
                        message=f"Name is already used by collection {other.id!r}",
                        conflict=True,
                    )
                ])

        stored = collection.model_copy(deep=True)
        now = utc_timestamp()
        existing = self._collections.get(stored.id)
        if existing is not None:
            stored.created = existing.created
            stored.updated = now
        else:
            stored.created = stored.created or now
            stored.updated = stored.updated or now

        self._collections[stored.id] = stored
        return stored.model_copy(deep=True)

    async def delete_collection(self, collection_id: str) -> None:
        self._check_open()
        self._collections.pop(collection_id, None)

    # ------------------------------------------------------------------
    # Applied markers
    # ------------------------------------------------------------------

    async def get_applied_markers(self) -> "list[AppliedMarker]":
        self._check_open()
        markers = sorted(self._markers.values(), key=lambda m: (m.sequence, m.name))
        return [m.model_copy() for m in markers]

    async def save_marker(self, marker: "AppliedMarker") -> None:
        self._check_open()
        self._markers[marker.name] = marker.model_copy()

    async def delete_marker(self, name: str) -> None:
        self._check_open()
        self._markers.pop(name, None)

    # ------------------------------------------------------------------
    # Transaction control
    # ------------------------------------------------------------------

    async def commit(self) -> None:
        self._check_open()
        self._closed = True
        self._store._publish(self._collections, self._markers)

    async def rollback(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._store._release()


class InMemoryStore:
    """Process-local implementation of the ``CollectionStore`` protocol.

    Args:
        collections: Optional collections to seed the store with.

    Example:
        store = InMemoryStore()
        runner = MigrationRunner(store, load_migrations("migrations"))
        await runner.apply_pending()
    """

    def __init__(self, collections: Iterable[CollectionSchema] = ()) -> None:
        now = utc_timestamp()
        self._collections: dict[str, CollectionSchema] = {}
        for c in collections:
            seeded = c.model_copy(deep=True)
            seeded.created = seeded.created or now
            seeded.updated = seeded.updated or now
            self._collections[seeded.id] = seeded
        self._markers: "dict[str, AppliedMarker]" = {}
        self._tx_lock = asyncio.Lock()
        self._run_lock = asyncio.Lock()

    async def begin(self) -> InMemoryUnitOfWork:
        await self._tx_lock.acquire()
        return InMemoryUnitOfWork(
            self,
            {cid: c.model_copy(deep=True) for cid, c in self._collections.items()},
            {name: m.model_copy() for name, m in self._markers.items()},
        )

    def unit_of_work(self) -> AbstractAsyncContextManager[InMemoryUnitOfWork]:
        return open_unit_of_work(self)

    @asynccontextmanager
    async def lock(self) -> AsyncIterator[None]:
        async with self._run_lock:
            yield

    async def close(self) -> None:
        pass

    def _publish(
        self,
        collections: dict[str, CollectionSchema],
        markers: "dict[str, AppliedMarker]",
    ) -> None:
        self._collections = collections
        self._markers = markers
        self._release()

    def _release(self) -> None:
        if self._tx_lock.locked():
            self._tx_lock.release()

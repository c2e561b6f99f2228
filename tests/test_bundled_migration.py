"""Tests for the bundled users/events/errors migration."""

from pathlib import Path

import pytest

from collection_migrate.adapters.memory import InMemoryStore
from collection_migrate.adapters.sql import AsyncSqlStore
from collection_migrate.migrations.loader import load_migrations
from collection_migrate.migrations.runner import MigrationRunner
from collection_migrate.schema.models import CollectionSchema


class TestBundledMigration:
    """migrations/1702695322_collections_snapshot.py"""

    def test_loads(self, bundled_migrations_dir: Path) -> None:
        [record] = load_migrations(bundled_migrations_dir)

        assert record.sequence == 1702695322
        assert record.name == "1702695322_collections_snapshot"
        assert record.reversible

    @pytest.mark.asyncio
    async def test_apply_and_revert_in_memory(self, bundled_migrations_dir: Path) -> None:
        store = InMemoryStore([CollectionSchema(id="leftover", name="leftover")])
        runner = MigrationRunner(store, load_migrations(bundled_migrations_dir))

        assert await runner.apply_pending() == 1
        async with store.unit_of_work() as uow:
            names = sorted(c.name for c in await uow.list_collections())
        assert names == ["errors", "events", "users"]

        assert await runner.revert_last() == 1
        async with store.unit_of_work() as uow:
            assert await uow.list_collections() == []
            assert await uow.get_applied_markers() == []

    @pytest.mark.asyncio
    async def test_apply_on_sqlite(self, tmp_path: Path, bundled_migrations_dir: Path) -> None:
        store = AsyncSqlStore(f"sqlite:///{tmp_path / 'data.db'}")
        try:
            runner = MigrationRunner(store, load_migrations(bundled_migrations_dir))
            await runner.apply_pending()

            async with store.unit_of_work() as uow:
                users = await uow.get_collection_by_id("_pb_users_auth_")
                markers = await uow.get_applied_markers()
        finally:
            await store.close()

        assert users.kind == "auth"
        assert users.options.minPasswordLength == 8
        assert users.field_by_name("avatar").options.maxSize == 5242880
        assert [m.sequence for m in markers] == [1702695322]

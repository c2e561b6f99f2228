"""Tests for generated snapshot migration files."""

from pathlib import Path

import pytest

from collection_migrate.adapters.memory import InMemoryStore
from collection_migrate.migrations.loader import load_migrations
from collection_migrate.migrations.runner import MigrationRunner
from collection_migrate.migrations.templates import (
    render_snapshot_migration,
    write_snapshot_migration,
)
from collection_migrate.schema.models import Snapshot


class TestRenderSnapshotMigration:
    """Rendered source."""

    def test_contains_sequence_and_literals(self, posts_records: list[dict]) -> None:
        source = render_snapshot_migration(Snapshot.from_list(posts_records), 42, title="posts")

        assert source.startswith('"""Collections snapshot: posts.')
        assert "SEQUENCE = 42" in source
        assert "PREVIOUS = []" in source
        assert "'posts0000000001'" in source
        assert "async def down(uow):" in source

    def test_timestamps_excluded(self, bundled_records: list[dict]) -> None:
        """Store-managed timestamps are not written into migrations."""
        source = render_snapshot_migration(Snapshot.from_list(bundled_records), 1)

        assert "2023-12-15" not in source.split('"""', 2)[2]


class TestWriteSnapshotMigration:
    """Written files load and run as reversible migrations."""

    def test_file_name(self, tmp_path: Path, posts_records: list[dict]) -> None:
        path = write_snapshot_migration(tmp_path / "migrations", Snapshot.from_list(posts_records), sequence=100)

        assert path.name == "100_collections_snapshot.py"
        assert path.exists()

    def test_refuses_to_overwrite(self, tmp_path: Path, posts_records: list[dict]) -> None:
        snapshot = Snapshot.from_list(posts_records)
        write_snapshot_migration(tmp_path, snapshot, sequence=100)

        with pytest.raises(FileExistsError):
            write_snapshot_migration(tmp_path, snapshot, sequence=100)

    @pytest.mark.asyncio
    async def test_generated_migrations_apply_and_revert(
        self, tmp_path: Path, posts_records: list[dict]
    ) -> None:
        """A generated chain applies forward and reverts to each previous schema."""
        v1 = Snapshot.from_list(posts_records[:1])
        v2 = Snapshot.from_list(posts_records)
        write_snapshot_migration(tmp_path, v1, sequence=1, name="posts")
        write_snapshot_migration(tmp_path, v2, previous=v1, sequence=2, name="comments")

        records = load_migrations(tmp_path)
        assert [r.sequence for r in records] == [1, 2]
        assert records[1].description == "Collections snapshot: comments."

        store = InMemoryStore()
        runner = MigrationRunner(store, records)
        assert await runner.apply_pending() == 2

        async with store.unit_of_work() as uow:
            assert len(await uow.list_collections()) == 2

        await runner.revert_last()
        async with store.unit_of_work() as uow:
            assert [c.name for c in await uow.list_collections()] == ["posts"]

        await runner.revert_last()
        async with store.unit_of_work() as uow:
            assert await uow.list_collections() == []

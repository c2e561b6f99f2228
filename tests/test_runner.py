"""Tests for MigrationRunner: ordering, atomicity and rollback."""

import logging
from unittest.mock import AsyncMock, patch

import pytest

from collection_migrate.adapters.memory import InMemoryStore
from collection_migrate.errors import MigrationError, SchemaError, StoreError
from collection_migrate.migrations.models import NOOP, MigrationRecord
from collection_migrate.migrations.runner import MigrationRunner
from collection_migrate.schema.importer import import_collections
from collection_migrate.schema.models import CollectionSchema, Snapshot


def _snapshot_record(name: str, sequence: int, target: list[dict], previous: list[dict]) -> MigrationRecord:
    """A reversible record that imports ``target`` and restores ``previous``."""

    async def up(uow):
        await import_collections(uow, Snapshot.from_list(target), delete_missing=True)

    async def down(uow):
        await import_collections(uow, Snapshot.from_list(previous), delete_missing=True)

    return MigrationRecord(name=name, sequence=sequence, up=up, down=down)


V1 = [{"id": "c1", "name": "posts", "fields": [{"id": "f1", "name": "title", "type": "text"}]}]
V2 = [
    {
        "id": "c1",
        "name": "posts",
        "fields": [
            {"id": "f1", "name": "title", "type": "text"},
            {"id": "f2", "name": "body", "type": "editor"},
        ],
    },
    {"id": "c2", "name": "tags"},
]


async def _names(store: InMemoryStore) -> list[str]:
    async with store.unit_of_work() as uow:
        return sorted(c.name for c in await uow.list_collections())


async def _fields(store: InMemoryStore, collection_id: str) -> list[str]:
    async with store.unit_of_work() as uow:
        return (await uow.get_collection_by_id(collection_id)).field_names


class FlakyCommitStore(InMemoryStore):
    """InMemoryStore whose commits fail while ``fail_commit`` is set."""

    fail_commit = False

    async def begin(self):
        uow = await super().begin()
        original = uow.commit

        async def commit():
            if self.fail_commit:
                raise StoreError("commit failed")
            await original()

        uow.commit = commit
        return uow


# ============================================================================
# Apply
# ============================================================================


class TestApplyPending:
    """Pending records run in ascending sequence."""

    @pytest.mark.asyncio
    async def test_applies_in_sequence_order(self) -> None:
        store = InMemoryStore()
        order: list[str] = []

        def make(name: str, seq: int) -> MigrationRecord:
            async def up(uow):
                order.append(name)

            return MigrationRecord(name=name, sequence=seq, up=up)

        runner = MigrationRunner(store, [make("c", 30), make("a", 10), make("b", 20)])

        assert await runner.apply_pending() == 3
        assert order == ["a", "b", "c"]
        assert [m.name for m in await runner.applied()] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_second_run_is_noop(self) -> None:
        store = InMemoryStore()
        runner = MigrationRunner(store, [_snapshot_record("v1", 1, V1, [])])

        assert await runner.apply_pending() == 1
        assert await runner.apply_pending() == 0
        assert await runner.pending() == []

    @pytest.mark.asyncio
    async def test_record_applied_elsewhere_is_skipped(self) -> None:
        """A marker written after the pending list was read stops a second run of up."""
        store = InMemoryStore()
        calls = []
        records = [MigrationRecord(name="m", sequence=1, up=calls.append)]
        await MigrationRunner(store, records).apply_pending()

        stale = MigrationRunner(store, records)
        with patch.object(stale, "applied", AsyncMock(return_value=[])):
            assert await stale.apply_pending() == 0

        assert len(calls) == 1
        assert [m.name for m in await stale.applied()] == ["m"]

    @pytest.mark.asyncio
    async def test_record_reverted_elsewhere_is_skipped(self) -> None:
        store = InMemoryStore()
        downs = []
        record = MigrationRecord(name="m", sequence=1, up=lambda uow: None, down=downs.append)
        runner = MigrationRunner(store, [record])
        await runner.apply_pending()
        markers = await runner.applied()
        await runner.revert_last()

        with patch.object(runner, "applied", AsyncMock(return_value=markers)):
            assert await runner.revert_last() == 0

        assert len(downs) == 1

    @pytest.mark.asyncio
    async def test_sync_functions_supported(self) -> None:
        """Plain (non-async) up functions are called too."""
        store = InMemoryStore()
        calls = []
        runner = MigrationRunner(store, [MigrationRecord(name="m", sequence=1, up=calls.append)])

        await runner.apply_pending()

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_failing_up_leaves_no_marker_or_changes(self) -> None:
        """A failing record is rolled back; earlier records stay applied."""
        store = InMemoryStore()

        async def broken_up(uow):
            await import_collections(uow, Snapshot.from_list(V2), delete_missing=True)
            raise RuntimeError("boom")

        runner = MigrationRunner(
            store,
            [
                _snapshot_record("v1", 1, V1, []),
                MigrationRecord(name="v2", sequence=2, up=broken_up),
            ],
        )

        with pytest.raises(MigrationError, match="boom") as exc_info:
            await runner.apply_pending()

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert [m.name for m in await runner.applied()] == ["v1"]
        assert await _names(store) == ["posts"]
        assert await _fields(store, "c1") == ["title"]

    @pytest.mark.asyncio
    async def test_schema_error_not_wrapped(self) -> None:
        """Validation failures propagate unchanged."""
        store = InMemoryStore()
        bad = [{"id": "c1", "name": "logs", "fields": [{"id": "f1", "name": "raw", "type": "json", "options": {"maxSize": 0}}]}]
        runner = MigrationRunner(store, [_snapshot_record("bad", 1, bad, [])])

        with pytest.raises(SchemaError):
            await runner.apply_pending()

        assert await runner.applied() == []

    @pytest.mark.asyncio
    async def test_commit_failure_is_store_error(self) -> None:
        """A failed commit leaves no marker and can be retried."""
        store = FlakyCommitStore()

        async def up(uow):
            await import_collections(uow, Snapshot.from_list(V1))
            store.fail_commit = True

        runner = MigrationRunner(store, [MigrationRecord(name="v1", sequence=1, up=up)])

        with pytest.raises(StoreError, match="commit failed"):
            await runner.apply_pending()

        store.fail_commit = False
        assert await runner.applied() == []
        assert await _names(store) == []

    @pytest.mark.asyncio
    async def test_out_of_order_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        """A record older than the latest applied one still runs, with a warning."""
        store = InMemoryStore()

        def noop_up(uow):
            return None

        await MigrationRunner(store, [MigrationRecord(name="late", sequence=20, up=noop_up)]).apply_pending()

        runner = MigrationRunner(
            store,
            [
                MigrationRecord(name="late", sequence=20, up=noop_up),
                MigrationRecord(name="early", sequence=10, up=noop_up),
            ],
        )
        with caplog.at_level(logging.WARNING, logger="collection_migrate.migrations.runner"):
            assert await runner.apply_pending() == 1

        assert "out of order" in caplog.text


# ============================================================================
# Revert
# ============================================================================


class TestRevertLast:
    """Applied records are reverted in descending sequence."""

    @pytest.mark.asyncio
    async def test_round_trip(self) -> None:
        """up then down restores the previous schema."""
        store = InMemoryStore()
        runner = MigrationRunner(
            store,
            [_snapshot_record("v1", 1, V1, []), _snapshot_record("v2", 2, V2, V1)],
        )
        await runner.apply_pending()
        assert await _names(store) == ["posts", "tags"]

        assert await runner.revert_last() == 1

        assert await _names(store) == ["posts"]
        assert await _fields(store, "c1") == ["title"]
        assert [m.name for m in await runner.applied()] == ["v1"]

    @pytest.mark.asyncio
    async def test_revert_more_than_applied(self) -> None:
        store = InMemoryStore()
        runner = MigrationRunner(
            store,
            [_snapshot_record("v1", 1, V1, []), _snapshot_record("v2", 2, V2, V1)],
        )
        await runner.apply_pending()

        assert await runner.revert_last(5) == 2
        assert await _names(store) == []
        assert await runner.applied() == []

    @pytest.mark.asyncio
    async def test_zero_is_noop(self) -> None:
        runner = MigrationRunner(InMemoryStore(), [])

        assert await runner.revert_last(0) == 0

    @pytest.mark.asyncio
    async def test_noop_down_clears_marker(self) -> None:
        """A one-way record is un-marked but its changes stay."""
        store = InMemoryStore()

        async def up(uow):
            await import_collections(uow, Snapshot.from_list(V1))

        async def down(uow):
            return NOOP

        runner = MigrationRunner(store, [MigrationRecord(name="v1", sequence=1, up=up, down=down)])
        await runner.apply_pending()

        assert await runner.revert_last() == 1
        assert await runner.applied() == []
        assert await _names(store) == ["posts"]

    @pytest.mark.asyncio
    async def test_missing_down_clears_marker(self) -> None:
        store = InMemoryStore()
        runner = MigrationRunner(store, [MigrationRecord(name="v1", sequence=1, up=lambda uow: None)])
        await runner.apply_pending()

        assert await runner.revert_last() == 1
        assert await runner.pending() != []

    @pytest.mark.asyncio
    async def test_unknown_marker(self) -> None:
        """An applied marker without a record cannot be reverted."""
        store = InMemoryStore()
        await MigrationRunner(store, [_snapshot_record("gone", 1, V1, [])]).apply_pending()

        with pytest.raises(MigrationError, match="gone"):
            await MigrationRunner(store, []).revert_last()

    @pytest.mark.asyncio
    async def test_failing_down_keeps_marker(self) -> None:
        store = InMemoryStore()

        async def down(uow):
            await import_collections(uow, Snapshot(), delete_missing=True)
            raise RuntimeError("cannot revert")

        runner = MigrationRunner(
            store,
            [MigrationRecord(name="v1", sequence=1, up=_snapshot_record("v1", 1, V1, []).up, down=down)],
        )
        await runner.apply_pending()

        with pytest.raises(MigrationError):
            await runner.revert_last()

        assert [m.name for m in await runner.applied()] == ["v1"]
        assert await _names(store) == ["posts"]


# ============================================================================
# Construction and status
# ============================================================================


class TestRunnerSetup:
    """Record validation and status reporting."""

    def test_duplicate_sequence_rejected(self) -> None:
        with pytest.raises(MigrationError, match="Duplicate migration sequence"):
            MigrationRunner(
                InMemoryStore(),
                [
                    MigrationRecord(name="a", sequence=1, up=lambda uow: None),
                    MigrationRecord(name="b", sequence=1, up=lambda uow: None),
                ],
            )

    def test_duplicate_name_rejected(self) -> None:
        with pytest.raises(MigrationError, match="Duplicate migration name"):
            MigrationRunner(
                InMemoryStore(),
                [
                    MigrationRecord(name="a", sequence=1, up=lambda uow: None),
                    MigrationRecord(name="a", sequence=2, up=lambda uow: None),
                ],
            )

    @pytest.mark.asyncio
    async def test_status(self) -> None:
        store = InMemoryStore()
        await MigrationRunner(
            store,
            [_snapshot_record("orphan", 1, [], []), _snapshot_record("v1", 2, V1, [])],
        ).apply_pending()

        runner = MigrationRunner(
            store,
            [_snapshot_record("v1", 2, V1, []), _snapshot_record("v2", 3, V2, V1)],
        )
        statuses = await runner.status()

        assert [(s.name, s.applied, s.known) for s in statuses] == [
            ("orphan", True, False),
            ("v1", True, True),
            ("v2", False, True),
        ]
        assert statuses[1].applied_at is not None

    def test_display_name(self) -> None:
        record = MigrationRecord(name="collections_snapshot", sequence=1702695322, up=lambda uow: None)
        prefixed = MigrationRecord(name="1702695322_collections_snapshot", sequence=1702695322, up=lambda uow: None)

        assert record.display_name == "1702695322_collections_snapshot"
        assert prefixed.display_name == "1702695322_collections_snapshot"
        assert not record.reversible

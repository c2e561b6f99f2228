"""Tests for import_collections / export_collections against the in-memory store."""

import pytest

from collection_migrate.adapters.memory import InMemoryStore
from collection_migrate.errors import SchemaError, StoreError, ValidationError
from collection_migrate.schema.importer import export_collections, import_collections
from collection_migrate.schema.models import CollectionSchema, Snapshot

USERS_ID = "_pb_users_auth_"
EVENTS_ID = "zt30my8u19auasj"
ERRORS_ID = "4t27n14g48t9t18"


async def _live(store: InMemoryStore) -> dict[str, CollectionSchema]:
    async with store.unit_of_work() as uow:
        return {c.id: c for c in await uow.list_collections()}


async def _import(store: InMemoryStore, snapshot, **kwargs):
    async with store.unit_of_work() as uow:
        return await import_collections(uow, snapshot, **kwargs)


def _without_field(records: list[dict], collection_id: str, field_name: str) -> list[dict]:
    for record in records:
        if record["id"] == collection_id:
            record["schema"] = [f for f in record["schema"] if f["name"] != field_name]
    return records


# ============================================================================
# The bundled users/events/errors snapshot
# ============================================================================


class TestBundledSnapshot:
    """Importing the users/events/errors snapshot."""

    @pytest.mark.asyncio
    async def test_creates_three_collections(self, bundled_records: list[dict]) -> None:
        """An empty store gets exactly the three collections."""
        store = InMemoryStore()

        result = await _import(store, bundled_records, delete_missing=True)

        assert result.created == [USERS_ID, EVENTS_ID, ERRORS_ID]
        live = await _live(store)
        assert {c.name for c in live.values()} == {"users", "events", "errors"}
        assert live[EVENTS_ID].field_names == ["type", "raw", "extra", "file"]
        assert live[EVENTS_ID].rules.update is None

    @pytest.mark.asyncio
    async def test_snapshot_timestamps_kept_on_create(self, bundled_records: list[dict]) -> None:
        store = InMemoryStore()

        await _import(store, bundled_records)

        live = await _live(store)
        assert live[USERS_ID].created == "2023-12-15 19:21:15.350Z"

    @pytest.mark.asyncio
    async def test_idempotent(self, bundled_records: list[dict]) -> None:
        """Importing the same snapshot twice changes nothing the second time."""
        store = InMemoryStore()
        await _import(store, bundled_records, delete_missing=True)
        before = await _live(store)

        result = await _import(store, bundled_records, delete_missing=True)

        assert result.change_count == 0
        assert result.unchanged == [USERS_ID, EVENTS_ID, ERRORS_ID]
        after = await _live(store)
        assert {cid: c.updated for cid, c in after.items()} == {
            cid: c.updated for cid, c in before.items()
        }

    @pytest.mark.asyncio
    async def test_field_order_does_not_trigger_update(self, bundled_records: list[dict]) -> None:
        store = InMemoryStore()
        await _import(store, bundled_records)
        bundled_records[1]["schema"].reverse()

        result = await _import(store, bundled_records)

        assert result.updated == []

    @pytest.mark.asyncio
    async def test_removed_field_dropped_with_delete_missing(self, bundled_records: list[dict]) -> None:
        """Dropping 'extra' from events removes it when delete_missing is set."""
        store = InMemoryStore()
        await _import(store, [dict(r) for r in bundled_records])

        result = await _import(
            store, _without_field(bundled_records, EVENTS_ID, "extra"), delete_missing=True
        )

        assert result.updated == [EVENTS_ID]
        live = await _live(store)
        assert live[EVENTS_ID].field_names == ["type", "raw", "file"]
        assert live[EVENTS_ID].field_by_id("dxtiuyee").name == "raw"

    @pytest.mark.asyncio
    async def test_removed_field_kept_without_delete_missing(self, bundled_records: list[dict]) -> None:
        store = InMemoryStore()
        await _import(store, [dict(r) for r in bundled_records])

        result = await _import(store, _without_field(bundled_records, EVENTS_ID, "extra"))

        assert result.change_count == 0
        live = await _live(store)
        assert "extra" in live[EVENTS_ID].field_names

    @pytest.mark.asyncio
    async def test_created_timestamp_survives_update(self, bundled_records: list[dict]) -> None:
        store = InMemoryStore()
        await _import(store, [dict(r) for r in bundled_records])
        bundled_records[2]["listRule"] = None

        await _import(store, bundled_records)

        errors = (await _live(store))[ERRORS_ID]
        assert errors.created == "2023-12-15 21:35:37.316Z"
        assert errors.updated != "2023-12-15 21:35:37.316Z"
        assert errors.rules.list is None


# ============================================================================
# Deletion
# ============================================================================


class TestDeleteMissing:
    """Collections absent from the snapshot."""

    @pytest.mark.asyncio
    async def test_kept_by_default(self, bundled_records: list[dict]) -> None:
        store = InMemoryStore([CollectionSchema(id="x1", name="extra_stuff")])

        result = await _import(store, bundled_records)

        assert result.deleted == []
        assert "x1" in await _live(store)

    @pytest.mark.asyncio
    async def test_deleted_with_delete_missing(self, bundled_records: list[dict]) -> None:
        store = InMemoryStore([CollectionSchema(id="x1", name="extra_stuff")])

        result = await _import(store, bundled_records, delete_missing=True)

        assert result.deleted == ["x1"]
        assert "x1" not in await _live(store)

    @pytest.mark.asyncio
    async def test_predicate_keeps_collection(self, bundled_records: list[dict]) -> None:
        """A predicate returning True keeps the live collection."""
        store = InMemoryStore(
            [CollectionSchema(id="x1", name="keep_me"), CollectionSchema(id="x2", name="drop_me")]
        )

        result = await _import(
            store,
            bundled_records,
            delete_missing=True,
            predicate=lambda c: c.name == "keep_me",
        )

        assert result.deleted == ["x2"]
        assert "x1" in await _live(store)

    @pytest.mark.asyncio
    async def test_referencing_collection_deleted_first(self, posts_records: list[dict]) -> None:
        store = InMemoryStore()
        await _import(store, posts_records)

        result = await _import(store, Snapshot(), delete_missing=True)

        assert result.deleted == ["comments0000001", "posts0000000001"]

    @pytest.mark.asyncio
    async def test_deleted_name_can_be_reused(self) -> None:
        """A new collection may take the name of one deleted in the same import."""
        store = InMemoryStore([CollectionSchema(id="old", name="posts")])

        result = await _import(store, [{"id": "new", "name": "posts"}], delete_missing=True)

        assert result.deleted == ["old"]
        assert result.created == ["new"]


# ============================================================================
# Ordering, renames and conflicts
# ============================================================================


class TestImportSemantics:
    """Identity, ordering and conflicts."""

    @pytest.mark.asyncio
    async def test_relation_targets_created_first(self, posts_records: list[dict]) -> None:
        store = InMemoryStore()

        result = await _import(store, list(reversed(posts_records)))

        assert result.created == ["posts0000000001", "comments0000001"]

    @pytest.mark.asyncio
    async def test_rename_keeps_identity(self, posts_records: list[dict]) -> None:
        """Renaming a collection updates it in place."""
        store = InMemoryStore()
        await _import(store, posts_records)
        created = (await _live(store))["posts0000000001"].created
        posts_records[0]["name"] = "articles"

        result = await _import(store, posts_records)

        assert result.updated == ["posts0000000001"]
        live = await _live(store)
        assert live["posts0000000001"].name == "articles"
        assert live["posts0000000001"].created == created

    @pytest.mark.asyncio
    async def test_name_swap_rejected(self) -> None:
        """Swapping two live names is a conflict."""
        store = InMemoryStore(
            [CollectionSchema(id="a", name="first"), CollectionSchema(id="b", name="second")]
        )

        with pytest.raises(ValidationError) as exc_info:
            await _import(store, [{"id": "a", "name": "second"}, {"id": "b", "name": "first"}])

        assert exc_info.value.collection_ids == ["a", "b"]

    @pytest.mark.asyncio
    async def test_conflict_with_live_name(self, bundled_records: list[dict]) -> None:
        store = InMemoryStore([CollectionSchema(id="other", name="events")])

        with pytest.raises(ValidationError, match=EVENTS_ID):
            await _import(store, bundled_records)


# ============================================================================
# Atomicity
# ============================================================================


class TestAtomicity:
    """A failing import leaves the store untouched."""

    @pytest.mark.asyncio
    async def test_invalid_descriptor_writes_nothing(self, bundled_records: list[dict]) -> None:
        """One bad option rejects the whole snapshot."""
        store = InMemoryStore()
        bundled_records[2]["schema"][2]["options"]["maxSize"] = 0

        with pytest.raises(SchemaError) as exc_info:
            await _import(store, bundled_records)

        assert exc_info.value.collection_ids == [ERRORS_ID]
        assert await _live(store) == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "options",
        [{"maxSize": "huge"}, {"pattern": "x"}],
        ids=["wrong-type", "unknown-key"],
    )
    async def test_malformed_record_is_validation_error(
        self, bundled_records: list[dict], options: dict
    ) -> None:
        """Records that do not parse raise ValidationError naming the collection."""
        store = InMemoryStore()
        bundled_records[2]["schema"][2]["options"] = options

        with pytest.raises(ValidationError) as exc_info:
            await _import(store, bundled_records)

        assert exc_info.value.collection_ids == [ERRORS_ID]
        assert await _live(store) == {}

    @pytest.mark.asyncio
    async def test_unknown_field_type_is_validation_error(self) -> None:
        store = InMemoryStore()
        records = [{"id": "c1", "name": "logs", "fields": [{"id": "f1", "name": "x", "type": "blob"}]}]

        with pytest.raises(ValidationError) as exc_info:
            await _import(store, records)

        assert exc_info.value.collection_ids == ["c1"]

    @pytest.mark.asyncio
    async def test_store_failure_mid_import_rolls_back(self, bundled_records: list[dict]) -> None:
        """A store error after the first write leaves nothing behind."""
        store = InMemoryStore()
        uow = await store.begin()
        original = uow.save_collection
        saved: list[str] = []

        async def flaky_save(collection):
            if saved:
                raise StoreError("disk full")
            saved.append(collection.id)
            return await original(collection)

        uow.save_collection = flaky_save
        with pytest.raises(StoreError):
            await import_collections(uow, bundled_records)
        await uow.rollback()

        assert saved == [USERS_ID]
        assert await _live(store) == {}


class TestExport:
    """export_collections mirrors the live schema."""

    @pytest.mark.asyncio
    async def test_export_then_import_is_noop(self, bundled_records: list[dict]) -> None:
        store = InMemoryStore()
        await _import(store, bundled_records)

        async with store.unit_of_work() as uow:
            exported = await export_collections(uow)
        result = await _import(store, exported, delete_missing=True)

        assert sorted(exported.names) == ["errors", "events", "users"]
        assert result.change_count == 0

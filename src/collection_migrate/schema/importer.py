"""Collection importer -- reconcile a snapshot with the live schema.

Validates the snapshot against the live schema (fetched fresh from the unit
of work on every call), then deletes, creates and updates collections so
the store matches the snapshot.  All mutations go through the caller's unit
of work, so one import commits or rolls back as a whole.

Usage:
    from collection_migrate.schema.importer import import_collections

    async with store.unit_of_work() as uow:
        result = await import_collections(uow, snapshot, delete_missing=True)
    print(result.format_report())
"""

import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from collection_migrate.schema.comparator import (
    diff_snapshot,
    relation_dependencies,
    topological_order,
)
from collection_migrate.schema.models import CollectionSchema, ImportResult, Snapshot
from collection_migrate.schema.validators import validate_snapshot

if TYPE_CHECKING:
    from collection_migrate.adapters.base import UnitOfWork

logger = logging.getLogger(__name__)


def as_snapshot(snapshot: Snapshot | Iterable[CollectionSchema | dict[str, Any]]) -> Snapshot:
    """Accept a ``Snapshot`` or any iterable of collection models/records."""
    if isinstance(snapshot, Snapshot):
        return snapshot
    return Snapshot.from_list(snapshot)


def _merge_with_live(
    target: CollectionSchema,
    existing: CollectionSchema | None,
    delete_missing: bool,
) -> CollectionSchema:
    """Build the collection that will actually be written.

    Carries over the live ``created`` timestamp and, unless
    ``delete_missing`` is set, keeps live fields that the target omits.
    """
    merged = target.model_copy(deep=True)
    if existing is None:
        return merged

    merged.created = existing.created
    merged.updated = existing.updated
    if not delete_missing:
        target_ids = {f.id for f in merged.fields}
        for field in existing.fields:
            if field.id not in target_ids:
                merged.fields.append(field.model_copy(deep=True))
    return merged


async def import_collections(
    uow: "UnitOfWork",
    snapshot: Snapshot | Iterable[CollectionSchema | dict[str, Any]],
    delete_missing: bool = False,
    predicate: Callable[[CollectionSchema], bool] | None = None,
) -> ImportResult:
    """Reconcile the live schema with a snapshot.

    Collections are matched by ``id`` and fields by field ``id``, so
    renames keep their identity.  Every check runs before the first
    mutation; on any error nothing is written.

    Args:
        uow: Open unit of work.  The caller commits or rolls back.
        snapshot: Target collections (``Snapshot``, models or records in
            canonical or PocketBase export layout).
        delete_missing: Delete live collections absent from the snapshot,
            and drop live fields absent from a target collection.  When
            false, such collections and fields are kept.
        predicate: Called with each live collection that would be deleted;
            returning ``True`` keeps it.

    Returns:
        ``ImportResult`` with the ids created, updated, deleted and left
        unchanged.

    Raises:
        ValidationError: Conflicting definitions (duplicate names, name
            collisions with live collections).
        SchemaError: Constraint violations (option bounds, kind or field
            type changes, unknown relation targets, deleting a system
            collection).
        StoreError: The store failed while applying changes.

    Example:
        async with store.unit_of_work() as uow:
            result = await import_collections(uow, snapshot, delete_missing=True)
    """
    target = as_snapshot(snapshot)
    live = await uow.list_collections()
    live_by_id = {c.id: c for c in live}

    merged = Snapshot.from_list(
        _merge_with_live(c, live_by_id.get(c.id), delete_missing) for c in target.collections
    )

    validation = validate_snapshot(merged, live, delete_missing=delete_missing, predicate=predicate)
    if not validation.valid:
        logger.error(f"Import rejected: {validation.error_count} schema error(s)")
        validation.raise_for_errors()
    for warning in validation.warnings:
        logger.debug(warning)

    plan = diff_snapshot(live, merged, delete_missing=delete_missing, predicate=predicate)
    result = ImportResult(unchanged=list(plan.unchanged))

    # 1. Delete first so freed names can be reused; referencing collections go first
    if plan.to_delete:
        deps = relation_dependencies(live_by_id[cid] for cid in plan.to_delete)
        for collection_id in reversed(topological_order(deps, plan.to_delete)):
            await uow.delete_collection(collection_id)
            result.deleted.append(collection_id)
            logger.info(f"Deleted collection {live_by_id[collection_id].name} ({collection_id})")

    # 2. Create and update in relation order (targets first)
    to_update = {d.collection_id: d for d in plan.to_update}
    to_write = set(plan.to_create) | set(to_update)
    ordered = topological_order(
        relation_dependencies(merged.collections),
        [cid for cid in merged.ids if cid in to_write],
    )
    for collection_id in ordered:
        collection = merged.get(collection_id)
        await uow.save_collection(collection)
        if collection_id in to_update:
            result.updated.append(collection_id)
            logger.info(f"Updated collection {to_update[collection_id].format_summary()}")
        else:
            result.created.append(collection_id)
            logger.info(f"Created collection {collection.name} ({collection_id})")

    return result


async def export_collections(uow: "UnitOfWork") -> Snapshot:
    """Return the live schema as a snapshot.

    ``import_collections(uow, await export_collections(uow))`` is a no-op.
    """
    return Snapshot.from_list(await uow.list_collections())

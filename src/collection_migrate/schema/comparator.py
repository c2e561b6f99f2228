"""Schema comparison using set operations on stable ids.

Compares target collections against live collections.  Collections are
matched by collection ``id`` and fields by field ``id`` -- never by name --
so renames are detected as renames and field order never matters.
Pure logic -- no I/O, no store access.

Usage:
    from collection_migrate.schema.comparator import diff_snapshot

    plan = diff_snapshot(live_collections, snapshot, delete_missing=True)
    for diff in plan.to_update:
        print(diff.format_summary())
"""

from collections.abc import Callable, Iterable

from pydantic import BaseModel, Field

from collection_migrate.schema.models import CollectionSchema, Snapshot


class CollectionDiff(BaseModel):
    """Differences between a live collection and its target.

    Field lists hold field ids.  ``renamed_fields`` maps field id to
    ``(old_name, new_name)``.
    """

    collection_id: str
    name: str
    is_new: bool = False
    renamed_from: str | None = None
    fields_added: list[str] = Field(default_factory=list)
    fields_removed: list[str] = Field(default_factory=list)
    fields_modified: list[str] = Field(default_factory=list)
    renamed_fields: dict[str, tuple[str, str]] = Field(default_factory=dict)
    rules_changed: bool = False
    options_changed: bool = False
    indexes_changed: bool = False

    @property
    def has_changes(self) -> bool:
        return bool(
            self.is_new
            or self.renamed_from
            or self.fields_added
            or self.fields_removed
            or self.fields_modified
            or self.renamed_fields
            or self.rules_changed
            or self.options_changed
            or self.indexes_changed
        )

    def format_summary(self) -> str:
        if self.is_new:
            return f"{self.name}: new collection"
        parts = []
        if self.renamed_from:
            parts.append(f"renamed from {self.renamed_from}")
        if self.fields_added:
            parts.append(f"+{len(self.fields_added)} fields")
        if self.fields_removed:
            parts.append(f"-{len(self.fields_removed)} fields")
        if self.fields_modified:
            parts.append(f"~{len(self.fields_modified)} fields")
        if self.renamed_fields:
            parts.append(f"{len(self.renamed_fields)} fields renamed")
        if self.rules_changed:
            parts.append("rules")
        if self.options_changed:
            parts.append("options")
        if self.indexes_changed:
            parts.append("indexes")
        return f"{self.name}: {', '.join(parts) or 'no changes'}"


class SnapshotDiff(BaseModel):
    """Plan for reconciling the live schema with a snapshot (collection ids)."""

    to_create: list[str] = Field(default_factory=list)
    to_update: list[CollectionDiff] = Field(default_factory=list)
    to_delete: list[str] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.to_create or self.to_update or self.to_delete)


def diff_collection(
    live: CollectionSchema | None,
    target: CollectionSchema,
) -> CollectionDiff:
    """Compare one target collection with its live counterpart.

    Args:
        live: Live collection with the same id, or ``None`` if it does not
            exist yet.
        target: Desired collection.

    Returns:
        ``CollectionDiff`` describing what changes.

    Examples:
        >>> old = CollectionSchema(id="c1", name="posts", fields=[
        ...     {"id": "f1", "name": "title", "type": "text"}])
        >>> new = CollectionSchema(id="c1", name="posts", fields=[
        ...     {"id": "f1", "name": "headline", "type": "text"}])
        >>> diff_collection(old, new).renamed_fields
        {'f1': ('title', 'headline')}
    """
    if live is None:
        return CollectionDiff(
            collection_id=target.id,
            name=target.name,
            is_new=True,
            fields_added=[f.id for f in target.fields],
        )

    live_fields = {f.id: f for f in live.fields}
    target_fields = {f.id: f for f in target.fields}

    live_ids: set[str] = set(live_fields)
    target_ids: set[str] = set(target_fields)

    diff = CollectionDiff(
        collection_id=target.id,
        name=target.name,
        renamed_from=live.name if live.name != target.name else None,
        # Keep target declaration order for readability
        fields_added=[f.id for f in target.fields if f.id not in live_ids],
        fields_removed=[f.id for f in live.fields if f.id not in target_ids],
    )

    for field_id in sorted(live_ids & target_ids):
        old = live_fields[field_id]
        new = target_fields[field_id]
        if old.name != new.name:
            diff.renamed_fields[field_id] = (old.name, new.name)
        if old.model_dump(exclude={"name"}) != new.model_dump(exclude={"name"}):
            diff.fields_modified.append(field_id)

    diff.rules_changed = live.rules != target.rules
    diff.options_changed = live.options.model_dump() != target.options.model_dump()
    diff.indexes_changed = set(live.indexes) != set(target.indexes)
    return diff


def diff_snapshot(
    live: Iterable[CollectionSchema],
    snapshot: Snapshot,
    delete_missing: bool = False,
    predicate: Callable[[CollectionSchema], bool] | None = None,
) -> SnapshotDiff:
    """Compare the live schema with a snapshot.

    Args:
        live: Collections currently in the store.
        snapshot: Target snapshot.
        delete_missing: Schedule live collections absent from the snapshot
            for deletion.
        predicate: Returns ``True`` for live collections that must be kept
            even when ``delete_missing`` is set.

    Returns:
        ``SnapshotDiff`` with ids to create, per-collection update diffs,
        ids to delete and ids that are already up to date.
    """
    live_by_id = {c.id: c for c in live}
    target_ids: set[str] = set(snapshot.ids)

    plan = SnapshotDiff()
    for target in snapshot.collections:
        existing = live_by_id.get(target.id)
        if existing is None:
            plan.to_create.append(target.id)
            continue
        diff = diff_collection(existing, target)
        if diff.has_changes:
            plan.to_update.append(diff)
        else:
            plan.unchanged.append(target.id)

    if delete_missing:
        for live_id in sorted(set(live_by_id) - target_ids):
            if predicate is not None and predicate(live_by_id[live_id]):
                continue
            plan.to_delete.append(live_id)

    return plan


def relation_dependencies(collections: Iterable[CollectionSchema]) -> dict[str, set[str]]:
    """Map each collection id to the collection ids its relation fields target."""
    dependencies: dict[str, set[str]] = {}
    for collection in collections:
        dependencies[collection.id] = set()
        for field in collection.fields:
            if field.type == "relation" and field.options.collectionId:
                if field.options.collectionId != collection.id:  # Skip self-references
                    dependencies[collection.id].add(field.options.collectionId)
    return dependencies


def topological_order(dependencies: dict[str, set[str]], ids: list[str]) -> list[str]:
    """Topological sort of collections based on relation dependencies.

    Returns ids in forward order: referenced collections first.  Ids not in
    the dependency graph keep their relative order.

    Args:
        dependencies: Relation graph (collection id -> set of target ids).
        ids: Collection ids to sort.

    Returns:
        Ids sorted so that targets come before the collections that
        reference them.

    Example:
        >>> topological_order({"posts": {"users"}, "users": set()}, ["posts", "users"])
        ['users', 'posts']
    """
    # Filter dependencies to only include relevant collections
    relevant = {i: dependencies.get(i, set()) & set(ids) for i in ids}

    ordered: list[str] = []
    visited: set[str] = set()
    visiting: set[str] = set()  # For cycle detection

    def visit(collection_id: str) -> None:
        if collection_id in visited:
            return
        if collection_id in visiting:
            # Cycle detected -- break it by just adding the collection
            return
        visiting.add(collection_id)
        for dep in sorted(relevant.get(collection_id, set())):
            visit(dep)
        visiting.discard(collection_id)
        visited.add(collection_id)
        ordered.append(collection_id)

    for collection_id in ids:
        visit(collection_id)

    return ordered

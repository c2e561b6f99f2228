"""Validation of collection descriptors and snapshots.

Pure logic -- no I/O, no store access.  Live collections are passed in by
the caller (the importer fetches them fresh for every import).

Usage:
    from collection_migrate.schema.validators import validate_snapshot

    result = validate_snapshot(snapshot, live=live_collections, delete_missing=True)
    if not result.valid:
        print(result.format_report())
"""

import re
from collections.abc import Callable, Iterable, Sequence

from collection_migrate.schema.models import (
    AuthOptions,
    CollectionSchema,
    FieldError,
    FieldSpec,
    SchemaValidationResult,
    Snapshot,
    ViewOptions,
)

# Fields every record has regardless of schema
BASE_SYSTEM_FIELDS = frozenset({"id", "created", "updated"})

# Extra fields managed by the auth subsystem
AUTH_SYSTEM_FIELDS = frozenset({
    "username",
    "email",
    "emailVisibility",
    "verified",
    "tokenKey",
    "passwordHash",
    "password",
    "passwordConfirm",
    "oldPassword",
    "lastResetSentAt",
    "lastVerificationSentAt",
})

MIN_PASSWORD_LENGTH = 5
MAX_PASSWORD_LENGTH = 72

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_THUMB_RE = re.compile(r"^(\d+)x(\d+)([tbf])?$")
_MIME_RE = re.compile(r"^[\w.+-]+/[\w.+*-]+$")
_STRING_LITERAL_RE = re.compile(r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\"")
_IDENTIFIER_RE = re.compile(r"@?[A-Za-z_][\w.:]*")
_RULE_KEYWORDS = frozenset({"true", "false", "null"})


# ------------------------------------------------------------------
# Small parsers
# ------------------------------------------------------------------


def parse_thumb_size(value: str) -> tuple[int, int]:
    """Parse a ``"WxH"`` thumbnail size into ``(width, height)``.

    An optional crop suffix (``t``, ``b`` or ``f``) is accepted and ignored.

    Raises:
        ValueError: If the string is malformed or a dimension is not positive.

    Examples:
        >>> parse_thumb_size("300x300")
        (300, 300)
        >>> parse_thumb_size("100x50t")
        (100, 50)
    """
    match = _THUMB_RE.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise ValueError(f"Invalid thumbnail size {value!r}, expected 'WxH'")

    width, height = int(match.group(1)), int(match.group(2))
    if width <= 0 or height <= 0:
        raise ValueError(f"Thumbnail size {value!r} must have positive width and height")
    return width, height


def extract_rule_fields(rule: str | None) -> set[str]:
    """Return the record fields a rule expression refers to.

    Only the first path segment is returned (``author.name`` -> ``author``).
    ``@request``/``@collection`` macros, string literals, numbers and the
    ``true``/``false``/``null`` keywords are skipped, as are back-relations
    (``comments_via_post``).

    Examples:
        >>> sorted(extract_rule_fields("id = @request.auth.id && status = 'open'"))
        ['id', 'status']
        >>> extract_rule_fields("")
        set()
    """
    if not rule:
        return set()

    stripped = _STRING_LITERAL_RE.sub(" ", rule)
    names: set[str] = set()
    for token in _IDENTIFIER_RE.findall(stripped):
        if token.startswith("@"):
            continue
        head = token.split(".", 1)[0].split(":", 1)[0]
        if head.lower() in _RULE_KEYWORDS or "_via_" in head:
            continue
        names.add(head)
    return names


def system_fields_for(collection: CollectionSchema) -> frozenset[str]:
    """Field names provided by the platform for a collection kind."""
    if collection.kind == "auth":
        return BASE_SYSTEM_FIELDS | AUTH_SYSTEM_FIELDS
    return BASE_SYSTEM_FIELDS


# ------------------------------------------------------------------
# Field validation
# ------------------------------------------------------------------


def _error(
    collection: CollectionSchema,
    path: str,
    message: str,
    conflict: bool = False,
) -> FieldError:
    return FieldError(
        collection_id=collection.id,
        collection_name=collection.name,
        path=path,
        message=message,
        conflict=conflict,
    )


def validate_field(collection: CollectionSchema, field: FieldSpec) -> list[FieldError]:
    """Validate a single field's name and type-specific options."""
    errors: list[FieldError] = []
    path = f"fields.{field.name or field.id}"

    if not field.id:
        errors.append(_error(collection, path, "Field id is required"))
    if not _NAME_RE.match(field.name or ""):
        errors.append(_error(collection, path, f"Invalid field name {field.name!r}"))
    elif field.name in system_fields_for(collection):
        errors.append(
            _error(collection, path, f"Field name {field.name!r} is reserved", conflict=True)
        )

    opts = field.options

    if field.type == "text":
        if opts.min is not None and opts.min < 0:
            errors.append(_error(collection, f"{path}.options.min", "Must be >= 0"))
        if opts.min is not None and opts.max is not None and opts.max < opts.min:
            errors.append(_error(collection, f"{path}.options.max", "Must be >= min"))
        if opts.pattern:
            try:
                re.compile(opts.pattern)
            except re.error as e:
                errors.append(_error(collection, f"{path}.options.pattern", f"Invalid regex: {e}"))

    elif field.type == "number":
        if opts.min is not None and opts.max is not None and opts.max < opts.min:
            errors.append(_error(collection, f"{path}.options.max", "Must be >= min"))

    elif field.type == "select":
        if opts.maxSelect < 1:
            errors.append(_error(collection, f"{path}.options.maxSelect", "Must be >= 1"))
        if not opts.values:
            errors.append(_error(collection, f"{path}.options.values", "At least one value is required"))
        elif len(set(opts.values)) != len(opts.values):
            errors.append(_error(collection, f"{path}.options.values", "Values must be unique"))

    elif field.type == "json":
        if opts.maxSize <= 0:
            errors.append(_error(collection, f"{path}.options.maxSize", "Must be a positive byte count"))

    elif field.type == "file":
        if opts.maxSize <= 0:
            errors.append(_error(collection, f"{path}.options.maxSize", "Must be a positive byte count"))
        if opts.maxSelect < 1:
            errors.append(_error(collection, f"{path}.options.maxSelect", "Must be >= 1"))
        for mime in opts.mimeTypes or []:
            if not _MIME_RE.match(mime):
                errors.append(
                    _error(collection, f"{path}.options.mimeTypes", f"Invalid MIME type {mime!r}")
                )
        for size in opts.thumbnailSizes or []:
            try:
                parse_thumb_size(size)
            except ValueError as e:
                errors.append(_error(collection, f"{path}.options.thumbnailSizes", str(e)))

    elif field.type == "relation":
        if not opts.collectionId:
            errors.append(_error(collection, f"{path}.options.collectionId", "Target collection is required"))
        if opts.maxSelect is not None and opts.maxSelect < 1:
            errors.append(_error(collection, f"{path}.options.maxSelect", "Must be >= 1"))
        if opts.minSelect is not None and opts.minSelect < 0:
            errors.append(_error(collection, f"{path}.options.minSelect", "Must be >= 0"))
        if (
            opts.minSelect is not None
            and opts.maxSelect is not None
            and opts.minSelect > opts.maxSelect
        ):
            errors.append(_error(collection, f"{path}.options.minSelect", "Must be <= maxSelect"))

    return errors


# ------------------------------------------------------------------
# Collection validation
# ------------------------------------------------------------------


def validate_collection(collection: CollectionSchema) -> list[FieldError]:
    """Validate one descriptor on its own.

    Checks the collection name, field names/ids uniqueness, every field's
    options, kind-specific options, and that access rules only reference
    declared or system fields.

    Returns:
        List of ``FieldError``; empty when the descriptor is valid.

    Example:
        >>> c = CollectionSchema(id="c1", name="posts", fields=[
        ...     {"id": "f1", "name": "title", "type": "text"},
        ...     {"id": "f2", "name": "Title", "type": "text"},
        ... ])
        >>> [e.message for e in validate_collection(c)]
        ["Duplicate field name 'Title'"]
    """
    errors: list[FieldError] = []

    if not collection.id:
        errors.append(_error(collection, "id", "Collection id is required"))
    if not _NAME_RE.match(collection.name or ""):
        errors.append(_error(collection, "name", f"Invalid collection name {collection.name!r}"))

    seen_names: set[str] = set()
    seen_ids: set[str] = set()
    for field in collection.fields:
        lowered = field.name.lower()
        if lowered in seen_names:
            errors.append(
                _error(collection, f"fields.{field.name}", f"Duplicate field name {field.name!r}", conflict=True)
            )
        seen_names.add(lowered)

        if field.id in seen_ids:
            errors.append(
                _error(collection, f"fields.{field.name}", f"Duplicate field id {field.id!r}", conflict=True)
            )
        seen_ids.add(field.id)

        errors.extend(validate_field(collection, field))

    for index, sql in enumerate(collection.indexes):
        if not sql.strip():
            errors.append(_error(collection, f"indexes.{index}", "Index definition is empty"))

    if isinstance(collection.options, AuthOptions):
        length = collection.options.minPasswordLength
        if not MIN_PASSWORD_LENGTH <= length <= MAX_PASSWORD_LENGTH:
            errors.append(
                _error(
                    collection,
                    "options.minPasswordLength",
                    f"Must be between {MIN_PASSWORD_LENGTH} and {MAX_PASSWORD_LENGTH}",
                )
            )
    elif isinstance(collection.options, ViewOptions):
        if not collection.options.query.strip():
            errors.append(_error(collection, "options.query", "View query is required"))

    known = {f.name for f in collection.fields} | system_fields_for(collection)
    rules = collection.rules.model_dump()
    if isinstance(collection.options, AuthOptions):
        rules["manage"] = collection.options.manageRule

    for action, rule in rules.items():
        for name in sorted(extract_rule_fields(rule) - known):
            errors.append(
                _error(collection, f"rules.{action}", f"Rule references unknown field {name!r}")
            )

    return errors


# ------------------------------------------------------------------
# Snapshot validation
# ------------------------------------------------------------------


def validate_snapshot(
    snapshot: Snapshot | Sequence[CollectionSchema],
    live: Iterable[CollectionSchema] = (),
    delete_missing: bool = False,
    predicate: Callable[[CollectionSchema], bool] | None = None,
) -> SchemaValidationResult:
    """Validate a target snapshot, optionally against the live schema.

    On top of ``validate_collection`` for each descriptor, checks:
    - collection ids and names are unique within the snapshot
    - no target name collides with a live collection of another id that is
      still present while the import runs
    - an existing collection keeps its ``kind`` and each existing field id
      keeps its ``type``
    - relation fields point at a collection that will exist
    - system collections are never deleted by ``delete_missing``

    Args:
        snapshot: Target collections.
        live: Collections currently in the store.
        delete_missing: Whether live collections absent from the snapshot
            will be deleted.
        predicate: Returns ``True`` for live collections to keep when
            ``delete_missing`` is set.

    Returns:
        ``SchemaValidationResult`` listing every problem found.
    """
    targets = list(snapshot.collections if isinstance(snapshot, Snapshot) else snapshot)
    live_by_id = {c.id: c for c in live}
    target_ids = {c.id for c in targets}

    errors: list[FieldError] = []
    warnings: list[str] = []

    seen_ids: set[str] = set()
    seen_names: dict[str, str] = {}
    for collection in targets:
        if collection.id in seen_ids:
            errors.append(
                _error(collection, "id", f"Duplicate collection id {collection.id!r}", conflict=True)
            )
        seen_ids.add(collection.id)

        lowered = collection.name.lower()
        if lowered in seen_names and seen_names[lowered] != collection.id:
            errors.append(
                _error(
                    collection,
                    "name",
                    f"Collection name {collection.name!r} is already used by {seen_names[lowered]!r}",
                    conflict=True,
                )
            )
        seen_names.setdefault(lowered, collection.id)

        errors.extend(validate_collection(collection))

    # Live collections that survive the import
    to_delete: set[str] = set()
    if delete_missing:
        for live_id, existing in live_by_id.items():
            if live_id in target_ids:
                continue
            if predicate is not None and predicate(existing):
                continue
            if existing.system:
                errors.append(
                    _error(existing, "", "System collections cannot be deleted")
                )
                continue
            to_delete.add(live_id)
    else:
        missing = sorted(set(live_by_id) - target_ids)
        if missing:
            warnings.append(f"Live collections not in snapshot (kept): {', '.join(missing)}")

    remaining = {cid: c for cid, c in live_by_id.items() if cid not in to_delete}

    for collection in targets:
        lowered = collection.name.lower()
        for other_id, other in remaining.items():
            if other_id != collection.id and other.name.lower() == lowered:
                errors.append(
                    _error(
                        collection,
                        "name",
                        f"Collection name {collection.name!r} is already used by live collection {other_id!r}",
                        conflict=True,
                    )
                )

        existing = live_by_id.get(collection.id)
        if existing is not None:
            if existing.kind != collection.kind:
                errors.append(
                    _error(
                        collection,
                        "kind",
                        f"Cannot change collection kind from {existing.kind!r} to {collection.kind!r}",
                    )
                )
            for field in collection.fields:
                old = existing.field_by_id(field.id)
                if old is not None and old.type != field.type:
                    errors.append(
                        _error(
                            collection,
                            f"fields.{field.name}",
                            f"Cannot change field type from {old.type!r} to {field.type!r}",
                        )
                    )

    available_ids = target_ids | set(remaining)
    for collection in targets:
        for field in collection.fields:
            if field.type != "relation" or not field.options.collectionId:
                continue
            if field.options.collectionId not in available_ids:
                errors.append(
                    _error(
                        collection,
                        f"fields.{field.name}.options.collectionId",
                        f"Unknown target collection {field.options.collectionId!r}",
                    )
                )

    return SchemaValidationResult(valid=not errors, errors=errors, warnings=warnings)

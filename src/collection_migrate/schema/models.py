"""Pydantic models for collection schemas, snapshots and validation results.

This module contains schema-domain models:
- Field option models, one per field type, and the ``FieldSpec`` tagged
  union discriminated by ``type``
- Collection models: CollectionRules, BaseOptions, AuthOptions, ViewOptions,
  CollectionSchema
- Snapshot: immutable, ordered set of CollectionSchema
- Validation models: FieldError, SchemaValidationResult
- Import result: ImportResult

Option attribute names are camelCase because they are the wire format of a
snapshot and must round-trip unchanged.
"""

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from collection_migrate.errors import SchemaError, ValidationError

CollectionKind = Literal["base", "auth", "view"]

RULE_ACTIONS = ("list", "view", "create", "update", "delete")


def utc_timestamp() -> str:
    """Current UTC time in the store format (``2023-12-15 19:21:15.350Z``)."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%d %H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


# ============================================================================
# Field Options
# ============================================================================


class _Options(BaseModel):
    """Unknown option keys are rejected."""

    model_config = ConfigDict(extra="forbid")


class TextOptions(_Options):
    min: int | None = None
    max: int | None = None
    pattern: str = ""


class EditorOptions(_Options):
    convertUrls: bool = False


class NumberOptions(_Options):
    min: float | None = None
    max: float | None = None
    noDecimal: bool = False


class BoolOptions(_Options):
    pass


class EmailOptions(_Options):
    exceptDomains: list[str] | None = None
    onlyDomains: list[str] | None = None


class UrlOptions(_Options):
    exceptDomains: list[str] | None = None
    onlyDomains: list[str] | None = None


class DateOptions(_Options):
    min: str = ""
    max: str = ""


class SelectOptions(_Options):
    maxSelect: int = 1
    values: list[str] = Field(default_factory=list)


class JsonOptions(_Options):
    maxSize: int = 2000000  # bytes


class FileOptions(_Options):
    """Upload constraints for a file field.

    ``mimeTypes`` empty or absent means any type is accepted.
    ``thumbnailSizes`` entries are ``"WxH"`` strings (``thumbs`` in the
    PocketBase export layout).

    Example:
        >>> opts = FileOptions(thumbs=["300x300"], maxSize=52428800)
        >>> opts.thumbnailSizes
        ['300x300']
    """

    mimeTypes: list[str] | None = Field(default_factory=list)
    thumbnailSizes: list[str] | None = Field(
        default=None,
        validation_alias=AliasChoices("thumbnailSizes", "thumbs"),
    )
    maxSelect: int = 1
    maxSize: int = 5242880  # bytes
    protected: bool = False


class RelationOptions(_Options):
    collectionId: str = ""
    cascadeDelete: bool = False
    minSelect: int | None = None
    maxSelect: int | None = None
    displayFields: list[str] | None = None


# ============================================================================
# Field Specs (tagged union on ``type``)
# ============================================================================


class _FieldBase(BaseModel):
    """Keys shared by every field type.  ``id`` survives renames of ``name``."""

    id: str
    name: str
    required: bool = False
    unique: bool = False
    system: bool = False
    presentable: bool = False


class TextField(_FieldBase):
    type: Literal["text"] = "text"
    options: TextOptions = Field(default_factory=TextOptions)


class EditorField(_FieldBase):
    type: Literal["editor"] = "editor"
    options: EditorOptions = Field(default_factory=EditorOptions)


class NumberField(_FieldBase):
    type: Literal["number"] = "number"
    options: NumberOptions = Field(default_factory=NumberOptions)


class BoolField(_FieldBase):
    type: Literal["bool"] = "bool"
    options: BoolOptions = Field(default_factory=BoolOptions)


class EmailField(_FieldBase):
    type: Literal["email"] = "email"
    options: EmailOptions = Field(default_factory=EmailOptions)


class UrlField(_FieldBase):
    type: Literal["url"] = "url"
    options: UrlOptions = Field(default_factory=UrlOptions)


class DateField(_FieldBase):
    type: Literal["date"] = "date"
    options: DateOptions = Field(default_factory=DateOptions)


class SelectField(_FieldBase):
    type: Literal["select"] = "select"
    options: SelectOptions = Field(default_factory=SelectOptions)


class JsonField(_FieldBase):
    type: Literal["json"] = "json"
    options: JsonOptions = Field(default_factory=JsonOptions)


class FileField(_FieldBase):
    type: Literal["file"] = "file"
    options: FileOptions = Field(default_factory=FileOptions)


class RelationField(_FieldBase):
    type: Literal["relation"] = "relation"
    options: RelationOptions = Field(default_factory=RelationOptions)


FieldSpec = Annotated[
    Union[
        TextField,
        EditorField,
        NumberField,
        BoolField,
        EmailField,
        UrlField,
        DateField,
        SelectField,
        JsonField,
        FileField,
        RelationField,
    ],
    Field(discriminator="type"),
]


# ============================================================================
# Collection Models
# ============================================================================


class CollectionRules(BaseModel):
    """Access rule per action.

    ``None`` restricts the action to admins, ``""`` allows everyone, any
    other string is a filter expression evaluated by the host platform.
    """

    list: str | None = None
    view: str | None = None
    create: str | None = None
    update: str | None = None
    delete: str | None = None


class BaseOptions(_Options):
    pass


class AuthOptions(_Options):
    allowEmailAuth: bool = True
    allowOAuth2Auth: bool = True
    allowUsernameAuth: bool = True
    exceptEmailDomains: list[str] | None = None
    manageRule: str | None = None
    minPasswordLength: int = 8
    onlyEmailDomains: list[str] | None = None
    onlyVerified: bool = False
    requireEmail: bool = False


class ViewOptions(_Options):
    query: str = ""


COLLECTION_OPTIONS: dict[str, type[_Options]] = {
    "base": BaseOptions,
    "auth": AuthOptions,
    "view": ViewOptions,
}


class CollectionSchema(BaseModel):
    """Desired shape of one collection (the Schema Descriptor).

    ``id`` is the reconciliation key and never changes; ``name`` may be
    renamed between snapshots.  The PocketBase export layout (``type``,
    ``schema``, ``listRule`` ...) is accepted and normalised.

    Example:
        >>> c = CollectionSchema.model_validate({
        ...     "id": "abc", "name": "posts", "type": "base",
        ...     "schema": [{"id": "f1", "name": "title", "type": "text"}],
        ...     "listRule": "",
        ... })
        >>> (c.kind, c.field_names, c.rules.list)
        ('base', ['title'], '')
    """

    id: str
    name: str
    kind: CollectionKind = "base"
    system: bool = False
    fields: list[FieldSpec] = Field(default_factory=list)
    indexes: list[str] = Field(default_factory=list)
    rules: CollectionRules = Field(default_factory=CollectionRules)
    options: AuthOptions | ViewOptions | BaseOptions = Field(
        default_factory=dict, validate_default=True
    )
    created: str | None = None
    updated: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_export_layout(cls, data: Any) -> Any:
        """Map PocketBase export keys onto the canonical ones."""
        if not isinstance(data, dict):
            return data

        data = dict(data)
        if "kind" not in data and "type" in data:
            data["kind"] = data.pop("type")
        if "fields" not in data and "schema" in data:
            data["fields"] = data.pop("schema")
        if "rules" not in data:
            rules = {}
            for action in RULE_ACTIONS:
                key = f"{action}Rule"
                if key in data:
                    rules[action] = data.pop(key)
            if rules:
                data["rules"] = rules
        return data

    @field_validator("options", mode="before")
    @classmethod
    def _options_for_kind(cls, value: Any, info: ValidationInfo) -> Any:
        option_cls = COLLECTION_OPTIONS.get(info.data.get("kind", "base"), BaseOptions)
        if isinstance(value, option_cls):
            return value
        if isinstance(value, BaseModel):
            value = value.model_dump()
        return option_cls.model_validate(value or {})

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def field_names(self) -> list[str]:
        """Field names in declaration order."""
        return [f.name for f in self.fields]

    def field_by_id(self, field_id: str) -> FieldSpec | None:
        for f in self.fields:
            if f.id == field_id:
                return f
        return None

    def field_by_name(self, name: str) -> FieldSpec | None:
        """Case-insensitive lookup, matching how names collide."""
        lowered = name.lower()
        for f in self.fields:
            if f.name.lower() == lowered:
                return f
        return None

    # ------------------------------------------------------------------
    # Comparison / serialization
    # ------------------------------------------------------------------

    def semantic_key(self) -> dict[str, Any]:
        """State that defines the collection, independent of field order.

        Fields are keyed by id, indexes are a set, and store-managed
        timestamps are excluded.
        """
        data = self.model_dump(mode="json", exclude={"created", "updated"})
        data["fields"] = {f["id"]: f for f in data["fields"]}
        data["indexes"] = sorted(set(data["indexes"]))
        return data

    def is_equivalent(self, other: "CollectionSchema") -> bool:
        return self.semantic_key() == other.semantic_key()

    def to_record(self) -> dict[str, Any]:
        """Canonical JSON-compatible record (the snapshot wire format)."""
        return self.model_dump(mode="json")


class Snapshot(BaseModel):
    """Desired schema of every collection at one migration version.

    Immutable once built.  Collections passed in as models are deep-copied
    on the way in, and ``collections``/``get()`` hand out deep copies, so
    neither the caller's models nor the returned ones can change the
    snapshot.

    Example:
        >>> snap = Snapshot.from_list([{"id": "a1", "name": "posts"}])
        >>> snap.names
        ['posts']
    """

    model_config = ConfigDict(frozen=True)

    entries: tuple[CollectionSchema, ...] = Field(default=(), alias="collections", repr=False)

    @classmethod
    def from_list(cls, items: Iterable[CollectionSchema | dict[str, Any]]) -> "Snapshot":
        """Build a snapshot from collection models or raw records.

        Raises:
            ValidationError: If a record has the wrong types, unknown keys
                or an unknown field type.  Errors name the record's id.
        """
        copied = [
            item.model_copy(deep=True) if isinstance(item, CollectionSchema) else item
            for item in items
        ]
        try:
            return cls(collections=tuple(copied))
        except PydanticValidationError as e:
            raise ValidationError(field_errors_from_pydantic(e, copied)) from e

    @property
    def collections(self) -> tuple[CollectionSchema, ...]:
        return tuple(c.model_copy(deep=True) for c in self.entries)

    def to_list(self) -> list[dict[str, Any]]:
        return [c.to_record() for c in self.entries]

    @property
    def names(self) -> list[str]:
        return [c.name for c in self.entries]

    @property
    def ids(self) -> list[str]:
        return [c.id for c in self.entries]

    def get(self, id_or_name: str) -> CollectionSchema | None:
        """Find a collection by id, falling back to a name match."""
        for c in self.entries:
            if c.id == id_or_name:
                return c.model_copy(deep=True)
        for c in self.entries:
            if c.name.lower() == id_or_name.lower():
                return c.model_copy(deep=True)
        return None


# ============================================================================
# Validation Result Models
# ============================================================================


class FieldError(BaseModel):
    """A single validation problem.

    ``conflict`` marks errors caused by clashing definitions (duplicate
    names, collisions with live collections); the rest are constraint
    violations.
    """

    collection_id: str = ""
    collection_name: str = ""
    path: str = ""
    message: str
    conflict: bool = False

    def format(self) -> str:
        location = self.collection_name or self.collection_id or "<snapshot>"
        if self.path:
            location = f"{location}.{self.path}"
        prefix = f"[{self.collection_id}] " if self.collection_id else ""
        return f"{prefix}{location}: {self.message}"


def field_errors_from_pydantic(e: PydanticValidationError, records: list[Any]) -> list[FieldError]:
    """Convert pydantic errors on a list of records into ``FieldError``s.

    The record index in each error location is replaced by that record's
    id and name, so messages point at the offending collection.
    """
    errors = []
    for err in e.errors():
        loc = list(err["loc"])
        if loc and loc[0] == "collections":
            loc = loc[1:]
        collection_id = ""
        collection_name = ""
        # Record index follows the "collections" prefix
        if loc and isinstance(loc[0], int) and loc[0] < len(records):
            record = records[loc[0]]
            if isinstance(record, dict):
                collection_id = str(record.get("id", ""))
                collection_name = str(record.get("name", ""))
            loc = loc[1:]
        errors.append(
            FieldError(
                collection_id=collection_id,
                collection_name=collection_name,
                path=".".join(str(part) for part in loc),
                message=err["msg"],
            )
        )
    return errors


class SchemaValidationResult(BaseModel):
    """Result of snapshot validation.

    Example:
        >>> result = SchemaValidationResult(valid=True)
        >>> result.error_count
        0
        >>> result.format_report()
        'Schema valid'
    """

    valid: bool
    errors: list[FieldError] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def has_conflicts(self) -> bool:
        return any(e.conflict for e in self.errors)

    def format_report(self) -> str:
        """Format validation result as human-readable report."""
        if self.valid:
            return "Schema valid"

        lines = [f"Schema validation failed ({self.error_count} errors):"]
        for error in self.errors:
            lines.append(f"    - {error.format()}")

        if self.warnings:
            lines.append(f"\n  Warnings: {'; '.join(self.warnings)}")

        return "\n".join(lines)

    def raise_for_errors(self) -> None:
        """Raise ``ValidationError`` on conflicts, ``SchemaError`` otherwise."""
        if self.valid:
            return
        if self.has_conflicts:
            raise ValidationError(self.errors)
        raise SchemaError(self.errors)


# ============================================================================
# Import Result
# ============================================================================


class ImportResult(BaseModel):
    """Outcome of one ``import_collections`` call (collection ids)."""

    created: list[str] = Field(default_factory=list)
    updated: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)

    @property
    def change_count(self) -> int:
        return len(self.created) + len(self.updated) + len(self.deleted)

    def format_report(self) -> str:
        if self.change_count == 0:
            return "No changes"
        parts = []
        if self.created:
            parts.append(f"created {len(self.created)}")
        if self.updated:
            parts.append(f"updated {len(self.updated)}")
        if self.deleted:
            parts.append(f"deleted {len(self.deleted)}")
        return ", ".join(parts)

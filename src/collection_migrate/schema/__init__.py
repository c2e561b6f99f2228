"""Collection schema models, validation, comparison and import.

Provides the schema descriptor models (``CollectionSchema``, ``FieldSpec``,
``Snapshot``), pure validators (``validate_collection``,
``validate_snapshot``), id-based comparison (``diff_collection``,
``diff_snapshot``) and the importer (``import_collections``,
``export_collections``).

Usage:
    from collection_migrate.schema import Snapshot, import_collections
    from collection_migrate.schema import validate_snapshot, diff_snapshot
"""

from collection_migrate.schema.comparator import (
    CollectionDiff,
    SnapshotDiff,
    diff_collection,
    diff_snapshot,
)
from collection_migrate.schema.importer import export_collections, import_collections
from collection_migrate.schema.models import (
    AuthOptions,
    BaseOptions,
    CollectionRules,
    CollectionSchema,
    FieldError,
    FieldSpec,
    FileOptions,
    ImportResult,
    SchemaValidationResult,
    Snapshot,
    ViewOptions,
)
from collection_migrate.schema.validators import (
    extract_rule_fields,
    parse_thumb_size,
    validate_collection,
    validate_snapshot,
)

__all__ = [
    "CollectionSchema",
    "CollectionRules",
    "FieldSpec",
    "FileOptions",
    "BaseOptions",
    "AuthOptions",
    "ViewOptions",
    "Snapshot",
    "FieldError",
    "SchemaValidationResult",
    "ImportResult",
    "validate_collection",
    "validate_snapshot",
    "parse_thumb_size",
    "extract_rule_fields",
    "CollectionDiff",
    "SnapshotDiff",
    "diff_collection",
    "diff_snapshot",
    "import_collections",
    "export_collections",
]

"""Exception hierarchy for collection-migrate.

Library code raises these; only the CLI turns them into exit codes.

Usage:
    from collection_migrate.errors import ValidationError, StoreError

    try:
        await runner.apply_pending()
    except ValidationError as e:
        print(e.report())
    except StoreError:
        ...  # safe to retry the whole run
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collection_migrate.schema.models import FieldError


class MigrateError(Exception):
    """Base class for all collection-migrate errors."""

    pass


class ValidationError(MigrateError):
    """Schema is malformed or conflicts with itself or the live store.

    Never retried.  ``errors`` holds one ``FieldError`` per problem and the
    message names every offending collection id.
    """

    def __init__(self, errors: "list[FieldError]", message: str | None = None) -> None:
        self.errors = list(errors)
        if message is None:
            ids = sorted({e.collection_id for e in self.errors if e.collection_id})
            message = (
                f"{len(self.errors)} schema error(s) in collection(s): "
                f"{', '.join(ids) or '<snapshot>'}"
            )
        super().__init__(message)

    @property
    def collection_ids(self) -> list[str]:
        """Ids of the collections that failed validation."""
        return sorted({e.collection_id for e in self.errors if e.collection_id})

    def report(self) -> str:
        """One line per error, suitable for operators."""
        lines = [str(self)]
        for error in self.errors:
            lines.append(f"  - {error.format()}")
        return "\n".join(lines)


class SchemaError(ValidationError):
    """A descriptor violates a constraint (option bounds, kind change, ...)."""

    pass


class StoreError(MigrateError):
    """The underlying store failed (connection, transaction, commit)."""

    pass


class MigrationError(MigrateError):
    """A migration could not be loaded, ordered, or executed."""

    pass


class PartialApplyError(MigrateError):
    """A unit of work could not be rolled back after a failure.

    Only raised when the store itself breaks during rollback; the live schema
    may then contain changes from the failed record.
    """

    pass

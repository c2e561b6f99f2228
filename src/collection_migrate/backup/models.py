"""Backup file models.

A backup file is a JSON envelope holding the exported collections and some
metadata about when and where they were taken:

    {
        "metadata": {"created_at": "...", "version": "1.0", "collection_count": 3},
        "collections": [...]
    }
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

BACKUP_VERSION = "1.0"


class BackupMetadata(BaseModel):
    """Backup metadata.  Caller-provided keys are kept as extras."""

    model_config = ConfigDict(extra="allow")

    created_at: str
    version: str = BACKUP_VERSION
    collection_count: int = 0


class BackupFile(BaseModel):
    """Complete backup file."""

    metadata: BackupMetadata
    collections: list[dict[str, Any]] = Field(default_factory=list)

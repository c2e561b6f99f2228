"""Shared fixtures for collection-migrate tests."""

import copy
import runpy
from pathlib import Path

import pytest

MIGRATIONS_DIR = Path(__file__).parent.parent / "migrations"
BUNDLED_MIGRATION = MIGRATIONS_DIR / "1702695322_collections_snapshot.py"


@pytest.fixture(scope="session")
def _bundled_module() -> dict:
    return runpy.run_path(str(BUNDLED_MIGRATION))


@pytest.fixture
def bundled_records(_bundled_module: dict) -> list[dict]:
    """The users/events/errors snapshot in PocketBase export layout (fresh copy)."""
    return copy.deepcopy(_bundled_module["SNAPSHOT"])


@pytest.fixture
def posts_records() -> list[dict]:
    """Two related base collections in canonical layout."""
    return [
        {
            "id": "posts0000000001",
            "name": "posts",
            "kind": "base",
            "fields": [
                {"id": "p_title", "name": "title", "type": "text", "required": True},
                {"id": "p_body", "name": "body", "type": "editor"},
                {
                    "id": "p_status",
                    "name": "status",
                    "type": "select",
                    "options": {"maxSelect": 1, "values": ["draft", "published"]},
                },
            ],
            "indexes": ["CREATE INDEX idx_posts_title ON posts (title)"],
            "rules": {"list": "status = 'published'", "view": "", "create": None},
        },
        {
            "id": "comments0000001",
            "name": "comments",
            "kind": "base",
            "fields": [
                {
                    "id": "c_post",
                    "name": "post",
                    "type": "relation",
                    "required": True,
                    "options": {"collectionId": "posts0000000001", "maxSelect": 1},
                },
                {"id": "c_text", "name": "text", "type": "text"},
            ],
            "rules": {"list": "", "view": "", "create": "post.status = 'published'"},
        },
    ]


@pytest.fixture
def bundled_migrations_dir() -> Path:
    """The repository's migrations directory."""
    return MIGRATIONS_DIR

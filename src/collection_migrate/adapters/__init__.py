"""Store adapters package.

Provides the ``CollectionStore``/``UnitOfWork`` Protocols and concrete
async store implementations: in-memory and SQL (PostgreSQL or SQLite).

Usage:
    from collection_migrate.adapters import CollectionStore, InMemoryStore, AsyncSqlStore
"""

from collection_migrate.adapters.base import CollectionStore, UnitOfWork
from collection_migrate.adapters.memory import InMemoryStore
from collection_migrate.adapters.sql import AsyncSqlStore

__all__ = [
    "CollectionStore",
    "UnitOfWork",
    "InMemoryStore",
    "AsyncSqlStore",
]

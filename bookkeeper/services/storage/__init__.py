"""
Storage Services Package

Provides the abstract document store and its SQLite and in-memory
implementations.
"""

from bookkeeper.services.storage.interface import (
    Collections,
    DocumentStoreInterface,
    DuplicateError,
    NotFoundError,
    StorageConnectionError,
    StorageError,
)
from bookkeeper.services.storage.memory import InMemoryDocumentStore
from bookkeeper.services.storage.sqlite import SQLiteDocumentStore

__all__ = [
    # Interface
    "Collections",
    "DocumentStoreInterface",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    # Implementations
    "InMemoryDocumentStore",
    "SQLiteDocumentStore",
]

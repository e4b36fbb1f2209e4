"""
Abstract Document Store Interface

Every record is stored as a JSON document keyed by (collection, id).
The interface is deliberately small: typed CRUD and queries live in
BookkeepingRepository, which works against any implementation here.

Guarantees every implementation must honour:
1. put() is atomic per record (readers see the old or the new document)
2. No multi-record transactions
3. Last write wins for concurrent writes to the same record
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class Collections:
    """Collection names used by the repository and the sync outbox."""

    TRANSACTIONS = "transactions"
    PRODUCTS = "products"
    SERVICES = "services"
    INVOICES = "invoices"
    BILLS = "bills"
    BUSINESS_CONFIG = "business_config"
    ACCOUNTS = "accounts"
    TRANSFERS = "transfers"
    EXPENSE_CATEGORIES = "expense_categories"
    CLIENTS = "clients"
    CLIENT_FILES = "client_files"
    FILE_EXPENSES = "file_expenses"
    EXTRA_FEES = "extra_fees"
    SETTINGS = "settings"
    OUTBOX = "outbox"


class DocumentStoreInterface(ABC):
    """
    Abstract interface for document storage.

    Implementations: SQLiteDocumentStore (on-device file) and
    InMemoryDocumentStore (tests, fallback).
    """

    @abstractmethod
    async def put(self, collection: str, record_id: str, document: dict[str, Any]) -> None:
        """
        Insert or replace a document.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get(self, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        """
        Retrieve a document by id.

        Returns:
            The document if found, None otherwise
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, record_id: str) -> bool:
        """
        Delete a document.

        Returns:
            True if a document was deleted, False if it did not exist
        """
        pass

    @abstractmethod
    async def all(self, collection: str) -> list[dict[str, Any]]:
        """All documents in a collection, in insertion order."""
        pass

    @abstractmethod
    async def clear(self, collection: str) -> None:
        """Remove every document in a collection."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StorageConnectionError(StorageError):
    """Could not open or reach the storage backend."""
    pass

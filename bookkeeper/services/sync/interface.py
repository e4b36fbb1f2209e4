"""
Abstract Remote Backend Interface

A remote backend mirrors the local store. It receives opaque payloads
(encrypted JSON when the session holds a key) and must apply them with
two rules:

1. Last write wins by record updated_at: an upsert or delete older than
   what the backend already holds is ignored.
2. Idempotency: an operation whose idempotency key was already applied
   to the record is ignored.

Both cases return False rather than raising, so replaying the outbox is
always safe.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any


class RemoteBackendInterface(ABC):
    """Abstract interface for the hosted sync target."""

    @abstractmethod
    async def upsert(
        self,
        collection: str,
        record_id: str,
        payload: str,
        updated_at: datetime,
        idempotency_key: str,
    ) -> bool:
        """
        Create or replace a record.

        Returns:
            True if applied, False if ignored (stale or already applied)

        Raises:
            RemoteBackendError: If the backend cannot be reached
        """
        pass

    @abstractmethod
    async def delete(
        self,
        collection: str,
        record_id: str,
        updated_at: datetime,
        idempotency_key: str,
    ) -> bool:
        """
        Delete a record (tombstone).

        Returns:
            True if applied, False if ignored (stale or already applied)
        """
        pass

    @abstractmethod
    async def fetch(self, collection: str) -> list[dict[str, Any]]:
        """
        Live (not deleted) records of a collection.

        Each entry has id, updated_at and payload.
        """
        pass


class SyncError(Exception):
    """Base exception for sync operations."""
    pass


class RemoteBackendError(SyncError):
    """The remote backend failed or could not be reached."""
    pass

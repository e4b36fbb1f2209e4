"""
Durable Sync Outbox

Every local write or delete is recorded as an OutboxEntry in the
"outbox" collection of the local document store, so pending changes
survive a restart. Entries are replayed strictly in enqueue order
(sequence) and removed only after the remote backend acknowledged them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from bookkeeper.logger import get_logger
from bookkeeper.models.base import utc_now
from bookkeeper.security.encryption import FieldCipher
from bookkeeper.services.storage.interface import Collections, DocumentStoreInterface


logger = get_logger(__name__)


class OutboxOperation(str, Enum):
    UPSERT = "upsert"
    DELETE = "delete"


class OutboxEntry(BaseModel):
    """One pending change waiting to be pushed to the remote backend."""

    entry_id: UUID = Field(
        default_factory=uuid4,
        description="Idempotency key sent with the push"
    )
    sequence: int = Field(
        ...,
        ge=1,
        description="Monotonic position in the queue"
    )
    collection: str
    record_id: str
    operation: OutboxOperation
    payload: Optional[str] = Field(
        default=None,
        description="Record JSON, encrypted when a session key is available"
    )
    payload_encrypted: bool = False
    allow_plaintext: bool = Field(
        default=False,
        description="Push as plain JSON even when encryption is enabled"
    )
    record_updated_at: datetime
    enqueued_at: datetime = Field(default_factory=utc_now)
    attempts: int = 0
    last_error: Optional[str] = None


class SyncOutbox:
    """Queue of pending remote changes, persisted in the local store."""

    def __init__(self, store: DocumentStoreInterface, cipher: Optional[FieldCipher] = None):
        self._store = store
        self._cipher = cipher
        self._last_sequence: Optional[int] = None

    async def _next_sequence(self) -> int:
        if self._last_sequence is None:
            entries = await self.pending()
            self._last_sequence = entries[-1].sequence if entries else 0
        self._last_sequence += 1
        return self._last_sequence

    def _encode(self, document: dict[str, Any]) -> tuple[str, bool]:
        if self._cipher is not None and self._cipher.active:
            return self._cipher.service.encrypt(document), True
        return json.dumps(document), False

    async def enqueue(
        self,
        collection: str,
        record_id: str,
        operation: OutboxOperation,
        document: Optional[dict[str, Any]] = None,
        updated_at: Optional[datetime] = None,
        allow_plaintext: bool = False,
    ) -> OutboxEntry:
        """
        Append a change to the queue.

        allow_plaintext marks values that must stay readable before
        sign-in on another device (the key derivation salt).
        """
        payload, payload_encrypted = (None, False)
        if operation == OutboxOperation.UPSERT:
            if document is None:
                raise ValueError("An upsert needs the record document")
            if allow_plaintext:
                payload = json.dumps(document)
            else:
                payload, payload_encrypted = self._encode(document)

        entry = OutboxEntry(
            sequence=await self._next_sequence(),
            collection=collection,
            record_id=record_id,
            operation=operation,
            payload=payload,
            payload_encrypted=payload_encrypted,
            allow_plaintext=allow_plaintext,
            record_updated_at=updated_at or utc_now(),
        )
        await self._store.put(Collections.OUTBOX, str(entry.entry_id), entry.model_dump(mode="json"))
        logger.debug(
            "outbox_enqueued",
            collection=collection,
            record_id=record_id,
            operation=operation.value,
            sequence=entry.sequence,
        )
        return entry

    async def pending(self) -> list[OutboxEntry]:
        """All queued entries, oldest first."""
        documents = await self._store.all(Collections.OUTBOX)
        entries = [OutboxEntry.model_validate(doc) for doc in documents]
        entries.sort(key=lambda e: e.sequence)
        return entries

    async def size(self) -> int:
        return len(await self._store.all(Collections.OUTBOX))

    async def acknowledge(self, entry: OutboxEntry) -> None:
        """Remove an entry the remote backend has applied (or ignored as stale)."""
        await self._store.delete(Collections.OUTBOX, str(entry.entry_id))

    async def record_failure(self, entry: OutboxEntry, error: str) -> OutboxEntry:
        """Keep the entry queued, noting the failed attempt."""
        failed = entry.model_copy(update={
            "attempts": entry.attempts + 1,
            "last_error": error,
        })
        await self._store.put(Collections.OUTBOX, str(failed.entry_id), failed.model_dump(mode="json"))
        return failed

    async def seal(self, entry: OutboxEntry) -> Optional[OutboxEntry]:
        """
        The entry as it may leave the device, or None while it must wait.

        With encryption enabled, an upsert queued before sign-in holds a
        plaintext payload. It is encrypted (and re-stored) once a key is
        available and never pushed as plaintext.
        """
        if (
            entry.operation == OutboxOperation.DELETE
            or entry.payload_encrypted
            or entry.allow_plaintext
            or self._cipher is None
            or not self._cipher.enabled
        ):
            return entry
        if not self._cipher.active:
            return None

        sealed = entry.model_copy(update={
            "payload": self._cipher.service.encrypt(json.loads(entry.payload)),
            "payload_encrypted": True,
        })
        await self._store.put(Collections.OUTBOX, str(sealed.entry_id), sealed.model_dump(mode="json"))
        logger.debug("outbox_entry_sealed", record_id=entry.record_id, sequence=entry.sequence)
        return sealed

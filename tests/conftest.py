"""Shared fixtures. No test touches a real spreadsheet or the user's database."""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

import pytest

from bookkeeper.config import get_settings
from bookkeeper.models import Transaction, TransactionType
from bookkeeper.security import EncryptionService, FieldCipher
from bookkeeper.services.repository import BookkeepingRepository
from bookkeeper.services.storage import InMemoryDocumentStore
from bookkeeper.services.sync import RemoteBackendError, RemoteBackendInterface, SyncOutbox


TEST_ITERATIONS = 1_000


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Settings from a clean environment, with the database under tmp_path."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("BOOKKEEPER_STORAGE_DATABASE_PATH", str(tmp_path / "test.db"))
    monkeypatch.setenv("BOOKKEEPER_ENCRYPTION_KDF_ITERATIONS", str(TEST_ITERATIONS))
    monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
    monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
    monkeypatch.delenv("BOOKKEEPER_SYNC_ENABLED", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def encryption():
    return EncryptionService(iterations=TEST_ITERATIONS)


@pytest.fixture
def cipher(encryption):
    return FieldCipher(encryption, enabled=True)


@pytest.fixture
def repository(store, cipher):
    return BookkeepingRepository(store, cipher=cipher)


@pytest.fixture
def outbox(store, cipher):
    return SyncOutbox(store, cipher)


@pytest.fixture
def synced_repository(store, cipher, outbox):
    return BookkeepingRepository(store, cipher=cipher, outbox=outbox)


def make_transaction(
    tx_type: TransactionType,
    amount: str,
    on: Optional[date],
    description: str = "",
    category: str = "",
    **extra: Any,
) -> Transaction:
    return Transaction(
        type=tx_type,
        amount=Decimal(amount),
        date=on,
        description=description,
        category=category,
        **extra,
    )


def income(amount: str, on: Optional[date], description: str = "", category: str = "", **extra) -> Transaction:
    return make_transaction(TransactionType.INCOME, amount, on, description, category, **extra)


def expense(amount: str, on: Optional[date], description: str = "", category: str = "", **extra) -> Transaction:
    return make_transaction(TransactionType.EXPENSE, amount, on, description, category, **extra)


class FakeRemoteBackend(RemoteBackendInterface):
    """
    In-memory remote that applies the same rules as the real backends.

    fail_next makes the next N calls raise RemoteBackendError.
    """

    def __init__(self):
        self.records: dict[tuple[str, str], dict[str, Any]] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.fail_next = 0

    def _maybe_fail(self):
        if self.fail_next > 0:
            self.fail_next -= 1
            raise RemoteBackendError("remote unavailable")

    def _apply(self, collection, record_id, updated_at, key, deleted, payload) -> bool:
        held = self.records.get((collection, record_id))
        if held is not None:
            if held["idempotency_key"] == key:
                return False
            if updated_at < held["updated_at"]:
                return False
        self.records[(collection, record_id)] = {
            "updated_at": updated_at,
            "idempotency_key": key,
            "deleted": deleted,
            "payload": payload,
        }
        return True

    async def upsert(self, collection, record_id, payload, updated_at, idempotency_key):
        self.calls.append(("upsert", collection, record_id))
        self._maybe_fail()
        return self._apply(collection, record_id, updated_at, idempotency_key, False, payload)

    async def delete(self, collection, record_id, updated_at, idempotency_key):
        self.calls.append(("delete", collection, record_id))
        self._maybe_fail()
        return self._apply(collection, record_id, updated_at, idempotency_key, True, "")

    async def fetch(self, collection):
        return [
            {"id": rid, "updated_at": rec["updated_at"], "payload": rec["payload"]}
            for (coll, rid), rec in self.records.items()
            if coll == collection and not rec["deleted"]
        ]


@pytest.fixture
def remote():
    return FakeRemoteBackend()


def utc(year, month, day, hour=0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)

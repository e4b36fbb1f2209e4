"""
Tests for the document stores and the bookkeeping repository.

Both store implementations run the same contract tests; the SQLite
store uses a database file under tmp_path.
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from bookkeeper.models import (
    Account,
    Bill,
    BusinessType,
    Client,
    ClientFile,
    DocumentStatus,
    ExpenseCategory,
    ExtraFee,
    FileExpense,
    FileStatus,
    CategoryScope,
    Invoice,
    LineItem,
    Product,
    Service,
    Transaction,
    Transfer,
)
from bookkeeper.services.storage import (
    Collections,
    DuplicateError,
    InMemoryDocumentStore,
    NotFoundError,
    SQLiteDocumentStore,
    StorageConnectionError,
    StorageError,
)
from bookkeeper.services.repository import BookkeepingRepository
from bookkeeper.services.sync import OutboxOperation, SyncOutbox

from conftest import expense, income


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryDocumentStore()
    return SQLiteDocumentStore(str(tmp_path / "store.db"))


def make_invoice(**overrides):
    fields = {
        "number": "INV-2024-000001",
        "customer_name": "Acme",
        "issue_date": date(2024, 1, 1),
        "due_date": date(2024, 1, 31),
        "items": [LineItem(description="Consulting", quantity=Decimal("2"), unit_price=Decimal("25"))],
        "status": DocumentStatus.SENT,
    }
    fields.update(overrides)
    return Invoice(**fields)


class TestDocumentStoreContract:
    """Behaviour every document store must share."""

    @pytest.mark.asyncio
    async def test_put_and_get(self, any_store):
        await any_store.put("things", "1", {"name": "one"})
        assert await any_store.get("things", "1") == {"name": "one"}
        assert await any_store.get("things", "missing") is None

    @pytest.mark.asyncio
    async def test_put_replaces(self, any_store):
        await any_store.put("things", "1", {"name": "one"})
        await any_store.put("things", "1", {"name": "uno"})
        assert await any_store.all("things") == [{"name": "uno"}]

    @pytest.mark.asyncio
    async def test_all_keeps_insertion_order_across_updates(self, any_store):
        """Test that replacing a document keeps its list position."""
        for key in ("a", "b", "c"):
            await any_store.put("things", key, {"key": key})
        await any_store.put("things", "a", {"key": "a2"})
        assert [d["key"] for d in await any_store.all("things")] == ["a2", "b", "c"]

    @pytest.mark.asyncio
    async def test_delete_reports_existence(self, any_store):
        await any_store.put("things", "1", {})
        assert await any_store.delete("things", "1") is True
        assert await any_store.delete("things", "1") is False

    @pytest.mark.asyncio
    async def test_collections_are_isolated(self, any_store):
        await any_store.put("a", "1", {"v": 1})
        await any_store.put("b", "1", {"v": 2})
        await any_store.clear("a")
        assert await any_store.all("a") == []
        assert await any_store.get("b", "1") == {"v": 2}

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self, any_store):
        await any_store.put("things", "1", {"tags": ["x"]})
        doc = await any_store.get("things", "1")
        doc["tags"].append("y")
        assert await any_store.get("things", "1") == {"tags": ["x"]}


class TestSQLiteStore:
    """SQLite-specific behaviour."""

    @pytest.mark.asyncio
    async def test_data_survives_reopen(self, tmp_path):
        path = str(tmp_path / "persist.db")
        store = SQLiteDocumentStore(path)
        await store.put("things", "1", {"name": "kept"})
        await store.close()

        reopened = SQLiteDocumentStore(path)
        assert await reopened.get("things", "1") == {"name": "kept"}
        await reopened.close()

    def test_unopenable_path_raises_connection_error(self, tmp_path):
        store = SQLiteDocumentStore(str(tmp_path / "missing" / "dir" / "x.db"))
        with pytest.raises(StorageConnectionError):
            store.open()

    def test_default_path_from_settings(self, tmp_path):
        assert SQLiteDocumentStore().database_path == str(tmp_path / "test.db")


class TestRepositoryTransactions:
    """Transaction CRUD and queries."""

    @pytest.mark.asyncio
    async def test_add_and_get(self, repository):
        tx = await repository.add_transaction(income("150", date(2024, 1, 5), "Sale", "Sales"))
        loaded = await repository.get_transaction(tx.id)
        assert loaded == tx

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, repository):
        tx = await repository.add_transaction(income("1", date(2024, 1, 5)))
        with pytest.raises(DuplicateError):
            await repository.add_transaction(tx)

    @pytest.mark.asyncio
    async def test_update_keeps_created_at(self, repository):
        tx = await repository.add_transaction(income("1", date(2024, 1, 5)))
        updated = await repository.update_transaction(tx.model_copy(update={"amount": Decimal("2")}))
        assert updated.created_at == tx.created_at
        assert updated.updated_at >= tx.updated_at
        assert (await repository.get_transaction(tx.id)).amount == Decimal("2")

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, repository):
        with pytest.raises(NotFoundError):
            await repository.update_transaction(income("1", date(2024, 1, 5)))

    @pytest.mark.asyncio
    async def test_delete(self, repository):
        tx = await repository.add_transaction(income("1", date(2024, 1, 5)))
        assert await repository.delete_transaction(tx.id) is True
        assert await repository.get_transaction(tx.id) is None
        assert await repository.delete_transaction(uuid4()) is False

    @pytest.mark.asyncio
    async def test_date_range_is_inclusive_and_skips_undated(self, repository):
        for tx in (
            income("1", date(2024, 1, 1)),
            income("2", date(2024, 1, 31)),
            income("3", date(2024, 2, 1)),
            income("4", None),
        ):
            await repository.add_transaction(tx)
        in_range = await repository.list_transactions_by_date_range(date(2024, 1, 1), date(2024, 1, 31))
        assert sorted(tx.amount for tx in in_range) == [Decimal("1"), Decimal("2")]

    @pytest.mark.asyncio
    async def test_filters_by_party_and_account(self, repository):
        await repository.add_transaction(income("1", date(2024, 1, 1), customer="Acme", account="Checking"))
        await repository.add_transaction(expense("2", date(2024, 1, 1), vendor="Paper Co"))
        assert len(await repository.list_transactions_by_customer("Acme")) == 1
        assert len(await repository.list_transactions_by_vendor("Paper Co")) == 1
        assert len(await repository.list_transactions_by_account("Checking")) == 1
        assert await repository.list_transactions_by_customer("acme") == []


class TestRepositoryEncryption:
    """Sensitive fields are ciphertext at rest and plain on read."""

    @pytest.mark.asyncio
    async def test_encrypted_at_rest(self, repository, store, encryption):
        encryption.set_credentials("owner@example.com", "pw")
        tx = await repository.add_transaction(income("150", date(2024, 1, 5), "Sale to Acme", "Sales"))

        raw = await store.get(Collections.TRANSACTIONS, str(tx.id))
        assert raw["encrypted"] is True
        assert raw["description"] != "Sale to Acme"
        assert raw["amount"] == "150"

        loaded = await repository.get_transaction(tx.id)
        assert loaded.description == "Sale to Acme"
        assert loaded.encrypted is False

    @pytest.mark.asyncio
    async def test_plain_records_readable_after_sign_in(self, repository, encryption):
        """Test that records written before sign-in stay readable."""
        tx = await repository.add_transaction(income("1", date(2024, 1, 5), "Before"))
        encryption.set_credentials("owner@example.com", "pw")
        assert (await repository.get_transaction(tx.id)).description == "Before"


class TestRepositoryDocuments:
    """Invoices, bills and the catalog."""

    @pytest.mark.asyncio
    async def test_mark_invoice_paid(self, repository):
        invoice = await repository.add_invoice(make_invoice())
        paid = await repository.mark_invoice_paid(invoice.id)
        assert paid.status == DocumentStatus.PAID
        assert (await repository.get_invoice(invoice.id)).status == DocumentStatus.PAID

    @pytest.mark.asyncio
    async def test_mark_missing_bill_paid(self, repository):
        with pytest.raises(NotFoundError):
            await repository.mark_bill_paid(uuid4())

    @pytest.mark.asyncio
    async def test_bill_round_trip_keeps_totals(self, repository):
        bill = await repository.add_bill(Bill(
            number="BILL-1",
            vendor_name="Paper Co",
            issue_date=date(2024, 1, 1),
            items=[LineItem(description="Paper", quantity=Decimal("3"), unit_price=Decimal("10"))],
        ))
        loaded = await repository.get_bill(bill.id)
        assert loaded.total_amount == Decimal("33.00")

    @pytest.mark.asyncio
    async def test_catalog_crud(self, repository):
        product = await repository.add_product(Product(name="Widget", price=Decimal("9.99")))
        service = await repository.add_service(Service(name="Advice", hourly_rate=Decimal("120")))
        await repository.update_product(product.model_copy(update={"price": Decimal("10.00")}))

        assert [p.price for p in await repository.list_products()] == [Decimal("10.00")]
        assert await repository.delete_service(service.id)
        assert await repository.list_services() == []


class TestOnboarding:
    """Business config singleton and seed data."""

    @pytest.mark.asyncio
    async def test_complete_onboarding_seeds_defaults(self, repository):
        assert not await repository.is_onboarded()
        config = await repository.complete_onboarding(BusinessType.LEGAL, "Smith LLP")

        assert await repository.is_onboarded()
        assert (await repository.get_business_config()).id == config.id
        names = {c.name for c in await repository.list_expense_categories()}
        assert "Court Fees" in names
        assert "Marketing & Advertising" not in names
        assert len(await repository.list_accounts()) == 3
        assert (await repository.get_default_account()).name == "Business Checking"

    @pytest.mark.asyncio
    async def test_second_config_rejected(self, repository):
        await repository.complete_onboarding(BusinessType.GENERAL, "Shop")
        with pytest.raises(DuplicateError):
            await repository.complete_onboarding(BusinessType.GENERAL, "Shop again")

    @pytest.mark.asyncio
    async def test_existing_accounts_not_reseeded(self, repository):
        await repository.add_account(Account(name="Till"))
        await repository.complete_onboarding(BusinessType.GENERAL, "Shop")
        assert [a.name for a in await repository.list_accounts()] == ["Till"]

    @pytest.mark.asyncio
    async def test_category_filter_and_inactive_accounts(self, repository):
        await repository.add_expense_category(ExpenseCategory(name="Court Fees", business_type=CategoryScope.LEGAL))
        await repository.add_expense_category(ExpenseCategory(name="Travel"))
        general = await repository.list_expense_categories(BusinessType.GENERAL)
        assert [c.name for c in general] == ["Travel"]

        closed = await repository.add_account(Account(name="Old", is_active=False))
        await repository.add_account(Account(name="New"))
        active = await repository.list_active_accounts()
        assert closed.id not in {a.id for a in active}


class TestSettingsAndOutbox:
    """Local settings and outbox enqueueing."""

    @pytest.mark.asyncio
    async def test_settings(self, repository):
        assert await repository.get_setting("theme", "light") == "light"
        await repository.set_setting("theme", "dark")
        assert await repository.get_setting("theme") == "dark"

    @pytest.mark.asyncio
    async def test_settings_are_not_queued(self, synced_repository, outbox):
        await synced_repository.set_setting("theme", "dark")
        assert await outbox.size() == 0

    @pytest.mark.asyncio
    async def test_writes_enqueued_in_order(self, synced_repository, outbox):
        tx = await synced_repository.add_transaction(income("1", date(2024, 1, 5)))
        await synced_repository.update_transaction(tx.model_copy(update={"amount": Decimal("2")}))
        await synced_repository.delete_transaction(tx.id)

        pending = await outbox.pending()
        assert [e.operation for e in pending] == [
            OutboxOperation.UPSERT,
            OutboxOperation.UPSERT,
            OutboxOperation.DELETE,
        ]
        assert [e.sequence for e in pending] == [1, 2, 3]
        assert pending[2].payload is None

    @pytest.mark.asyncio
    async def test_failed_delete_not_enqueued(self, synced_repository, outbox):
        assert await synced_repository.delete_transaction(uuid4()) is False
        assert await outbox.size() == 0

    @pytest.mark.asyncio
    async def test_outbox_payload_encrypted_when_signed_in(self, synced_repository, outbox, encryption):
        encryption.set_credentials("owner@example.com", "pw")
        await synced_repository.add_transaction(income("1", date(2024, 1, 5), "Secret"))
        entry = (await outbox.pending())[0]
        assert entry.payload_encrypted
        assert "Secret" not in entry.payload
        assert encryption.decrypt(entry.payload)["description"] == "Secret"

    @pytest.mark.asyncio
    async def test_outbox_survives_restart(self, store, cipher, synced_repository):
        """Test that a new outbox on the same store continues the sequence."""
        await synced_repository.add_transaction(income("1", date(2024, 1, 5)))
        reopened = SyncOutbox(store, cipher)
        entry = await reopened.enqueue("transactions", "x", OutboxOperation.DELETE)
        assert entry.sequence == 2

    @pytest.mark.asyncio
    async def test_upsert_needs_document(self, outbox):
        with pytest.raises(ValueError):
            await outbox.enqueue("transactions", "x", OutboxOperation.UPSERT)


    @pytest.mark.asyncio
    async def test_published_setting_is_queued_as_plaintext(self, synced_repository, outbox, encryption):
        encryption.set_credentials("owner@example.com", "pw")
        await synced_repository.publish_setting("encryption_salt", "c2FsdA==")

        assert await synced_repository.get_setting("encryption_salt") == "c2FsdA=="
        entry = (await outbox.pending())[0]
        assert entry.collection == Collections.SETTINGS
        assert entry.allow_plaintext
        assert not entry.payload_encrypted
        assert entry.payload == '{"key": "encryption_salt", "value": "c2FsdA=="}'


class OutboxFailingStore(InMemoryDocumentStore):
    """Accepts record writes but fails every outbox write."""

    async def put(self, collection, record_id, document):
        if collection == Collections.OUTBOX:
            raise StorageError("outbox is full")
        await super().put(collection, record_id, document)


class TestWriteRollback:
    """A change the outbox cannot take is undone in the store."""

    @pytest.fixture
    def failing_store(self):
        return OutboxFailingStore()

    @pytest.fixture
    def failing_repository(self, failing_store, cipher):
        return BookkeepingRepository(failing_store, cipher=cipher, outbox=SyncOutbox(failing_store, cipher))

    @pytest.mark.asyncio
    async def test_failed_add_leaves_no_record(self, failing_repository, failing_store):
        with pytest.raises(StorageError):
            await failing_repository.add_transaction(income("1", date(2024, 1, 5)))

        assert await failing_repository.list_transactions() == []
        assert await failing_store.all(Collections.OUTBOX) == []

    @pytest.mark.asyncio
    async def test_failed_update_restores_previous(self, failing_store, cipher):
        plain = BookkeepingRepository(failing_store, cipher=cipher)
        tx = await plain.add_transaction(income("1", date(2024, 1, 5)))
        failing = BookkeepingRepository(failing_store, cipher=cipher, outbox=SyncOutbox(failing_store, cipher))

        with pytest.raises(StorageError):
            await failing.update_transaction(tx.model_copy(update={"amount": Decimal("9")}))

        assert (await plain.get_transaction(tx.id)).amount == Decimal("1")

    @pytest.mark.asyncio
    async def test_failed_delete_restores_record(self, failing_store, cipher):
        plain = BookkeepingRepository(failing_store, cipher=cipher)
        tx = await plain.add_transaction(income("1", date(2024, 1, 5)))
        failing = BookkeepingRepository(failing_store, cipher=cipher, outbox=SyncOutbox(failing_store, cipher))

        with pytest.raises(StorageError):
            await failing.delete_transaction(tx.id)

        assert await plain.get_transaction(tx.id) is not None


class TestTransfers:
    """Moving money between accounts."""

    @pytest.mark.asyncio
    async def test_apply_transfer_moves_balances(self, repository):
        checking = await repository.add_account(Account(name="Checking", current_balance=Decimal("500")))
        savings = await repository.add_account(Account(name="Savings"))

        transfer = await repository.apply_transfer(Transfer(
            from_account_id=str(checking.id),
            to_account_id=str(savings.id),
            amount=Decimal("125.50"),
            date=date(2024, 3, 1),
        ))

        assert (await repository.get_account(checking.id)).current_balance == Decimal("374.50")
        assert (await repository.get_account(savings.id)).current_balance == Decimal("125.50")
        assert [t.id for t in await repository.list_transfers()] == [transfer.id]
        assert await repository.list_transfers_by_date_range(date(2024, 4, 1), date(2024, 4, 30)) == []

    @pytest.mark.asyncio
    async def test_unknown_account_rejected(self, repository):
        checking = await repository.add_account(Account(name="Checking", current_balance=Decimal("5")))
        with pytest.raises(NotFoundError):
            await repository.apply_transfer(Transfer(
                from_account_id=str(checking.id),
                to_account_id=str(uuid4()),
                amount=Decimal("1"),
                date=date(2024, 3, 1),
            ))
        assert await repository.list_transfers() == []


class TestLegalRecords:
    """Clients, files and the charges recorded against them."""

    @pytest.mark.asyncio
    async def test_client_file_crud_and_filters(self, repository):
        client = await repository.add_client(Client(name="Jane Doe", email="jane@example.com"))
        other = await repository.add_client(Client(name="John Roe"))
        matter = await repository.add_client_file(ClientFile(
            client_id=str(client.id), file_name="Doe v. Roe", date_opened=date(2024, 1, 10),
            fees_to_be_paid=Decimal("5000"),
        ))
        await repository.add_client_file(ClientFile(
            client_id=str(other.id), file_name="Roe estate", date_opened=date(2024, 2, 1),
        ))

        assert [f.id for f in await repository.list_client_files(client.id)] == [matter.id]
        closed = await repository.update_client_file(matter.model_copy(update={"status": FileStatus.CLOSED}))
        assert (await repository.get_client_file(matter.id)).status == FileStatus.CLOSED
        assert closed.created_at == matter.created_at

    @pytest.mark.asyncio
    async def test_client_details_encrypted_at_rest(self, repository, store, encryption):
        encryption.set_credentials("owner@example.com", "pw")
        client = await repository.add_client(Client(name="Jane Doe", phone="555-0100"))

        raw = await store.get(Collections.CLIENTS, str(client.id))
        assert raw["encrypted"]
        assert "Jane" not in raw["name"]
        assert (await repository.get_client(client.id)).phone == "555-0100"

    @pytest.mark.asyncio
    async def test_delete_client_cascades(self, synced_repository, store, outbox):
        client = await synced_repository.add_client(Client(name="Jane Doe"))
        matter = await synced_repository.add_client_file(ClientFile(
            client_id=str(client.id), file_name="Doe v. Roe", date_opened=date(2024, 1, 10),
        ))
        await synced_repository.add_file_expense(FileExpense(
            file_id=str(matter.id), date=date(2024, 1, 11), description="Filing", amount=Decimal("120"),
        ))
        await synced_repository.add_extra_fee(ExtraFee(
            file_id=str(matter.id), date=date(2024, 1, 12), description="Hearing", amount=Decimal("300"),
        ))

        assert await synced_repository.delete_client(client.id)

        for collection in (
            Collections.CLIENTS, Collections.CLIENT_FILES, Collections.FILE_EXPENSES, Collections.EXTRA_FEES,
        ):
            assert await store.all(collection) == []
        deletes = [e for e in await outbox.pending() if e.operation == OutboxOperation.DELETE]
        assert len(deletes) == 4


class TestRestoreDocument:
    """Records pulled from the remote are written without re-queueing."""

    @pytest.mark.asyncio
    async def test_restore_keeps_timestamps_and_skips_outbox(self, synced_repository, outbox):
        tx = income("7", date(2024, 1, 5), "Pulled")
        document = tx.to_document()

        restored = await synced_repository.restore_document(Collections.TRANSACTIONS, Transaction, document)

        assert restored.updated_at == tx.updated_at
        assert await synced_repository.stored_updated_at(Collections.TRANSACTIONS, str(tx.id)) == tx.updated_at
        assert await synced_repository.exists(Collections.TRANSACTIONS, tx.id)
        assert await outbox.size() == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

"""
Bookkeeping Repository

Typed CRUD for every record type on top of a DocumentStoreInterface.

Every write goes through the same path:
1. Refresh timestamps (new id and created_at on add, updated_at always)
2. Encrypt sensitive fields when the FieldCipher is active
3. Store the document
4. Enqueue the change in the sync outbox when one is attached; if that
   fails the stored document is rolled back and the error propagates

Reads decrypt transparently. Filtering happens in Python after the
documents are decrypted, since the sensitive fields are ciphertext at
rest.
"""

import datetime as dt
from typing import Any, Optional, TypeVar
from uuid import UUID

from pydantic import TypeAdapter

from bookkeeper.logger import get_logger
from bookkeeper.models.base import Record, utc_now
from bookkeeper.models.business import (
    Account,
    BusinessConfig,
    BusinessType,
    ExpenseCategory,
    Transfer,
    default_accounts,
    default_expense_categories,
    new_business_config,
)
from bookkeeper.models.catalog import Product, Service
from bookkeeper.models.documents import Bill, DocumentStatus, Invoice
from bookkeeper.models.legal import Client, ClientFile, ExtraFee, FileExpense
from bookkeeper.models.transaction import Transaction
from bookkeeper.security.encryption import FieldCipher
from bookkeeper.services.storage.interface import (
    Collections,
    DocumentStoreInterface,
    DuplicateError,
    NotFoundError,
    StorageError,
)
from bookkeeper.services.sync.outbox import OutboxOperation, SyncOutbox


logger = get_logger(__name__)

R = TypeVar("R", bound=Record)

_DATETIME = TypeAdapter(dt.datetime)


class BookkeepingRepository:
    """Typed access to the local store."""

    def __init__(
        self,
        store: DocumentStoreInterface,
        cipher: Optional[FieldCipher] = None,
        outbox: Optional[SyncOutbox] = None,
    ):
        self._store = store
        self._cipher = cipher
        self._outbox = outbox

    @property
    def store(self) -> DocumentStoreInterface:
        return self._store

    @property
    def outbox(self) -> Optional[SyncOutbox]:
        return self._outbox

    # =========================================================================
    # Generic helpers
    # =========================================================================

    def _decode(self, collection: str, model: type[R], document: dict[str, Any]) -> R:
        if self._cipher is not None:
            document = self._cipher.decrypt_document(collection, document)
        return model.model_validate(document)

    async def _write(self, collection: str, record: R, previous: Optional[dict[str, Any]]) -> R:
        """
        Store a record and queue it for sync.

        previous is the stored document being replaced (None for a new
        record). If the outbox cannot take the change, the store is put
        back to previous so a failed save leaves nothing behind.
        """
        document = record.to_document()
        stored = document
        if self._cipher is not None:
            stored = self._cipher.encrypt_document(collection, document)

        await self._store.put(collection, str(record.id), stored)

        if self._outbox is not None:
            try:
                await self._outbox.enqueue(
                    collection,
                    str(record.id),
                    OutboxOperation.UPSERT,
                    document=document,
                    updated_at=record.updated_at,
                )
            except StorageError:
                await self._rollback(collection, str(record.id), previous)
                raise
        return record

    async def _rollback(self, collection: str, record_id: str, previous: Optional[dict[str, Any]]) -> None:
        logger.warning("write_rolled_back", collection=collection, record_id=record_id)
        if previous is None:
            await self._store.delete(collection, record_id)
        else:
            await self._store.put(collection, record_id, previous)

    async def _add(self, collection: str, record: R) -> R:
        if await self._store.get(collection, str(record.id)) is not None:
            raise DuplicateError(f"{collection} record already exists: {record.id}")
        now = utc_now()
        record = record.model_copy(update={"created_at": now, "updated_at": now})
        await self._write(collection, record, previous=None)
        logger.info("record_added", collection=collection, record_id=str(record.id))
        return record

    async def _get(self, collection: str, model: type[R], record_id: UUID) -> Optional[R]:
        document = await self._store.get(collection, str(record_id))
        return self._decode(collection, model, document) if document is not None else None

    async def _list(self, collection: str, model: type[R]) -> list[R]:
        documents = await self._store.all(collection)
        return [self._decode(collection, model, doc) for doc in documents]

    async def _update(self, collection: str, record: R) -> R:
        existing = await self._store.get(collection, str(record.id))
        if existing is None:
            raise NotFoundError(f"{collection} record not found: {record.id}")
        record = record.model_copy(update={
            "created_at": _DATETIME.validate_python(existing.get("created_at", record.created_at)),
            "updated_at": utc_now(),
        })
        await self._write(collection, record, previous=existing)
        logger.info("record_updated", collection=collection, record_id=str(record.id))
        return record

    async def _delete(self, collection: str, record_id: UUID) -> bool:
        existing = await self._store.get(collection, str(record_id))
        if existing is None:
            return False

        await self._store.delete(collection, str(record_id))
        if self._outbox is not None:
            try:
                await self._outbox.enqueue(
                    collection,
                    str(record_id),
                    OutboxOperation.DELETE,
                    updated_at=utc_now(),
                )
            except StorageError:
                await self._rollback(collection, str(record_id), existing)
                raise
        logger.info("record_deleted", collection=collection, record_id=str(record_id))
        return True

    async def exists(self, collection: str, record_id: UUID) -> bool:
        return await self._store.get(collection, str(record_id)) is not None

    async def stored_updated_at(self, collection: str, record_id: str) -> Optional[dt.datetime]:
        """updated_at of the local copy of a record, or None when absent."""
        document = await self._store.get(collection, record_id)
        if document is None or document.get("updated_at") is None:
            return None
        return _DATETIME.validate_python(document["updated_at"])

    async def restore_document(self, collection: str, model: type[R], document: dict[str, Any]) -> R:
        """
        Write a record pulled from the remote backend.

        The record keeps its own timestamps and is not queued for sync,
        since the remote already holds it.
        """
        record = model.model_validate(document)
        stored = record.to_document()
        if self._cipher is not None:
            stored = self._cipher.encrypt_document(collection, stored)
        await self._store.put(collection, str(record.id), stored)
        logger.info("record_restored", collection=collection, record_id=str(record.id))
        return record

    async def replace_business_config(self, config: BusinessConfig) -> BusinessConfig:
        """Swap the single business config for one pulled from the remote backend."""
        await self._store.clear(Collections.BUSINESS_CONFIG)
        return await self.restore_document(Collections.BUSINESS_CONFIG, BusinessConfig, config.to_document())

    # =========================================================================
    # Transactions
    # =========================================================================

    async def add_transaction(self, transaction: Transaction) -> Transaction:
        return await self._add(Collections.TRANSACTIONS, transaction)

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        return await self._get(Collections.TRANSACTIONS, Transaction, transaction_id)

    async def list_transactions(self) -> list[Transaction]:
        return await self._list(Collections.TRANSACTIONS, Transaction)

    async def list_transactions_by_date_range(
        self,
        start: dt.date,
        end: dt.date,
    ) -> list[Transaction]:
        """Transactions dated within [start, end]. Undated ones are excluded."""
        return [
            tx for tx in await self.list_transactions()
            if tx.date is not None and start <= tx.date <= end
        ]

    async def list_transactions_by_account(self, account: str) -> list[Transaction]:
        return [tx for tx in await self.list_transactions() if tx.account == account]

    async def list_transactions_by_customer(self, customer: str) -> list[Transaction]:
        return [tx for tx in await self.list_transactions() if tx.customer == customer]

    async def list_transactions_by_vendor(self, vendor: str) -> list[Transaction]:
        return [tx for tx in await self.list_transactions() if tx.vendor == vendor]

    async def update_transaction(self, transaction: Transaction) -> Transaction:
        return await self._update(Collections.TRANSACTIONS, transaction)

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        return await self._delete(Collections.TRANSACTIONS, transaction_id)

    # =========================================================================
    # Products and services
    # =========================================================================

    async def add_product(self, product: Product) -> Product:
        return await self._add(Collections.PRODUCTS, product)

    async def list_products(self) -> list[Product]:
        return await self._list(Collections.PRODUCTS, Product)

    async def update_product(self, product: Product) -> Product:
        return await self._update(Collections.PRODUCTS, product)

    async def delete_product(self, product_id: UUID) -> bool:
        return await self._delete(Collections.PRODUCTS, product_id)

    async def add_service(self, service: Service) -> Service:
        return await self._add(Collections.SERVICES, service)

    async def list_services(self) -> list[Service]:
        return await self._list(Collections.SERVICES, Service)

    async def update_service(self, service: Service) -> Service:
        return await self._update(Collections.SERVICES, service)

    async def delete_service(self, service_id: UUID) -> bool:
        return await self._delete(Collections.SERVICES, service_id)

    # =========================================================================
    # Invoices and bills
    # =========================================================================

    async def add_invoice(self, invoice: Invoice) -> Invoice:
        return await self._add(Collections.INVOICES, invoice)

    async def get_invoice(self, invoice_id: UUID) -> Optional[Invoice]:
        return await self._get(Collections.INVOICES, Invoice, invoice_id)

    async def list_invoices(self) -> list[Invoice]:
        return await self._list(Collections.INVOICES, Invoice)

    async def update_invoice(self, invoice: Invoice) -> Invoice:
        return await self._update(Collections.INVOICES, invoice)

    async def delete_invoice(self, invoice_id: UUID) -> bool:
        return await self._delete(Collections.INVOICES, invoice_id)

    async def mark_invoice_paid(self, invoice_id: UUID) -> Invoice:
        invoice = await self.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice not found: {invoice_id}")
        return await self.update_invoice(invoice.model_copy(update={"status": DocumentStatus.PAID}))

    async def add_bill(self, bill: Bill) -> Bill:
        return await self._add(Collections.BILLS, bill)

    async def get_bill(self, bill_id: UUID) -> Optional[Bill]:
        return await self._get(Collections.BILLS, Bill, bill_id)

    async def list_bills(self) -> list[Bill]:
        return await self._list(Collections.BILLS, Bill)

    async def update_bill(self, bill: Bill) -> Bill:
        return await self._update(Collections.BILLS, bill)

    async def delete_bill(self, bill_id: UUID) -> bool:
        return await self._delete(Collections.BILLS, bill_id)

    async def mark_bill_paid(self, bill_id: UUID) -> Bill:
        bill = await self.get_bill(bill_id)
        if bill is None:
            raise NotFoundError(f"Bill not found: {bill_id}")
        return await self.update_bill(bill.model_copy(update={"status": DocumentStatus.PAID}))

    # =========================================================================
    # Business config and onboarding
    # =========================================================================

    async def get_business_config(self) -> Optional[BusinessConfig]:
        configs = await self._list(Collections.BUSINESS_CONFIG, BusinessConfig)
        return configs[0] if configs else None

    async def add_business_config(self, config: BusinessConfig) -> BusinessConfig:
        if await self._store.all(Collections.BUSINESS_CONFIG):
            raise DuplicateError("A business config already exists")
        return await self._add(Collections.BUSINESS_CONFIG, config)

    async def update_business_config(self, config: BusinessConfig) -> BusinessConfig:
        return await self._update(Collections.BUSINESS_CONFIG, config)

    async def is_onboarded(self) -> bool:
        config = await self.get_business_config()
        return config is not None and config.setup_complete

    async def complete_onboarding(
        self,
        business_type: BusinessType,
        name: str,
        currency: str = "USD",
        locale: str = "en-US",
    ) -> BusinessConfig:
        """
        Create the business config and seed default categories and accounts.

        Seeding is skipped for collections that already hold records.
        """
        config = await self.add_business_config(
            new_business_config(business_type, name, currency=currency, locale=locale)
        )

        if not await self._store.all(Collections.EXPENSE_CATEGORIES):
            for category in default_expense_categories(business_type):
                await self.add_expense_category(category)

        if not await self._store.all(Collections.ACCOUNTS):
            for account in default_accounts():
                await self.add_account(account)

        logger.info("onboarding_completed", business_type=business_type.value)
        return config

    # =========================================================================
    # Accounts
    # =========================================================================

    async def add_account(self, account: Account) -> Account:
        return await self._add(Collections.ACCOUNTS, account)

    async def list_accounts(self) -> list[Account]:
        return await self._list(Collections.ACCOUNTS, Account)

    async def list_active_accounts(self) -> list[Account]:
        return [a for a in await self.list_accounts() if a.is_active]

    async def get_default_account(self) -> Optional[Account]:
        for account in await self.list_accounts():
            if account.is_default:
                return account
        return None

    async def get_account(self, account_id: UUID) -> Optional[Account]:
        return await self._get(Collections.ACCOUNTS, Account, account_id)

    async def update_account(self, account: Account) -> Account:
        return await self._update(Collections.ACCOUNTS, account)

    async def delete_account(self, account_id: UUID) -> bool:
        return await self._delete(Collections.ACCOUNTS, account_id)

    # =========================================================================
    # Transfers
    # =========================================================================

    async def add_transfer(self, transfer: Transfer) -> Transfer:
        return await self._add(Collections.TRANSFERS, transfer)

    async def list_transfers(self) -> list[Transfer]:
        return await self._list(Collections.TRANSFERS, Transfer)

    async def list_transfers_by_date_range(self, start: dt.date, end: dt.date) -> list[Transfer]:
        return [t for t in await self.list_transfers() if start <= t.date <= end]

    async def delete_transfer(self, transfer_id: UUID) -> bool:
        return await self._delete(Collections.TRANSFERS, transfer_id)

    async def apply_transfer(self, transfer: Transfer) -> Transfer:
        """
        Record a transfer and move the amount between the two balances.

        The caller validates the amount against the source balance.
        Raises NotFoundError when either account is missing.
        """
        source = await self.get_account(UUID(transfer.from_account_id))
        target = await self.get_account(UUID(transfer.to_account_id))
        if source is None or target is None:
            raise NotFoundError("Transfer account not found")

        saved = await self.add_transfer(transfer)
        await self.update_account(source.model_copy(update={
            "current_balance": source.current_balance - transfer.amount,
        }))
        await self.update_account(target.model_copy(update={
            "current_balance": target.current_balance + transfer.amount,
        }))
        logger.info("transfer_applied", transfer_id=str(saved.id), amount=str(transfer.amount))
        return saved

    # =========================================================================
    # Expense categories
    # =========================================================================

    async def add_expense_category(self, category: ExpenseCategory) -> ExpenseCategory:
        return await self._add(Collections.EXPENSE_CATEGORIES, category)

    async def list_expense_categories(
        self,
        business_type: Optional[BusinessType] = None,
    ) -> list[ExpenseCategory]:
        categories = await self._list(Collections.EXPENSE_CATEGORIES, ExpenseCategory)
        if business_type is None:
            return categories
        return [c for c in categories if c.applies_to(business_type)]

    async def update_expense_category(self, category: ExpenseCategory) -> ExpenseCategory:
        return await self._update(Collections.EXPENSE_CATEGORIES, category)

    async def delete_expense_category(self, category_id: UUID) -> bool:
        return await self._delete(Collections.EXPENSE_CATEGORIES, category_id)

    # =========================================================================
    # Legal practice: clients, files, file expenses and extra fees
    # =========================================================================

    async def add_client(self, client: Client) -> Client:
        return await self._add(Collections.CLIENTS, client)

    async def get_client(self, client_id: UUID) -> Optional[Client]:
        return await self._get(Collections.CLIENTS, Client, client_id)

    async def list_clients(self) -> list[Client]:
        return await self._list(Collections.CLIENTS, Client)

    async def update_client(self, client: Client) -> Client:
        return await self._update(Collections.CLIENTS, client)

    async def delete_client(self, client_id: UUID) -> bool:
        """Delete a client together with all of its files."""
        for client_file in await self.list_client_files(client_id):
            await self.delete_client_file(client_file.id)
        return await self._delete(Collections.CLIENTS, client_id)

    async def add_client_file(self, client_file: ClientFile) -> ClientFile:
        return await self._add(Collections.CLIENT_FILES, client_file)

    async def get_client_file(self, file_id: UUID) -> Optional[ClientFile]:
        return await self._get(Collections.CLIENT_FILES, ClientFile, file_id)

    async def list_client_files(self, client_id: Optional[UUID] = None) -> list[ClientFile]:
        files = await self._list(Collections.CLIENT_FILES, ClientFile)
        if client_id is None:
            return files
        return [f for f in files if f.client_id == str(client_id)]

    async def update_client_file(self, client_file: ClientFile) -> ClientFile:
        return await self._update(Collections.CLIENT_FILES, client_file)

    async def delete_client_file(self, file_id: UUID) -> bool:
        """Delete a file together with its expenses and extra fees."""
        for expense in await self.list_file_expenses(file_id):
            await self._delete(Collections.FILE_EXPENSES, expense.id)
        for fee in await self.list_extra_fees(file_id):
            await self._delete(Collections.EXTRA_FEES, fee.id)
        return await self._delete(Collections.CLIENT_FILES, file_id)

    async def add_file_expense(self, expense: FileExpense) -> FileExpense:
        return await self._add(Collections.FILE_EXPENSES, expense)

    async def list_file_expenses(self, file_id: Optional[UUID] = None) -> list[FileExpense]:
        expenses = await self._list(Collections.FILE_EXPENSES, FileExpense)
        if file_id is None:
            return expenses
        return [e for e in expenses if e.file_id == str(file_id)]

    async def update_file_expense(self, expense: FileExpense) -> FileExpense:
        return await self._update(Collections.FILE_EXPENSES, expense)

    async def delete_file_expense(self, expense_id: UUID) -> bool:
        return await self._delete(Collections.FILE_EXPENSES, expense_id)

    async def add_extra_fee(self, fee: ExtraFee) -> ExtraFee:
        return await self._add(Collections.EXTRA_FEES, fee)

    async def list_extra_fees(self, file_id: Optional[UUID] = None) -> list[ExtraFee]:
        fees = await self._list(Collections.EXTRA_FEES, ExtraFee)
        if file_id is None:
            return fees
        return [f for f in fees if f.file_id == str(file_id)]

    async def update_extra_fee(self, fee: ExtraFee) -> ExtraFee:
        return await self._update(Collections.EXTRA_FEES, fee)

    async def delete_extra_fee(self, fee_id: UUID) -> bool:
        return await self._delete(Collections.EXTRA_FEES, fee_id)

    # =========================================================================
    # Settings (local; only published settings are synced)
    # =========================================================================

    async def get_setting(self, key: str, default: Any = None) -> Any:
        document = await self._store.get(Collections.SETTINGS, key)
        return document["value"] if document is not None else default

    async def set_setting(self, key: str, value: Any) -> None:
        await self._store.put(Collections.SETTINGS, key, {"key": key, "value": value})

    async def publish_setting(self, key: str, value: Any) -> None:
        """
        Store a setting and queue it for sync as plain JSON.

        Only for values another device needs before it can decrypt
        anything, such as the key derivation salt.
        """
        await self.set_setting(key, value)
        if self._outbox is not None:
            await self._outbox.enqueue(
                Collections.SETTINGS,
                key,
                OutboxOperation.UPSERT,
                document={"key": key, "value": value},
                allow_plaintext=True,
            )

"""
Main Orchestrator for Bookkeeper

This module ties together all the components and defines the
end-to-end flows used by the UI:
1. Record (form -> validate -> build model -> store -> outcome)
2. Report (date range -> load -> aggregate -> CSV)
3. Session (sign in -> derive key; sign out -> forget key)
4. Sync (connectivity changes, manual and periodic replay, restore
   from the remote backup)

The flows enforce the boundaries:
- Nothing is written unless validation passed
- A storage failure never crashes the app; it comes back as an
  outcome with persisted=False and the record kept in memory
- Every failure is logged
"""

import datetime as dt
import json
from typing import Any, Mapping, NamedTuple, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, ValidationError

from bookkeeper.config import get_settings, optional_google_sheets
from bookkeeper.logger import get_logger
from bookkeeper.models.base import Record
from bookkeeper.models.business import (
    Account,
    BusinessConfig,
    BusinessType,
    ExpenseCategory,
    LocalePreferences,
    Transfer,
    UIPreferences,
)
from bookkeeper.models.catalog import Product, Service
from bookkeeper.models.documents import Bill, BillableDocument, Invoice, LineItem, generate_document_number
from bookkeeper.models.legal import Client, ClientFile, ExtraFee, FileExpense
from bookkeeper.models.transaction import Transaction
from bookkeeper.models.validation import ValidationIssue, ValidationResult
from bookkeeper.reports.aggregation import (
    AdvancedReport,
    CashFlowMonth,
    DashboardMetrics,
    FinancialOverview,
    build_advanced_report,
    build_dashboard_metrics,
    build_financial_overview,
    cash_flow,
    filter_by_date_range,
    recent_transactions,
)
from bookkeeper.reports.export import EXPORT_FILENAMES, ExportView, export_report, transactions_csv
from bookkeeper.reports.legal import LegalReport, build_legal_report, client_summary_csv, file_summary_csv
from bookkeeper.security.encryption import EncryptionError, EncryptionService, FieldCipher
from bookkeeper.services.remote import GoogleSheetsClient, GoogleSheetsRemoteBackend
from bookkeeper.services.repository import BookkeepingRepository
from bookkeeper.services.storage import (
    Collections,
    DocumentStoreInterface,
    InMemoryDocumentStore,
    SQLiteDocumentStore,
    StorageConnectionError,
    StorageError,
)
from bookkeeper.services.sync import PeriodicSyncRunner, SyncError, SyncOutbox, SyncService
from bookkeeper.state.store import RecordsLoaded, SyncCompleted
from bookkeeper.validation import FormValidator, parse_date, parse_decimal


logger = get_logger(__name__)

SALT_SETTING = "encryption_salt"
KEY_CHECK_SETTING = "encryption_check"
KEY_CHECK_VALUE = "bookkeeper"

# Collections pulled back from the remote backup, with their models.
# Settings are not restored; the salt is adopted at sign-in instead.
RESTORABLE_COLLECTIONS: dict[str, type[Record]] = {
    Collections.BUSINESS_CONFIG: BusinessConfig,
    Collections.ACCOUNTS: Account,
    Collections.EXPENSE_CATEGORIES: ExpenseCategory,
    Collections.TRANSACTIONS: Transaction,
    Collections.TRANSFERS: Transfer,
    Collections.PRODUCTS: Product,
    Collections.SERVICES: Service,
    Collections.INVOICES: Invoice,
    Collections.BILLS: Bill,
    Collections.CLIENTS: Client,
    Collections.CLIENT_FILES: ClientFile,
    Collections.FILE_EXPENSES: FileExpense,
    Collections.EXTRA_FEES: ExtraFee,
}


class SaveOutcome(BaseModel):
    """What happened to a submitted form."""

    validation: ValidationResult
    record: Optional[Record] = None
    persisted: bool = False
    error: Optional[str] = None

    @property
    def stored_in_memory_only(self) -> bool:
        return self.record is not None and not self.persisted


class DeleteOutcome(BaseModel):
    deleted: bool = False
    error: Optional[str] = None


class SessionOutcome(BaseModel):
    signed_in: bool
    message: str


class RestoreOutcome(BaseModel):
    """Result of pulling the remote backup into the local store."""

    restored: int = 0
    unchanged: int = Field(
        default=0,
        description="Remote records no newer than the local copy"
    )
    skipped: int = Field(
        default=0,
        description="Records that could not be decrypted or read"
    )
    error: Optional[str] = None


class BackupInfo(BaseModel):
    counts: dict[str, int] = Field(default_factory=dict)
    error: Optional[str] = None

    @property
    def total(self) -> int:
        return sum(self.counts.values())


def _issues_from_model_error(form: str, error: ValidationError) -> ValidationResult:
    """Turn a model construction error into field-keyed issues."""
    issues = [
        ValidationIssue(
            field=".".join(str(part) for part in err["loc"]) or "form",
            issue_type="invalid_value",
            message=err["msg"],
            severity="error",
        )
        for err in error.errors()
    ]
    return ValidationResult(form=form, issues=issues)


def form_from_record(record: Record) -> dict[str, Any]:
    """
    Raw form values for an existing record, as the edit forms take them.

    Submitting the result to the matching save_* method with
    existing_id=record.id stores the record unchanged.
    """
    form = record.model_dump(mode="json", exclude={"id", "created_at", "updated_at", "encrypted"})
    if isinstance(record, BillableDocument):
        form["items"] = [
            {
                "description": item.description,
                "quantity": str(item.quantity),
                "unit_price": str(item.unit_price),
                "category": item.category,
            }
            for item in record.items
        ]
        for computed in ("subtotal", "tax_amount", "total_amount", "attachments"):
            form.pop(computed, None)
    return {key: "" if value is None else value for key, value in form.items()}


class RecordFlow:
    """
    Orchestrates saving and deleting records.

    Flow:
    1. Validate the raw form (errors keyed by field)
    2. Build the model
    3. Store it (add or update)
    4. Report the outcome; a storage failure keeps the record in memory
    """

    def __init__(
        self,
        repository: BookkeepingRepository,
        validator: Optional[FormValidator] = None,
    ):
        self._repository = repository
        self._validator = validator or FormValidator()

    @property
    def validator(self) -> FormValidator:
        return self._validator

    async def load_all(self) -> RecordsLoaded:
        """Read every record list shown in the UI."""
        return RecordsLoaded(
            transactions=await self._repository.list_transactions(),
            products=await self._repository.list_products(),
            services=await self._repository.list_services(),
            invoices=await self._repository.list_invoices(),
            bills=await self._repository.list_bills(),
            accounts=await self._repository.list_accounts(),
            transfers=await self._repository.list_transfers(),
            clients=await self._repository.list_clients(),
            client_files=await self._repository.list_client_files(),
            file_expenses=await self._repository.list_file_expenses(),
            extra_fees=await self._repository.list_extra_fees(),
        )

    def _writers(self, collection: str):
        """(add, update) repository methods for a collection."""
        repo = self._repository
        return {
            Collections.TRANSACTIONS: (repo.add_transaction, repo.update_transaction),
            Collections.PRODUCTS: (repo.add_product, repo.update_product),
            Collections.SERVICES: (repo.add_service, repo.update_service),
            Collections.INVOICES: (repo.add_invoice, repo.update_invoice),
            Collections.BILLS: (repo.add_bill, repo.update_bill),
            Collections.ACCOUNTS: (repo.add_account, repo.update_account),
            Collections.CLIENTS: (repo.add_client, repo.update_client),
            Collections.CLIENT_FILES: (repo.add_client_file, repo.update_client_file),
            Collections.FILE_EXPENSES: (repo.add_file_expense, repo.update_file_expense),
            Collections.EXTRA_FEES: (repo.add_extra_fee, repo.update_extra_fee),
        }[collection]

    async def _store(
        self,
        collection: str,
        record: Record,
        validation: ValidationResult,
        existing_id: Optional[UUID],
    ) -> SaveOutcome:
        add, update = self._writers(collection)

        try:
            saved = await (update(record) if existing_id else add(record))
        except (StorageError, EncryptionError) as e:
            logger.error(
                "storage_write_failed",
                collection=collection,
                record_id=str(record.id),
                error=str(e),
            )
            return SaveOutcome(
                validation=validation,
                record=record,
                persisted=False,
                error=str(e),
            )

        logger.info("record_saved", collection=collection, record_id=str(saved.id))
        return SaveOutcome(validation=validation, record=saved, persisted=True)

    async def retry_save(self, collection: str, record: Record) -> SaveOutcome:
        """
        Store a record that is held in memory after a failed save.

        The record was validated when first submitted. It replaces the
        stored copy when one exists and is added otherwise.
        """
        validation = ValidationResult(form=collection)
        try:
            exists = await self._repository.exists(collection, record.id)
        except StorageError as e:
            logger.error("storage_read_failed", collection=collection, record_id=str(record.id), error=str(e))
            return SaveOutcome(validation=validation, record=record, persisted=False, error=str(e))
        return await self._store(collection, record, validation, record.id if exists else None)

    async def save_transaction(
        self,
        form: Mapping[str, Any],
        existing_id: Optional[UUID] = None,
    ) -> SaveOutcome:
        validation = self._validator.validate_transaction(form)
        if not validation.is_valid:
            return SaveOutcome(validation=validation)

        try:
            transaction = Transaction(
                id=existing_id or uuid4(),
                type=form["type"],
                amount=parse_decimal(form["amount"]),
                description=form.get("description") or "",
                category=form.get("category") or "",
                subcategory=form.get("subcategory") or None,
                date=parse_date(form.get("date")),
                customer=form.get("customer") or None,
                vendor=form.get("vendor") or None,
                account=form.get("account") or "",
                tags=list(form.get("tags") or []),
            )
        except ValidationError as e:
            return SaveOutcome(validation=_issues_from_model_error("transaction", e))

        return await self._store(Collections.TRANSACTIONS, transaction, validation, existing_id)

    def _line_items(self, form: Mapping[str, Any]) -> list[LineItem]:
        return [
            LineItem(
                description=item.get("description") or "",
                quantity=parse_decimal(item.get("quantity")),
                unit_price=parse_decimal(item.get("unit_price")),
                category=item.get("category") or "",
            )
            for item in form.get("items") or []
        ]

    async def save_invoice(
        self,
        form: Mapping[str, Any],
        existing_id: Optional[UUID] = None,
    ) -> SaveOutcome:
        validation = self._validator.validate_document(form, "invoice")
        if not validation.is_valid:
            return SaveOutcome(validation=validation)

        try:
            invoice = Invoice(
                id=existing_id or uuid4(),
                number=form.get("number") or generate_document_number(Invoice.NUMBER_PREFIX),
                issue_date=parse_date(form.get("issue_date")),
                due_date=parse_date(form.get("due_date")),
                items=self._line_items(form),
                status=form.get("status") or "draft",
                notes=form.get("notes") or None,
                customer_id=form.get("customer_id") or None,
                customer_name=form.get("customer_name"),
                customer_email=form.get("customer_email") or None,
                customer_address=form.get("customer_address") or None,
            )
        except ValidationError as e:
            return SaveOutcome(validation=_issues_from_model_error("invoice", e))

        return await self._store(Collections.INVOICES, invoice, validation, existing_id)

    async def save_bill(
        self,
        form: Mapping[str, Any],
        existing_id: Optional[UUID] = None,
    ) -> SaveOutcome:
        validation = self._validator.validate_document(form, "bill")
        if not validation.is_valid:
            return SaveOutcome(validation=validation)

        try:
            bill = Bill(
                id=existing_id or uuid4(),
                number=form.get("number") or generate_document_number(Bill.NUMBER_PREFIX),
                issue_date=parse_date(form.get("issue_date")),
                due_date=parse_date(form.get("due_date")),
                items=self._line_items(form),
                status=form.get("status") or "draft",
                notes=form.get("notes") or None,
                vendor_id=form.get("vendor_id") or None,
                vendor_name=form.get("vendor_name"),
                vendor_email=form.get("vendor_email") or None,
            )
        except ValidationError as e:
            return SaveOutcome(validation=_issues_from_model_error("bill", e))

        return await self._store(Collections.BILLS, bill, validation, existing_id)

    async def save_product(
        self,
        form: Mapping[str, Any],
        existing_id: Optional[UUID] = None,
    ) -> SaveOutcome:
        validation = self._validator.validate_product(form)
        if not validation.is_valid:
            return SaveOutcome(validation=validation)

        try:
            product = Product(
                id=existing_id or uuid4(),
                name=form.get("name"),
                type=form.get("type") or "product",
                description=form.get("description") or "",
                price=parse_decimal(form.get("price")),
                category=form.get("category") or "",
            )
        except ValidationError as e:
            return SaveOutcome(validation=_issues_from_model_error("product", e))

        return await self._store(Collections.PRODUCTS, product, validation, existing_id)

    async def save_service(
        self,
        form: Mapping[str, Any],
        existing_id: Optional[UUID] = None,
    ) -> SaveOutcome:
        validation = self._validator.validate_service(form)
        if not validation.is_valid:
            return SaveOutcome(validation=validation)

        try:
            service = Service(
                id=existing_id or uuid4(),
                name=form.get("name"),
                description=form.get("description") or "",
                hourly_rate=parse_decimal(form.get("hourly_rate")),
                category=form.get("category") or "",
            )
        except ValidationError as e:
            return SaveOutcome(validation=_issues_from_model_error("service", e))

        return await self._store(Collections.SERVICES, service, validation, existing_id)

    async def save_account(
        self,
        form: Mapping[str, Any],
        existing_id: Optional[UUID] = None,
    ) -> SaveOutcome:
        validation = self._validator.validate_account(form)
        if not validation.is_valid:
            return SaveOutcome(validation=validation)

        try:
            account = Account(
                id=existing_id or uuid4(),
                name=form.get("name"),
                account_type=form.get("account_type"),
                account_number=form.get("account_number") or "",
                bank_name=form.get("bank_name") or "",
                current_balance=parse_decimal(form.get("current_balance", "0")),
                is_default=bool(form.get("is_default")),
                is_active=bool(form.get("is_active", True)),
            )
        except ValidationError as e:
            return SaveOutcome(validation=_issues_from_model_error("account", e))

        return await self._store(Collections.ACCOUNTS, account, validation, existing_id)

    async def transfer(self, form: Mapping[str, Any]) -> SaveOutcome:
        """
        Move money between two active accounts.

        Transfers change account balances only; they are not income or
        expense, so no transactions are written and reports are unchanged.
        """
        try:
            accounts = await self._repository.list_active_accounts()
        except (StorageError, EncryptionError) as e:
            logger.error("storage_read_failed", collection=Collections.ACCOUNTS, error=str(e))
            return SaveOutcome(validation=ValidationResult(form="transfer"), error=str(e))

        balances = {str(a.id): a.current_balance for a in accounts}
        validation = self._validator.validate_transfer(form, balances)
        if not validation.is_valid:
            return SaveOutcome(validation=validation)

        try:
            transfer = Transfer(
                from_account_id=str(form["from_account_id"]),
                to_account_id=str(form["to_account_id"]),
                amount=parse_decimal(form.get("amount")),
                description=form.get("description") or "",
                date=parse_date(form.get("date")),
            )
        except ValidationError as e:
            return SaveOutcome(validation=_issues_from_model_error("transfer", e))

        try:
            saved = await self._repository.apply_transfer(transfer)
        except (StorageError, EncryptionError) as e:
            logger.error("transfer_failed", error=str(e))
            return SaveOutcome(validation=validation, error=str(e))

        logger.info("record_saved", collection=Collections.TRANSFERS, record_id=str(saved.id))
        return SaveOutcome(validation=validation, record=saved, persisted=True)

    async def save_client(
        self,
        form: Mapping[str, Any],
        existing_id: Optional[UUID] = None,
    ) -> SaveOutcome:
        validation = self._validator.validate_client(form)
        if not validation.is_valid:
            return SaveOutcome(validation=validation)

        try:
            client = Client(
                id=existing_id or uuid4(),
                name=form.get("name"),
                email=form.get("email") or None,
                phone=form.get("phone") or None,
                address=form.get("address") or None,
            )
        except ValidationError as e:
            return SaveOutcome(validation=_issues_from_model_error("client", e))

        return await self._store(Collections.CLIENTS, client, validation, existing_id)

    async def save_client_file(
        self,
        form: Mapping[str, Any],
        existing_id: Optional[UUID] = None,
    ) -> SaveOutcome:
        validation = self._validator.validate_client_file(form)
        if not validation.is_valid:
            return SaveOutcome(validation=validation)

        try:
            client_file = ClientFile(
                id=existing_id or uuid4(),
                client_id=str(form["client_id"]),
                file_name=form.get("file_name"),
                date_opened=parse_date(form.get("date_opened")),
                fees_to_be_paid=parse_decimal(form.get("fees_to_be_paid")) or 0,
                deposit_paid=parse_decimal(form.get("deposit_paid")) or 0,
                payments_received=parse_decimal(form.get("payments_received")) or 0,
                status=form.get("status") or "active",
            )
        except ValidationError as e:
            return SaveOutcome(validation=_issues_from_model_error("client_file", e))

        return await self._store(Collections.CLIENT_FILES, client_file, validation, existing_id)

    async def save_file_expense(
        self,
        form: Mapping[str, Any],
        existing_id: Optional[UUID] = None,
    ) -> SaveOutcome:
        validation = self._validator.validate_file_charge(form, "file_expense")
        if not validation.is_valid:
            return SaveOutcome(validation=validation)

        try:
            expense = FileExpense(
                id=existing_id or uuid4(),
                file_id=str(form["file_id"]),
                date=parse_date(form.get("date")),
                description=form.get("description"),
                amount=parse_decimal(form.get("amount")),
                vendor=form.get("vendor") or None,
                is_reimbursable=bool(form.get("is_reimbursable", True)),
            )
        except ValidationError as e:
            return SaveOutcome(validation=_issues_from_model_error("file_expense", e))

        return await self._store(Collections.FILE_EXPENSES, expense, validation, existing_id)

    async def save_extra_fee(
        self,
        form: Mapping[str, Any],
        existing_id: Optional[UUID] = None,
    ) -> SaveOutcome:
        validation = self._validator.validate_file_charge(form, "extra_fee")
        if not validation.is_valid:
            return SaveOutcome(validation=validation)

        try:
            fee = ExtraFee(
                id=existing_id or uuid4(),
                file_id=str(form["file_id"]),
                date=parse_date(form.get("date")),
                description=form.get("description"),
                amount=parse_decimal(form.get("amount")),
            )
        except ValidationError as e:
            return SaveOutcome(validation=_issues_from_model_error("extra_fee", e))

        return await self._store(Collections.EXTRA_FEES, fee, validation, existing_id)

    async def save_business_config(self, form: Mapping[str, Any]) -> SaveOutcome:
        """Complete onboarding on first save, update the profile afterwards."""
        validation = self._validator.validate_business_config(form)
        if not validation.is_valid:
            return SaveOutcome(validation=validation)

        settings = get_settings().app
        business_type = BusinessType(getattr(form["type"], "value", form["type"]))
        currency = form.get("currency") or settings.default_currency
        locale = form.get("locale") or settings.default_locale

        try:
            existing = await self._repository.get_business_config()
            if existing is None:
                config = await self._repository.complete_onboarding(
                    business_type,
                    form["name"],
                    currency=currency,
                    locale=locale,
                )
            else:
                prefs = form.get("ui_preferences") or {}
                config = await self._repository.update_business_config(
                    existing.model_copy(update={
                        "type": business_type,
                        "name": str(form["name"]).strip(),
                        "locale": LocalePreferences(
                            currency=currency,
                            locale=locale,
                            date_format=form.get("date_format") or existing.locale.date_format,
                        ),
                        "ui_preferences": UIPreferences(
                            **{**existing.ui_preferences.model_dump(), **prefs}
                        ),
                    })
                )
        except ValidationError as e:
            return SaveOutcome(validation=_issues_from_model_error("business_config", e))
        except (StorageError, EncryptionError) as e:
            logger.error("storage_write_failed", collection=Collections.BUSINESS_CONFIG, error=str(e))
            return SaveOutcome(validation=validation, persisted=False, error=str(e))

        return SaveOutcome(validation=validation, record=config, persisted=True)

    async def get_business_config(self) -> Optional[BusinessConfig]:
        return await self._repository.get_business_config()

    async def delete(self, collection: str, record_id: UUID) -> DeleteOutcome:
        delete = {
            Collections.TRANSACTIONS: self._repository.delete_transaction,
            Collections.PRODUCTS: self._repository.delete_product,
            Collections.SERVICES: self._repository.delete_service,
            Collections.INVOICES: self._repository.delete_invoice,
            Collections.BILLS: self._repository.delete_bill,
            Collections.ACCOUNTS: self._repository.delete_account,
            Collections.CLIENTS: self._repository.delete_client,
            Collections.CLIENT_FILES: self._repository.delete_client_file,
            Collections.FILE_EXPENSES: self._repository.delete_file_expense,
            Collections.EXTRA_FEES: self._repository.delete_extra_fee,
        }[collection]
        try:
            deleted = await delete(record_id)
        except StorageError as e:
            logger.error(
                "storage_delete_failed",
                collection=collection,
                record_id=str(record_id),
                error=str(e),
            )
            return DeleteOutcome(deleted=False, error=str(e))
        return DeleteOutcome(deleted=deleted)

    async def mark_paid(self, collection: str, record_id: UUID) -> SaveOutcome:
        mark = {
            Collections.INVOICES: self._repository.mark_invoice_paid,
            Collections.BILLS: self._repository.mark_bill_paid,
        }[collection]
        validation = ValidationResult(form=collection)
        try:
            record = await mark(record_id)
        except (StorageError, EncryptionError) as e:
            logger.error("storage_write_failed", collection=collection, record_id=str(record_id), error=str(e))
            return SaveOutcome(validation=validation, error=str(e))
        return SaveOutcome(validation=validation, record=record, persisted=True)


class ReportFlow:
    """
    Orchestrates report generation.

    Reports are always computed from what is in storage right now;
    deleted records simply stop contributing.
    """

    def __init__(self, repository: BookkeepingRepository):
        self._repository = repository

    async def advanced_report(
        self,
        start: Optional[dt.date] = None,
        end: Optional[dt.date] = None,
    ) -> AdvancedReport:
        transactions = await self._repository.list_transactions()
        return build_advanced_report(transactions, start, end)

    async def financial_overview(
        self,
        start: Optional[dt.date] = None,
        end: Optional[dt.date] = None,
        today: Optional[dt.date] = None,
    ) -> FinancialOverview:
        transactions = await self._repository.list_transactions()
        return build_financial_overview(
            filter_by_date_range(transactions, start, end),
            transactions,
            today or dt.date.today(),
        )

    async def dashboard_metrics(self, today: Optional[dt.date] = None) -> DashboardMetrics:
        return build_dashboard_metrics(
            await self._repository.list_transactions(),
            await self._repository.list_accounts(),
            today or dt.date.today(),
            invoices=await self._repository.list_invoices(),
            bills=await self._repository.list_bills(),
        )

    async def recent_transactions(self, limit: int = 5) -> list[Transaction]:
        return recent_transactions(await self._repository.list_transactions(), limit)

    async def cash_flow(self, months: int = 6, today: Optional[dt.date] = None) -> list[CashFlowMonth]:
        return cash_flow(await self._repository.list_transactions(), months, today)

    async def export(
        self,
        view: ExportView,
        start: Optional[dt.date] = None,
        end: Optional[dt.date] = None,
    ) -> tuple[str, str]:
        """(filename, csv text) for a report view or the transaction ledger."""
        if view == ExportView.TRANSACTIONS:
            transactions = filter_by_date_range(
                await self._repository.list_transactions(), start, end
            )
            return EXPORT_FILENAMES[view], transactions_csv(transactions)
        return export_report(await self.advanced_report(start, end), view)

    async def legal_report(
        self,
        start: Optional[dt.date] = None,
        end: Optional[dt.date] = None,
    ) -> LegalReport:
        return build_legal_report(
            await self._repository.list_clients(),
            await self._repository.list_client_files(),
            await self._repository.list_file_expenses(),
            await self._repository.list_extra_fees(),
            start,
            end,
        )

    async def export_legal(
        self,
        kind: str,
        record_id: str,
        start: Optional[dt.date] = None,
        end: Optional[dt.date] = None,
    ) -> tuple[str, str]:
        """(filename, csv text) for one client ("client") or file ("file")."""
        report = await self.legal_report(start, end)
        if kind == "client":
            summary = next((c for c in report.clients if c.client_id == record_id), None)
            render = client_summary_csv
        elif kind == "file":
            summary = next((f for f in report.files if f.file_id == record_id), None)
            render = file_summary_csv
        else:
            raise ValueError(f"Unknown legal export: {kind}")
        if summary is None:
            raise ValueError(f"No {kind} with id {record_id}")
        return render(summary)


class SessionFlow:
    """
    Orchestrates the encryption session.

    The hosted account service authenticates the user; this flow only
    takes the resulting credentials to derive the local key. A check
    value encrypted on the first sign-in detects a wrong password later.

    The key derivation salt travels with the backup: on a device with
    no local salt the salt published by another device is adopted, so
    restored records decrypt with the same password. A new salt is
    published only when the backup is known to hold none.
    """

    def __init__(
        self,
        repository: BookkeepingRepository,
        encryption: EncryptionService,
        sync_service: Optional[SyncService] = None,
    ):
        self._repository = repository
        self._encryption = encryption
        self._sync = sync_service

    @property
    def signed_in(self) -> bool:
        return self._encryption.is_authenticated()

    @property
    def email(self) -> Optional[str]:
        return self._encryption.email

    async def _backup_salt(self) -> tuple[Optional[str], bool]:
        """
        (salt held by the backup, whether a new salt may be published).

        Without sync there is nothing to adopt or publish. When the
        backup cannot be read, a new salt stays local so it cannot
        replace one another device published.
        """
        if self._sync is None:
            return None, False
        if not self._sync.has_remote:
            return None, True
        try:
            records = await self._sync.fetch(Collections.SETTINGS)
        except SyncError as e:
            logger.warning("backup_salt_unavailable", error=str(e))
            return None, False

        for record in records:
            if record["id"] != SALT_SETTING:
                continue
            try:
                return json.loads(record["payload"])["value"], False
            except (ValueError, KeyError, TypeError) as e:
                logger.warning("backup_salt_unreadable", error=str(e))
                return None, False
        return None, True

    async def sign_in(self, email: str, password: str) -> SessionOutcome:
        try:
            stored_salt = await self._repository.get_setting(SALT_SETTING)
            publish = adopted = False
            if not stored_salt:
                stored_salt, publish = await self._backup_salt()
                adopted = bool(stored_salt)
            if stored_salt:
                self._encryption.load_salt(stored_salt)
                if adopted:
                    await self._repository.set_setting(SALT_SETTING, stored_salt)
                    logger.info("backup_salt_adopted")
            self._encryption.set_credentials(email, password)

            if not stored_salt:
                salt = self._encryption.export_salt()
                if publish:
                    await self._repository.publish_setting(SALT_SETTING, salt)
                else:
                    await self._repository.set_setting(SALT_SETTING, salt)

            check = await self._repository.get_setting(KEY_CHECK_SETTING)
            if check is None:
                await self._repository.set_setting(
                    KEY_CHECK_SETTING, self._encryption.encrypt(KEY_CHECK_VALUE)
                )
            elif self._encryption.decrypt(check) != KEY_CHECK_VALUE:
                raise EncryptionError("Key check value mismatch")
        except EncryptionError as e:
            self._encryption.clear()
            logger.warning("sign_in_failed", email=email, error=str(e))
            return SessionOutcome(signed_in=False, message="Incorrect password for this device's data")
        except StorageError as e:
            self._encryption.clear()
            logger.error("sign_in_failed", email=email, error=str(e))
            return SessionOutcome(signed_in=False, message=f"Could not read local settings: {e}")

        logger.info("signed_in", email=email)
        return SessionOutcome(signed_in=True, message="Signed in")

    def sign_out(self) -> None:
        self._encryption.clear()
        logger.info("signed_out")


class SyncFlow:
    """
    Orchestrates cloud sync. Works as a no-op when sync is disabled.

    Besides pushing local changes, it can pull the remote backup back
    into the local store (restore). Pulled records are merged by
    updated_at: a remote record replaces the local copy only when it is
    newer. Encrypted payloads need the session key of the same
    password and salt that wrote them.
    """

    def __init__(
        self,
        sync_service: Optional[SyncService] = None,
        repository: Optional[BookkeepingRepository] = None,
        encryption: Optional[EncryptionService] = None,
    ):
        self._sync = sync_service
        self._repository = repository
        self._encryption = encryption
        self._runner: Optional[PeriodicSyncRunner] = None

    @property
    def enabled(self) -> bool:
        return self._sync is not None

    @property
    def has_remote(self) -> bool:
        return self._sync is not None and self._sync.has_remote

    @property
    def periodic_running(self) -> bool:
        return self._runner is not None and self._runner.running

    async def queue_size(self) -> int:
        return await self._sync.queue_size() if self._sync else 0

    async def set_online(self, online: bool) -> Optional[SyncCompleted]:
        if self._sync is None:
            return None
        report = await self._sync.set_online(online)
        if report is None:
            return None
        return SyncCompleted(
            pending_sync=report.remaining,
            failed=report.failed > 0,
            error=report.last_error,
        )

    async def sync_now(self) -> SyncCompleted:
        if self._sync is None:
            return SyncCompleted(pending_sync=0)
        report = await self._sync.sync_now()
        return SyncCompleted(
            pending_sync=report.remaining,
            failed=report.failed > 0 or report.skipped_reason is not None,
            error=report.last_error or report.skipped_reason,
        )

    def start_periodic(self, interval: float) -> bool:
        """Replay the outbox every interval seconds in the background."""
        if not self.has_remote or interval <= 0:
            return False
        if self._runner is None:
            self._runner = PeriodicSyncRunner(self._sync, interval)
        self._runner.start()
        return True

    def stop_periodic(self) -> None:
        if self._runner is not None:
            self._runner.stop()

    async def backup_info(self) -> BackupInfo:
        """Number of records the remote backup holds per collection."""
        if not self.has_remote:
            return BackupInfo(error="No remote backend configured")
        info = BackupInfo()
        try:
            for collection in RESTORABLE_COLLECTIONS:
                info.counts[collection] = len(await self._sync.fetch(collection))
        except SyncError as e:
            logger.warning("backup_info_failed", error=str(e))
            info.error = str(e)
        return info

    def _decode_payload(self, payload: str) -> dict[str, Any]:
        # Plain JSON objects start with "{"; ciphertext is base64.
        if payload.lstrip().startswith("{"):
            return json.loads(payload)
        if self._encryption is None or not self._encryption.is_authenticated():
            raise EncryptionError("Sign in to decrypt backed-up records")
        return self._encryption.decrypt(payload)

    async def _restore_one(self, collection: str, model: type[Record], item: dict[str, Any]) -> str:
        """Merge one remote record; returns restored, unchanged or skipped."""
        try:
            record = model.model_validate(self._decode_payload(item["payload"]))
        except (EncryptionError, ValidationError, ValueError) as e:
            logger.warning("restore_record_skipped", collection=collection, record_id=item.get("id"), error=str(e))
            return "skipped"

        if collection == Collections.BUSINESS_CONFIG:
            local = await self._repository.get_business_config()
            if local is not None and local.updated_at >= record.updated_at:
                return "unchanged"
            await self._repository.replace_business_config(record)
            return "restored"

        local_updated_at = await self._repository.stored_updated_at(collection, str(record.id))
        if local_updated_at is not None and local_updated_at >= record.updated_at:
            return "unchanged"
        await self._repository.restore_document(collection, model, record.to_document())
        return "restored"

    async def restore(self) -> RestoreOutcome:
        """Pull every restorable collection from the remote backup."""
        if not self.has_remote or self._repository is None:
            return RestoreOutcome(error="No remote backend configured")

        counts = {"restored": 0, "unchanged": 0, "skipped": 0}
        try:
            for collection, model in RESTORABLE_COLLECTIONS.items():
                for item in await self._sync.fetch(collection):
                    counts[await self._restore_one(collection, model, item)] += 1
        except (SyncError, StorageError, EncryptionError) as e:
            logger.error("restore_failed", error=str(e), **counts)
            return RestoreOutcome(error=str(e), **counts)

        logger.info("restore_completed", **counts)
        return RestoreOutcome(**counts)


class AppComponents(NamedTuple):
    record_flow: RecordFlow
    report_flow: ReportFlow
    session_flow: SessionFlow
    sync_flow: SyncFlow
    repository: BookkeepingRepository
    storage_fallback: bool


def create_app_components(
    store: Optional[DocumentStoreInterface] = None,
    use_remote: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        store: Document store to use. Defaults to the SQLite file from
               settings, falling back to memory if it cannot be opened.
        use_remote: Whether to attach the Google Sheets backend when sync
                    is enabled and configured.
    """
    settings = get_settings()
    storage_fallback = False

    if store is None:
        sqlite_store = SQLiteDocumentStore(settings.storage.database_path)
        try:
            sqlite_store.open()
            store = sqlite_store
        except StorageConnectionError as e:
            logger.warning("storage_fallback_in_memory", error=str(e))
            store = InMemoryDocumentStore()
            storage_fallback = True

    encryption_settings = settings.encryption
    encryption = EncryptionService(iterations=encryption_settings.kdf_iterations)
    cipher = FieldCipher(encryption, enabled=encryption_settings.enabled)

    sync_settings = settings.sync
    outbox = None
    sync_service = None
    if sync_settings.enabled:
        outbox = SyncOutbox(store, cipher)
        remote = None
        sheets_settings = optional_google_sheets() if use_remote else None
        if sheets_settings is not None:
            remote = GoogleSheetsRemoteBackend(GoogleSheetsClient(sheets_settings))
        else:
            logger.info("remote_backend_not_configured")
        sync_service = SyncService(outbox, remote, max_attempts=sync_settings.max_attempts)

    repository = BookkeepingRepository(store, cipher=cipher, outbox=outbox)

    return AppComponents(
        record_flow=RecordFlow(repository),
        report_flow=ReportFlow(repository),
        session_flow=SessionFlow(repository, encryption, sync_service),
        sync_flow=SyncFlow(sync_service, repository, encryption),
        repository=repository,
        storage_fallback=storage_fallback,
    )

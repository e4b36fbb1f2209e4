"""
Tests for Bookkeeper models

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests for flows (with in-memory stores and fake remotes)
3. No real spreadsheet or database calls in tests
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from pydantic import ValidationError

from bookkeeper.models import (
    Account,
    AccountType,
    Bill,
    BusinessConfig,
    BusinessType,
    Client,
    ClientFile,
    DashboardLayout,
    DocumentStatus,
    ExpenseCategory,
    CategoryScope,
    FileExpense,
    FileStatus,
    Invoice,
    LineItem,
    Transaction,
    TransactionType,
    Transfer,
    TransferStatus,
    ValidationIssue,
    ValidationResult,
    default_accounts,
    default_expense_categories,
    format_currency,
    format_date,
    generate_document_number,
    new_business_config,
    round_money,
)
from bookkeeper.models.business import DateFormat, LocalePreferences


class TestTransactionModel:
    """Tests for the Transaction model."""

    def test_transaction_creation(self):
        """Test a basic income transaction."""
        tx = Transaction(
            type=TransactionType.INCOME,
            amount=Decimal("150.00"),
            description="Sale to Acme",
            category="Sales",
            date=date(2024, 1, 5),
        )
        assert tx.is_income
        assert not tx.is_expense
        assert tx.amount == Decimal("150.00")
        assert tx.encrypted is False

    def test_transaction_strips_whitespace(self):
        """Test that whitespace is stripped from text fields."""
        tx = Transaction(type="expense", amount=Decimal("5"), category="  Travel  ")
        assert tx.category == "Travel"

    def test_negative_amount_rejected(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValidationError):
            Transaction(type="income", amount=Decimal("-1"))

    def test_unparseable_date_reads_as_none(self):
        """Stored garbage dates become None instead of failing the load."""
        tx = Transaction(type="income", amount=Decimal("1"), date="not a date")
        assert tx.date is None

    def test_datetime_string_truncated_to_date(self):
        """Test that ISO datetimes are reduced to their date."""
        tx = Transaction(type="income", amount=Decimal("1"), date="2024-03-01T10:30:00Z")
        assert tx.date == date(2024, 3, 1)

    def test_document_round_trip(self):
        """Test that to_document output loads back into the same record."""
        tx = Transaction(type="expense", amount=Decimal("12.50"), date=date(2024, 2, 2))
        loaded = Transaction.model_validate(tx.to_document())
        assert loaded == tx

    def test_touched_refreshes_updated_at(self):
        """Test that touched() keeps the id and moves updated_at forward."""
        tx = Transaction(
            type="income",
            amount=Decimal("1"),
            updated_at=datetime(2020, 1, 1, tzinfo=timezone.utc),
        )
        touched = tx.touched()
        assert touched.id == tx.id
        assert touched.updated_at > tx.updated_at


class TestDocumentModels:
    """Tests for invoices, bills and line items."""

    def test_line_item_total(self):
        """Test line total is quantity times unit price."""
        item = LineItem(description="Consulting", quantity=Decimal("2"), unit_price=Decimal("25"))
        assert item.total_price == Decimal("50")

    def test_line_item_requires_positive_quantity(self):
        """Test that zero quantity is rejected."""
        with pytest.raises(ValidationError):
            LineItem(description="Nothing", quantity=Decimal("0"), unit_price=Decimal("1"))

    def test_invoice_totals(self):
        """Test subtotal, 10% tax and total are derived from the items."""
        invoice = Invoice(
            number="INV-2024-000001",
            customer_name="Acme",
            issue_date=date(2024, 1, 1),
            items=[LineItem(description="Consulting", quantity=Decimal("2"), unit_price=Decimal("25"))],
        )
        assert invoice.subtotal == Decimal("50")
        assert invoice.tax_amount == Decimal("5.00")
        assert invoice.total_amount == Decimal("55.00")
        assert invoice.status == DocumentStatus.DRAFT
        assert invoice.counterparty_name == "Acme"

    def test_tax_rounds_half_up(self):
        """Test that tax is rounded half-up to cents."""
        bill = Bill(
            number="BILL-2024-000001",
            vendor_name="Paper Co",
            issue_date=date(2024, 1, 1),
            items=[LineItem(description="Paper", quantity=Decimal("1"), unit_price=Decimal("0.05"))],
        )
        assert bill.tax_amount == Decimal("0.01")
        assert bill.total_amount == Decimal("0.06")

    def test_stored_totals_are_recomputed(self):
        """Test that totals passed in are replaced by the computed ones."""
        invoice = Invoice(
            number="INV-1",
            customer_name="Acme",
            issue_date=date(2024, 1, 1),
            items=[LineItem(description="A", quantity=Decimal("1"), unit_price=Decimal("10"))],
            total_amount=Decimal("999"),
        )
        assert invoice.total_amount == Decimal("11.00")

    def test_due_date_before_issue_date_rejected(self):
        """Test that a due date before the issue date raises."""
        with pytest.raises(ValidationError, match="Due date"):
            Invoice(
                number="INV-1",
                customer_name="Acme",
                issue_date=date(2024, 2, 1),
                due_date=date(2024, 1, 1),
            )

    def test_is_open(self):
        """Test which statuses count as still owed."""
        bill = Bill(number="BILL-1", vendor_name="V", issue_date=date(2024, 1, 1))
        assert not bill.is_open
        assert bill.model_copy(update={"status": DocumentStatus.SENT}).is_open
        assert not bill.model_copy(update={"status": DocumentStatus.PAID}).is_open

    def test_generate_document_number(self):
        """Test number format is PREFIX-YEAR-last six timestamp digits."""
        now = datetime(2024, 5, 6, 7, 8, 9, 123000, tzinfo=timezone.utc)
        number = generate_document_number("INV", now)
        millis = str(int(now.timestamp() * 1000))
        assert number == f"INV-2024-{millis[-6:]}"
        assert Invoice.NUMBER_PREFIX == "INV"
        assert Bill.NUMBER_PREFIX == "BILL"

    def test_counterparty_name(self):
        """Test that invoices name the customer and bills the vendor."""
        invoice = Invoice(number="INV-1", customer_name="Acme", issue_date=date(2024, 1, 1))
        bill = Bill(number="BILL-1", vendor_name="Paper Co", issue_date=date(2024, 1, 1))
        assert invoice.counterparty_name == "Acme"
        assert bill.counterparty_name == "Paper Co"
        assert (Invoice.COUNTERPARTY_FIELD, Bill.COUNTERPARTY_FIELD) == ("customer_name", "vendor_name")

    def test_counterparty_field_is_not_stored(self):
        bill = Bill(number="BILL-1", vendor_name="Paper Co", issue_date=date(2024, 1, 1))
        assert "COUNTERPARTY_FIELD" not in bill.to_document()


class TestBusinessModels:
    """Tests for business config, accounts and categories."""

    def test_new_business_config_legal_layout(self):
        """Test that a legal business gets the legal dashboard."""
        config = new_business_config(BusinessType.LEGAL, "Smith LLP", currency="EUR")
        assert config.setup_complete
        assert config.onboarding_date is not None
        assert config.currency == "EUR"
        assert config.ui_preferences.dashboard_layout == DashboardLayout.LEGAL

    def test_business_name_required(self):
        """Test that an empty business name is rejected."""
        with pytest.raises(ValidationError):
            BusinessConfig(name="")

    def test_default_categories_by_business_type(self):
        """Test that category seeds respect their business type scope."""
        general = {c.name for c in default_expense_categories(BusinessType.GENERAL)}
        legal = {c.name for c in default_expense_categories(BusinessType.LEGAL)}
        assert "Marketing & Advertising" in general
        assert "Court Fees" not in general
        assert "Court Fees" in legal
        assert "Marketing & Advertising" not in legal
        assert "Travel" in general and "Travel" in legal

    def test_category_applies_to(self):
        category = ExpenseCategory(name="Court Fees", business_type=CategoryScope.LEGAL)
        assert category.applies_to(BusinessType.LEGAL)
        assert not category.applies_to(BusinessType.GENERAL)

    def test_default_accounts_start_at_zero(self):
        """Test that seeded accounts have zero balances and one default."""
        accounts = default_accounts()
        assert all(a.current_balance == Decimal("0") for a in accounts)
        assert sum(1 for a in accounts if a.is_default) == 1

    def test_account_defaults(self):
        account = Account(name="Till")
        assert account.account_type == AccountType.CHECKING
        assert account.is_active

    def test_transfer_amount_must_be_positive(self):
        with pytest.raises(ValidationError):
            Transfer(from_account_id="a", to_account_id="b", amount=Decimal("0"), date=date(2024, 1, 1))
        transfer = Transfer(from_account_id="a", to_account_id="b", amount=Decimal("5"), date=date(2024, 1, 1))
        assert transfer.status == TransferStatus.COMPLETED


class TestLegalModels:
    """Tests for clients, files and file charges."""

    def test_client_file_defaults(self):
        client = Client(name="Jane Doe")
        client_file = ClientFile(client_id=str(client.id), file_name="Doe v. Roe", date_opened=date(2024, 1, 10))
        assert client_file.status == FileStatus.ACTIVE
        assert client_file.fees_to_be_paid == Decimal("0")

    def test_negative_fees_rejected(self):
        with pytest.raises(ValidationError):
            ClientFile(client_id="c1", file_name="X", date_opened=date(2024, 1, 1), fees_to_be_paid=Decimal("-1"))

    def test_expenses_reimbursable_by_default(self):
        expense = FileExpense(file_id="f1", date=date(2024, 1, 2), description="Courier", amount=Decimal("12"))
        assert expense.is_reimbursable


class TestCurrencyFormatting:
    """Tests for money and date display helpers."""

    def test_usd(self):
        assert format_currency(Decimal("1234.5"), "USD") == "$1,234.50"

    def test_zero_decimal_currency(self):
        """Test that JPY has no decimal places."""
        assert format_currency(Decimal("1234.5"), "JPY") == "¥1,235"

    def test_european_separators(self):
        assert format_currency(Decimal("1234.5"), "EUR", "de-DE") == "€1.234,50"

    def test_negative_amount(self):
        assert format_currency(Decimal("-3"), "USD") == "-$3.00"

    def test_unknown_currency_falls_back_to_dollar(self):
        assert format_currency(Decimal("1"), "XYZ") == "$1.00"

    def test_format_date(self):
        """Test date formats from locale preferences."""
        prefs = LocalePreferences(date_format=DateFormat.ISO)
        assert format_date(date(2024, 3, 9), prefs) == "2024-03-09"
        assert format_date(date(2024, 3, 9)) == "03/09/2024"
        assert format_date(None) == ""

    def test_round_money(self):
        assert round_money(Decimal("2.345")) == Decimal("2.35")


class TestValidationResult:
    """Tests for validation result model."""

    def test_valid_with_warnings_only(self):
        """Test that warnings don't make a result invalid."""
        result = ValidationResult(
            form="transaction",
            issues=[
                ValidationIssue(
                    field="date",
                    issue_type="future_date",
                    message="Date is in the future",
                    severity="warning",
                )
            ],
        )
        assert result.is_valid
        assert result.warnings == ["Date is in the future"]

    def test_errors_by_field_keeps_first(self):
        """Test that only the first error per field is reported."""
        result = ValidationResult(
            form="transaction",
            issues=[
                ValidationIssue(field="amount", issue_type="missing", message="first", severity="error"),
                ValidationIssue(field="amount", issue_type="invalid_value", message="second", severity="error"),
            ],
        )
        assert not result.is_valid
        assert result.error_count == 2
        assert result.errors_by_field() == {"amount": "first"}

    def test_severity_must_be_known(self):
        """Test that an unknown severity is rejected."""
        with pytest.raises(ValidationError):
            ValidationIssue(field="x", issue_type="y", message="z", severity="fatal")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

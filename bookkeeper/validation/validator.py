"""
Form Validation

Every form submitted from the UI is checked here before it reaches
storage. Forms arrive as plain dicts of raw input values (strings,
numbers, dates) exactly as the widgets produce them.

Validation reports problems per field so the UI can render each
message inline next to the input. It never raises and never fixes
values silently: the caller decides what to do with the result.

Severity:
- error   -> the form cannot be saved
- warning -> the form can be saved but the user should double-check
"""

import datetime as dt
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from bookkeeper.config import get_settings
from bookkeeper.models.business import AccountType, BusinessType, DashboardLayout
from bookkeeper.models.legal import FileStatus
from bookkeeper.models.transaction import TransactionType
from bookkeeper.models.validation import ValidationIssue, ValidationResult


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

MAX_BUSINESS_NAME_LENGTH = 100

CENTS = Decimal("0.01")

# Upper bounds for money and quantities. They keep every later
# calculation (line totals, tax, rounding) inside Decimal's precision.
MAX_AMOUNT = Decimal("999999999.99")
MAX_QUANTITY = Decimal("1000000")


def parse_decimal(value: Any) -> Optional[Decimal]:
    """Decimal from raw form input, or None when it is not a number."""
    if value is None or value == "":
        return None
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def parse_date(value: Any) -> Optional[dt.date]:
    """Date from raw form input (date, datetime or ISO string), or None."""
    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    try:
        return dt.date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def _blank(value: Any) -> bool:
    return value is None or not str(value).strip()


def _error(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
        suggested_fix=fix,
    )


def _warning(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="warning",
        suggested_fix=fix,
    )


def _money_issue(field: str, value: Decimal, label: str) -> Optional[ValidationIssue]:
    """Range and precision check for a parsed, non-negative money value."""
    if value > MAX_AMOUNT:
        return _error(field, "invalid_value", f"{label} cannot be more than {MAX_AMOUNT:,}")
    if value != value.quantize(CENTS):
        return _error(field, "invalid_value", f"{label} cannot have more than two decimal places")
    return None


class FormValidator:
    """
    Validates raw form input for every record type.

    One method per form; each returns a ValidationResult.
    """

    def __init__(self, today: Optional[dt.date] = None):
        self._settings = get_settings().app
        self._today = today

    @property
    def today(self) -> dt.date:
        return self._today or dt.date.today()

    def validate_transaction(self, form: Mapping[str, Any]) -> ValidationResult:
        """Check an income/expense form."""
        issues: list[ValidationIssue] = []

        tx_type = form.get("type")
        valid_types = {t.value for t in TransactionType}
        type_value = tx_type.value if isinstance(tx_type, TransactionType) else tx_type
        if type_value not in valid_types:
            issues.append(_error(
                "type", "invalid_value",
                "Transaction type must be income or expense",
            ))

        if _blank(form.get("description")):
            issues.append(_error("description", "missing", "Description is required"))

        amount = parse_decimal(form.get("amount"))
        if amount is None:
            issues.append(_error(
                "amount", "missing", "Amount is required",
                "Enter the amount as a number, e.g. 125.50",
            ))
        elif amount <= 0:
            issues.append(_error("amount", "invalid_value", "Amount must be greater than zero"))
        else:
            issue = _money_issue("amount", amount, "Amount")
            if issue:
                issues.append(issue)

        if _blank(form.get("category")):
            issues.append(_error("category", "missing", "Category is required"))

        raw_date = form.get("date")
        tx_date = parse_date(raw_date)
        if _blank(raw_date):
            issues.append(_error("date", "missing", "Date is required"))
        elif tx_date is None:
            issues.append(_error(
                "date", "invalid_format", "Date is not a valid date",
                "Use the YYYY-MM-DD format",
            ))
        else:
            max_future = self.today + dt.timedelta(days=self._settings.future_date_tolerance_days)
            if tx_date > max_future:
                issues.append(_warning(
                    "date", "future_date",
                    f"Date ({tx_date}) is in the future",
                    "Please verify the date is correct",
                ))

        return ValidationResult(form="transaction", issues=issues)

    def validate_document(self, form: Mapping[str, Any], kind: str) -> ValidationResult:
        """
        Check an invoice or bill form.

        kind is "invoice" (counterparty = customer) or "bill"
        (counterparty = vendor).
        """
        if kind not in ("invoice", "bill"):
            raise ValueError(f"Unknown document kind: {kind}")

        party = "customer" if kind == "invoice" else "vendor"
        issues: list[ValidationIssue] = []

        if _blank(form.get(f"{party}_name")):
            issues.append(_error(
                f"{party}_name", "missing", f"{party.capitalize()} name is required",
            ))

        email = form.get(f"{party}_email")
        if not _blank(email) and not EMAIL_PATTERN.match(str(email).strip()):
            issues.append(_error(
                f"{party}_email", "invalid_format", "Email address is not valid",
            ))

        issue_date = parse_date(form.get("issue_date"))
        if issue_date is None:
            label = "Invoice date" if kind == "invoice" else "Bill date"
            issues.append(_error("issue_date", "missing", f"{label} is required"))

        due_date = parse_date(form.get("due_date"))
        if due_date is None:
            issues.append(_error("due_date", "missing", "Due date is required"))
        elif issue_date and due_date < issue_date:
            issues.append(_error(
                "due_date", "inconsistent", "Due date cannot be before the issue date",
            ))

        items = list(form.get("items") or [])
        if not items:
            issues.append(_error("items", "missing", "At least one item is required"))

        for index, item in enumerate(items):
            if _blank(item.get("description")):
                issues.append(_error(
                    f"items.{index}.description", "missing", "Description is required",
                ))
            quantity = parse_decimal(item.get("quantity"))
            if quantity is None or quantity <= 0:
                issues.append(_error(
                    f"items.{index}.quantity", "invalid_value", "Quantity must be greater than 0",
                ))
            elif quantity > MAX_QUANTITY:
                issues.append(_error(
                    f"items.{index}.quantity", "invalid_value",
                    f"Quantity cannot be more than {MAX_QUANTITY:,}",
                ))
            unit_price = parse_decimal(item.get("unit_price"))
            if unit_price is None:
                issues.append(_error(
                    f"items.{index}.unit_price", "missing", "Unit price is required",
                ))
            elif unit_price < 0:
                issues.append(_error(
                    f"items.{index}.unit_price", "invalid_value", "Unit price cannot be negative",
                ))
            elif unit_price > MAX_AMOUNT:
                issues.append(_error(
                    f"items.{index}.unit_price", "invalid_value",
                    f"Unit price cannot be more than {MAX_AMOUNT:,}",
                ))

        return ValidationResult(form=kind, issues=issues)

    def validate_product(self, form: Mapping[str, Any]) -> ValidationResult:
        """Check a product form (fixed price)."""
        return self._validate_catalog_item(form, "product", "price", "Price")

    def validate_service(self, form: Mapping[str, Any]) -> ValidationResult:
        """Check a service form (hourly rate)."""
        return self._validate_catalog_item(form, "service", "hourly_rate", "Hourly rate")

    def _validate_catalog_item(
        self,
        form: Mapping[str, Any],
        form_name: str,
        price_field: str,
        price_label: str,
    ) -> ValidationResult:
        issues: list[ValidationIssue] = []

        if _blank(form.get("name")):
            issues.append(_error("name", "missing", "Name is required"))

        price = parse_decimal(form.get(price_field))
        if price is None:
            issues.append(_error(price_field, "missing", f"{price_label} is required"))
        elif price < 0:
            issues.append(_error(price_field, "invalid_value", f"{price_label} cannot be negative"))
        else:
            issue = _money_issue(price_field, price, price_label)
            if issue:
                issues.append(issue)

        return ValidationResult(form=form_name, issues=issues)

    def validate_business_config(self, form: Mapping[str, Any]) -> ValidationResult:
        """Check the business profile form used in onboarding and settings."""
        issues: list[ValidationIssue] = []

        name = form.get("name")
        if _blank(name):
            issues.append(_error("name", "missing", "Business name is required"))
        elif len(str(name).strip()) > MAX_BUSINESS_NAME_LENGTH:
            issues.append(_error(
                "name", "invalid_value",
                f"Business name must be less than {MAX_BUSINESS_NAME_LENGTH} characters",
            ))

        business_type = form.get("type")
        if isinstance(business_type, BusinessType):
            business_type = business_type.value
        if business_type not in {t.value for t in BusinessType}:
            issues.append(_error(
                "type", "invalid_value", 'Business type must be either "general" or "legal"',
            ))

        prefs = form.get("ui_preferences") or {}
        layout = prefs.get("dashboard_layout")
        if layout is not None and str(getattr(layout, "value", layout)) not in {
            l.value for l in DashboardLayout
        }:
            issues.append(_error(
                "ui_preferences.dashboard_layout", "invalid_value",
                'Dashboard layout must be either "standard" or "legal"',
            ))
        default_type = prefs.get("default_transaction_type")
        if default_type is not None and str(getattr(default_type, "value", default_type)) not in {
            t.value for t in TransactionType
        }:
            issues.append(_error(
                "ui_preferences.default_transaction_type", "invalid_value",
                'Default transaction type must be either "income" or "expense"',
            ))

        return ValidationResult(form="business_config", issues=issues)

    def validate_account(self, form: Mapping[str, Any]) -> ValidationResult:
        """Check a bank/cash account form. Credit accounts may go negative."""
        issues: list[ValidationIssue] = []

        if _blank(form.get("name")):
            issues.append(_error("name", "missing", "Account name is required"))

        account_type = form.get("account_type")
        account_type = getattr(account_type, "value", account_type)
        if account_type not in {t.value for t in AccountType}:
            issues.append(_error("account_type", "invalid_value", "Account type is not valid"))

        balance = parse_decimal(form.get("current_balance", "0"))
        if balance is None:
            issues.append(_error("current_balance", "invalid_format", "Balance must be a number"))
        elif balance < 0 and account_type != AccountType.CREDIT.value:
            issues.append(_error(
                "current_balance", "invalid_value",
                "Only credit accounts can have a negative balance",
            ))
        else:
            issue = _money_issue("current_balance", abs(balance), "Balance")
            if issue:
                issues.append(issue)

        return ValidationResult(form="account", issues=issues)

    def validate_transfer(
        self,
        form: Mapping[str, Any],
        balances: Mapping[str, Decimal],
    ) -> ValidationResult:
        """
        Check a transfer between two accounts.

        balances maps account id -> current balance for every active
        account; the source must hold at least the transferred amount.
        """
        issues: list[ValidationIssue] = []

        source = str(form.get("from_account_id") or "")
        target = str(form.get("to_account_id") or "")
        if source not in balances:
            issues.append(_error("from_account_id", "missing", "Choose the account to transfer from"))
        if target not in balances:
            issues.append(_error("to_account_id", "missing", "Choose the account to transfer to"))
        elif source == target:
            issues.append(_error(
                "to_account_id", "inconsistent", "Cannot transfer to the same account",
            ))

        amount = parse_decimal(form.get("amount"))
        if amount is None:
            issues.append(_error("amount", "missing", "Amount is required"))
        elif amount <= 0:
            issues.append(_error("amount", "invalid_value", "Amount must be greater than zero"))
        else:
            issue = _money_issue("amount", amount, "Amount")
            if issue:
                issues.append(issue)
            elif source in balances and amount > balances[source]:
                issues.append(_error(
                    "amount", "invalid_value", "Insufficient balance in the source account",
                ))

        if parse_date(form.get("date")) is None:
            issues.append(_error("date", "missing", "Date is required"))

        return ValidationResult(form="transfer", issues=issues)

    def validate_client(self, form: Mapping[str, Any]) -> ValidationResult:
        issues: list[ValidationIssue] = []

        if _blank(form.get("name")):
            issues.append(_error("name", "missing", "Client name is required"))

        email = form.get("email")
        if not _blank(email) and not EMAIL_PATTERN.match(str(email).strip()):
            issues.append(_error("email", "invalid_format", "Email address is not valid"))

        return ValidationResult(form="client", issues=issues)

    def validate_client_file(self, form: Mapping[str, Any]) -> ValidationResult:
        """Check a client file form; money fields default to zero when blank."""
        issues: list[ValidationIssue] = []

        if _blank(form.get("client_id")):
            issues.append(_error("client_id", "missing", "Client is required"))
        if _blank(form.get("file_name")):
            issues.append(_error("file_name", "missing", "File name is required"))
        if parse_date(form.get("date_opened")) is None:
            issues.append(_error("date_opened", "missing", "Date opened is required"))

        status = form.get("status", FileStatus.ACTIVE.value)
        if getattr(status, "value", status) not in {s.value for s in FileStatus}:
            issues.append(_error("status", "invalid_value", "Status must be active, closed or pending"))

        for field, label in (
            ("fees_to_be_paid", "Fees"),
            ("deposit_paid", "Deposit"),
            ("payments_received", "Payments received"),
        ):
            raw = form.get(field)
            if _blank(raw):
                continue
            value = parse_decimal(raw)
            if value is None:
                issues.append(_error(field, "invalid_format", f"{label} must be a number"))
            elif value < 0:
                issues.append(_error(field, "invalid_value", f"{label} cannot be negative"))
            else:
                issue = _money_issue(field, value, label)
                if issue:
                    issues.append(issue)

        return ValidationResult(form="client_file", issues=issues)

    def validate_file_charge(self, form: Mapping[str, Any], kind: str) -> ValidationResult:
        """Check a file expense (kind="file_expense") or extra fee (kind="extra_fee")."""
        if kind not in ("file_expense", "extra_fee"):
            raise ValueError(f"Unknown file charge kind: {kind}")

        issues: list[ValidationIssue] = []
        if _blank(form.get("file_id")):
            issues.append(_error("file_id", "missing", "File is required"))
        if _blank(form.get("description")):
            issues.append(_error("description", "missing", "Description is required"))
        if parse_date(form.get("date")) is None:
            issues.append(_error("date", "missing", "Date is required"))

        amount = parse_decimal(form.get("amount"))
        if amount is None:
            issues.append(_error("amount", "missing", "Amount is required"))
        elif amount <= 0:
            issues.append(_error("amount", "invalid_value", "Amount must be greater than zero"))
        else:
            issue = _money_issue("amount", amount, "Amount")
            if issue:
                issues.append(issue)

        return ValidationResult(form=kind, issues=issues)

    def user_friendly_summary(self, result: ValidationResult) -> str:
        """Short text summary of a validation result for banners."""
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []
        if result.has_errors:
            lines.append("Please fix the following before saving:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"  • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"    {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please verify the following:")
            for warning in result.warnings:
                lines.append(f"  • {warning}")

        return "\n".join(lines)

"""
Data Models Package

This package contains all Pydantic models used in Bookkeeper.
All data flowing through the system must conform to these schemas.
"""

from bookkeeper.models.base import Record, round_money, utc_now
from bookkeeper.models.business import (
    Account,
    AccountType,
    BusinessConfig,
    BusinessType,
    CategoryScope,
    DashboardLayout,
    DateFormat,
    ExpenseCategory,
    LocalePreferences,
    Transfer,
    TransferStatus,
    UIPreferences,
    default_accounts,
    default_expense_categories,
    new_business_config,
)
from bookkeeper.models.catalog import Product, ProductType, Service
from bookkeeper.models.currency import Currency, format_currency, format_date, get_currency
from bookkeeper.models.documents import (
    TAX_RATE,
    Bill,
    BillableDocument,
    DocumentStatus,
    Invoice,
    LineItem,
    generate_document_number,
)
from bookkeeper.models.legal import Client, ClientFile, ExtraFee, FileExpense, FileStatus
from bookkeeper.models.transaction import Transaction, TransactionType
from bookkeeper.models.validation import ValidationIssue, ValidationResult

__all__ = [
    # Base
    "Record",
    "round_money",
    "utc_now",
    # Transactions
    "Transaction",
    "TransactionType",
    # Catalog
    "Product",
    "ProductType",
    "Service",
    # Invoices and bills
    "TAX_RATE",
    "Bill",
    "BillableDocument",
    "DocumentStatus",
    "Invoice",
    "LineItem",
    "generate_document_number",
    # Business
    "Account",
    "AccountType",
    "BusinessConfig",
    "BusinessType",
    "CategoryScope",
    "DashboardLayout",
    "DateFormat",
    "ExpenseCategory",
    "LocalePreferences",
    "Transfer",
    "TransferStatus",
    "UIPreferences",
    "default_accounts",
    "default_expense_categories",
    "new_business_config",
    # Legal practice
    "Client",
    "ClientFile",
    "ExtraFee",
    "FileExpense",
    "FileStatus",
    # Currency
    "Currency",
    "format_currency",
    "format_date",
    "get_currency",
    # Validation
    "ValidationIssue",
    "ValidationResult",
]

"""
Business configuration, accounts and expense categories.

BusinessConfig is a singleton: the application stores at most one.
Onboarding creates it together with the default accounts and the
expense categories that apply to the chosen business type.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from bookkeeper.models.base import Record, utc_now
from bookkeeper.models.transaction import TransactionType


class BusinessType(str, Enum):
    GENERAL = "general"
    LEGAL = "legal"


class DashboardLayout(str, Enum):
    STANDARD = "standard"
    LEGAL = "legal"


class DateFormat(str, Enum):
    """Date display formats offered in settings."""
    US = "MM/DD/YYYY"
    EUROPEAN = "DD/MM/YYYY"
    ISO = "YYYY-MM-DD"

    @property
    def strftime_pattern(self) -> str:
        return {
            DateFormat.US: "%m/%d/%Y",
            DateFormat.EUROPEAN: "%d/%m/%Y",
            DateFormat.ISO: "%Y-%m-%d",
        }[self]


class UIPreferences(BaseModel):
    dashboard_layout: DashboardLayout = DashboardLayout.STANDARD
    compact_view: bool = False
    default_transaction_type: TransactionType = TransactionType.INCOME
    show_pro_features: bool = False


class LocalePreferences(BaseModel):
    """How money and dates are displayed."""
    currency: str = Field(default="USD", min_length=3, max_length=3)
    locale: str = Field(default="en-US")
    date_format: DateFormat = DateFormat.US


class BusinessConfig(Record):
    """The single business profile for this installation."""

    type: BusinessType = BusinessType.GENERAL
    name: str = Field(..., min_length=1)
    setup_complete: bool = False
    onboarding_date: Optional[dt.datetime] = None
    locale: LocalePreferences = Field(default_factory=LocalePreferences)
    ui_preferences: UIPreferences = Field(default_factory=UIPreferences)
    fiscal_year_start: Optional[dt.date] = None
    fiscal_year_end: Optional[dt.date] = None

    @property
    def currency(self) -> str:
        return self.locale.currency


class AccountType(str, Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"
    CASH = "cash"
    INVESTMENT = "investment"


# Account types that count towards the cash balance on the dashboard
CASH_ACCOUNT_TYPES = frozenset({
    AccountType.CHECKING,
    AccountType.SAVINGS,
    AccountType.CASH,
})


class Account(Record):
    name: str = Field(..., min_length=1, max_length=100)
    account_type: AccountType = AccountType.CHECKING
    account_number: str = ""
    bank_name: str = ""
    current_balance: Decimal = Decimal("0")
    is_default: bool = False
    is_active: bool = True


class CategoryScope(str, Enum):
    """Which business types an expense category applies to."""
    GENERAL = "general"
    LEGAL = "legal"
    BOTH = "both"


class ExpenseCategory(Record):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    is_default: bool = False
    business_type: CategoryScope = CategoryScope.BOTH

    def applies_to(self, business_type: BusinessType) -> bool:
        return self.business_type in (CategoryScope.BOTH, CategoryScope(business_type.value))


DEFAULT_EXPENSE_CATEGORIES: list[tuple[str, str, CategoryScope]] = [
    ("Office Supplies", "Pens, paper, office equipment", CategoryScope.BOTH),
    ("Travel", "Business travel expenses", CategoryScope.BOTH),
    ("Meals & Entertainment", "Business meals and client entertainment", CategoryScope.BOTH),
    ("Professional Services", "Legal, accounting, consulting fees", CategoryScope.BOTH),
    ("Marketing & Advertising", "Promotional materials and advertising", CategoryScope.GENERAL),
    ("Legal Research", "Research databases and legal resources", CategoryScope.LEGAL),
    ("Court Fees", "Filing fees and court costs", CategoryScope.LEGAL),
]

DEFAULT_ACCOUNTS: list[tuple[str, AccountType, bool]] = [
    ("Business Checking", AccountType.CHECKING, True),
    ("Business Savings", AccountType.SAVINGS, False),
    ("Petty Cash", AccountType.CASH, False),
]


def default_expense_categories(business_type: BusinessType) -> list[ExpenseCategory]:
    """Seed categories for a new installation of the given type."""
    categories = [
        ExpenseCategory(
            name=name,
            description=description,
            is_default=True,
            business_type=scope,
        )
        for name, description, scope in DEFAULT_EXPENSE_CATEGORIES
    ]
    return [c for c in categories if c.applies_to(business_type)]


def default_accounts() -> list[Account]:
    """Seed accounts for a new installation. Balances start at zero."""
    return [
        Account(name=name, account_type=account_type, is_default=is_default)
        for name, account_type, is_default in DEFAULT_ACCOUNTS
    ]


def new_business_config(
    business_type: BusinessType,
    name: str,
    currency: str = "USD",
    locale: str = "en-US",
) -> BusinessConfig:
    """A completed business config as created at the end of onboarding."""
    dashboard = (
        DashboardLayout.LEGAL
        if business_type == BusinessType.LEGAL
        else DashboardLayout.STANDARD
    )
    return BusinessConfig(
        type=business_type,
        name=name,
        setup_complete=True,
        onboarding_date=utc_now(),
        locale=LocalePreferences(currency=currency, locale=locale),
        ui_preferences=UIPreferences(dashboard_layout=dashboard),
    )


class TransferStatus(str, Enum):
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"


class Transfer(Record):
    """Money moved between two of the business's own accounts."""

    from_account_id: str = Field(..., min_length=1)
    to_account_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    description: str = Field(default="", max_length=500)
    date: dt.date
    status: TransferStatus = TransferStatus.COMPLETED

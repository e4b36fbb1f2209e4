"""
Report Aggregation

Pure functions that turn a list of transactions into report figures.
Nothing here touches storage; callers load the records and pass them in.

GUARANTEES:
- Only sums real transactions; missing fields fall back to fixed labels
  ("Direct Sale", "General", ...) instead of raising
- Group summaries are sorted by total, descending; ties keep the order
  in which the groups were first seen
- Averages of empty groups and percentages of a zero total are 0
"""

import datetime as dt
from decimal import Decimal
from typing import Callable, Iterable, Optional, Sequence

from pydantic import BaseModel, Field

from bookkeeper.models.business import CASH_ACCOUNT_TYPES, Account
from bookkeeper.models.documents import Bill, Invoice
from bookkeeper.models.transaction import Transaction, TransactionType


ZERO = Decimal("0")
HUNDRED = Decimal("100")

DIRECT_SALE = "Direct Sale"
UNKNOWN_CUSTOMER = "Unknown Customer"
DIRECT_EXPENSE = "Direct Expense"
UNKNOWN_VENDOR = "Unknown Vendor"
GENERAL_SERVICE = "General Service"
GENERAL_CATEGORY = "General"
UNKNOWN_MONTH = "Unknown"

TOP_CATEGORY_LIMIT = 5


# =============================================================================
# Result models
# =============================================================================

class GroupSummary(BaseModel):
    """Totals for one group (customer, vendor, category, ...)."""

    key: str
    total: Decimal = ZERO
    count: int = 0
    average: Decimal = ZERO
    percentage: Decimal = Field(
        default=ZERO,
        description="Share of the partition total, 0-100"
    )


class MonthlyTotal(BaseModel):
    """Sum of one calendar month. year/month are None for the Unknown bucket."""

    label: str
    year: Optional[int] = None
    month: Optional[int] = None
    total: Decimal = ZERO


class SalesAnalysis(BaseModel):
    by_customer: list[GroupSummary] = Field(default_factory=list)
    by_product: list[GroupSummary] = Field(default_factory=list)
    by_category: list[GroupSummary] = Field(default_factory=list)


class ExpenseAnalysis(BaseModel):
    by_vendor: list[GroupSummary] = Field(default_factory=list)
    by_category: list[GroupSummary] = Field(default_factory=list)
    monthly_trend: list[MonthlyTotal] = Field(default_factory=list)


class AdvancedReport(BaseModel):
    """Sales and expense analysis for one date range."""

    start: Optional[dt.date] = None
    end: Optional[dt.date] = None
    sales_analysis: SalesAnalysis = Field(default_factory=SalesAnalysis)
    expense_analysis: ExpenseAnalysis = Field(default_factory=ExpenseAnalysis)
    total_sales: Decimal = ZERO
    total_expenses: Decimal = ZERO
    net_profit: Decimal = ZERO
    profit_margin: Decimal = Field(
        default=ZERO,
        description="(sales - expenses) / sales * 100, 0 when there are no sales"
    )


class CategoryAmount(BaseModel):
    category: str
    amount: Decimal
    type: TransactionType


class MonthlyTrend(BaseModel):
    label: str
    year: int
    month: int
    revenue: Decimal = ZERO
    expenses: Decimal = ZERO
    profit: Decimal = ZERO


class FinancialOverview(BaseModel):
    """Headline figures for the Reports page."""

    revenue: Decimal = ZERO
    expenses: Decimal = ZERO
    net_profit: Decimal = ZERO
    transaction_count: int = 0
    category_breakdown: dict[str, Decimal] = Field(default_factory=dict)
    top_categories: list[CategoryAmount] = Field(default_factory=list)
    monthly_trends: list[MonthlyTrend] = Field(default_factory=list)


class DashboardMetrics(BaseModel):
    """Current-month figures shown on the dashboard."""

    total_revenue: Decimal = ZERO
    total_expenses: Decimal = ZERO
    net_income: Decimal = ZERO
    cash_balance: Decimal = ZERO
    accounts_receivable: Decimal = ZERO
    accounts_payable: Decimal = ZERO
    as_of: dt.date


class CashFlowMonth(BaseModel):
    label: str
    year: int
    month: int
    income: Decimal = ZERO
    expenses: Decimal = ZERO
    net: Decimal = ZERO


# =============================================================================
# Filtering
# =============================================================================

def filter_by_date_range(
    transactions: Iterable[Transaction],
    start: Optional[dt.date],
    end: Optional[dt.date],
) -> list[Transaction]:
    """
    Transactions dated within [start, end] (both inclusive).

    An open bound (None) does not filter on that side. Undated
    transactions are always excluded.
    """
    result = []
    for tx in transactions:
        if tx.date is None:
            continue
        if start is not None and tx.date < start:
            continue
        if end is not None and tx.date > end:
            continue
        result.append(tx)
    return result


def partition_by_type(
    transactions: Iterable[Transaction],
) -> tuple[list[Transaction], list[Transaction]]:
    """Split into (income, expense)."""
    income, expense = [], []
    for tx in transactions:
        if tx.type == TransactionType.INCOME:
            income.append(tx)
        else:
            expense.append(tx)
    return income, expense


# =============================================================================
# Group keys
# =============================================================================

def _party_from_description(description: str, marker: str, unknown: str, direct: str) -> str:
    # Plain case-sensitive substring split: "Paid to Bob for toner" -> "Bob for"
    if marker not in description:
        return direct
    return description.split(marker)[1].strip() or unknown


def customer_key(tx: Transaction) -> str:
    """Customer named after "from" in the description."""
    return _party_from_description(tx.description or "", "from", UNKNOWN_CUSTOMER, DIRECT_SALE)


def vendor_key(tx: Transaction) -> str:
    """Vendor named after "to" in the description."""
    return _party_from_description(tx.description or "", "to", UNKNOWN_VENDOR, DIRECT_EXPENSE)


def product_key(tx: Transaction) -> str:
    return tx.category or GENERAL_SERVICE


def category_key(tx: Transaction) -> str:
    return tx.category or GENERAL_CATEGORY


# =============================================================================
# Aggregation
# =============================================================================

def percentage(part: Decimal, whole: Decimal) -> Decimal:
    return part / whole * HUNDRED if whole else ZERO


def sum_amounts(transactions: Iterable[Transaction]) -> Decimal:
    return sum((tx.amount for tx in transactions), ZERO)


def summarize_groups(
    transactions: Sequence[Transaction],
    key: Callable[[Transaction], str],
) -> list[GroupSummary]:
    """
    Group transactions by key and summarise each group.

    Percentages are relative to the total of the transactions passed in.
    """
    totals: dict[str, Decimal] = {}
    counts: dict[str, int] = {}
    for tx in transactions:
        group = key(tx)
        totals[group] = totals.get(group, ZERO) + tx.amount
        counts[group] = counts.get(group, 0) + 1

    grand_total = sum(totals.values(), ZERO)
    summaries = [
        GroupSummary(
            key=group,
            total=total,
            count=counts[group],
            average=total / counts[group] if counts[group] else ZERO,
            percentage=percentage(total, grand_total),
        )
        for group, total in totals.items()
    ]
    # sorted() is stable, so equal totals keep first-seen order
    return sorted(summaries, key=lambda s: s.total, reverse=True)


def _month_label(year: int, month: int) -> str:
    return dt.date(year, month, 1).strftime("%b %Y")


def monthly_trend(transactions: Iterable[Transaction]) -> list[MonthlyTotal]:
    """
    Sum per calendar month, oldest first.

    Undated transactions are collected in an "Unknown" bucket at the end.
    """
    buckets: dict[tuple[int, int], Decimal] = {}
    unknown: Optional[Decimal] = None
    for tx in transactions:
        if tx.date is None:
            unknown = (unknown or ZERO) + tx.amount
            continue
        month = (tx.date.year, tx.date.month)
        buckets[month] = buckets.get(month, ZERO) + tx.amount

    trend = [
        MonthlyTotal(label=_month_label(year, month), year=year, month=month, total=total)
        for (year, month), total in sorted(buckets.items())
    ]
    if unknown is not None:
        trend.append(MonthlyTotal(label=UNKNOWN_MONTH, total=unknown))
    return trend


def build_advanced_report(
    transactions: Iterable[Transaction],
    start: Optional[dt.date] = None,
    end: Optional[dt.date] = None,
) -> AdvancedReport:
    """Sales/expense analysis over the transactions in [start, end]."""
    in_range = filter_by_date_range(transactions, start, end)
    income, expenses = partition_by_type(in_range)

    total_sales = sum_amounts(income)
    total_expenses = sum_amounts(expenses)
    net_profit = total_sales - total_expenses

    return AdvancedReport(
        start=start,
        end=end,
        sales_analysis=SalesAnalysis(
            by_customer=summarize_groups(income, customer_key),
            by_product=summarize_groups(income, product_key),
            by_category=summarize_groups(income, category_key),
        ),
        expense_analysis=ExpenseAnalysis(
            by_vendor=summarize_groups(expenses, vendor_key),
            by_category=summarize_groups(expenses, category_key),
            monthly_trend=monthly_trend(expenses),
        ),
        total_sales=total_sales,
        total_expenses=total_expenses,
        net_profit=net_profit,
        profit_margin=percentage(net_profit, total_sales),
    )


def _months_ending_at(today: dt.date, months: int) -> list[tuple[int, int]]:
    """(year, month) pairs for the last `months` months, oldest first."""
    result = []
    year, month = today.year, today.month
    for _ in range(months):
        result.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(result))


def _in_month(tx: Transaction, year: int, month: int) -> bool:
    return tx.date is not None and tx.date.year == year and tx.date.month == month


def build_financial_overview(
    range_transactions: Sequence[Transaction],
    all_transactions: Sequence[Transaction],
    today: dt.date,
) -> FinancialOverview:
    """
    Revenue, expenses and category figures for a date-filtered slice.

    The six-month trend always uses all_transactions so it is not cut
    short by the selected range.
    """
    income, expenses = partition_by_type(range_transactions)
    revenue = sum_amounts(income)
    expense_total = sum_amounts(expenses)

    breakdown: dict[str, Decimal] = {}
    category_types: dict[str, TransactionType] = {}
    for tx in range_transactions:
        category = category_key(tx)
        breakdown[category] = breakdown.get(category, ZERO) + tx.amount
        category_types.setdefault(category, tx.type)

    top = sorted(breakdown.items(), key=lambda item: item[1], reverse=True)[:TOP_CATEGORY_LIMIT]

    trends = []
    for year, month in _months_ending_at(today, 6):
        month_tx = [tx for tx in all_transactions if _in_month(tx, year, month)]
        month_income, month_expenses = partition_by_type(month_tx)
        month_revenue = sum_amounts(month_income)
        month_expense = sum_amounts(month_expenses)
        trends.append(MonthlyTrend(
            label=_month_label(year, month),
            year=year,
            month=month,
            revenue=month_revenue,
            expenses=month_expense,
            profit=month_revenue - month_expense,
        ))

    return FinancialOverview(
        revenue=revenue,
        expenses=expense_total,
        net_profit=revenue - expense_total,
        transaction_count=len(range_transactions),
        category_breakdown=breakdown,
        top_categories=[
            CategoryAmount(category=category, amount=amount, type=category_types[category])
            for category, amount in top
        ],
        monthly_trends=trends,
    )


def build_dashboard_metrics(
    transactions: Sequence[Transaction],
    accounts: Sequence[Account],
    today: dt.date,
    invoices: Sequence[Invoice] = (),
    bills: Sequence[Bill] = (),
) -> DashboardMetrics:
    """Current-month totals, cash on hand and open receivables/payables."""
    current = [tx for tx in transactions if _in_month(tx, today.year, today.month)]
    income, expenses = partition_by_type(current)
    revenue = sum_amounts(income)
    expense_total = sum_amounts(expenses)

    cash_balance = sum(
        (a.current_balance for a in accounts if a.is_active and a.account_type in CASH_ACCOUNT_TYPES),
        ZERO,
    )

    return DashboardMetrics(
        total_revenue=revenue,
        total_expenses=expense_total,
        net_income=revenue - expense_total,
        cash_balance=cash_balance,
        accounts_receivable=sum((i.total_amount for i in invoices if i.is_open), ZERO),
        accounts_payable=sum((b.total_amount for b in bills if b.is_open), ZERO),
        as_of=today,
    )


def recent_transactions(transactions: Iterable[Transaction], limit: int = 5) -> list[Transaction]:
    """Newest first by date; undated transactions sort last."""
    ordered = sorted(
        transactions,
        key=lambda tx: (tx.date is not None, tx.date or dt.date.min, tx.created_at),
        reverse=True,
    )
    return ordered[:limit]


def cash_flow(
    transactions: Sequence[Transaction],
    months: int = 6,
    today: Optional[dt.date] = None,
) -> list[CashFlowMonth]:
    """Income, expenses and net per month for the last `months` months."""
    today = today or dt.date.today()
    result = []
    for year, month in _months_ending_at(today, months):
        month_tx = [tx for tx in transactions if _in_month(tx, year, month)]
        income, expenses = partition_by_type(month_tx)
        income_total = sum_amounts(income)
        expense_total = sum_amounts(expenses)
        result.append(CashFlowMonth(
            label=_month_label(year, month),
            year=year,
            month=month,
            income=income_total,
            expenses=expense_total,
            net=income_total - expense_total,
        ))
    return result

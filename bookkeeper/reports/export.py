"""
CSV Export

Renders report views as CSV text with fixed column sets. Sections are
separated by a blank line and start with an upper-case title row.
Amounts are written with two decimals, percentages with one decimal
and a trailing "%".
"""

import csv
import io
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable

from bookkeeper.models.transaction import Transaction
from bookkeeper.reports.aggregation import AdvancedReport, GroupSummary


class ExportView(str, Enum):
    SALES = "sales"
    EXPENSES = "expenses"
    COMPARISON = "comparison"
    TRANSACTIONS = "transactions"


EXPORT_FILENAMES = {
    ExportView.SALES: "sales-analysis.csv",
    ExportView.EXPENSES: "expense-analysis.csv",
    ExportView.COMPARISON: "financial-comparison.csv",
    ExportView.TRANSACTIONS: "transactions.csv",
}

TRANSACTION_COLUMNS = ["Date", "Type", "Description", "Category", "Amount", "Account"]


def _money(value: Decimal) -> str:
    return str(Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _percent(value: Decimal) -> str:
    return f"{Decimal(value).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)}%"


def _write_groups(
    writer,
    title: str,
    header: list[str],
    groups: Iterable[GroupSummary],
    row_for,
) -> None:
    writer.writerow([title])
    writer.writerow(header)
    for group in groups:
        writer.writerow(row_for(group))


def sales_csv(report: AdvancedReport) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    sales = report.sales_analysis

    _write_groups(
        writer,
        "SALES BY CUSTOMER",
        ["Customer", "Total Sales", "Transaction Count", "Average Order Value"],
        sales.by_customer,
        lambda g: [g.key, _money(g.total), g.count, _money(g.average)],
    )
    writer.writerow([])
    _write_groups(
        writer,
        "SALES BY PRODUCT/SERVICE",
        ["Product/Service", "Total Sales", "Quantity", "Average Price"],
        sales.by_product,
        lambda g: [g.key, _money(g.total), g.count, _money(g.average)],
    )
    return buffer.getvalue()


def expenses_csv(report: AdvancedReport) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    expenses = report.expense_analysis

    _write_groups(
        writer,
        "EXPENSES BY VENDOR",
        ["Vendor", "Total Expenses", "Transaction Count", "Average Amount"],
        expenses.by_vendor,
        lambda g: [g.key, _money(g.total), g.count, _money(g.average)],
    )
    writer.writerow([])
    _write_groups(
        writer,
        "EXPENSES BY CATEGORY",
        ["Category", "Total Expenses", "Percentage", "Transaction Count"],
        expenses.by_category,
        lambda g: [g.key, _money(g.total), _percent(g.percentage), g.count],
    )
    return buffer.getvalue()


def comparison_csv(report: AdvancedReport) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["FINANCIAL COMPARISON"])
    writer.writerow(["Total Sales", _money(report.total_sales)])
    writer.writerow(["Total Expenses", _money(report.total_expenses)])
    writer.writerow(["Net Profit", _money(report.net_profit)])
    writer.writerow(["Profit Margin", _percent(report.profit_margin)])
    return buffer.getvalue()


def transactions_csv(transactions: Iterable[Transaction]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(TRANSACTION_COLUMNS)
    for tx in transactions:
        writer.writerow([
            tx.date.isoformat() if tx.date else "",
            tx.type.value,
            tx.description,
            tx.category,
            _money(tx.amount),
            tx.account,
        ])
    return buffer.getvalue()


def export_report(report: AdvancedReport, view: ExportView) -> tuple[str, str]:
    """(filename, csv text) for one of the report views."""
    renderers = {
        ExportView.SALES: sales_csv,
        ExportView.EXPENSES: expenses_csv,
        ExportView.COMPARISON: comparison_csv,
    }
    if view not in renderers:
        raise ValueError(f"Not a report view: {view}")
    return EXPORT_FILENAMES[view], renderers[view](report)

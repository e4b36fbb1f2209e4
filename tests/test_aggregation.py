"""
Tests for report aggregation.

All functions under test are pure, so fixtures are plain lists of
transactions.
"""

import pytest
from datetime import date
from decimal import Decimal

from bookkeeper.models import Account, AccountType, Bill, DocumentStatus, Invoice, LineItem, TransactionType
from bookkeeper.reports import (
    DIRECT_EXPENSE,
    DIRECT_SALE,
    GENERAL_CATEGORY,
    GENERAL_SERVICE,
    UNKNOWN_CUSTOMER,
    UNKNOWN_MONTH,
    build_advanced_report,
    build_dashboard_metrics,
    build_financial_overview,
    cash_flow,
    customer_key,
    filter_by_date_range,
    monthly_trend,
    recent_transactions,
    summarize_groups,
    vendor_key,
)

from conftest import expense, income


JAN_START = date(2024, 1, 1)
JAN_END = date(2024, 1, 31)


@pytest.fixture
def january():
    return [
        income("100", date(2024, 1, 5), "Payment from Acme", "Consulting"),
        income("50", date(2024, 1, 20), "Payment from Globex", "Training"),
        expense("30", date(2024, 1, 10), "Paid to Paper Co", "Office Supplies"),
    ]


class TestAdvancedReport:
    """Totals and group breakdowns for a date range."""

    def test_totals_and_margin(self, january):
        report = build_advanced_report(january, JAN_START, JAN_END)

        assert report.total_sales == Decimal("150")
        assert report.total_expenses == Decimal("30")
        assert report.net_profit == Decimal("120")
        assert report.profit_margin == Decimal("80")

    def test_no_sales_means_zero_margin(self):
        report = build_advanced_report([expense("10", date(2024, 1, 2))], JAN_START, JAN_END)
        assert report.profit_margin == Decimal("0")
        assert report.net_profit == Decimal("-10")

    def test_out_of_range_and_undated_excluded(self, january):
        extra = january + [income("999", date(2024, 2, 1)), income("500", None)]
        report = build_advanced_report(extra, JAN_START, JAN_END)
        assert report.total_sales == Decimal("150")

    def test_open_range_includes_everything_dated(self, january):
        extra = january + [income("999", date(2023, 6, 1)), income("500", None)]
        assert build_advanced_report(extra).total_sales == Decimal("1149")

    def test_group_totals_match_partition_totals(self, january):
        """Test that every grouping sums to its partition total."""
        report = build_advanced_report(january, JAN_START, JAN_END)
        for groups in (
            report.sales_analysis.by_customer,
            report.sales_analysis.by_product,
            report.sales_analysis.by_category,
        ):
            assert sum(g.total for g in groups) == report.total_sales
        for groups in (report.expense_analysis.by_vendor, report.expense_analysis.by_category):
            assert sum(g.total for g in groups) == report.total_expenses

    def test_percentages_bounded(self, january):
        report = build_advanced_report(january, JAN_START, JAN_END)
        for group in report.sales_analysis.by_customer:
            assert Decimal("0") <= group.percentage <= Decimal("100")

    def test_groups_sorted_by_total(self, january):
        customers = build_advanced_report(january).sales_analysis.by_customer
        assert [c.key for c in customers] == ["Acme", "Globex"]
        assert customers[0].percentage.quantize(Decimal("0.1")) == Decimal("66.7")

    def test_deleting_a_transaction_only_changes_its_group(self, january):
        before = build_advanced_report(january)
        after = build_advanced_report(january[1:])

        assert after.total_sales == Decimal("50")
        assert [c.key for c in after.sales_analysis.by_customer] == ["Globex"]
        assert after.expense_analysis.by_vendor == before.expense_analysis.by_vendor

    def test_expense_trend(self, january):
        trend = build_advanced_report(january).expense_analysis.monthly_trend
        assert [(m.label, m.total) for m in trend] == [("Jan 2024", Decimal("30"))]


class TestGroupKeys:
    """Customer/vendor extraction and fallback labels."""

    def test_customer_from_description(self):
        assert customer_key(income("1", None, "Invoice paid from Acme Ltd")) == "Acme Ltd"

    def test_customer_missing_marker(self):
        assert customer_key(income("1", None, "Cash sale")) == DIRECT_SALE

    def test_customer_empty_after_marker(self):
        assert customer_key(income("1", None, "Received from ")) == UNKNOWN_CUSTOMER

    def test_marker_is_case_sensitive(self):
        assert customer_key(income("1", None, "From Acme")) == DIRECT_SALE

    def test_vendor_takes_text_between_markers(self):
        """Test that only the text up to the next marker is kept."""
        assert vendor_key(expense("1", None, "Paid to Bob for toner")) == "Bob for"

    def test_vendor_missing_marker(self):
        assert vendor_key(expense("1", None, "Bank fee")) == DIRECT_EXPENSE

    def test_blank_category_labels(self):
        groups = summarize_groups([income("5", None)], lambda tx: tx.category or GENERAL_SERVICE)
        assert groups[0].key == GENERAL_SERVICE
        report = build_advanced_report([expense("5", date(2024, 1, 1))])
        assert report.expense_analysis.by_category[0].key == GENERAL_CATEGORY


class TestSummarizeGroups:
    """Edge cases of group summaries."""

    def test_empty_input(self):
        assert summarize_groups([], customer_key) == []

    def test_average_and_count(self):
        groups = summarize_groups(
            [income("10", None, category="A"), income("20", None, category="A")],
            lambda tx: tx.category,
        )
        assert groups[0].count == 2
        assert groups[0].average == Decimal("15")
        assert groups[0].percentage == Decimal("100")

    def test_zero_total_gives_zero_percentages(self):
        groups = summarize_groups([income("0", None, category="A")], lambda tx: tx.category)
        assert groups[0].percentage == Decimal("0")
        assert groups[0].average == Decimal("0")

    def test_ties_keep_first_seen_order(self):
        groups = summarize_groups(
            [income("5", None, category="B"), income("5", None, category="A")],
            lambda tx: tx.category,
        )
        assert [g.key for g in groups] == ["B", "A"]


class TestMonthlyTrend:
    """Chronological ordering and the Unknown bucket."""

    def test_chronological_with_unknown_last(self):
        trend = monthly_trend([
            expense("1", date(2024, 3, 1)),
            expense("2", None),
            expense("3", date(2023, 12, 31)),
            expense("4", date(2024, 3, 15)),
        ])
        assert [m.label for m in trend] == ["Dec 2023", "Mar 2024", UNKNOWN_MONTH]
        assert trend[1].total == Decimal("5")
        assert trend[2].year is None

    def test_filter_by_date_range_inclusive(self):
        txs = [income("1", JAN_START), income("2", JAN_END), income("3", None)]
        assert len(filter_by_date_range(txs, JAN_START, JAN_END)) == 2


class TestFinancialOverview:
    """Reports page headline figures."""

    def test_overview(self, january):
        overview = build_financial_overview(january, january, today=date(2024, 1, 31))

        assert overview.revenue == Decimal("150")
        assert overview.expenses == Decimal("30")
        assert overview.net_profit == Decimal("120")
        assert overview.transaction_count == 3
        assert overview.category_breakdown["Consulting"] == Decimal("100")
        assert overview.top_categories[0].category == "Consulting"
        assert overview.top_categories[-1].type == TransactionType.EXPENSE

    def test_trend_covers_six_months_across_year_boundary(self, january):
        overview = build_financial_overview([], january, today=date(2024, 2, 10))
        labels = [m.label for m in overview.monthly_trends]
        assert labels == ["Sep 2023", "Oct 2023", "Nov 2023", "Dec 2023", "Jan 2024", "Feb 2024"]
        jan = overview.monthly_trends[4]
        assert jan.profit == Decimal("120")
        assert overview.revenue == Decimal("0")

    def test_top_categories_limited(self):
        txs = [income(str(i + 1), date(2024, 1, 1), category=f"C{i}") for i in range(8)]
        overview = build_financial_overview(txs, txs, today=date(2024, 1, 31))
        assert len(overview.top_categories) == 5
        assert overview.top_categories[0].category == "C7"


class TestDashboard:
    """Dashboard metrics, recent activity and cash flow."""

    def test_dashboard_metrics(self, january):
        accounts = [
            Account(name="Checking", current_balance=Decimal("1000")),
            Account(name="Card", account_type=AccountType.CREDIT, current_balance=Decimal("-200")),
            Account(name="Closed", current_balance=Decimal("50"), is_active=False),
        ]
        invoice = Invoice(
            number="INV-1",
            customer_name="Acme",
            issue_date=date(2024, 1, 1),
            items=[LineItem(description="Work", quantity=Decimal("1"), unit_price=Decimal("100"))],
            status=DocumentStatus.SENT,
        )
        paid_bill = Bill(
            number="BILL-1",
            vendor_name="Paper Co",
            issue_date=date(2024, 1, 1),
            items=[LineItem(description="Paper", quantity=Decimal("1"), unit_price=Decimal("10"))],
            status=DocumentStatus.PAID,
        )

        metrics = build_dashboard_metrics(
            january + [income("70", date(2023, 12, 31))],
            accounts,
            today=date(2024, 1, 15),
            invoices=[invoice],
            bills=[paid_bill],
        )

        assert metrics.total_revenue == Decimal("150")
        assert metrics.net_income == Decimal("120")
        assert metrics.cash_balance == Decimal("1000")
        assert metrics.accounts_receivable == Decimal("110.00")
        assert metrics.accounts_payable == Decimal("0")

    def test_recent_transactions(self, january):
        undated = income("1", None)
        recent = recent_transactions(january + [undated], limit=3)
        assert [tx.amount for tx in recent] == [Decimal("50"), Decimal("30"), Decimal("100")]
        assert recent_transactions(january + [undated])[-1] is undated

    def test_cash_flow(self, january):
        months = cash_flow(january, months=2, today=date(2024, 1, 31))
        assert [m.label for m in months] == ["Dec 2023", "Jan 2024"]
        assert months[0].net == Decimal("0")
        assert months[1].income == Decimal("150")
        assert months[1].net == Decimal("120")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

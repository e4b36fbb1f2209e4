"""
Reports Package

Pure aggregation over transactions and legal practice records, and CSV
rendering of the results.
"""

from bookkeeper.reports.aggregation import (
    DIRECT_EXPENSE,
    DIRECT_SALE,
    GENERAL_CATEGORY,
    GENERAL_SERVICE,
    UNKNOWN_CUSTOMER,
    UNKNOWN_MONTH,
    UNKNOWN_VENDOR,
    AdvancedReport,
    CashFlowMonth,
    CategoryAmount,
    DashboardMetrics,
    ExpenseAnalysis,
    FinancialOverview,
    GroupSummary,
    MonthlyTotal,
    MonthlyTrend,
    SalesAnalysis,
    build_advanced_report,
    build_dashboard_metrics,
    build_financial_overview,
    cash_flow,
    category_key,
    customer_key,
    filter_by_date_range,
    monthly_trend,
    partition_by_type,
    product_key,
    recent_transactions,
    summarize_groups,
    vendor_key,
)
from bookkeeper.reports.export import (
    EXPORT_FILENAMES,
    ExportView,
    comparison_csv,
    expenses_csv,
    export_report,
    sales_csv,
    transactions_csv,
)
from bookkeeper.reports.legal import (
    UNKNOWN_CLIENT,
    ClientSummary,
    FileEntry,
    FileSummary,
    LegalReport,
    build_legal_report,
    client_summary_csv,
    file_summary_csv,
    summarize_client,
    summarize_file,
)

__all__ = [
    # Fallback labels
    "DIRECT_EXPENSE",
    "DIRECT_SALE",
    "GENERAL_CATEGORY",
    "GENERAL_SERVICE",
    "UNKNOWN_CUSTOMER",
    "UNKNOWN_MONTH",
    "UNKNOWN_VENDOR",
    # Result models
    "AdvancedReport",
    "CashFlowMonth",
    "CategoryAmount",
    "DashboardMetrics",
    "ExpenseAnalysis",
    "FinancialOverview",
    "GroupSummary",
    "MonthlyTotal",
    "MonthlyTrend",
    "SalesAnalysis",
    # Aggregation
    "build_advanced_report",
    "build_dashboard_metrics",
    "build_financial_overview",
    "cash_flow",
    "category_key",
    "customer_key",
    "filter_by_date_range",
    "monthly_trend",
    "partition_by_type",
    "product_key",
    "recent_transactions",
    "summarize_groups",
    "vendor_key",
    # Export
    "EXPORT_FILENAMES",
    "ExportView",
    "comparison_csv",
    "expenses_csv",
    "export_report",
    "sales_csv",
    "transactions_csv",
    # Legal practice
    "UNKNOWN_CLIENT",
    "ClientSummary",
    "FileEntry",
    "FileSummary",
    "LegalReport",
    "build_legal_report",
    "client_summary_csv",
    "file_summary_csv",
    "summarize_client",
    "summarize_file",
]

"""
Legal Practice Reports

Per-file and per-client money summaries for a legal practice, built
from clients, client files, file expenses and extra fees. Pure
functions like the rest of the reports package.

Per file:
- total fees charged = agreed fees + extra fees
- total paid         = deposit + later payments
- balance remaining  = total fees charged - total paid
  (negative when the client paid in advance: funds held)
- net summary        = total paid - total fees charged - reimbursable expenses
  (what the client is owed; negative when they owe the practice)
"""

import csv
import datetime as dt
import io
import re
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from pydantic import BaseModel, Field

from bookkeeper.models.legal import Client, ClientFile, ExtraFee, FileExpense, FileStatus
from bookkeeper.reports.export import _money


ZERO = Decimal("0")
UNKNOWN_CLIENT = "Unknown Client"


class FileEntry(BaseModel):
    """One money movement on a file, for the detail table."""

    date: dt.date
    kind: str = Field(..., description="fee, deposit or expense")
    description: str
    amount: Decimal
    reimbursable: Optional[bool] = None


class FileSummary(BaseModel):
    file_id: str
    file_name: str
    client_id: str
    client_name: str
    date_opened: dt.date
    status: FileStatus
    fees_to_be_paid: Decimal = ZERO
    deposit_paid: Decimal = ZERO
    payments_received: Decimal = ZERO
    total_expenses: Decimal = ZERO
    reimbursable_expenses: Decimal = ZERO
    total_extra_fees: Decimal = ZERO
    total_fees_charged: Decimal = ZERO
    total_paid: Decimal = ZERO
    balance_remaining: Decimal = ZERO
    net_summary: Decimal = ZERO
    entries: list[FileEntry] = Field(default_factory=list)

    @property
    def last_activity(self) -> dt.date:
        return max([self.date_opened] + [e.date for e in self.entries])


class ClientSummary(BaseModel):
    client_id: str
    client_name: str
    total_fees_charged: Decimal = ZERO
    total_paid: Decimal = ZERO
    total_expenses: Decimal = ZERO
    outstanding_balance: Decimal = Field(
        default=ZERO,
        description="Sum of positive file balances"
    )
    funds_held: Decimal = Field(
        default=ZERO,
        description="Sum of advance payments across files"
    )
    net_position: Decimal = ZERO
    active_files: int = 0
    last_activity: Optional[dt.date] = None


class LegalReport(BaseModel):
    clients: list[ClientSummary] = Field(default_factory=list)
    files: list[FileSummary] = Field(default_factory=list)

    @property
    def total_outstanding(self) -> Decimal:
        return sum((c.outstanding_balance for c in self.clients), ZERO)

    @property
    def total_funds_held(self) -> Decimal:
        return sum((c.funds_held for c in self.clients), ZERO)

    @property
    def active_files(self) -> int:
        return sum(c.active_files for c in self.clients)


def _in_range(day: dt.date, start: Optional[dt.date], end: Optional[dt.date]) -> bool:
    return (start is None or day >= start) and (end is None or day <= end)


def summarize_file(
    client_file: ClientFile,
    client_name: str,
    expenses: Iterable[FileExpense],
    fees: Iterable[ExtraFee],
) -> FileSummary:
    """Totals and detail entries for one file. Only its own charges count."""
    file_id = str(client_file.id)
    expenses = [e for e in expenses if e.file_id == file_id]
    fees = [f for f in fees if f.file_id == file_id]

    total_expenses = sum((e.amount for e in expenses), ZERO)
    reimbursable = sum((e.amount for e in expenses if e.is_reimbursable), ZERO)
    total_extra_fees = sum((f.amount for f in fees), ZERO)
    charged = client_file.fees_to_be_paid + total_extra_fees
    paid = client_file.deposit_paid + client_file.payments_received

    entries = [
        FileEntry(date=client_file.date_opened, kind="fee", description="Agreed fees",
                  amount=client_file.fees_to_be_paid),
    ]
    if client_file.deposit_paid:
        entries.append(FileEntry(date=client_file.date_opened, kind="deposit", description="Deposit",
                                 amount=client_file.deposit_paid))
    entries.extend(
        FileEntry(date=f.date, kind="fee", description=f.description, amount=f.amount) for f in fees
    )
    entries.extend(
        FileEntry(date=e.date, kind="expense", description=e.description, amount=e.amount,
                  reimbursable=e.is_reimbursable)
        for e in expenses
    )
    entries.sort(key=lambda e: e.date)

    return FileSummary(
        file_id=file_id,
        file_name=client_file.file_name,
        client_id=client_file.client_id,
        client_name=client_name,
        date_opened=client_file.date_opened,
        status=client_file.status,
        fees_to_be_paid=client_file.fees_to_be_paid,
        deposit_paid=client_file.deposit_paid,
        payments_received=client_file.payments_received,
        total_expenses=total_expenses,
        reimbursable_expenses=reimbursable,
        total_extra_fees=total_extra_fees,
        total_fees_charged=charged,
        total_paid=paid,
        balance_remaining=charged - paid,
        net_summary=paid - charged - reimbursable,
        entries=entries,
    )


def summarize_client(client: Client, files: Sequence[FileSummary]) -> ClientSummary:
    own = [f for f in files if f.client_id == str(client.id)]
    return ClientSummary(
        client_id=str(client.id),
        client_name=client.name,
        total_fees_charged=sum((f.total_fees_charged for f in own), ZERO),
        total_paid=sum((f.total_paid for f in own), ZERO),
        total_expenses=sum((f.total_expenses for f in own), ZERO),
        outstanding_balance=sum((max(f.balance_remaining, ZERO) for f in own), ZERO),
        funds_held=sum((max(-f.balance_remaining, ZERO) for f in own), ZERO),
        net_position=sum((f.net_summary for f in own), ZERO),
        active_files=sum(1 for f in own if f.status == FileStatus.ACTIVE),
        last_activity=max((f.last_activity for f in own), default=None),
    )


def build_legal_report(
    clients: Sequence[Client],
    files: Sequence[ClientFile],
    expenses: Sequence[FileExpense],
    fees: Sequence[ExtraFee],
    start: Optional[dt.date] = None,
    end: Optional[dt.date] = None,
) -> LegalReport:
    """
    Summaries for every client and file.

    With a date range, files opened after end are left out and only
    expenses and extra fees dated inside the range are counted.
    Files whose client no longer exists are listed under UNKNOWN_CLIENT.
    """
    names = {str(c.id): c.name for c in clients}
    expenses = [e for e in expenses if _in_range(e.date, start, end)]
    fees = [f for f in fees if _in_range(f.date, start, end)]

    file_summaries = [
        summarize_file(f, names.get(f.client_id, UNKNOWN_CLIENT), expenses, fees)
        for f in files
        if end is None or f.date_opened <= end
    ]
    file_summaries.sort(key=lambda s: (s.client_name, s.date_opened))

    return LegalReport(
        clients=[summarize_client(c, file_summaries) for c in clients],
        files=file_summaries,
    )


# =============================================================================
# CSV
# =============================================================================

def _slug(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]+", "-", name).strip("-") or "report"


def file_summary_csv(summary: FileSummary) -> tuple[str, str]:
    """(filename, csv text) for one file."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["FILE SUMMARY"])
    writer.writerow(["File Name", summary.file_name])
    writer.writerow(["Client Name", summary.client_name])
    writer.writerow(["Date Opened", summary.date_opened.isoformat()])
    writer.writerow(["Status", summary.status.value])
    writer.writerow([])
    writer.writerow(["FINANCIAL SUMMARY"])
    for label, value in (
        ("Fees to be Paid", summary.fees_to_be_paid),
        ("Deposit Paid", summary.deposit_paid),
        ("Payments Received", summary.payments_received),
        ("Total Expenses", summary.total_expenses),
        ("Total Extra Fees", summary.total_extra_fees),
        ("Total Fees Charged", summary.total_fees_charged),
        ("Total Paid", summary.total_paid),
        ("Balance Remaining", summary.balance_remaining),
        ("Net Summary", summary.net_summary),
    ):
        writer.writerow([label, _money(value)])
    writer.writerow([])
    writer.writerow(["TRANSACTION DETAILS"])
    writer.writerow(["Date", "Type", "Description", "Amount", "Reimbursable"])
    for entry in summary.entries:
        reimbursable = "N/A" if entry.reimbursable is None else ("Yes" if entry.reimbursable else "No")
        writer.writerow([entry.date.isoformat(), entry.kind, entry.description, _money(entry.amount), reimbursable])
    return f"file-summary-{_slug(summary.file_name)}.csv", buffer.getvalue()


def client_summary_csv(summary: ClientSummary) -> tuple[str, str]:
    """(filename, csv text) for one client."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["CLIENT SUMMARY"])
    writer.writerow(["Client Name", summary.client_name])
    writer.writerow(["Client ID", summary.client_id])
    writer.writerow([])
    writer.writerow(["FINANCIAL SUMMARY"])
    for label, value in (
        ("Total Fees Charged", summary.total_fees_charged),
        ("Total Paid", summary.total_paid),
        ("Total Expenses", summary.total_expenses),
        ("Outstanding Balance", summary.outstanding_balance),
        ("Funds Held", summary.funds_held),
        ("Net Position", summary.net_position),
    ):
        writer.writerow([label, _money(value)])
    writer.writerow(["Active Files", summary.active_files])
    writer.writerow(["Last Activity", summary.last_activity.isoformat() if summary.last_activity else ""])
    return f"client-summary-{_slug(summary.client_name)}.csv", buffer.getvalue()

"""
Invoice and Bill Models

Invoices are issued to customers, bills are received from vendors.
Both share the same line-item structure and totals:

    line total   = quantity * unit price
    subtotal     = sum of line totals
    tax amount   = subtotal * 10%, rounded half-up to cents
    total amount = subtotal + tax amount

Totals are always recomputed from the items when a document is
constructed, so a stored document can never disagree with its lines.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from bookkeeper.models.base import Record, round_money, utc_now


TAX_RATE = Decimal("0.10")


class DocumentStatus(str, Enum):
    """Lifecycle status shared by invoices and bills."""
    DRAFT = "draft"
    PENDING = "pending"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


# Statuses that still represent money owed
OPEN_STATUSES = frozenset({
    DocumentStatus.PENDING,
    DocumentStatus.SENT,
    DocumentStatus.OVERDUE,
})


def generate_document_number(prefix: str, now: Optional[dt.datetime] = None) -> str:
    """
    Human-readable document number, e.g. ``INV-2024-123456``.

    The suffix is the last six digits of the millisecond timestamp.
    """
    now = now or utc_now()
    millis = str(int(now.timestamp() * 1000))
    return f"{prefix}-{now.year}-{millis[-6:]}"


class LineItem(BaseModel):
    """One line on an invoice or bill."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    description: str = Field(
        ...,
        min_length=1,
        max_length=200,
    )
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    category: str = Field(default="", max_length=100)
    total_price: Decimal = Field(
        default=Decimal("0"),
        description="quantity * unit_price (computed)"
    )

    @model_validator(mode="after")
    def compute_total(self) -> "LineItem":
        self.total_price = self.quantity * self.unit_price
        return self


class BillableDocument(Record):
    """Fields and totals shared by invoices and bills."""

    number: str = Field(..., min_length=1, max_length=50)
    issue_date: dt.date
    due_date: Optional[dt.date] = None
    items: list[LineItem] = Field(default_factory=list)
    status: DocumentStatus = DocumentStatus.DRAFT
    notes: Optional[str] = Field(default=None, max_length=1000)
    attachments: list[str] = Field(default_factory=list)

    subtotal: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")

    @model_validator(mode="after")
    def compute_totals(self) -> "BillableDocument":
        if self.due_date and self.due_date < self.issue_date:
            raise ValueError("Due date cannot be before issue date")

        subtotal = sum((item.total_price for item in self.items), Decimal("0"))
        tax_amount = round_money(subtotal * TAX_RATE)
        self.subtotal = subtotal
        self.tax_amount = tax_amount
        self.total_amount = subtotal + tax_amount
        return self

    # Name of the field holding the customer or vendor name
    COUNTERPARTY_FIELD: ClassVar[str]

    @property
    def counterparty_name(self) -> str:
        return getattr(self, self.COUNTERPARTY_FIELD)

    @property
    def is_open(self) -> bool:
        """Still owed (not draft, paid or cancelled)."""
        return self.status in OPEN_STATUSES


class Invoice(BillableDocument):
    """A document issued to a customer."""

    NUMBER_PREFIX: ClassVar[str] = "INV"
    COUNTERPARTY_FIELD: ClassVar[str] = "customer_name"

    customer_id: Optional[str] = None
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_email: Optional[str] = Field(default=None, max_length=200)
    customer_address: Optional[str] = Field(default=None, max_length=500)


class Bill(BillableDocument):
    """A document received from a vendor."""

    NUMBER_PREFIX: ClassVar[str] = "BILL"
    COUNTERPARTY_FIELD: ClassVar[str] = "vendor_name"

    vendor_id: Optional[str] = None
    vendor_name: str = Field(..., min_length=1, max_length=200)
    vendor_email: Optional[str] = Field(default=None, max_length=200)

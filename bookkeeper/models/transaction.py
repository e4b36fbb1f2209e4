"""
Transaction model.

Category, customer and vendor are free text, not foreign keys.
Reports group them by string equality, so spelling variants end up
in separate groups.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import Field, field_validator

from bookkeeper.models.base import Record


class TransactionType(str, Enum):
    """Direction of money flow."""
    INCOME = "income"
    EXPENSE = "expense"


class Transaction(Record):
    """
    A single income or expense entry.

    Transactions are immutable once created except through an
    explicit update or delete.
    """

    type: TransactionType = Field(
        ...,
        description="income or expense"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        decimal_places=2,
        description="Amount in the business currency"
    )
    description: str = Field(
        default="",
        max_length=500,
    )
    category: str = Field(
        default="",
        max_length=100,
        description="Free-text category"
    )
    subcategory: Optional[str] = None

    # Stored dates that are missing or unparseable read back as None
    # so reports can bucket them as "Unknown" instead of failing.
    date: Optional[dt.date] = Field(
        default=None,
        description="Date the money moved"
    )

    customer: Optional[str] = Field(default=None, max_length=200)
    vendor: Optional[str] = Field(default=None, max_length=200)
    product_service_id: Optional[str] = None
    account: str = Field(
        default="",
        description="Account id or name the money moved through"
    )
    attachments: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    @field_validator("date", mode="before")
    @classmethod
    def lenient_date(cls, v: Any) -> Optional[dt.date]:
        if v is None or v == "":
            return None
        if isinstance(v, dt.datetime):
            return v.date()
        if isinstance(v, dt.date):
            return v
        try:
            return dt.date.fromisoformat(str(v)[:10])
        except ValueError:
            return None

    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.INCOME

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE

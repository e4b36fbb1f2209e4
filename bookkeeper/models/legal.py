"""
Legal practice models: clients, client files and the money recorded
against each file.

A client file is a matter opened for a client. Its agreed fees are
fixed when the file is opened; extra fees and file expenses are added
as the matter progresses. Payments received after the opening deposit
are tracked on the file itself.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import Field

from bookkeeper.models.base import Record


class FileStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"
    PENDING = "pending"


class Client(Record):
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = Field(default=None, max_length=500)


class ClientFile(Record):
    """A matter handled for one client."""

    client_id: str = Field(..., min_length=1)
    file_name: str = Field(..., min_length=1, max_length=200)
    date_opened: dt.date
    fees_to_be_paid: Decimal = Field(default=Decimal("0"), ge=0)
    deposit_paid: Decimal = Field(default=Decimal("0"), ge=0)
    payments_received: Decimal = Field(default=Decimal("0"), ge=0)
    status: FileStatus = FileStatus.ACTIVE


class FileExpense(Record):
    """Money spent on a file, possibly recoverable from the client."""

    file_id: str = Field(..., min_length=1)
    date: dt.date
    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal = Field(..., gt=0)
    vendor: Optional[str] = Field(default=None, max_length=200)
    is_reimbursable: bool = True


class ExtraFee(Record):
    """A fee charged on top of the file's agreed fees."""

    file_id: str = Field(..., min_length=1)
    date: dt.date
    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal = Field(..., gt=0)

"""
Shared base for every stored record.

Each record has a generated UUID, creation/update timestamps (UTC)
and an ``encrypted`` flag telling readers whether its sensitive
fields were stored encrypted.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


CENTS = Decimal("0.01")


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def round_money(value: Decimal) -> Decimal:
    """Round a money amount half-up to cents."""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


class Record(BaseModel):
    """Base model for all records kept in the local document store."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique record ID"
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="When the record was created"
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        description="Last update timestamp"
    )
    encrypted: bool = Field(
        default=False,
        description="Whether sensitive fields are stored encrypted"
    )

    def to_document(self) -> dict:
        """JSON-compatible dict for the document store."""
        return self.model_dump(mode="json")

    def touched(self) -> "Record":
        """Copy of this record with a refreshed updated_at."""
        return self.model_copy(update={"updated_at": utc_now()})

"""Product and service catalog models."""

from decimal import Decimal
from enum import Enum

from pydantic import Field

from bookkeeper.models.base import Record


class ProductType(str, Enum):
    PRODUCT = "product"
    SERVICE = "service"


class Product(Record):
    """A sellable item with a fixed price."""

    name: str = Field(..., min_length=1, max_length=200)
    type: ProductType = ProductType.PRODUCT
    description: str = Field(default="", max_length=1000)
    price: Decimal = Field(..., ge=0, decimal_places=2)
    category: str = Field(default="", max_length=100)


class Service(Record):
    """A billable service charged by the hour."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=1000)
    hourly_rate: Decimal = Field(..., ge=0, decimal_places=2)
    category: str = Field(default="", max_length=100)

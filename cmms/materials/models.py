"""Models for material requests and responses."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, computed_field, model_validator

from cmms.common import StockStatus, stock_status
from cmms.common.models import Pagination, RequestModel


class StockDirection(StrEnum):
    """Direction of a stock adjustment."""

    ADD = "add"
    SUBTRACT = "subtract"


class Supplier(RequestModel):
    """Supplier contact details."""

    name: str | None = None
    contact: str | None = None
    email: str | None = None
    phone: str | None = None


class StorageLocation(RequestModel):
    """Where a material is kept."""

    warehouse: str | None = None
    shelf: str | None = None
    bin: str | None = None


class Material(BaseModel):
    """A stored material with its derived stock status."""

    id: str
    name: str
    description: str | None = None
    category: str
    unit: str
    current_stock: int
    min_stock: int
    max_stock: int
    unit_price: float
    supplier: Supplier | None = None
    location: StorageLocation | None = None
    barcode: str | None = None
    is_active: bool = True
    created_by: str
    created_at: datetime
    updated_at: datetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def stock_status(self) -> StockStatus:
        """Return low, normal or high relative to the stock thresholds."""
        return stock_status(self.current_stock, self.min_stock, self.max_stock)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Material:
        """Create a Material from a stored record."""
        return cls.model_validate(record)


def _check_thresholds(min_stock: int | None, max_stock: int | None) -> None:
    if min_stock is not None and max_stock is not None and min_stock > max_stock:
        msg = "min_stock must not exceed max_stock"
        raise ValueError(msg)


class MaterialCreate(RequestModel):
    """Payload for creating a material."""

    name: str = Field(min_length=2, max_length=200)
    description: str | None = None
    category: str = Field(min_length=2)
    unit: str = Field(min_length=1)
    current_stock: int = Field(default=0, ge=0)
    min_stock: int = Field(default=0, ge=0)
    max_stock: int = Field(default=100, ge=0)
    unit_price: float = Field(default=0, ge=0)
    supplier: Supplier | None = None
    location: StorageLocation | None = None
    barcode: str | None = None

    @model_validator(mode="after")
    def _thresholds(self) -> MaterialCreate:
        _check_thresholds(self.min_stock, self.max_stock)
        return self


class MaterialUpdate(RequestModel):
    """Payload for updating a material.

    Stock levels are not part of it: they only change through stock
    adjustments.
    """

    name: str | None = Field(default=None, min_length=2, max_length=200)
    description: str | None = None
    category: str | None = Field(default=None, min_length=2)
    unit: str | None = Field(default=None, min_length=1)
    min_stock: int | None = Field(default=None, ge=0)
    max_stock: int | None = Field(default=None, ge=0)
    unit_price: float | None = Field(default=None, ge=0)
    supplier: Supplier | None = None
    location: StorageLocation | None = None
    barcode: str | None = None

    @model_validator(mode="after")
    def _thresholds(self) -> MaterialUpdate:
        _check_thresholds(self.min_stock, self.max_stock)
        return self


class StockAdjustment(RequestModel):
    """Payload for adding or subtracting stock.

    :param quantity: Positive number of units
    :param operation: ``add`` or ``subtract``
    """

    quantity: int = Field(gt=0)
    operation: StockDirection


class MaterialResponse(BaseModel):
    """A single material with a confirmation message."""

    message: str | None = None
    material: Material


class MaterialList(BaseModel):
    """One page of materials."""

    materials: list[Material]
    pagination: Pagination


class CategoryList(BaseModel):
    """Distinct categories of active materials."""

    categories: list[str]

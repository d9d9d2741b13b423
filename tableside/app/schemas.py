# schemas.py

"""Pydantic models for order input and the snapshots handed to callers."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .domain import LineItemState, OrderStatus, PaymentMethod, TableState


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; they are stored as UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class LineItemIn(BaseModel):
    """Input schema for a line item submitted by staff.

    ``id`` is present only when the item was previously returned by the
    service; its presence marks the item as an edit of an existing line.
    """

    id: Optional[int] = None
    name: str
    # a missing qty or price counts as zero towards the total
    qty: Optional[int] = None
    # matches the stored Numeric(10, 2) column
    price: Optional[Decimal] = Field(None, max_digits=10, decimal_places=2)
    note: Optional[str] = None
    state: LineItemState = LineItemState.NORMAL


class LineItemSnapshot(BaseModel):
    """Line item as stored on an order."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    qty: Optional[int] = None
    price: Optional[Decimal] = None
    note: Optional[str] = None
    state: LineItemState


class OrderSnapshot(BaseModel):
    """Full by-value representation of an order and its lines."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    table_name: str
    status: OrderStatus
    created_at: datetime
    total: Decimal
    billed: bool
    payment_method: Optional[PaymentMethod] = None
    invoiced_at: Optional[datetime] = None
    line_items: List[LineItemSnapshot] = []

    @field_validator("created_at", "invoiced_at")
    @classmethod
    def normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class TableSnapshot(BaseModel):
    """Dining table with its current occupancy."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    state: TableState

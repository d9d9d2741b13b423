"""Database models for orders, their line items and dining tables.

These models are kept isolated from any application wiring so that they can
be used in tests or migrations independently. An order owns its lines by
value: ``Order.line_items`` is the only navigable direction and lines carry
just the owning ``order_id``.
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import declarative_base, relationship

from .domain import LineItemState, OrderStatus, TableState

Base = declarative_base()


class DiningTable(Base):
    """Physical seating unit; occupancy is derived from unbilled orders."""

    __tablename__ = "tables"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    state = Column(String, nullable=False, default=TableState.FREE.value)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Order(Base):
    """A ticket of items for one table visit, billed as a unit."""

    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    table_name = Column(String, nullable=False)
    status = Column(String, nullable=False, default=OrderStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    total = Column(Numeric(10, 2), nullable=False, default=0)
    billed = Column(Boolean, nullable=False, default=False)
    payment_method = Column(String, nullable=True)
    invoiced_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)

    line_items = relationship(
        "OrderLine",
        order_by="OrderLine.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (Index("ix_orders_table_billed", "table_name", "billed"),)


class OrderLine(Base):
    """One item entry within an order."""

    __tablename__ = "order_lines"

    id = Column(Integer, primary_key=True)
    order_id = Column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    position = Column(Integer, nullable=False, default=0)
    name = Column(String, nullable=False)
    qty = Column(Integer, nullable=True)
    price = Column(Numeric(10, 2), nullable=True)
    note = Column(Text, nullable=True)
    state = Column(String, nullable=False, default=LineItemState.NORMAL.value)

"""Order status enumeration and allowed transitions."""

from __future__ import annotations

from enum import Enum

from ..errors import ValidationError


class OrderStatus(str, Enum):
    """Enumerate the lifecycle states for an order."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    READY = "ready"
    DELIVERED = "delivered"
    INVOICED = "invoiced"
    CANCELLED = "cancelled"


TERMINAL: frozenset[OrderStatus] = frozenset(
    {OrderStatus.INVOICED, OrderStatus.CANCELLED}
)

# INVOICED is deliberately absent: only invoicing may close an order.
TRANSITIONS: dict[OrderStatus, list[OrderStatus]] = {
    OrderStatus.PENDING: [
        OrderStatus.IN_PROGRESS,
        OrderStatus.READY,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    ],
    OrderStatus.IN_PROGRESS: [
        OrderStatus.READY,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    ],
    OrderStatus.READY: [OrderStatus.DELIVERED, OrderStatus.CANCELLED],
    OrderStatus.DELIVERED: [OrderStatus.CANCELLED],
    OrderStatus.INVOICED: [],
    OrderStatus.CANCELLED: [],
}


def can_transition(src: OrderStatus, dst: OrderStatus) -> bool:
    """Return ``True`` if an order can move from ``src`` to ``dst``."""

    return dst in TRANSITIONS.get(src, [])


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL


def parse_status(value: str | OrderStatus) -> OrderStatus:
    """Parse ``value`` into an :class:`OrderStatus`.

    Matching is case-insensitive on the enum value or name. Anything else is
    rejected; there is no fallback status.
    """

    if isinstance(value, OrderStatus):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"unrecognized order status {value!r}", field="status")
    key = value.strip().lower()
    for status in OrderStatus:
        if key in (status.value, status.name.lower()):
            return status
    raise ValidationError(f"unrecognized order status {value!r}", field="status")

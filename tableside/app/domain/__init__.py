"""Domain models and helpers."""

from .order_status import (
    TERMINAL,
    TRANSITIONS,
    OrderStatus,
    can_transition,
    is_terminal,
    parse_status,
)
from .payment import (
    UNKNOWN_PAYMENT_FALLBACK,
    PaymentChoice,
    PaymentMethod,
    parse_payment_method,
)
from .states import LineItemState, TableState

__all__ = [
    "OrderStatus",
    "TERMINAL",
    "TRANSITIONS",
    "can_transition",
    "is_terminal",
    "parse_status",
    "PaymentMethod",
    "PaymentChoice",
    "UNKNOWN_PAYMENT_FALLBACK",
    "parse_payment_method",
    "LineItemState",
    "TableState",
]

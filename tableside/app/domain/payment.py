"""Payment methods accepted when invoicing an order."""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"
    MOBILE_WALLET = "mobile_wallet"


# Policy: an unrecognized payment method is recorded as cash, never rejected.
UNKNOWN_PAYMENT_FALLBACK = PaymentMethod.CASH


class PaymentChoice(NamedTuple):
    """Result of parsing client payment input."""

    method: PaymentMethod
    fell_back: bool


def parse_payment_method(value: str | PaymentMethod | None) -> PaymentChoice:
    """Return the :class:`PaymentMethod` named by ``value``.

    ``fell_back`` is ``True`` when ``value`` was missing or unrecognized and
    :data:`UNKNOWN_PAYMENT_FALLBACK` was applied instead.
    """

    if isinstance(value, PaymentMethod):
        return PaymentChoice(value, False)
    if isinstance(value, str):
        key = value.strip().lower().replace("-", "_").replace(" ", "_")
        for method in PaymentMethod:
            if key == method.value:
                return PaymentChoice(method, False)
    return PaymentChoice(UNKNOWN_PAYMENT_FALLBACK, True)

"""Order total computation."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from ..domain import LineItemState

CENT = Decimal("0.01")


def _state(line: Any) -> str:
    state = getattr(line, "state", None)
    return state.value if isinstance(state, LineItemState) else str(state)


def line_amount(line: Any) -> Decimal:
    """Return ``price * qty`` for ``line``; a missing factor counts as zero."""

    price, qty = getattr(line, "price", None), getattr(line, "qty", None)
    if price is None or qty is None:
        return Decimal("0")
    try:
        return Decimal(str(price)) * int(qty)
    except (InvalidOperation, TypeError, ValueError):
        return Decimal("0")


def compute_total(lines: Iterable[Any]) -> Decimal:
    """Sum line amounts in insertion order, skipping cancelled lines."""

    total = Decimal("0")
    for line in lines:
        if _state(line) == LineItemState.CANCELLED.value:
            continue
        total += line_amount(line)
    return total.quantize(CENT)

from decimal import Decimal
from types import SimpleNamespace

from tableside.app.domain import LineItemState
from tableside.app.services.totals import compute_total, line_amount


def _line(qty, price, state=LineItemState.NORMAL):
    return SimpleNamespace(qty=qty, price=price, state=state)


def test_total_skips_cancelled_lines():
    lines = [
        _line(2, Decimal("3.50")),
        _line(1, Decimal("4.00"), LineItemState.ADDED),
        _line(3, Decimal("10.00"), LineItemState.CANCELLED),
        _line(1, Decimal("0.25"), "edited"),
    ]
    assert compute_total(lines) == Decimal("11.25")


def test_missing_price_or_qty_counts_as_zero():
    assert line_amount(_line(None, Decimal("5"))) == 0
    assert line_amount(_line(2, None)) == 0
    assert compute_total([_line(None, None), _line(1, Decimal("2"))]) == Decimal("2.00")


def test_empty_order_totals_zero():
    total = compute_total([])
    assert total == Decimal("0.00")
    assert str(total) == "0.00"


def test_cancelled_state_given_as_string():
    assert compute_total([_line(1, Decimal("9.99"), "cancelled")]) == Decimal("0.00")

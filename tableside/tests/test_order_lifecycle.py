"""Order state machine behaviour through the service entry point."""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from tableside.app.domain import LineItemState, OrderStatus, PaymentMethod, TableState
from tableside.app.errors import NotFound, ValidationError
from tableside.app.services import OrderLifecycle, TableCoordinator


@pytest.mark.anyio
async def test_create_computes_total_and_occupies_table(service):
    await service.create_table("T1")

    order = await service.create(
        "T1",
        [
            {"name": "Soup", "qty": 2, "price": "3.50"},
            {"name": "Bread", "price": "1.25"},
            {"name": "Wine", "qty": 1, "price": "20", "state": "cancelled"},
        ],
    )

    assert order.status is OrderStatus.IN_PROGRESS
    assert not order.billed
    assert order.total == Decimal("7.00")
    assert [li.state for li in order.line_items] == [
        LineItemState.NORMAL,
        LineItemState.NORMAL,
        LineItemState.CANCELLED,
    ]
    assert order.created_at.tzinfo is not None
    assert (await service.get_table_by_name("T1")).state is TableState.OCCUPIED


@pytest.mark.anyio
async def test_line_without_quantity_counts_as_zero(service):
    order = await service.create("T1", [{"name": "Soup", "price": "5"}])

    assert order.line_items[0].qty is None
    assert order.total == Decimal("0.00")
    assert (await service.get(order.id)).total == Decimal("0.00")


@pytest.mark.anyio
async def test_stored_total_matches_stored_lines(service):
    order = await service.create(
        "T1",
        [
            {"name": "Tea", "qty": 3, "price": "1.15"},
            {"name": "Cake", "qty": 2, "price": "4.5"},
        ],
    )

    reloaded = await service.get(order.id)

    expected = sum(li.price * li.qty for li in reloaded.line_items)
    assert reloaded.total == expected == order.total == Decimal("12.45")


@pytest.mark.anyio
async def test_create_without_lines_has_zero_total(service):
    order = await service.create("T9", None)
    assert order.total == Decimal("0.00")
    assert order.line_items == []


@pytest.mark.anyio
@pytest.mark.parametrize(
    "table, items, field",
    [
        ("", [{"name": "Soup"}], "table_name"),
        ("   ", [{"name": "Soup"}], "table_name"),
        ("T1", [{"name": ""}], "name"),
        ("T1", [{"name": "Soup", "qty": 0}], "qty"),
        ("T1", [{"name": "Soup", "qty": -1}], "qty"),
        ("T1", [{"name": "Soup", "price": "-1"}], "price"),
        ("T1", [{"qty": 1}], "name"),
        ("T1", [{"name": "Soup", "qty": 3, "price": "1.005"}], "price"),
    ],
)
async def test_invalid_create_persists_nothing(service, table, items, field):
    await service.create_table("T1")
    with pytest.raises(ValidationError) as info:
        await service.create(table, items)
    assert info.value.field == field
    assert await service.list() == []
    assert (await service.get_table_by_name("T1")).state is TableState.FREE


@pytest.mark.anyio
async def test_replace_line_items_tags_edits_and_drops_omitted(service):
    order = await service.create(
        "T1",
        [
            {"name": "Soup", "qty": 1, "price": "4.00"},
            {"name": "Salad", "qty": 1, "price": "6.00"},
        ],
    )
    soup, _salad = order.line_items

    updated = await service.replace_line_items(
        order.id,
        [
            {"id": soup.id, "name": "Soup", "qty": 2, "price": "4.00"},
            {"name": "Cake", "qty": 1, "price": "5.50"},
        ],
    )

    assert [li.name for li in updated.line_items] == ["Soup", "Cake"]
    assert [li.state for li in updated.line_items] == [
        LineItemState.EDITED,
        LineItemState.ADDED,
    ]
    assert updated.total == Decimal("13.50")
    assert (await service.get(order.id)).total == Decimal("13.50")


@pytest.mark.anyio
async def test_replace_with_empty_list_clears_lines(service):
    order = await service.create("T1", [{"name": "Soup", "qty": 1, "price": "4"}])
    updated = await service.replace_line_items(order.id, [])
    assert updated.line_items == []
    assert updated.total == Decimal("0.00")


@pytest.mark.anyio
async def test_cancel_line_item_removes_it_from_total(service):
    order = await service.create(
        "T1",
        [
            {"name": "Soup", "qty": 1, "price": "4.00"},
            {"name": "Steak", "qty": 1, "price": "18.00"},
        ],
    )
    steak = order.line_items[1]

    updated = await service.cancel_line_item(order.id, steak.id)

    assert updated.total == Decimal("4.00")
    assert updated.line_items[1].state is LineItemState.CANCELLED
    with pytest.raises(NotFound):
        await service.cancel_line_item(order.id, 999_999)


@pytest.mark.anyio
async def test_set_status_moves_forward_only(service):
    order = await service.create("T1", [{"name": "Soup"}])

    ready = await service.set_status(order.id, "READY")
    assert ready.status is OrderStatus.READY

    for bad in ("bogus", "in_progress", "invoiced"):
        with pytest.raises(ValidationError):
            await service.set_status(order.id, bad)
        assert (await service.get(order.id)).status is OrderStatus.READY

    same = await service.set_status(order.id, "ready")
    assert same.status is OrderStatus.READY


@pytest.mark.anyio
async def test_same_status_is_logged_as_unchanged(service, caplog):
    caplog.set_level(logging.INFO, logger="tableside.orders")
    order = await service.create("T1", [{"name": "Soup"}])
    caplog.clear()

    await service.set_status(order.id, "in_progress")

    messages = [r.getMessage() for r in caplog.records if r.name == "tableside.orders"]
    assert any("status unchanged" in m for m in messages)
    assert not any("->" in m for m in messages)


@pytest.mark.anyio
async def test_cancelled_order_is_closed_to_edits(service):
    order = await service.create("T1", [{"name": "Soup"}])
    await service.set_status(order.id, "cancelled")

    with pytest.raises(ValidationError):
        await service.replace_line_items(order.id, [{"name": "Cake"}])
    with pytest.raises(ValidationError):
        await service.invoice(order.id, "card")
    with pytest.raises(ValidationError):
        await service.set_status(order.id, "delivered")


@pytest.mark.anyio
async def test_invoice_records_payment(service):
    order = await service.create("T1", [{"name": "Soup", "qty": 1, "price": "4"}])

    billed = await service.invoice(order.id, "card")

    assert billed.status is OrderStatus.INVOICED
    assert billed.billed
    assert billed.payment_method is PaymentMethod.CARD
    assert billed.invoiced_at is not None
    with pytest.raises(ValidationError):
        await service.invoice(order.id, "card")


@pytest.mark.anyio
async def test_unknown_payment_method_falls_back_to_cash(service, caplog):
    caplog.set_level(logging.WARNING, logger="tableside.orders")
    order = await service.create("T1", [{"name": "Soup"}])

    billed = await service.invoice(order.id, "seashells")

    assert billed.payment_method is PaymentMethod.CASH
    assert any("seashells" in r.getMessage() for r in caplog.records)


@pytest.mark.anyio
async def test_remove_returns_last_snapshot(service):
    order = await service.create("T1", [{"name": "Soup", "qty": 1, "price": "4"}])

    removed = await service.remove(order.id)

    assert removed.id == order.id
    assert removed.total == Decimal("4.00")
    with pytest.raises(NotFound):
        await service.get(order.id)
    with pytest.raises(NotFound):
        await service.remove(order.id)


@pytest.mark.anyio
async def test_unknown_order_is_not_found(service):
    with pytest.raises(NotFound):
        await service.set_status(424242, "ready")
    with pytest.raises(NotFound):
        await service.invoice(424242, "cash")


@pytest.mark.anyio
async def test_queries(service):
    a = await service.create("T1", [{"name": "Soup"}])
    b = await service.create("T2", [{"name": "Cake"}])
    c = await service.create("T1", [{"name": "Tea"}])
    await service.invoice(a.id, "cash")
    await service.set_status(b.id, "ready")

    assert [o.id for o in await service.list()] == [a.id, b.id, c.id]
    assert [o.id for o in await service.list_by_table("T1")] == [a.id, c.id]
    assert [o.id for o in await service.list_by_table("T1", unbilled_only=True)] == [c.id]
    assert [o.id for o in await service.list_active()] == [b.id, c.id]
    assert [o.id for o in await service.list_by_status("ready")] == [b.id]

    today = datetime.now(timezone.utc).date()
    assert len(await service.list_for_day(today)) == 3
    assert await service.list_for_day(today - timedelta(days=1)) == []
    with pytest.raises(ValidationError):
        await service.list_by_status("nope")


@pytest.mark.anyio
async def test_lifecycle_runs_inside_callers_transaction(in_uow):
    lifecycle = OrderLifecycle(TableCoordinator())

    created, _ = await in_uow(
        lambda uow: lifecycle.create(uow, "T1", [{"name": "Soup", "price": "2"}])
    )
    fetched, _ = await in_uow(lambda uow: lifecycle.get(uow, created.id))

    assert fetched.id == created.id
    assert fetched.total == created.total == Decimal("2.00")
    assert [li.name for li in fetched.line_items] == ["Soup"]

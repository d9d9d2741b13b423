"""Order state machine.

Every method runs inside the caller's :class:`UnitOfWork`; nothing here
commits. Transitions that can change a table's occupancy (creation,
invoicing, removal) hand over to the :class:`TableCoordinator` after the
order itself has been written.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Mapping, Union

from pydantic import ValidationError as PydanticValidationError

from ..domain import (
    LineItemState,
    OrderStatus,
    can_transition,
    is_terminal,
    parse_payment_method,
    parse_status,
)
from ..errors import NotFound, ValidationError
from ..models import Order, OrderLine
from ..schemas import LineItemIn, OrderSnapshot
from .table_coordinator import TableCoordinator
from .totals import compute_total
from .unit_of_work import UnitOfWork

logger = logging.getLogger("tableside.orders")

LineInput = Union[LineItemIn, Mapping]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def snapshot(order: Order) -> OrderSnapshot:
    return OrderSnapshot.model_validate(order)


def parse_line_items(items: Iterable[LineInput] | None) -> List[LineItemIn]:
    """Validate raw line item input.

    Raises :class:`ValidationError` for an empty name, a quantity below one,
    a negative price or a price finer than a cent. A missing quantity or
    price is allowed and counts as zero towards the total.
    """

    parsed: List[LineItemIn] = []
    for idx, raw in enumerate(items or []):
        try:
            item = raw if isinstance(raw, LineItemIn) else LineItemIn.model_validate(raw)
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            loc = first.get("loc") or ("line_items",)
            raise ValidationError(
                f"line {idx}: {'.'.join(map(str, loc))} {first.get('msg')}",
                field=str(loc[0]),
            ) from exc
        if not item.name or not item.name.strip():
            raise ValidationError(f"line {idx}: name must not be empty", field="name")
        if item.qty is not None and item.qty <= 0:
            raise ValidationError(
                f"line {idx}: quantity must be positive, got {item.qty}", field="qty"
            )
        if item.price is not None and item.price < 0:
            raise ValidationError(
                f"line {idx}: price must not be negative, got {item.price}",
                field="price",
            )
        parsed.append(item)
    return parsed


def _build_lines(items: List[LineItemIn], state_for) -> List[OrderLine]:
    return [
        OrderLine(
            position=position,
            name=item.name.strip(),
            qty=item.qty,
            price=item.price,
            note=item.note,
            state=state_for(item).value,
        )
        for position, item in enumerate(items)
    ]


def _placed_state(item: LineItemIn) -> LineItemState:
    if item.state is LineItemState.CANCELLED:
        return LineItemState.CANCELLED
    return LineItemState.NORMAL


def _edit_state(item: LineItemIn) -> LineItemState:
    if item.state is LineItemState.CANCELLED:
        return LineItemState.CANCELLED
    return LineItemState.ADDED if item.id is None else LineItemState.EDITED


class OrderLifecycle:
    """Create, edit, advance, invoice and remove orders."""

    def __init__(self, tables: TableCoordinator) -> None:
        self.tables = tables

    async def _load(self, uow: UnitOfWork, order_id: int) -> Order:
        order = await uow.orders.get(order_id, for_update=True)
        if order is None:
            raise NotFound("order", order_id)
        return order

    @staticmethod
    def _require_open(order: Order, action: str) -> None:
        status = OrderStatus(order.status)
        if is_terminal(status):
            raise ValidationError(
                f"cannot {action} order {order.id}: it is {status.value}"
            )

    async def create(
        self, uow: UnitOfWork, table_name: str, line_items: Iterable[LineInput] | None
    ) -> OrderSnapshot:
        """Place a new order on ``table_name`` and occupy the table."""
        name = table_name.strip() if isinstance(table_name, str) else ""
        if not name:
            raise ValidationError("table name must not be empty", field="table_name")
        items = parse_line_items(line_items)

        now = _now()
        order = Order(
            table_name=name,
            # staff only submit once items are chosen, so orders start active
            status=OrderStatus.IN_PROGRESS.value,
            created_at=now,
            updated_at=now,
            billed=False,
        )
        order.line_items = _build_lines(items, _placed_state)
        order.total = compute_total(order.line_items)
        await uow.orders.save(order)
        logger.info(
            "order %s placed on %r with %d lines, total %s",
            order.id,
            name,
            len(order.line_items),
            order.total,
        )

        await self.tables.mark_occupied(uow, name)
        return snapshot(order)

    async def replace_line_items(
        self, uow: UnitOfWork, order_id: int, line_items: Iterable[LineInput] | None
    ) -> OrderSnapshot:
        """Replace the order's lines wholesale.

        Lines without an id are tagged ADDED and lines carrying one EDITED;
        a line submitted as CANCELLED stays CANCELLED. Lines left out of
        ``line_items`` are dropped.
        """
        items = parse_line_items(line_items)
        order = await self._load(uow, order_id)
        self._require_open(order, "edit")

        order.line_items = _build_lines(items, _edit_state)
        order.total = compute_total(order.line_items)
        order.updated_at = _now()
        await uow.orders.save(order)
        logger.info(
            "order %s lines replaced: %d lines, total %s",
            order.id,
            len(order.line_items),
            order.total,
        )
        return snapshot(order)

    async def cancel_line_item(
        self, uow: UnitOfWork, order_id: int, line_id: int
    ) -> OrderSnapshot:
        """Cancel one line in place; it stays on the order but leaves the total."""
        order = await self._load(uow, order_id)
        self._require_open(order, "edit")
        line = next((ln for ln in order.line_items if ln.id == line_id), None)
        if line is None:
            raise NotFound("line item", line_id)

        line.state = LineItemState.CANCELLED.value
        order.total = compute_total(order.line_items)
        order.updated_at = _now()
        await uow.orders.save(order)
        logger.info("order %s line %s cancelled, total %s", order.id, line_id, order.total)
        return snapshot(order)

    async def set_status(
        self, uow: UnitOfWork, order_id: int, status: Union[str, OrderStatus]
    ) -> OrderSnapshot:
        """Move the order to ``status``.

        Unrecognized values, backwards moves and moves out of a terminal
        status raise :class:`ValidationError`. INVOICED is reached only via
        :meth:`invoice`.
        """
        target = parse_status(status)
        if target is OrderStatus.INVOICED:
            raise ValidationError("orders are closed by invoicing", field="status")
        order = await self._load(uow, order_id)
        current = OrderStatus(order.status)
        if target is not current and not can_transition(current, target):
            raise ValidationError(
                f"cannot move order {order.id} from {current.value} to {target.value}",
                field="status",
            )
        order.status = target.value
        order.updated_at = _now()
        await uow.orders.save(order)
        if target is current:
            logger.info("order %s already %s; status unchanged", order.id, current.value)
        else:
            logger.info("order %s status %s -> %s", order.id, current.value, target.value)
        return snapshot(order)

    async def invoice(
        self, uow: UnitOfWork, order_id: int, payment_method: str | None = None
    ) -> OrderSnapshot:
        """Bill the order and free its table if nothing else is unbilled there."""
        choice = parse_payment_method(payment_method)
        order = await self._load(uow, order_id)
        self._require_open(order, "invoice")
        if choice.fell_back:
            logger.warning(
                "order %s: payment method %r not recognized, recorded as %s",
                order.id,
                payment_method,
                choice.method.value,
            )

        now = _now()
        order.status = OrderStatus.INVOICED.value
        order.billed = True
        order.payment_method = choice.method.value
        order.invoiced_at = now
        order.updated_at = now
        await uow.orders.save(order)
        logger.info(
            "order %s invoiced: %s paid by %s",
            order.id,
            order.total,
            choice.method.value,
        )

        await self.tables.reconcile_after_billing(uow, order.table_name)
        return snapshot(order)

    async def remove(self, uow: UnitOfWork, order_id: int) -> OrderSnapshot:
        """Delete the order and its lines; returns its last snapshot."""
        order = await uow.orders.get(order_id, for_update=True)
        if order is None:
            raise NotFound("order", order_id)
        final = snapshot(order)

        await self.tables.release_if_last(uow, order.table_name, excluding_order_id=order.id)
        await uow.orders.delete(order)
        logger.info("order %s removed from %r", final.id, final.table_name)
        return final

    # -- reads ------------------------------------------------------------

    async def get(self, uow: UnitOfWork, order_id: int) -> OrderSnapshot:
        order = await uow.orders.get(order_id)
        if order is None:
            raise NotFound("order", order_id)
        return snapshot(order)

    async def list_all(self, uow: UnitOfWork) -> List[OrderSnapshot]:
        return [snapshot(o) for o in await uow.orders.find_all()]

    async def list_by_table(
        self, uow: UnitOfWork, table_name: str, unbilled_only: bool = False
    ) -> List[OrderSnapshot]:
        if unbilled_only:
            orders = await uow.orders.find_unbilled_by_table(table_name)
        else:
            orders = await uow.orders.find_by_table(table_name)
        return [snapshot(o) for o in orders]

    async def list_active(self, uow: UnitOfWork) -> List[OrderSnapshot]:
        return [snapshot(o) for o in await uow.orders.find_unbilled()]

    async def list_by_status(
        self, uow: UnitOfWork, status: Union[str, OrderStatus]
    ) -> List[OrderSnapshot]:
        target = parse_status(status)
        return [snapshot(o) for o in await uow.orders.find_by_status(target)]

    async def list_for_day(self, uow: UnitOfWork, day: date) -> List[OrderSnapshot]:
        """Orders created on ``day`` (UTC calendar day)."""
        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        end = start + timedelta(days=1)
        return [snapshot(o) for o in await uow.orders.find_created_between(start, end)]

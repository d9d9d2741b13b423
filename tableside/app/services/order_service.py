"""Single entry point for order mutations and queries.

Each mutating call:

1. takes the per-order lock and, when the call can change a table's
   occupancy, the per-table lock (always in that order);
2. runs the :class:`OrderLifecycle` step and the table reconciliation it
   triggers in one transaction, retrying the whole cycle on
   :class:`ConflictError`;
3. after commit, announces table changes and schedules the broadcast of the
   resulting snapshot, without waiting for it, to the viewers registered at
   commit time.

Reads open their own session and never touch the coordinator or the hub.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack, nullcontext
from datetime import date
from typing import Awaitable, Callable, Iterable, List, Optional, Set, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db import shares_one_connection
from ..errors import ConflictError, NotFound, OrderCoreError
from ..models import DiningTable
from ..obs.logging import op_ctx
from ..routes_metrics import (
    invoices_generated_total,
    order_conflicts_total,
    orders_created_total,
)
from ..repos_sqlalchemy import translate_errors
from ..schemas import OrderSnapshot, TableSnapshot
from ..utils.keyed_lock import KeyedLock
from .broadcast_hub import BroadcastHub, ViewerConnection
from .order_lifecycle import LineInput, OrderLifecycle
from .receipt_qr import render_receipt_qr
from .table_coordinator import TableCoordinator
from .unit_of_work import UnitOfWork

logger = logging.getLogger("tableside.service")

T = TypeVar("T")


class OrderService:
    """Sequence lifecycle, table coordination and broadcast for each call."""

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        hub: BroadcastHub,
        *,
        tables: Optional[TableCoordinator] = None,
        conflict_retries: int = 3,
        restaurant_name: str = "Tableside",
    ) -> None:
        self._sessions = sessions
        self.hub = hub
        self.tables = tables or TableCoordinator()
        self.lifecycle = OrderLifecycle(self.tables)
        self.conflict_retries = max(1, conflict_retries)
        self.restaurant_name = restaurant_name
        self._order_locks = KeyedLock()
        bind = sessions.kw.get("bind")
        # one shared connection (in-memory SQLite) runs one transaction at a time
        self._store_gate = (
            asyncio.Lock()
            if bind is not None and shares_one_connection(bind)
            else nullcontext()
        )
        self._broadcasts: Set[asyncio.Task] = set()

    # -- plumbing -----------------------------------------------------------

    @translate_errors
    async def _run_once(self, step: Callable[[UnitOfWork], Awaitable[T]]) -> tuple[T, List[DiningTable]]:
        async with self._store_gate, self._sessions() as session:
            async with session.begin():
                uow = UnitOfWork.for_session(session)
                result = await step(uow)
        return result, uow.changed_tables

    async def _transaction(self, step: Callable[[UnitOfWork], Awaitable[T]]) -> tuple[T, List[DiningTable]]:
        """Run ``step`` in one transaction, retrying on conflicts."""
        for attempt in range(1, self.conflict_retries + 1):
            try:
                return await self._run_once(step)
            except ConflictError:
                order_conflicts_total.inc()
                if attempt == self.conflict_retries:
                    logger.error("giving up after %d conflicting attempts", attempt)
                    raise
                logger.warning("concurrent update detected, retrying (attempt %d)", attempt)
        raise AssertionError("unreachable")  # pragma: no cover

    @translate_errors
    async def _read(self, step: Callable[[UnitOfWork], Awaitable[T]]) -> T:
        async with self._store_gate, self._sessions() as session:
            return await step(UnitOfWork.for_session(session))

    async def _table_of(self, order_id: int) -> str:
        # an order's table name never changes, so it can be read before locking
        return (await self._read(lambda uow: self.lifecycle.get(uow, order_id))).table_name

    async def repair_pending(self) -> None:
        """Re-derive occupancy for tables whose last update failed."""
        for name in self.tables.take_pending():
            try:
                async with self.tables.serialized(name):
                    _, changed = await self._transaction(
                        lambda uow, name=name: self.tables.refresh(uow, name)
                    )
                await self.tables.announce(changed)
            except (OrderCoreError, SQLAlchemyError) as exc:
                logger.error("retrying occupancy for %r failed: %s", name, exc)
                self.tables.defer(name)

    async def _mutate(
        self,
        op: str,
        step: Callable[[UnitOfWork], Awaitable[OrderSnapshot]],
        *,
        order_id: Optional[int] = None,
        table_name: Optional[str] = None,
    ) -> OrderSnapshot:
        token = op_ctx.set((op, order_id))
        try:
            await self.repair_pending()
            async with AsyncExitStack() as locks:
                if order_id is not None:
                    await locks.enter_async_context(self._order_locks.hold(order_id))
                if table_name is None and op in _OCCUPANCY_OPS and order_id is not None:
                    table_name = await self._table_of(order_id)
                if table_name is not None:
                    await locks.enter_async_context(self.tables.serialized(table_name))
                result, changed = await self._transaction(step)
                # viewers that subscribe after the commit do not get this snapshot
                viewers = self.hub.snapshot()
            await self.tables.announce(changed)
            self._schedule_broadcast(result, viewers)
            return result
        finally:
            op_ctx.reset(token)

    def _schedule_broadcast(self, order: OrderSnapshot, viewers: List[ViewerConnection]) -> None:
        if not viewers:
            return
        task = asyncio.create_task(self._broadcast(order, viewers))
        self._broadcasts.add(task)
        task.add_done_callback(self._broadcasts.discard)

    async def _broadcast(self, order: OrderSnapshot, viewers: List[ViewerConnection]) -> None:
        try:
            await self.hub.publish(order, viewers=viewers)
        except Exception:
            logger.exception("broadcast of order %s failed", order.id)

    async def flush_broadcasts(self) -> None:
        """Wait for broadcasts scheduled so far."""
        while self._broadcasts:
            await asyncio.gather(*list(self._broadcasts), return_exceptions=True)

    # -- order mutations ---------------------------------------------------------

    async def create(self, table_name: str, line_items: Iterable[LineInput] | None) -> OrderSnapshot:
        name = table_name.strip() if isinstance(table_name, str) else ""
        order = await self._mutate(
            "create",
            lambda uow: self.lifecycle.create(uow, table_name, line_items),
            table_name=name or None,
        )
        orders_created_total.inc()
        return order

    async def replace_line_items(
        self, order_id: int, line_items: Iterable[LineInput] | None
    ) -> OrderSnapshot:
        return await self._mutate(
            "replace_line_items",
            lambda uow: self.lifecycle.replace_line_items(uow, order_id, line_items),
            order_id=order_id,
        )

    async def cancel_line_item(self, order_id: int, line_id: int) -> OrderSnapshot:
        return await self._mutate(
            "cancel_line_item",
            lambda uow: self.lifecycle.cancel_line_item(uow, order_id, line_id),
            order_id=order_id,
        )

    async def set_status(self, order_id: int, status: str) -> OrderSnapshot:
        return await self._mutate(
            "set_status",
            lambda uow: self.lifecycle.set_status(uow, order_id, status),
            order_id=order_id,
        )

    async def invoice(self, order_id: int, payment_method: str | None = None) -> OrderSnapshot:
        order = await self._mutate(
            "invoice",
            lambda uow: self.lifecycle.invoice(uow, order_id, payment_method),
            order_id=order_id,
        )
        invoices_generated_total.inc()
        return order

    async def remove(self, order_id: int) -> OrderSnapshot:
        return await self._mutate(
            "remove",
            lambda uow: self.lifecycle.remove(uow, order_id),
            order_id=order_id,
        )

    # -- order reads -----------------------------------------------------------

    async def get(self, order_id: int) -> OrderSnapshot:
        return await self._read(lambda uow: self.lifecycle.get(uow, order_id))

    async def list(self) -> List[OrderSnapshot]:
        return await self._read(self.lifecycle.list_all)

    async def list_by_table(self, table_name: str, unbilled_only: bool = False) -> List[OrderSnapshot]:
        return await self._read(
            lambda uow: self.lifecycle.list_by_table(uow, table_name, unbilled_only)
        )

    async def list_active(self) -> List[OrderSnapshot]:
        return await self._read(self.lifecycle.list_active)

    async def list_by_status(self, status: str) -> List[OrderSnapshot]:
        return await self._read(lambda uow: self.lifecycle.list_by_status(uow, status))

    async def list_for_day(self, day: date) -> List[OrderSnapshot]:
        return await self._read(lambda uow: self.lifecycle.list_for_day(uow, day))

    async def receipt_qr(self, order_id: int) -> bytes:
        """SVG QR code summarising an invoiced order."""
        order = await self.get(order_id)
        return render_receipt_qr(order, self.restaurant_name)

    # -- tables ---------------------------------------------------------------

    async def _table_admin(self, table_id: int, step, also: Iterable[str] = ()) -> TableSnapshot:
        current = await self._read(lambda uow: self.tables.get(uow, table_id))
        async with AsyncExitStack() as locks:
            # table locks are taken in name order
            for name in sorted({current.name, *also}):
                await locks.enter_async_context(self.tables.serialized(name))
            table, changed = await self._transaction(lambda uow: step(uow))
        await self.tables.announce(changed)
        return TableSnapshot.model_validate(table)

    async def create_table(self, name: str) -> TableSnapshot:
        table, _ = await self._transaction(lambda uow: self.tables.create(uow, name))
        return TableSnapshot.model_validate(table)

    async def rename_table(self, table_id: int, new_name: str) -> TableSnapshot:
        target = new_name.strip() if isinstance(new_name, str) else ""
        return await self._table_admin(
            table_id,
            lambda uow: self.tables.rename(uow, table_id, new_name),
            also=[target] if target else [],
        )

    async def delete_table(self, table_id: int) -> TableSnapshot:
        return await self._table_admin(
            table_id, lambda uow: self.tables.delete(uow, table_id)
        )

    async def reserve_table(self, table_id: int) -> TableSnapshot:
        return await self._table_admin(
            table_id, lambda uow: self.tables.reserve(uow, table_id)
        )

    async def release_table(self, table_id: int) -> TableSnapshot:
        return await self._table_admin(
            table_id, lambda uow: self.tables.release(uow, table_id)
        )

    async def get_table(self, table_id: int) -> TableSnapshot:
        table = await self._read(lambda uow: self.tables.get(uow, table_id))
        return TableSnapshot.model_validate(table)

    async def get_table_by_name(self, name: str) -> TableSnapshot:
        table = await self._read(lambda uow: uow.tables.find_by_name(name))
        if table is None:
            raise NotFound("table", name)
        return TableSnapshot.model_validate(table)

    async def list_tables(self) -> List[TableSnapshot]:
        tables = await self._read(self.tables.list_all)
        return [TableSnapshot.model_validate(t) for t in tables]


_OCCUPANCY_OPS = frozenset({"create", "invoice", "remove"})

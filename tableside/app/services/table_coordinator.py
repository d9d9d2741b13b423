"""Table occupancy derived from order billing state.

The coordinator is the only writer of ``DiningTable.state``. FREE and
OCCUPIED follow from whether a table has unbilled orders; RESERVED is a
manual override that staff set on an empty table and that the next order
placed on it replaces.

Occupancy writes run in a savepoint of the caller's transaction. If one
fails, the order change that triggered it still commits; the table name is
queued and re-derived from scratch by :meth:`TableCoordinator.refresh` on a
later call.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Iterable, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError

from ..domain import TableState
from ..errors import ConflictError, NotFound, StoreUnavailable, ValidationError
from ..models import DiningTable
from ..utils.keyed_lock import KeyedLock
from .unit_of_work import UnitOfWork

logger = logging.getLogger("tableside.tables")

TableHook = Callable[[DiningTable], Awaitable[None]]


class TableCoordinator:
    """Derive and persist each table's occupancy."""

    def __init__(self, hook: Optional[TableHook] = None) -> None:
        self._locks = KeyedLock()
        self._pending: Set[str] = set()
        self._hook = hook

    def serialized(self, table_name: str):
        """Hold the per-table lock; occupancy decisions for one table never overlap."""
        return self._locks.hold(table_name)

    @property
    def pending(self) -> frozenset[str]:
        return frozenset(self._pending)

    def defer(self, table_name: str) -> None:
        """Queue ``table_name`` for a later :meth:`refresh`."""
        self._pending.add(table_name)

    def take_pending(self) -> List[str]:
        names = sorted(self._pending)
        self._pending.clear()
        return names

    async def _apply(
        self,
        uow: UnitOfWork,
        table_name: str,
        decide: Callable[[DiningTable], Awaitable[Optional[TableState]]],
    ) -> Optional[DiningTable]:
        changed = None
        try:
            async with uow.savepoint():
                table = await uow.tables.find_by_name(table_name)
                if table is None:
                    logger.warning(
                        "no table named %r; occupancy left alone",
                        table_name,
                        extra={"table": table_name},
                    )
                    return None
                state = await decide(table)
                if state is not None and table.state != state.value:
                    table.state = state.value
                    await uow.tables.save(table)
                    changed = table
        except (StoreUnavailable, ConflictError, SQLAlchemyError) as exc:
            logger.error(
                "occupancy update for %r failed, queued for retry: %s",
                table_name,
                exc,
                extra={"table": table_name},
            )
            self._pending.add(table_name)
            return None
        self._pending.discard(table_name)
        if changed is not None:
            logger.info(
                "table %r is now %s",
                table_name,
                changed.state,
                extra={"table": table_name},
            )
            uow.changed_tables.append(changed)
        return changed

    async def mark_occupied(self, uow: UnitOfWork, table_name: str) -> None:
        """Mark ``table_name`` OCCUPIED; idempotent, never creates a table."""

        async def decide(table: DiningTable) -> TableState:
            return TableState.OCCUPIED

        await self._apply(uow, table_name, decide)

    async def reconcile_after_billing(self, uow: UnitOfWork, table_name: str) -> None:
        """Free ``table_name`` once none of its orders remain unbilled."""

        async def decide(table: DiningTable) -> Optional[TableState]:
            remaining = await uow.orders.count_unbilled_by_table(table_name)
            return TableState.FREE if remaining == 0 else None

        await self._apply(uow, table_name, decide)

    async def release_if_last(
        self, uow: UnitOfWork, table_name: str, excluding_order_id: int
    ) -> None:
        """Free ``table_name`` if the order being removed is its last unbilled one."""

        async def decide(table: DiningTable) -> Optional[TableState]:
            remaining = await uow.orders.count_unbilled_by_table(
                table_name, excluding=excluding_order_id
            )
            return TableState.FREE if remaining == 0 else None

        await self._apply(uow, table_name, decide)

    async def refresh(self, uow: UnitOfWork, table_name: str) -> None:
        """Re-derive occupancy of ``table_name`` from its unbilled orders."""

        async def decide(table: DiningTable) -> Optional[TableState]:
            if await uow.orders.count_unbilled_by_table(table_name):
                return TableState.OCCUPIED
            if table.state == TableState.RESERVED.value:
                return None
            return TableState.FREE

        await self._apply(uow, table_name, decide)

    async def announce(self, tables: Iterable[DiningTable]) -> None:
        """Run the change hook for committed occupancy changes."""
        if self._hook is None:
            return
        for table in tables:
            try:
                await self._hook(table)
            except Exception as exc:  # hooks are best effort
                logger.warning("table hook failed for %r: %s", table.name, exc)

    # -- table administration -------------------------------------------

    @staticmethod
    def _clean_name(name: str) -> str:
        cleaned = (name or "").strip() if isinstance(name, str) else ""
        if not cleaned:
            raise ValidationError("table name must not be empty", field="name")
        return cleaned

    async def _require(self, uow: UnitOfWork, table_id: int) -> DiningTable:
        table = await uow.tables.get(table_id)
        if table is None:
            raise NotFound("table", table_id)
        return table

    async def _require_idle(self, uow: UnitOfWork, table: DiningTable, action: str) -> None:
        if await uow.orders.count_unbilled_by_table(table.name):
            raise ValidationError(
                f"cannot {action} table {table.name!r} while it has unbilled orders"
            )

    async def get(self, uow: UnitOfWork, table_id: int) -> DiningTable:
        return await self._require(uow, table_id)

    async def list_all(self, uow: UnitOfWork) -> List[DiningTable]:
        return await uow.tables.find_all()

    async def create(self, uow: UnitOfWork, name: str) -> DiningTable:
        name = self._clean_name(name)
        if await uow.tables.find_by_name(name) is not None:
            raise ValidationError(f"table name {name!r} already in use", field="name")
        busy = await uow.orders.count_unbilled_by_table(name)
        table = DiningTable(
            name=name,
            state=(TableState.OCCUPIED if busy else TableState.FREE).value,
        )
        return await uow.tables.save(table)

    async def rename(self, uow: UnitOfWork, table_id: int, new_name: str) -> DiningTable:
        new_name = self._clean_name(new_name)
        table = await self._require(uow, table_id)
        if new_name == table.name:
            return table
        await self._require_idle(uow, table, "rename")
        if await uow.tables.find_by_name(new_name) is not None:
            raise ValidationError(
                f"table name {new_name!r} already in use", field="name"
            )
        table.name = new_name
        # orders already placed under the new name occupy the table
        if await uow.orders.count_unbilled_by_table(new_name):
            if table.state != TableState.OCCUPIED.value:
                table.state = TableState.OCCUPIED.value
                uow.changed_tables.append(table)
        return await uow.tables.save(table)

    async def delete(self, uow: UnitOfWork, table_id: int) -> DiningTable:
        table = await self._require(uow, table_id)
        await self._require_idle(uow, table, "delete")
        await uow.tables.delete(table)
        return table

    async def reserve(self, uow: UnitOfWork, table_id: int) -> DiningTable:
        """Manually reserve an idle table."""
        table = await self._require(uow, table_id)
        await self._require_idle(uow, table, "reserve")
        if table.state != TableState.RESERVED.value:
            table.state = TableState.RESERVED.value
            await uow.tables.save(table)
            uow.changed_tables.append(table)
        return table

    async def release(self, uow: UnitOfWork, table_id: int) -> DiningTable:
        """Drop a manual reservation and fall back to the derived state."""
        table = await self._require(uow, table_id)
        if table.state == TableState.RESERVED.value:
            busy = await uow.orders.count_unbilled_by_table(table.name)
            table.state = (TableState.OCCUPIED if busy else TableState.FREE).value
            await uow.tables.save(table)
            uow.changed_tables.append(table)
        return table

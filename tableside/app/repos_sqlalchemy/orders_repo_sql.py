"""SQLAlchemy-backed order repository.

These helpers implement order storage without any side effects beyond
database mutations. Line items are loaded eagerly with the order so that a
loaded order can be serialized outside the session.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain import OrderStatus
from ..models import Order
from ..repos.orders_repo import OrdersRepo
from . import translate_errors


class OrdersRepoSQL(OrdersRepo):
    """Order storage bound to ``session``."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @translate_errors
    async def get(self, order_id: int, *, for_update: bool = False) -> Optional[Order]:
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            # rendered as SELECT ... FOR UPDATE where the dialect supports it
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    @translate_errors
    async def save(self, order: Order) -> Order:
        self.session.add(order)
        await self.session.flush()
        return order

    @translate_errors
    async def delete(self, order: Order) -> None:
        await self.session.delete(order)
        await self.session.flush()

    async def _list(self, *criteria) -> List[Order]:
        result = await self.session.execute(
            select(Order).where(*criteria).order_by(Order.created_at, Order.id)
        )
        return list(result.scalars())

    @translate_errors
    async def find_all(self) -> List[Order]:
        return await self._list()

    @translate_errors
    async def find_by_table(self, table_name: str) -> List[Order]:
        return await self._list(Order.table_name == table_name)

    @translate_errors
    async def find_unbilled_by_table(self, table_name: str) -> List[Order]:
        return await self._list(
            Order.table_name == table_name, Order.billed.is_(False)
        )

    @translate_errors
    async def count_unbilled_by_table(
        self, table_name: str, excluding: int | None = None
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(Order)
            .where(Order.table_name == table_name, Order.billed.is_(False))
        )
        if excluding is not None:
            stmt = stmt.where(Order.id != excluding)
        return int(await self.session.scalar(stmt) or 0)

    @translate_errors
    async def find_unbilled(self) -> List[Order]:
        return await self._list(Order.billed.is_(False))

    @translate_errors
    async def find_by_status(self, status: OrderStatus) -> List[Order]:
        return await self._list(Order.status == OrderStatus(status).value)

    @translate_errors
    async def find_created_between(
        self, start: datetime, end: datetime
    ) -> List[Order]:
        return await self._list(Order.created_at >= start, Order.created_at < end)

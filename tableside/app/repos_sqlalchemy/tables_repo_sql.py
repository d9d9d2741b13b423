"""SQLAlchemy-backed dining table repository."""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ValidationError
from ..models import DiningTable
from ..repos.tables_repo import TablesRepo
from . import translate_errors


class TablesRepoSQL(TablesRepo):
    """Table storage bound to ``session``."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @translate_errors
    async def get(self, table_id: int) -> Optional[DiningTable]:
        return await self.session.get(DiningTable, table_id)

    @translate_errors
    async def find_by_name(self, name: str) -> Optional[DiningTable]:
        result = await self.session.execute(
            select(DiningTable).where(DiningTable.name == name)
        )
        return result.scalar_one_or_none()

    @translate_errors
    async def save(self, table: DiningTable) -> DiningTable:
        self.session.add(table)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise ValidationError(
                f"table name {table.name!r} already in use", field="name"
            ) from exc
        return table

    @translate_errors
    async def delete(self, table: DiningTable) -> None:
        await self.session.delete(table)
        await self.session.flush()

    @translate_errors
    async def find_all(self) -> List[DiningTable]:
        result = await self.session.execute(
            select(DiningTable).order_by(DiningTable.name)
        )
        return list(result.scalars())

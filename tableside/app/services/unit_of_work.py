from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from ..models import DiningTable
from ..repos import OrdersRepo, TablesRepo
from ..repos_sqlalchemy import OrdersRepoSQL, TablesRepoSQL


@dataclass
class UnitOfWork:
    """Stores bound to one session, plus tables whose occupancy changed."""

    session: AsyncSession
    orders: OrdersRepo
    tables: TablesRepo
    changed_tables: List[DiningTable] = field(default_factory=list)

    @classmethod
    def for_session(cls, session: AsyncSession) -> "UnitOfWork":
        return cls(session, OrdersRepoSQL(session), TablesRepoSQL(session))

    def savepoint(self):
        """Return a nested transaction context for a step allowed to fail alone."""
        return self.session.begin_nested()

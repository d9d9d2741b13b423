"""Repository interface for order persistence."""

from abc import ABC, abstractmethod


class OrdersRepo(ABC):
    """Contract for order storage scoped to one unit of work.

    Implementations must make ``get(..., for_update=True)`` followed by
    ``save`` an atomic read-modify-write for that order and raise
    :class:`~tableside.app.errors.ConflictError` when another writer got
    there first.
    """

    @abstractmethod
    async def get(self, order_id, *, for_update=False):
        """Return the order with ``order_id`` or ``None``."""
        raise NotImplementedError

    @abstractmethod
    async def save(self, order):
        """Persist ``order`` together with its line items."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, order):
        """Delete ``order`` and its line items."""
        raise NotImplementedError

    @abstractmethod
    async def find_all(self):
        """List every order, oldest first."""
        raise NotImplementedError

    @abstractmethod
    async def find_by_table(self, table_name):
        """List all orders placed on ``table_name``."""
        raise NotImplementedError

    @abstractmethod
    async def find_unbilled_by_table(self, table_name):
        """List the orders on ``table_name`` that are not billed yet."""
        raise NotImplementedError

    @abstractmethod
    async def count_unbilled_by_table(self, table_name, excluding=None):
        """Count unbilled orders on ``table_name``, ignoring ``excluding``."""
        raise NotImplementedError

    @abstractmethod
    async def find_unbilled(self):
        """List every unbilled order, oldest first."""
        raise NotImplementedError

    @abstractmethod
    async def find_by_status(self, status):
        """List orders currently in ``status``."""
        raise NotImplementedError

    @abstractmethod
    async def find_created_between(self, start, end):
        """List orders created in the half-open range ``[start, end)``."""
        raise NotImplementedError

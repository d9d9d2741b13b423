"""Repository interface for dining tables."""

from abc import ABC, abstractmethod


class TablesRepo(ABC):
    """Contract for table storage scoped to one unit of work."""

    @abstractmethod
    async def get(self, table_id):
        """Return the table with ``table_id`` or ``None``."""
        raise NotImplementedError

    @abstractmethod
    async def find_by_name(self, name):
        """Return the table called ``name`` or ``None``."""
        raise NotImplementedError

    @abstractmethod
    async def save(self, table):
        """Persist ``table``."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, table):
        """Delete ``table``."""
        raise NotImplementedError

    @abstractmethod
    async def find_all(self):
        """List every table ordered by name."""
        raise NotImplementedError

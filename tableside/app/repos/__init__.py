"""Abstract storage contracts used by the order core."""

from .orders_repo import OrdersRepo
from .tables_repo import TablesRepo

__all__ = ["OrdersRepo", "TablesRepo"]

"""Order core services."""

from .broadcast_hub import BroadcastHub, QueueTransport, ViewerConnection
from .order_lifecycle import OrderLifecycle
from .order_service import OrderService
from .table_coordinator import TableCoordinator
from .unit_of_work import UnitOfWork

__all__ = [
    "BroadcastHub",
    "QueueTransport",
    "ViewerConnection",
    "OrderLifecycle",
    "OrderService",
    "TableCoordinator",
    "UnitOfWork",
]

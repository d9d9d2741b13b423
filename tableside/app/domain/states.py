"""Line item and table state enumerations."""

from __future__ import annotations

from enum import Enum


class LineItemState(str, Enum):
    """Edit state of a single line within an order."""

    NORMAL = "normal"
    EDITED = "edited"
    ADDED = "added"
    CANCELLED = "cancelled"


class TableState(str, Enum):
    """Occupancy of a table.

    ``FREE`` and ``OCCUPIED`` are derived from the table's unbilled orders.
    ``RESERVED`` is only ever set by staff through a manual override.
    """

    FREE = "free"
    OCCUPIED = "occupied"
    RESERVED = "reserved"

"""Error taxonomy shared by the order core."""

from __future__ import annotations


class OrderCoreError(Exception):
    """Base class for errors raised by the order core."""


class ValidationError(OrderCoreError, ValueError):
    """Raised for malformed input before anything is persisted."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class NotFound(OrderCoreError, LookupError):
    """Raised when an order, line item or table id is unknown."""

    def __init__(self, kind: str, key: object) -> None:
        super().__init__(f"{kind} {key!r} not found")
        self.kind = kind
        self.key = key


class ConflictError(OrderCoreError):
    """Raised when a concurrent writer updated the record first."""


class StoreUnavailable(OrderCoreError):
    """Raised when the persistence layer cannot be reached."""

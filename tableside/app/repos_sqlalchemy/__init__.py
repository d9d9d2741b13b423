"""SQLAlchemy-backed repository implementations.

Repositories wrap one ``AsyncSession`` and therefore one unit of work. They
also translate driver failures into the order core's error taxonomy so that
callers never see SQLAlchemy exceptions directly.
"""

from __future__ import annotations

import functools
import logging

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, StoreUnavailable

logger = logging.getLogger("tableside.store")


def translate_errors(func):
    """Map SQLAlchemy failures raised by ``func`` onto core errors."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except StaleDataError as exc:
            raise ConflictError(str(exc)) from exc
        except (OperationalError, InterfaceError) as exc:
            logger.error("store unavailable in %s: %s", func.__qualname__, exc)
            raise StoreUnavailable(str(exc)) from exc

    return wrapper


from .orders_repo_sql import OrdersRepoSQL  # noqa: E402
from .tables_repo_sql import TablesRepoSQL  # noqa: E402

__all__ = ["OrdersRepoSQL", "TablesRepoSQL", "translate_errors"]

"""Statement timing for the order store.

Statements slower than ``slow_ms`` are logged at WARNING together with the
order operation that issued them; a small sample of the rest is logged at
DEBUG. Parameters are never logged, only a short digest of them.
"""

from __future__ import annotations

import hashlib
import logging
import os
import random
import time

from sqlalchemy import event
from sqlalchemy.engine import Engine

from .logging import op_ctx

SLOW_QUERY_MS = int(os.getenv("DB_SLOW_QUERY_MS", "200"))
SAMPLE_RATE = 0.01

logger = logging.getLogger("tableside.obs")


def _shorten(statement: str, limit: int = 160) -> str:
    sql = " ".join(statement.split())
    return sql if len(sql) <= limit else sql[: limit - 3] + "..."


def add_query_logger(
    engine: Engine,
    label: str,
    *,
    slow_ms: int = SLOW_QUERY_MS,
    sample_rate: float = SAMPLE_RATE,
) -> None:
    """Time every statement ``engine`` runs; ``label`` names the store in logs."""
    target = engine.sync_engine if hasattr(engine, "sync_engine") else engine

    @event.listens_for(target, "before_cursor_execute")
    def _start(conn, cursor, statement, parameters, context, executemany):  # type: ignore[no-untyped-def]
        context._tableside_started = time.perf_counter()

    @event.listens_for(target, "after_cursor_execute")
    def _finish(conn, cursor, statement, parameters, context, executemany):  # type: ignore[no-untyped-def]
        started = getattr(context, "_tableside_started", None)
        if started is None:
            return
        elapsed_ms = (time.perf_counter() - started) * 1000
        slow = elapsed_ms > slow_ms
        if not slow and random.random() >= sample_rate:
            return
        current = op_ctx.get(None)
        digest = hashlib.sha256(repr(parameters).encode()).hexdigest()[:8]
        logger.log(
            logging.WARNING if slow else logging.DEBUG,
            "%s %.1fms store=%s op=%s sql=%s params=%s",
            "slow statement" if slow else "statement",
            elapsed_ms,
            label,
            current[0] if current else "-",
            _shorten(statement),
            digest,
        )

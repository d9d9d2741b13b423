"""Per-IP limits for long-lived order streams.

``MAX_CONN_PER_IP`` (default ``20``) caps concurrent streams per client
address; over the cap the stream is refused with HTTP 429.
"""

from __future__ import annotations

import os
import threading
from collections import defaultdict

from fastapi import HTTPException

MAX_CONN_PER_IP = int(os.getenv("MAX_CONN_PER_IP", "20"))

connections: dict[str, int] = defaultdict(int)
_lock = threading.Lock()


def register(ip: str, limit: int | None = None) -> None:
    """Increment connection count for ``ip`` or raise ``HTTPException``."""
    with _lock:
        if connections[ip] >= (limit or MAX_CONN_PER_IP):
            raise HTTPException(status_code=429, detail="RETRY")
        connections[ip] += 1


def unregister(ip: str) -> None:
    """Decrement connection count for ``ip``."""
    with _lock:
        if connections[ip] > 0:
            connections[ip] -= 1
        if not connections[ip]:
            del connections[ip]

"""Live fanout of order snapshots to connected viewers.

Every viewer (kitchen display, waiter terminal) is a
:class:`ViewerConnection` registered with the :class:`BroadcastHub`. The
hub writes each event to each connection through a
:class:`ViewerTransport`; the default :class:`QueueTransport` places events
on the connection's bounded queue, which the SSE route drains.

Delivery is best effort and failure isolated:

* a write that fails or exceeds ``write_timeout`` drops that viewer only;
* :meth:`BroadcastHub.publish` never raises;
* the registry lock is held only to add, remove or copy entries, never
  across a write.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple

from pydantic import BaseModel

from ..routes_metrics import broadcast_failures_total, sse_clients_gauge

logger = logging.getLogger("tableside.broadcast")

CONNECTED_EVENT = "connected"
ORDER_EVENT = "new-order"
CONNECTED_MESSAGE = b"order stream established"

Event = Tuple[int, str, bytes]


@dataclass(eq=False)
class ViewerConnection:
    """Server-side handle for one live viewer stream."""

    queue: "asyncio.Queue[Optional[Event]]"
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    alive: bool = True
    last_activity: float = field(default_factory=time.monotonic)
    _seq: "itertools.count[int]" = field(default_factory=lambda: itertools.count(1))

    def next_seq(self) -> int:
        return next(self._seq)

    def touch(self) -> None:
        self.last_activity = time.monotonic()

    def close(self) -> None:
        """Mark the stream dead and wake its reader with the end sentinel."""
        if not self.alive:
            return
        self.alive = False
        while True:
            try:
                self.queue.put_nowait(None)
                return
            except asyncio.QueueFull:
                # discard the oldest pending event to make room for the sentinel
                try:
                    self.queue.get_nowait()
                except asyncio.QueueEmpty:  # pragma: no cover - race with reader
                    pass


class ViewerTransport(Protocol):
    """Write side of the viewer gateway."""

    async def send(self, connection: ViewerConnection, event: str, payload: bytes) -> None:
        ...


class QueueTransport:
    """Deliver events onto each connection's bounded queue."""

    async def send(self, connection: ViewerConnection, event: str, payload: bytes) -> None:
        if not connection.alive:
            raise ConnectionError(f"viewer {connection.id} is closed")
        await connection.queue.put((connection.next_seq(), event, payload))
        connection.touch()


class BroadcastHub:
    """Registry of live viewers with snapshot-then-deliver fanout."""

    def __init__(
        self,
        transport: Optional[ViewerTransport] = None,
        *,
        write_timeout: float = 5.0,
        queue_max: int = 100,
    ) -> None:
        self.transport: ViewerTransport = transport or QueueTransport()
        self.write_timeout = write_timeout
        self.queue_max = queue_max
        self._viewers: Dict[str, ViewerConnection] = {}
        self._lock = threading.Lock()

    def subscribe(self) -> ViewerConnection:
        """Register a viewer and queue its ``connected`` event."""
        connection = ViewerConnection(queue=asyncio.Queue(maxsize=self.queue_max))
        # a fresh queue always has room, so this lands before any order event
        connection.queue.put_nowait(
            (connection.next_seq(), CONNECTED_EVENT, CONNECTED_MESSAGE)
        )
        with self._lock:
            self._viewers[connection.id] = connection
            count = len(self._viewers)
        sse_clients_gauge.set(count)
        logger.info("viewer %s connected; %d active", connection.id, count)
        return connection

    on_open = subscribe

    def unsubscribe(self, connection: ViewerConnection) -> None:
        """Forget ``connection``; calling it twice is harmless."""
        with self._lock:
            removed = self._viewers.pop(connection.id, None)
            count = len(self._viewers)
        connection.close()
        if removed is not None:
            sse_clients_gauge.set(count)
            logger.info("viewer %s disconnected; %d active", connection.id, count)

    def on_close(self, connection: ViewerConnection) -> None:
        self.unsubscribe(connection)

    def on_error(self, connection: ViewerConnection, exc: BaseException) -> None:
        logger.warning("viewer %s stream error: %s", connection.id, exc)
        self.unsubscribe(connection)

    def active_count(self) -> int:
        with self._lock:
            return len(self._viewers)

    def snapshot(self) -> List[ViewerConnection]:
        with self._lock:
            return list(self._viewers.values())

    async def _deliver(self, connection: ViewerConnection, event: str, payload: bytes) -> bool:
        try:
            await asyncio.wait_for(
                self.transport.send(connection, event, payload),
                timeout=self.write_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "viewer %s did not accept %s within %.1fs; dropping",
                connection.id,
                event,
                self.write_timeout,
            )
            return False
        except Exception as exc:
            logger.warning("delivery to viewer %s failed: %s", connection.id, exc)
            return False
        return True

    async def publish(
        self,
        order: Any,
        event: str = ORDER_EVENT,
        *,
        viewers: Optional[List[ViewerConnection]] = None,
    ) -> int:
        """Send ``order`` to live viewers and return the delivery count.

        ``viewers`` is a registry :meth:`snapshot` taken by the caller; it
        defaults to the viewers registered now. Viewers closed since the
        snapshot are skipped. ``order`` is serialized once; pydantic models
        are dumped as JSON and ``bytes`` are sent unchanged. Viewers whose
        delivery failed are removed after the pass.
        """
        targets = self.snapshot() if viewers is None else [v for v in viewers if v.alive]
        if not targets:
            logger.debug("no viewers connected; %s not sent", event)
            return 0
        try:
            payload = _serialize(order)
        except Exception:
            logger.exception("could not serialize %s payload", event)
            return 0

        results = await asyncio.gather(
            *(self._deliver(viewer, event, payload) for viewer in targets)
        )
        failed = [viewer for viewer, ok in zip(targets, results) if not ok]
        for viewer in failed:
            self.unsubscribe(viewer)
        if failed:
            broadcast_failures_total.inc(len(failed))
            logger.info("removed %d failed viewers", len(failed))
        return len(targets) - len(failed)

    def close_all(self) -> None:
        for viewer in self.snapshot():
            self.unsubscribe(viewer)


def _serialize(order: Any) -> bytes:
    if isinstance(order, bytes):
        return order
    if isinstance(order, BaseModel):
        return order.model_dump_json().encode()
    return str(order).encode()

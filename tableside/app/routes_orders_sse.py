"""Server-Sent Events stream of live order changes.

A viewer receives ``event: connected`` as soon as it subscribes, then one
``event: new-order`` frame per completed order mutation carrying the full
order snapshot as JSON. Frames carry a per-stream ``id`` that increases by
one per event. A ``:keepalive`` comment is sent when the stream has been
idle for ``sse_keepalive_secs`` and the stream ends after
``viewer_timeout_secs``; clients are expected to reconnect. There is no
replay: a reconnecting viewer only sees events from then on.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterator, Callable, Optional

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from .middlewares.realtime_guard import register, unregister
from .services.broadcast_hub import BroadcastHub, ViewerConnection

logger = logging.getLogger("tableside.sse")

router = APIRouter()


def format_event(seq: int, event: str, payload: bytes) -> str:
    """Render one SSE frame."""
    lines = payload.decode("utf-8", errors="replace").splitlines() or [""]
    data = "".join(f"data: {line}\n" for line in lines)
    return f"event: {event}\nid: {seq}\n{data}\n"


async def event_stream(
    hub: BroadcastHub,
    *,
    keepalive: float,
    lifetime: float,
    on_finish: Optional[Callable[[], None]] = None,
) -> AsyncIterator[str]:
    """Subscribe to ``hub`` and yield SSE frames until the stream closes or expires.

    The viewer is registered only once the stream is iterated, so a response
    that never starts leaves nothing behind in the hub.
    """
    connection: Optional[ViewerConnection] = None
    deadline = time.monotonic() + lifetime
    try:
        connection = hub.subscribe()
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.info("viewer %s stream lifetime reached", connection.id)
                break
            try:
                item = await asyncio.wait_for(
                    connection.queue.get(), timeout=min(keepalive, remaining)
                )
            except asyncio.TimeoutError:
                yield ":keepalive\n\n"
                continue
            if item is None:
                break
            seq, event, payload = item
            connection.touch()
            yield format_event(seq, event, payload)
    except Exception as exc:
        if connection is not None:
            hub.on_error(connection, exc)
        raise
    finally:
        if connection is not None:
            hub.on_close(connection)
        if on_finish is not None:
            on_finish()


@router.get(
    "/api/orders/stream",
    response_class=StreamingResponse,
    responses={200: {"content": {"text/event-stream": {}}}},
)
async def stream_orders(request: Request) -> StreamingResponse:
    """Stream order snapshots to a kitchen or floor display via SSE."""

    hub: BroadcastHub = request.app.state.hub
    settings = request.app.state.settings

    ip = request.client.host if request.client else "?"
    register(ip, settings.max_conn_per_ip)
    released = False

    def release() -> None:
        # runs from the stream and again once the response is done
        nonlocal released
        if not released:
            released = True
            unregister(ip)

    return StreamingResponse(
        event_stream(
            hub,
            keepalive=settings.sse_keepalive_secs,
            lifetime=settings.viewer_timeout_secs,
            on_finish=release,
        ),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        background=BackgroundTask(release),
    )

import asyncio
import json
import time
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from tableside.app.schemas import OrderSnapshot
from tableside.app.services import BroadcastHub, QueueTransport
from tableside.app.services.broadcast_hub import (
    CONNECTED_EVENT,
    CONNECTED_MESSAGE,
    ORDER_EVENT,
)


def _drain(connection):
    items = []
    while not connection.queue.empty():
        items.append(connection.queue.get_nowait())
    return items


class SelectiveTransport(QueueTransport):
    """Fails or stalls for chosen connections."""

    def __init__(self, failing=(), stalling=()):
        self.failing = set(failing)
        self.stalling = set(stalling)

    async def send(self, connection, event, payload):
        if connection.id in self.failing:
            raise ConnectionError("broken pipe")
        if connection.id in self.stalling:
            await asyncio.sleep(10)
        await super().send(connection, event, payload)


def test_connected_event_is_first():
    hub = BroadcastHub()
    connection = hub.subscribe()
    assert _drain(connection) == [(1, CONNECTED_EVENT, CONNECTED_MESSAGE)]
    assert hub.active_count() == 1


@pytest.mark.anyio
async def test_publish_reaches_every_viewer_in_order():
    hub = BroadcastHub()
    first, second = hub.subscribe(), hub.subscribe()

    assert await hub.publish(b"one") == 2
    assert await hub.publish(b"two") == 2

    for connection in (first, second):
        assert _drain(connection) == [
            (1, CONNECTED_EVENT, CONNECTED_MESSAGE),
            (2, ORDER_EVENT, b"one"),
            (3, ORDER_EVENT, b"two"),
        ]


@pytest.mark.anyio
async def test_publish_to_snapshot_skips_later_and_closed_viewers():
    hub = BroadcastHub()
    first, gone = hub.subscribe(), hub.subscribe()
    viewers = hub.snapshot()
    hub.unsubscribe(gone)
    late = hub.subscribe()

    assert await hub.publish(b"x", viewers=viewers) == 1

    assert _drain(first)[-1] == (2, ORDER_EVENT, b"x")
    assert _drain(late) == [(1, CONNECTED_EVENT, CONNECTED_MESSAGE)]


@pytest.mark.anyio
async def test_order_snapshot_is_sent_as_json():
    hub = BroadcastHub()
    connection = hub.subscribe()
    order = OrderSnapshot(
        id=5,
        table_name="T1",
        status="ready",
        created_at=datetime.now(timezone.utc),
        total=Decimal("12.50"),
        billed=False,
    )

    await hub.publish(order)

    _, (_, event, payload) = _drain(connection)
    assert event == ORDER_EVENT
    body = json.loads(payload)
    assert body["id"] == 5
    assert body["table_name"] == "T1"
    assert body["status"] == "ready"


@pytest.mark.anyio
async def test_publish_without_viewers_is_a_no_op():
    hub = BroadcastHub()
    assert await hub.publish(b"nobody") == 0


@pytest.mark.anyio
async def test_failing_viewer_is_dropped_others_still_served():
    transport = SelectiveTransport()
    hub = BroadcastHub(transport)
    good, bad = hub.subscribe(), hub.subscribe()
    transport.failing.add(bad.id)

    assert await hub.publish(b"x") == 1

    assert hub.active_count() == 1
    assert not bad.alive
    assert _drain(good)[-1] == (2, ORDER_EVENT, b"x")
    assert await hub.publish(b"y") == 1


@pytest.mark.anyio
async def test_stalled_viewer_times_out_without_delaying_others():
    transport = SelectiveTransport()
    hub = BroadcastHub(transport, write_timeout=0.05)
    fast, slow = hub.subscribe(), hub.subscribe()
    transport.stalling.add(slow.id)

    started = time.monotonic()
    delivered = await hub.publish(b"x")
    elapsed = time.monotonic() - started

    assert delivered == 1
    assert elapsed < 1
    assert hub.snapshot() == [fast]


@pytest.mark.anyio
async def test_viewer_with_full_queue_is_dropped():
    hub = BroadcastHub(write_timeout=0.05, queue_max=1)
    connection = hub.subscribe()

    assert await hub.publish(b"x") == 0

    assert hub.active_count() == 0
    assert connection.queue.get_nowait() is None


def test_unsubscribe_is_idempotent():
    hub = BroadcastHub()
    connection = hub.subscribe()

    hub.unsubscribe(connection)
    hub.on_close(connection)
    hub.on_error(connection, RuntimeError("late"))

    assert hub.active_count() == 0
    assert _drain(connection) == [(1, CONNECTED_EVENT, CONNECTED_MESSAGE), None]


def test_close_all_ends_every_stream():
    hub = BroadcastHub()
    connections = [hub.subscribe() for _ in range(3)]
    hub.close_all()
    assert hub.active_count() == 0
    assert all(_drain(c)[-1] is None for c in connections)

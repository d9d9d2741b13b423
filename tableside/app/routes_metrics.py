# routes_metrics.py

"""Prometheus metrics and /metrics endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, generate_latest

# Counters
orders_created_total = Counter("orders_created_total", "Total orders created")
orders_created_total.inc(0)

invoices_generated_total = Counter(
    "invoices_generated_total", "Total orders invoiced"
)
invoices_generated_total.inc(0)

order_conflicts_total = Counter(
    "order_conflicts_total", "Total concurrent-update conflicts retried"
)
order_conflicts_total.inc(0)

broadcast_failures_total = Counter(
    "broadcast_failures_total", "Total viewer deliveries that failed or timed out"
)
broadcast_failures_total.inc(0)

# Gauges
sse_clients_gauge = Gauge("sse_clients", "Currently connected order stream viewers")
sse_clients_gauge.set(0)

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

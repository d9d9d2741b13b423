"""FastAPI application exposing the live order stream and metrics."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from redis.asyncio import from_url
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings, get_settings

from .db import get_engine, init_models, make_sessionmaker
from .hooks.table_map import publish_table_state
from .obs import configure_logging
from .routes_metrics import router as metrics_router
from .routes_orders_sse import router as orders_sse_router
from .services import BroadcastHub, OrderService, TableCoordinator

logger = logging.getLogger("tableside.api")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application and attach the order core to ``app.state``.

    The engine, broadcast hub and :class:`OrderService` are created eagerly;
    the schema is created on startup and everything is torn down on
    shutdown.
    """

    settings = settings or get_settings()
    configure_logging(settings.log_level.upper())

    engine = get_engine(settings.database_url)
    redis_client = (
        from_url(settings.redis_url, decode_responses=True)
        if settings.redis_url
        else None
    )
    hook = partial(publish_table_state, redis_client) if redis_client else None
    hub = BroadcastHub(
        write_timeout=settings.broadcast_write_timeout_secs,
        queue_max=settings.viewer_queue_max,
    )
    service = OrderService(
        make_sessionmaker(engine),
        hub,
        tables=TableCoordinator(hook),
        conflict_retries=settings.conflict_retries,
        restaurant_name=settings.receipt_restaurant_name,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await init_models(engine)
        logger.info("order core ready")
        try:
            yield
        finally:
            await service.flush_broadcasts()
            hub.close_all()
            if redis_client is not None:
                await redis_client.aclose()
            await engine.dispose()

    app = FastAPI(title="Tableside API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.redis = redis_client
    app.state.hub = hub
    app.state.service = service

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(
            exc.detail, extra={"status": exc.status_code, "route": request.url.path}
        )
        return JSONResponse(
            {"ok": False, "error": {"code": exc.status_code, "message": exc.detail}},
            status_code=exc.status_code,
        )

    app.include_router(orders_sse_router)
    app.include_router(metrics_router)
    return app

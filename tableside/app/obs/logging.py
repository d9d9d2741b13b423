import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

# Operation currently executing in this task, e.g. ("invoice", 42)
op_ctx: ContextVar[tuple[str, Any] | None] = ContextVar("order_op", default=None)


class OperationFilter(logging.Filter):
    """Attach the current order operation and order id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - trivial
        current = op_ctx.get(None)
        record.op, record.order_id = current if current else (None, None)
        return True


class JsonFormatter(logging.Formatter):
    """Render logs as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "op": getattr(record, "op", None),
            "order_id": getattr(record, "order_id", None),
            "table": getattr(record, "table", None),
            "msg": record.getMessage(),
        }
        if record.exc_info:
            data["exc"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure root logger with JSON formatting."""

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    handler.addFilter(OperationFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

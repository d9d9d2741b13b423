"""Observability helpers."""

from .logging import JsonFormatter, configure_logging, op_ctx  # re-export
from .queries import add_query_logger

__all__ = ["JsonFormatter", "configure_logging", "op_ctx", "add_query_logger"]

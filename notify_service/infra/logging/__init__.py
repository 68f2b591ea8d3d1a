"""Structured logging infrastructure.

Usage:
    from notify_service.infra.logging import get_lazy_logger, log_context, setup_logging

    setup_logging()
    with log_context(tenant_id="store-1"):
        logging.getLogger(__name__).info("Dispatching")
"""

from __future__ import annotations

from .config import configure_logging, setup_logging, shutdown
from .context import ContextInjectingFilter, get_log_context, log_context
from .formatters import JSONFormatter
from .lazy import LazyLoggerAdapter, get_lazy_logger

__all__ = [
    "ContextInjectingFilter",
    "JSONFormatter",
    "LazyLoggerAdapter",
    "configure_logging",
    "get_lazy_logger",
    "get_log_context",
    "log_context",
    "setup_logging",
    "shutdown",
]

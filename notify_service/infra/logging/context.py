"""Context management for structured logging.

Provides automatic context injection into log records using contextvars,
so that tenant, notification and channel identifiers end up on every log
line emitted while a delivery is in progress, without passing them around.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

# Each async task gets its own copy automatically
_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


def get_log_context() -> dict[str, Any]:
    """Get a copy of the current logging context."""
    return _log_context.get().copy()


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Scope extra log context to a block and restore the previous one.

    Batch sweeps process many notifications in one task, so per-item
    context must not leak into the next item.

    Example:
        ```python
        for item in batch:
            with log_context(notification_id=str(item.id), channel=item.channel):
                await process(item)
        ```
    """
    token = _log_context.set({**_log_context.get(), **kwargs})
    try:
        yield
    finally:
        _log_context.reset(token)


class ContextInjectingFilter(logging.Filter):
    """Logging filter that injects the ContextVar context into each LogRecord.

    Applied to the root logger so every logger benefits; fields are picked up
    by JSONFormatter without any code changes at call sites.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Inject context into log record.

        Returns:
            True (always allow the record to be logged).
        """
        for key, value in _log_context.get().items():
            # Don't overwrite existing attributes
            if not hasattr(record, key):
                setattr(record, key, value)
        return True

"""Deferred log messages.

Passing a callable instead of a string postpones building the message (bucket
dumps, rendered bodies, payload sizes) until the level is known to be enabled.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import Any


class LazyLoggerAdapter(logging.LoggerAdapter):
    """Adapter whose message and positional args may be zero-arg callables.

    ``LoggerAdapter.debug`` and friends all funnel through ``log``, which is
    the only place the callables get evaluated.
    """

    def log(self, level: int, msg: Any, *args: Any, **kwargs: Any) -> None:
        if not self.isEnabledFor(level):
            return
        if callable(msg):
            msg = msg()
        args = tuple(arg() if callable(arg) else arg for arg in args)
        super().log(level, msg, *args, **kwargs)

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        # Bound context fills in around call-site extras instead of replacing them
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {})}
        return msg, kwargs


def get_lazy_logger(name: str, **context: Any) -> LazyLoggerAdapter:
    """Lazy adapter for ``name`` with ``context`` bound to every record.

        lazy = get_lazy_logger(__name__, component="ratelimit")
        lazy.debug(lambda: f"{len(buckets)} buckets tracked")
    """
    return LazyLoggerAdapter(logging.getLogger(name), context)

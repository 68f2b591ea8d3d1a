"""Common base for the notification services."""

from __future__ import annotations

import logging

from notify_service.infra.logging import get_lazy_logger


class BaseService:
    """Gives each service a named logger pair.

    ``self.logger`` takes the INFO and above events with structured
    ``extra``; ``self._lazy`` takes DEBUG messages passed as callables so
    payload formatting is skipped when DEBUG is off.
    """

    def __init__(self) -> None:
        name = type(self).__name__
        self.logger = logging.getLogger(name)
        self._lazy = get_lazy_logger(name)

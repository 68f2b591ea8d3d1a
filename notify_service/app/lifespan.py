"""Application lifespan management.

Startup order: logging, database, task broker, notification runtime.
Shutdown runs in reverse.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from notify_service.core.settings import get_app_settings, get_db_settings
from notify_service.features.notifications.runtime import NotificationRuntime, set_runtime
from notify_service.infra.database.session import close_database, init_database
from notify_service.infra.logging import setup_logging, shutdown
from notify_service.infra.tasks.broker import start_taskiq, stop_taskiq
from notify_service.workers.notifications.tasks import enqueue_dispatch

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    setup_logging()
    app_settings = get_app_settings()
    db_settings = get_db_settings()

    if db_settings.enabled:
        await init_database(create_tables=db_settings.is_sqlite)
    await start_taskiq()

    runtime = NotificationRuntime(dispatch=enqueue_dispatch)
    await runtime.start()
    app.state.notification_runtime = runtime
    set_runtime(runtime)
    logger.info(
        "Application started",
        extra={"service": app_settings.service_name, "environment": app_settings.environment},
    )

    try:
        yield
    finally:
        set_runtime(None)
        await runtime.stop()
        await stop_taskiq()
        if db_settings.enabled:
            await close_database()
        logger.info("Application stopped")
        shutdown()

"""Notification task definitions.

This module provides:
- Periodic queue processing (pending and retryable deliveries, queued email)
- Deferred dispatch of a single notification
- Periodic reservation reminder sweep
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from uuid import UUID

from taskiq import TaskiqEvents, TaskiqState

from notify_service.features.notifications.runtime import (
    NotificationRuntime,
    get_runtime,
    runtime_published,
    set_runtime,
)
from notify_service.infra.logging import log_context, setup_logging, shutdown
from notify_service.infra.tasks.broker import broker

if TYPE_CHECKING:
    from notify_service.features.notifications.channels import SendResult

logger = logging.getLogger(__name__)


@broker.on_event(TaskiqEvents.WORKER_STARTUP)
async def start_worker_runtime(state: TaskiqState) -> None:
    """Build the worker's own runtime; API processes publish theirs from the lifespan.

    The in-memory broker fires worker events inside the API process too, so
    the handler only builds a runtime in a real worker that has none yet.
    """
    if not broker.is_worker_process or runtime_published():
        return
    setup_logging()
    runtime = NotificationRuntime()
    await runtime.start()
    state.notification_runtime = runtime
    set_runtime(runtime)


@broker.on_event(TaskiqEvents.WORKER_SHUTDOWN)
async def stop_worker_runtime(state: TaskiqState) -> None:
    runtime: NotificationRuntime | None = getattr(state, "notification_runtime", None)
    if runtime is None:
        return
    await runtime.stop()
    state.notification_runtime = None
    set_runtime(None)
    shutdown()


@broker.task(schedule=[{"cron": "* * * * *"}])
async def process_notification_queue(limit: int | None = None) -> dict[str, Any]:
    """Process one batch of pending deliveries.

    Scheduled: every minute.

    Returns:
        Batch counts: processed, succeeded, failed, rate_limited.
    """
    runtime = get_runtime()
    async with runtime.session_factory() as session:
        result = await runtime.queue.process_batch(session, limit=limit)
        await session.commit()
    return {
        "processed": result.processed,
        "succeeded": result.succeeded,
        "failed": result.failed,
        "rate_limited": result.rate_limited,
    }


@broker.task(retry_on_error=True, max_retries=3)
async def dispatch_notification(notification_id: str) -> dict[str, Any]:
    """Send every queued channel of one notification.

    Kicked by the reservation router after its commit when dispatch is deferred.
    """
    runtime = get_runtime()
    with log_context(notification_id=notification_id):
        async with runtime.session_factory() as session:
            results: dict[str, SendResult] = await runtime.service.send_notification(
                session, UUID(notification_id)
            )
            await session.commit()
    logger.info(
        "Deferred dispatch finished",
        extra={
            "notification_id": notification_id,
            "channels": sorted(results),
            "operation": "tasks.dispatch_notification",
        },
    )
    return {channel: result.success for channel, result in results.items()}


@broker.task(schedule=[{"cron": "*/5 * * * *"}])
async def process_due_reminders() -> dict[str, Any]:
    """Send reservation reminders that fall due.

    Scheduled: every 5 minutes, matching the default reminder window.
    """
    result = await get_runtime().reminders.process_due_reminders()
    return {
        "processed": result.processed,
        "sent": result.sent,
        "failed": result.failed,
        "skipped": result.skipped,
        "errors": list(result.errors),
    }


async def enqueue_dispatch(notification_id: UUID) -> None:
    """After-commit hook handed to the runtime for deferred dispatch."""
    await dispatch_notification.kiq(str(notification_id))

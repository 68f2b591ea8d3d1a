"""Taskiq broker for notification background work.

With ``TASK_BROKER_URL`` set, tasks go through RabbitMQ (taskiq-aio-pika) and
run in a separate worker process:

    taskiq worker notify_service.infra.tasks.broker:broker

Without it, an ``InMemoryBroker`` executes tasks inside the calling process,
which is what local runs and tests use.

Periodic tasks carry a ``schedule`` label; run the scheduler next to the
worker to fire them:

    taskiq scheduler notify_service.infra.tasks.broker:scheduler
"""

from __future__ import annotations

import logging

from taskiq import AsyncBroker, InMemoryBroker, TaskiqScheduler
from taskiq.middlewares import SimpleRetryMiddleware
from taskiq.schedule_sources import LabelScheduleSource
from taskiq_aio_pika import AioPikaBroker

from notify_service.core.settings import get_task_settings

logger = logging.getLogger(__name__)


def _create_broker() -> AsyncBroker:
    task_settings = get_task_settings()
    if not task_settings.is_configured:
        logger.info("TASK_BROKER_URL not set, using in-memory task broker")
        return InMemoryBroker()

    logger.info(
        "Taskiq broker configured",
        extra={"queue": task_settings.queue_name, "operation": "tasks.broker"},
    )
    return AioPikaBroker(
        url=task_settings.broker_url,
        queue_name=task_settings.queue_name,
        declare_exchange=True,
        declare_queues=True,
    ).with_middlewares(SimpleRetryMiddleware(default_retry_count=3))


broker: AsyncBroker = _create_broker()
scheduler = TaskiqScheduler(broker=broker, sources=[LabelScheduleSource(broker)])


async def start_taskiq() -> None:
    """Start the broker for enqueueing from the API process.

    Skipped inside worker processes, where taskiq starts the broker itself.
    """
    if broker.is_worker_process:
        return
    logger.info("Starting Taskiq broker")
    await broker.startup()


async def stop_taskiq() -> None:
    if broker.is_worker_process:
        return
    logger.info("Stopping Taskiq broker")
    try:
        await broker.shutdown()
    except Exception as e:
        logger.exception("Error stopping Taskiq broker", extra={"error": str(e)})


# Register task modules with the broker; the worker imports this module.
import notify_service.workers.notifications.tasks  # noqa: E402, F401

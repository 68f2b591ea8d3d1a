"""Notification tasks: queue processing, deferred dispatch and reminders."""

from __future__ import annotations

from .tasks import (
    dispatch_notification,
    enqueue_dispatch,
    process_due_reminders,
    process_notification_queue,
)

__all__ = [
    "dispatch_notification",
    "enqueue_dispatch",
    "process_due_reminders",
    "process_notification_queue",
]

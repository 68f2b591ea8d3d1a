"""Modular Pydantic Settings v2 configuration.

Settings are split by domain (app/db/email/logging/notifications/tasks), each
with its own environment prefix, and read through LRU-cached loaders:

    from notify_service.core.settings import get_notification_settings
"""

from __future__ import annotations

from .app import AppSettings
from .database import DatabaseSettings
from .email import EmailSettings
from .loader import (
    clear_all_caches,
    get_app_settings,
    get_db_settings,
    get_email_settings,
    get_logging_settings,
    get_notification_settings,
    get_task_settings,
)
from .logs import LoggingSettings
from .notifications import NotificationSettings
from .tasks import TaskSettings

__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "EmailSettings",
    "LoggingSettings",
    "NotificationSettings",
    "TaskSettings",
    "clear_all_caches",
    "get_app_settings",
    "get_db_settings",
    "get_email_settings",
    "get_logging_settings",
    "get_notification_settings",
    "get_task_settings",
]

"""Cached settings loaders.

Each ``get_*_settings`` call validates the environment once per process.
Tests that change environment variables call ``clear_all_caches()``
afterwards so the next call re-reads them.
"""

from __future__ import annotations

from functools import lru_cache

from .app import AppSettings
from .database import DatabaseSettings
from .email import EmailSettings
from .logs import LoggingSettings
from .notifications import NotificationSettings
from .tasks import TaskSettings


@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    return AppSettings()


@lru_cache(maxsize=1)
def get_db_settings() -> DatabaseSettings:
    return DatabaseSettings()


@lru_cache(maxsize=1)
def get_email_settings() -> EmailSettings:
    """SMTP relay settings for the email channel adapter."""
    return EmailSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    return LoggingSettings()


@lru_cache(maxsize=1)
def get_notification_settings() -> NotificationSettings:
    """Dispatch mode, cache TTLs, timeouts and provider endpoints."""
    return NotificationSettings()


@lru_cache(maxsize=1)
def get_task_settings() -> TaskSettings:
    return TaskSettings()


_LOADERS = (
    get_app_settings,
    get_db_settings,
    get_email_settings,
    get_logging_settings,
    get_notification_settings,
    get_task_settings,
)


def clear_all_caches() -> None:
    for loader in _LOADERS:
        loader.cache_clear()

"""Explicit construction of the notification object graph.

One ``NotificationRuntime`` per process owns the shared HTTP client, the
adapter registry, the rate limiter, the preference cache and every service
built on them. The FastAPI lifespan and the taskiq worker both start one and
publish it through :func:`set_runtime`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from notify_service.core.settings import get_email_settings, get_notification_settings
from notify_service.features.notifications.channels import build_default_registry
from notify_service.features.notifications.preferences import PreferenceCache, PreferenceManager
from notify_service.features.notifications.queue import QueueManager
from notify_service.features.notifications.repository import get_system_settings_repository
from notify_service.features.notifications.service import NotificationService
from notify_service.features.notifications.templates import TemplateEngine
from notify_service.features.notifications.tracker import DeliveryTracker
from notify_service.features.reservations.events import ReservationNotificationRouter
from notify_service.features.reservations.reminders import ReminderProcessor
from notify_service.infra.database.session import get_session_factory
from notify_service.infra.ratelimit import GlobalRateLimitProvider, NotificationRateLimiter

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from notify_service.core.settings import EmailSettings, NotificationSettings

logger = logging.getLogger(__name__)


class NotificationRuntime:
    """Shared notification components for one process.

    Example:
        runtime = NotificationRuntime()
        await runtime.start()
        async with runtime.session_factory() as session:
            await runtime.service.send_notification(session, notification_id)
        await runtime.stop()
    """

    def __init__(
        self,
        *,
        settings: NotificationSettings | None = None,
        email_settings: EmailSettings | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        http_client: httpx.AsyncClient | None = None,
        dispatch: Callable[[UUID], Awaitable[None]] | None = None,
    ) -> None:
        """Build every component; nothing is started yet.

        Args:
            settings: Notification settings (defaults to the cached loader)
            email_settings: SMTP relay settings (defaults to the cached loader)
            session_factory: Session factory (defaults to the process engine)
            http_client: Shared client for provider APIs; owned when omitted
            dispatch: Called with each routed notification id after commit
                when ``dispatch_mode`` is ``deferred``
        """
        self.settings = settings or get_notification_settings()
        self.session_factory = session_factory or get_session_factory()
        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.http_timeout_seconds)
        )

        self.registry = build_default_registry(
            self.http_client,
            self.session_factory,
            self.settings,
            email_settings or get_email_settings(),
        )
        self.rate_limit_provider = GlobalRateLimitProvider(
            self._load_global_rate_limit,
            ttl_seconds=self.settings.rate_limit_config_ttl_seconds,
        )
        self.rate_limiter = NotificationRateLimiter(
            self.rate_limit_provider,
            prune_interval_seconds=self.settings.rate_limit_prune_interval_seconds,
        )
        self.preference_cache = PreferenceCache(
            ttl_seconds=self.settings.preference_cache_ttl_seconds,
            sweep_interval_seconds=self.settings.preference_cache_sweep_seconds,
        )

        self.tracker = DeliveryTracker()
        self.templates = TemplateEngine(default_locale=self.settings.default_locale)
        self.preferences = PreferenceManager(self.preference_cache)
        self.queue = QueueManager(
            self.registry,
            self.rate_limiter,
            self.tracker,
            send_timeout=self.settings.send_timeout_seconds,
            default_batch_size=self.settings.default_batch_size,
            default_max_attempts=self.settings.default_max_attempts,
        )
        self.service = NotificationService(
            self.preferences,
            self.queue,
            self.tracker,
            self.templates,
            dispatch_mode=self.settings.dispatch_mode,
        )

        after_commit = dispatch if self.settings.dispatch_mode == "deferred" else None
        self.reservation_router = ReservationNotificationRouter(
            self.service, self.session_factory, after_commit=after_commit
        )
        self.reminders = ReminderProcessor(
            self.reservation_router,
            self.session_factory,
            window_minutes=self.settings.reminder_window_minutes,
        )
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._started:
            return
        await self.preference_cache.start()
        self._started = True
        logger.info(
            "Notification runtime started",
            extra={
                "dispatch_mode": self.settings.dispatch_mode,
                "channels": self.registry.channels(),
                "operation": "runtime.start",
            },
        )

    async def stop(self) -> None:
        if not self._started:
            return
        await self.preference_cache.stop()
        self.rate_limiter.clear()
        if self._owns_http_client:
            await self.http_client.aclose()
        self._started = False
        logger.info("Notification runtime stopped", extra={"operation": "runtime.stop"})

    async def _load_global_rate_limit(self) -> int | None:
        async with self.session_factory() as session:
            row = await get_system_settings_repository().get_current(session)
        return row.global_rate_limit_per_minute if row else None


_runtime: NotificationRuntime | None = None


def set_runtime(runtime: NotificationRuntime | None) -> None:
    global _runtime
    _runtime = runtime


def get_runtime() -> NotificationRuntime:
    """Return the runtime started for this process.

    Raises:
        RuntimeError: If no runtime has been started
    """
    if _runtime is None:
        msg = "Notification runtime is not started"
        raise RuntimeError(msg)
    return _runtime


def runtime_published() -> bool:
    return _runtime is not None

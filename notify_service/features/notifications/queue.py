"""Queueing and processing of per-channel deliveries.

Email is queued in the ``email_queue`` table and its ledger row is created
when the item is first processed; every other channel is queued as a
``pending`` ledger row. ``process_batch`` drains both in priority order.
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from notify_service.core.database import as_utc, utcnow
from notify_service.core.services.base import BaseService
from notify_service.features.notifications.channels.base import (
    ChannelConfigData,
    OutboundMessage,
    SendResult,
)
from notify_service.features.notifications.channels.email import render_html_frame
from notify_service.features.notifications.channels.sms import normalize_phone
from notify_service.features.notifications.enums import DeliveryState, NotificationChannel
from notify_service.features.notifications.exceptions import (
    ChannelConfigurationError,
    ChannelNotRegisteredError,
    NotificationNotFoundError,
)
from notify_service.features.notifications.metrics import (
    notification_delivery_duration_seconds,
    notification_delivery_total,
    notification_rate_limited_total,
)
from notify_service.features.notifications.models import EmailQueueItem
from notify_service.features.notifications.repository import (
    ChannelConfigRepository,
    DeliveryStatusRepository,
    EmailQueueRepository,
    NotificationRepository,
    RecipientRepository,
    SystemSettingsRepository,
    get_channel_config_repository,
    get_delivery_status_repository,
    get_email_queue_repository,
    get_notification_repository,
    get_recipient_repository,
    get_system_settings_repository,
)
from notify_service.features.notifications.templates.engine import strip_html
from notify_service.infra.logging import log_context

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from notify_service.features.notifications.channels.registry import ChannelAdapterRegistry
    from notify_service.features.notifications.models import (
        Notification,
        NotificationDeliveryStatus,
    )
    from notify_service.features.notifications.tracker import DeliveryTracker
    from notify_service.infra.ratelimit import NotificationRateLimiter

_DONE_STATES = frozenset(
    {
        DeliveryState.SENT.value,
        DeliveryState.DELIVERED.value,
        DeliveryState.READ.value,
        DeliveryState.BOUNCED.value,
    }
)


@dataclass(frozen=True, slots=True)
class BatchResult:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    rate_limited: int = 0


@dataclass(frozen=True, slots=True)
class _WorkItem:
    priority: int
    created_at: datetime
    notification_id: UUID
    channel: str


class QueueManager(BaseService):
    """Moves deliveries from ``pending`` to a terminal send outcome.

    Transport failures never escape :meth:`process_notification`; they are
    written to the ledger as ``failed`` and retried by later batches until
    the attempt ceiling. Configuration errors are recorded and re-raised.
    """

    def __init__(
        self,
        registry: ChannelAdapterRegistry,
        rate_limiter: NotificationRateLimiter,
        tracker: DeliveryTracker,
        *,
        send_timeout: float = 15.0,
        default_batch_size: int = 100,
        default_max_attempts: int = 3,
        notification_repository: NotificationRepository | None = None,
        delivery_repository: DeliveryStatusRepository | None = None,
        email_queue_repository: EmailQueueRepository | None = None,
        channel_config_repository: ChannelConfigRepository | None = None,
        system_settings_repository: SystemSettingsRepository | None = None,
        recipient_repository: RecipientRepository | None = None,
    ) -> None:
        super().__init__()
        self._registry = registry
        self._rate_limiter = rate_limiter
        self._tracker = tracker
        self._send_timeout = send_timeout
        self._default_batch_size = default_batch_size
        self._default_max_attempts = default_max_attempts
        self._notifications = notification_repository or get_notification_repository()
        self._deliveries = delivery_repository or get_delivery_status_repository()
        self._email_queue = email_queue_repository or get_email_queue_repository()
        self._channel_configs = channel_config_repository or get_channel_config_repository()
        self._system_settings = system_settings_repository or get_system_settings_repository()
        self._recipients = recipient_repository or get_recipient_repository()

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    async def add_to_queue(
        self,
        session: AsyncSession,
        notification: Notification,
        channels: Iterable[str],
    ) -> list[str]:
        """Queue ``notification`` on each channel; returns the channels queued.

        Email needs a recipient address and SMS a valid phone number; without
        them the channel is skipped rather than queued to fail later.
        """
        recipient = await self._recipients.get(session, notification.recipient_id)
        queued: list[str] = []

        for channel in dict.fromkeys(str(c) for c in channels):
            if channel == NotificationChannel.EMAIL:
                if recipient is None or not recipient.email:
                    self._skip(notification, channel, "no email address")
                    continue
                await self._enqueue_email(
                    session, notification, recipient.email, recipient.name, recipient.locale
                )
            elif channel == NotificationChannel.SMS:
                if recipient is None or normalize_phone(recipient.phone_number) is None:
                    self._skip(notification, channel, "no valid phone number")
                    continue
                await self._ensure_row(session, notification.id, channel)
            else:
                await self._ensure_row(session, notification.id, channel)
            queued.append(channel)

        await session.flush()
        self.logger.info(
            "Notification queued",
            extra={
                "notification_id": str(notification.id),
                "channels": queued,
                "operation": "queue.add",
            },
        )
        return queued

    def _skip(self, notification: Notification, channel: str, reason: str) -> None:
        self.logger.info(
            "Channel skipped at enqueue",
            extra={
                "notification_id": str(notification.id),
                "channel": channel,
                "reason": reason,
                "operation": "queue.add",
            },
        )

    async def _enqueue_email(
        self,
        session: AsyncSession,
        notification: Notification,
        address: str,
        name: str | None,
        locale: str | None,
    ) -> EmailQueueItem:
        existing = await self._email_queue.get_for_notification(session, notification.id)
        if existing is not None:
            return existing
        text_body = strip_html(notification.body) if "<" in notification.body else notification.body
        item = EmailQueueItem(
            notification_id=notification.id,
            tenant_id=notification.tenant_id,
            to_address=address,
            to_name=name,
            subject=notification.subject,
            text_body=text_body,
            html_body=render_html_frame(
                notification.subject,
                text_body,
                action_url=notification.action_url,
                locale=locale,
            ),
            priority=notification.priority,
            send_tries=0,
        )
        session.add(item)
        return item

    async def _ensure_row(
        self, session: AsyncSession, notification_id: UUID, channel: str
    ) -> NotificationDeliveryStatus:
        row = await self._deliveries.get_for(session, notification_id, channel)
        if row is None:
            row = await self._tracker.update_status(
                session, notification_id, channel, DeliveryState.PENDING
            )
        return row

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_notification(
        self, session: AsyncSession, notification_id: UUID, channel: str
    ) -> SendResult:
        """Send one (notification, channel) delivery.

        Raises:
            NotificationNotFoundError: If the notification does not exist.
            ChannelNotRegisteredError: If no adapter handles ``channel``.
            ChannelConfigurationError: If the tenant config is unusable.
        """
        notification = await self._notifications.get(session, notification_id)
        if notification is None:
            raise NotificationNotFoundError(notification_id)

        with log_context(
            notification_id=str(notification_id),
            channel=channel,
            tenant_id=notification.tenant_id,
        ):
            return await self._process(session, notification, channel)

    async def _process(
        self, session: AsyncSession, notification: Notification, channel: str
    ) -> SendResult:
        row = await self._ensure_row(session, notification.id, channel)
        if row.status in _DONE_STATES:
            return SendResult.ok(row.provider_message_id, delivered_at=row.delivered_at)
        if row.status == DeliveryState.FAILED:
            row = await self._tracker.update_status(
                session, notification.id, channel, DeliveryState.PENDING
            )

        email_item = None
        if channel == NotificationChannel.EMAIL:
            email_item = await self._email_queue.get_for_notification(session, notification.id)

        decision = await self._rate_limiter.check_rate_limit(channel, notification.tenant_id)
        if not decision.allowed:
            result = SendResult.deferred(decision.retry_after or 1)
            row.error_message = result.error
            await session.flush()
            notification_rate_limited_total.labels(channel=channel).inc()
            return result

        try:
            adapter = self._registry.get(channel)
        except ChannelNotRegisteredError as exc:
            await self._record(session, row, email_item, SendResult.failure(exc.detail))
            raise

        if notification.tenant_id and not await adapter.is_enabled(notification.tenant_id):
            result = SendResult.failure(f"Channel {channel} is not enabled for tenant")
            await self._record(session, row, email_item, result)
            return result

        config = await self.get_channel_config(session, notification.tenant_id, channel)
        recipient = await self._recipients.get(session, notification.recipient_id)
        message = OutboundMessage.build(notification, recipient)
        if email_item is not None:
            message = dataclasses.replace(
                message,
                email=email_item.to_address,
                recipient_name=email_item.to_name,
                text_body=email_item.text_body,
                html_body=email_item.html_body,
            )

        started = time.perf_counter()
        try:
            async with asyncio.timeout(self._send_timeout):
                result = await adapter.send(message, config)
        except TimeoutError:
            result = SendResult.failure(f"Send timed out after {self._send_timeout:g}s")
        except ChannelConfigurationError as exc:
            await self._record(session, row, email_item, SendResult.failure(exc.detail))
            raise
        except Exception as exc:
            self.logger.exception("Adapter send raised", extra={"operation": "queue.send"})
            result = SendResult.failure(str(exc) or exc.__class__.__name__)
        notification_delivery_duration_seconds.labels(channel=channel).observe(
            time.perf_counter() - started
        )

        await self._record(session, row, email_item, result)
        return result

    async def _record(
        self,
        session: AsyncSession,
        row: NotificationDeliveryStatus,
        email_item: EmailQueueItem | None,
        result: SendResult,
    ) -> None:
        row.attempt_count += 1
        status = DeliveryState.SENT if result.success else DeliveryState.FAILED
        await self._tracker.update_status(
            session,
            row.notification_id,
            row.channel,
            status,
            provider_message_id=result.provider_message_id,
            error_message=result.error,
        )
        if result.success and result.delivered_at is not None:
            await self._tracker.update_status(
                session,
                row.notification_id,
                row.channel,
                DeliveryState.DELIVERED,
                delivered_at=result.delivered_at,
            )

        if email_item is not None:
            email_item.send_tries += 1
            if result.success:
                email_item.sent_on = utcnow()
                email_item.provider_message_id = result.provider_message_id
                email_item.last_error = None
            else:
                email_item.last_error = result.error
            await session.flush()

        notification_delivery_total.labels(channel=row.channel, status=status.value).inc()
        log = self.logger.info if result.success else self.logger.warning
        log(
            "Delivery attempt recorded",
            extra={
                "status": status.value,
                "attempt": row.attempt_count,
                "provider_message_id": result.provider_message_id,
                "error": result.error,
                "operation": "queue.record",
            },
        )

    async def process_batch(self, session: AsyncSession, limit: int | None = None) -> BatchResult:
        """Process up to ``limit`` queued deliveries, highest priority first.

        Each item is independent: an exception is logged and counted as a
        failure without stopping the batch.
        """
        system = await self._system_settings.get_current(session)
        batch_size = limit or (system.queue_batch_size if system else None) or self._default_batch_size
        max_attempts = (system.max_retry_attempts if system else None) or self._default_max_attempts

        rows = await self._deliveries.list_dispatchable(
            session,
            max_attempts=max_attempts,
            limit=batch_size,
            exclude_channels=[NotificationChannel.EMAIL.value],
        )
        emails = await self._email_queue.list_pending(session, max_attempts=max_attempts, limit=batch_size)

        work = [
            _WorkItem(notification.priority, row.created_at, row.notification_id, row.channel)
            for row, notification in rows
        ]
        work.extend(
            _WorkItem(item.priority, item.created_at, item.notification_id, NotificationChannel.EMAIL.value)
            for item in emails
            if item.notification_id is not None
        )
        work.sort(key=lambda w: (-w.priority, as_utc(w.created_at)))
        work = work[:batch_size]

        succeeded = failed = rate_limited = 0
        for item in work:
            try:
                result = await self.process_notification(session, item.notification_id, item.channel)
            except Exception:
                self.logger.exception(
                    "Queue item failed",
                    extra={
                        "notification_id": str(item.notification_id),
                        "channel": item.channel,
                        "operation": "queue.batch",
                    },
                )
                failed += 1
                continue
            if result.success:
                succeeded += 1
            elif result.rate_limited:
                rate_limited += 1
            else:
                failed += 1

        batch = BatchResult(
            processed=len(work),
            succeeded=succeeded,
            failed=failed,
            rate_limited=rate_limited,
        )
        self.logger.info(
            "Queue batch processed",
            extra={**dataclasses.asdict(batch), "batch_size": batch_size, "operation": "queue.batch"},
        )
        return batch

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_channel_config(
        self, session: AsyncSession, tenant_id: str | None, channel: str
    ) -> ChannelConfigData:
        """Tenant's row for the channel, or the built-in default when absent."""
        if tenant_id:
            row = await self._channel_configs.get_for(session, tenant_id, channel)
            if row is not None:
                return ChannelConfigData(
                    enabled=row.enabled,
                    credentials=dict(row.credentials or {}),
                    settings=dict(row.settings or {}),
                )
        if channel == NotificationChannel.ONSITE:
            return ChannelConfigData(enabled=True)
        if channel == NotificationChannel.EMAIL:
            system = await self._system_settings.get_current(session)
            return ChannelConfigData(enabled=system.email_enabled if system else True)
        return ChannelConfigData(enabled=False)

    async def get_queued_channels(self, session: AsyncSession, notification_id: UUID) -> list[str]:
        channels = [row.channel for row in await self._deliveries.list_for_notification(session, notification_id)]
        if NotificationChannel.EMAIL.value not in channels:
            if await self._email_queue.get_for_notification(session, notification_id) is not None:
                channels.append(NotificationChannel.EMAIL.value)
        return channels

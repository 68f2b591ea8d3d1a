"""Core notification service for creating and dispatching notifications."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from notify_service.core.exceptions import AppException, ConfigurationException, ValidationException
from notify_service.core.services.base import BaseService
from notify_service.features.notifications.channels.base import SendResult
from notify_service.features.notifications.enums import DEFAULT_CHANNELS, DeliveryState
from notify_service.features.notifications.exceptions import (
    NotificationAccessDeniedError,
    NotificationNotFoundError,
)
from notify_service.features.notifications.metrics import (
    notification_blocked_total,
    notification_created_total,
)
from notify_service.features.notifications.models import Notification
from notify_service.features.notifications.preferences.manager import (
    REASON_SYSTEM_DISABLED,
    REASON_TENANT_DISABLED,
    REASON_USER_DISABLED,
)
from notify_service.features.notifications.repository import (
    NotificationRepository,
    get_notification_repository,
)
from notify_service.features.notifications.tracker import overall_status

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from notify_service.features.notifications.models import NotificationDeliveryStatus
    from notify_service.features.notifications.preferences.manager import PreferenceManager
    from notify_service.features.notifications.queue import QueueManager
    from notify_service.features.notifications.schemas import NotificationCreate
    from notify_service.features.notifications.templates.engine import TemplateEngine
    from notify_service.features.notifications.tracker import DeliveryTracker

DispatchMode = Literal["inline", "deferred"]


@dataclass(frozen=True, slots=True)
class NotificationCreateResult:
    """Outcome of :meth:`NotificationService.create_notification`.

    ``notification`` is None when the preference gate rejected the request;
    ``blocked_reason`` then says why and nothing was persisted.
    """

    notification: Notification | None
    channels: tuple[str, ...] = ()
    blocked_reason: str | None = None
    sends: dict[str, SendResult] = field(default_factory=dict)

    @property
    def created(self) -> bool:
        return self.notification is not None


@dataclass(frozen=True, slots=True)
class BulkResult:
    success: int = 0
    failed: int = 0
    errors: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class NotificationStatusView:
    notification: Notification
    overall_status: str | None
    deliveries: Sequence[NotificationDeliveryStatus]
    queued_channels: tuple[str, ...]


def blocked_reason_label(reason: str) -> str:
    """Bounded metric label for a gate rejection message."""
    if reason == REASON_SYSTEM_DISABLED:
        return "system_disabled"
    if reason == REASON_TENANT_DISABLED:
        return "tenant_disabled"
    if reason == REASON_USER_DISABLED:
        return "user_disabled"
    return "kind_disabled"


class NotificationService(BaseService):
    """Entry point for creating, sending and querying notifications.

    Provides:
    - Preference-gated creation with optional template rendering
    - Inline or deferred dispatch through the queue manager
    - Status, read and soft-delete operations for the HTTP surface
    """

    def __init__(
        self,
        preferences: PreferenceManager,
        queue: QueueManager,
        tracker: DeliveryTracker,
        templates: TemplateEngine,
        *,
        dispatch_mode: DispatchMode = "deferred",
        repository: NotificationRepository | None = None,
    ) -> None:
        super().__init__()
        self._preferences = preferences
        self._queue = queue
        self._tracker = tracker
        self._templates = templates
        self._dispatch_mode = dispatch_mode
        self._repository = repository or get_notification_repository()

    @property
    def preferences(self) -> PreferenceManager:
        return self._preferences

    @property
    def tracker(self) -> DeliveryTracker:
        return self._tracker

    @property
    def queue(self) -> QueueManager:
        return self._queue

    @property
    def dispatch_mode(self) -> DispatchMode:
        return self._dispatch_mode

    async def create_notification(
        self,
        session: AsyncSession,
        data: NotificationCreate,
        *,
        send_now: bool | None = None,
    ) -> NotificationCreateResult:
        """Gate, render, persist and queue one notification.

        Args:
            session: Database session (caller commits)
            data: Validated creation payload
            send_now: Send before returning; defaults to ``dispatch_mode == "inline"``

        Raises:
            TemplateNotFoundError: If ``template_id`` has no variant for the locale
        """
        requested = [str(c) for c in (data.channels or DEFAULT_CHANNELS)]
        decision = await self._preferences.should_send_notification(
            session, data.recipient_id, data.tenant_id, data.kind.value, requested
        )
        if not decision.allowed:
            reason = decision.reason or "blocked"
            notification_blocked_total.labels(reason=blocked_reason_label(reason)).inc()
            self.logger.info(
                "Notification blocked by preferences",
                extra={
                    "recipient_id": data.recipient_id,
                    "tenant_id": data.tenant_id,
                    "kind": data.kind.value,
                    "reason": reason,
                    "operation": "notification.create",
                },
            )
            return NotificationCreateResult(notification=None, blocked_reason=reason)

        subject, body = data.subject, data.body
        if data.template_id is not None:
            rendered = await self._templates.render(
                session, data.template_id, data.locale or data.recipient_id, data.variables
            )
            subject, body = rendered.subject, rendered.body

        notification = await self._repository.create(
            session,
            Notification(
                sender_id=data.sender_id,
                recipient_id=data.recipient_id,
                tenant_id=data.tenant_id,
                subject=subject,
                body=body,
                kind=data.kind.value,
                priority=int(data.priority),
                action_url=data.action_url,
            ),
        )
        queued = await self._queue.add_to_queue(session, notification, decision.allowed_channels)
        notification_created_total.labels(kind=data.kind.value).inc()

        self.logger.info(
            "Notification created",
            extra={
                "notification_id": str(notification.id),
                "recipient_id": data.recipient_id,
                "tenant_id": data.tenant_id,
                "channels": queued,
                "operation": "notification.create",
            },
        )

        sends: dict[str, SendResult] = {}
        if send_now if send_now is not None else self._dispatch_mode == "inline":
            sends = await self.send_notification(session, notification.id)

        return NotificationCreateResult(
            notification=notification,
            channels=tuple(queued),
            sends=sends,
        )

    async def send_notification(
        self, session: AsyncSession, notification_id: UUID
    ) -> dict[str, SendResult]:
        """Process every queued channel of one notification independently."""
        await self.get_notification(session, notification_id)
        results: dict[str, SendResult] = {}
        for channel in await self._queue.get_queued_channels(session, notification_id):
            try:
                results[channel] = await self._queue.process_notification(
                    session, notification_id, channel
                )
            except ConfigurationException as exc:
                self.logger.warning(
                    "Channel configuration error",
                    extra={
                        "notification_id": str(notification_id),
                        "channel": channel,
                        "error": exc.detail,
                        "operation": "notification.send",
                    },
                )
                results[channel] = SendResult.failure(exc.detail)
        return results

    async def send_bulk_notifications(
        self,
        session: AsyncSession,
        items: Iterable[NotificationCreate],
    ) -> BulkResult:
        """Create each item independently; one failure does not stop the rest."""
        success = failed = 0
        errors: list[str] = []
        for index, item in enumerate(items):
            try:
                result = await self.create_notification(session, item)
            except AppException as exc:
                failed += 1
                errors.append(f"[{index}] {item.recipient_id}: {exc.detail}")
                continue
            if result.created:
                success += 1
            else:
                failed += 1
                errors.append(f"[{index}] {item.recipient_id}: {result.blocked_reason}")

        self.logger.info(
            "Bulk notification finished",
            extra={"success": success, "failed": failed, "operation": "notification.bulk"},
        )
        return BulkResult(success=success, failed=failed, errors=tuple(errors))

    async def get_notification(self, session: AsyncSession, notification_id: UUID) -> Notification:
        notification = await self._repository.get(session, notification_id)
        if notification is None:
            raise NotificationNotFoundError(notification_id)
        return notification

    async def get_notification_status(
        self, session: AsyncSession, notification_id: UUID
    ) -> NotificationStatusView:
        notification = await self.get_notification(session, notification_id)
        deliveries = await self._tracker.get_status(session, notification_id)
        queued = tuple(await self._queue.get_queued_channels(session, notification_id))
        overall = overall_status(deliveries)
        if overall is None and queued:
            overall = DeliveryState.PENDING.value
        return NotificationStatusView(
            notification=notification,
            overall_status=overall,
            deliveries=deliveries,
            queued_channels=queued,
        )

    async def mark_as_read(self, session: AsyncSession, notification_id: UUID, user_id: str) -> int:
        return await self._tracker.mark_as_read(session, notification_id, user_id)

    async def delete_notification(
        self,
        session: AsyncSession,
        notification_id: UUID,
        user_id: str,
        role: Literal["sender", "recipient"] = "recipient",
    ) -> Notification:
        """Soft-delete for one side; the row itself is never removed."""
        if role not in ("sender", "recipient"):
            raise ValidationException(detail=f"Unknown role '{role}'", type="invalid-role")

        notification = await self.get_notification(session, notification_id)
        owner = notification.sender_id if role == "sender" else notification.recipient_id
        if owner != user_id:
            raise NotificationAccessDeniedError(notification_id, user_id, role=role)

        if role == "sender":
            notification.deleted_by_sender = True
        else:
            notification.deleted_by_recipient = True
        await session.flush()

        self.logger.info(
            "Notification deleted",
            extra={
                "notification_id": str(notification_id),
                "user_id": user_id,
                "role": role,
                "operation": "notification.delete",
            },
        )
        return notification

    async def list_for_recipient(
        self,
        session: AsyncSession,
        user_id: str,
        *,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[Notification]:
        return await self._repository.list_for_recipient(
            session, user_id, unread_only=unread_only, limit=limit, offset=offset
        )

"""Per-channel delivery ledger and its state machine."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from notify_service.core.database import utcnow
from notify_service.core.services.base import BaseService
from notify_service.features.notifications.enums import DeliveryState, NotificationChannel
from notify_service.features.notifications.exceptions import (
    InvalidDeliveryTransitionError,
    NotificationAccessDeniedError,
    NotificationNotFoundError,
)
from notify_service.features.notifications.models import NotificationDeliveryStatus
from notify_service.features.notifications.repository import (
    DeliveryStatusRepository,
    NotificationRepository,
    get_delivery_status_repository,
    get_notification_repository,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

ALLOWED_TRANSITIONS: dict[DeliveryState, frozenset[DeliveryState]] = {
    DeliveryState.PENDING: frozenset({DeliveryState.SENT, DeliveryState.FAILED}),
    DeliveryState.SENT: frozenset(
        {DeliveryState.DELIVERED, DeliveryState.FAILED, DeliveryState.BOUNCED, DeliveryState.READ}
    ),
    DeliveryState.DELIVERED: frozenset({DeliveryState.READ}),
    DeliveryState.FAILED: frozenset({DeliveryState.PENDING}),
    DeliveryState.READ: frozenset(),
    DeliveryState.BOUNCED: frozenset(),
}

INITIAL_STATES = frozenset({DeliveryState.PENDING, DeliveryState.SENT, DeliveryState.FAILED})

# Highest first; used to summarize a notification across channels
OVERALL_PRECEDENCE: tuple[DeliveryState, ...] = (
    DeliveryState.FAILED,
    DeliveryState.READ,
    DeliveryState.DELIVERED,
    DeliveryState.SENT,
    DeliveryState.PENDING,
)


def _supports_read_receipts(channel: str) -> bool:
    try:
        return NotificationChannel(channel).supports_read_receipts
    except ValueError:
        return False


def can_transition(channel: str, current: str, requested: str) -> bool:
    """Whether ``current -> requested`` is legal on ``channel``.

    Re-asserting the current state is always legal.
    """
    try:
        current_state = DeliveryState(current)
        requested_state = DeliveryState(requested)
    except ValueError:
        return False
    if requested_state is DeliveryState.READ and not _supports_read_receipts(channel):
        return False
    if current_state is requested_state:
        return True
    return requested_state in ALLOWED_TRANSITIONS[current_state]


def overall_status(rows: Iterable[NotificationDeliveryStatus]) -> str | None:
    """Highest-precedence state among the rows, or None when there are none."""
    present = {row.status for row in rows}
    for state in OVERALL_PRECEDENCE:
        if state.value in present:
            return state.value
    return None


class DeliveryTracker(BaseService):
    """Reads and writes NotificationDeliveryStatus rows.

    Every write goes through :meth:`update_status`, which enforces the
    transition table, so queue processing and provider callbacks cannot
    move a row backwards.
    """

    def __init__(
        self,
        delivery_repository: DeliveryStatusRepository | None = None,
        notification_repository: NotificationRepository | None = None,
    ) -> None:
        super().__init__()
        self._deliveries = delivery_repository or get_delivery_status_repository()
        self._notifications = notification_repository or get_notification_repository()

    async def update_status(
        self,
        session: AsyncSession,
        notification_id: UUID,
        channel: str,
        status: DeliveryState | str,
        *,
        provider_message_id: str | None = None,
        error_message: str | None = None,
        delivered_at: datetime | None = None,
        read_at: datetime | None = None,
    ) -> NotificationDeliveryStatus:
        """Create or transition the ledger row for (notification, channel).

        Raises:
            InvalidDeliveryTransitionError: If the change is not allowed.
        """
        requested = DeliveryState(status)
        row = await self._deliveries.get_for(session, notification_id, channel)

        if row is None:
            if requested not in INITIAL_STATES:
                raise InvalidDeliveryTransitionError(channel, "<none>", requested.value)
            row = NotificationDeliveryStatus(
                notification_id=notification_id,
                channel=channel,
                status=requested.value,
                attempt_count=0,
            )
            session.add(row)
        elif not can_transition(channel, row.status, requested.value):
            raise InvalidDeliveryTransitionError(channel, row.status, requested.value)
        else:
            row.status = requested.value

        if provider_message_id is not None:
            row.provider_message_id = provider_message_id
        if error_message is not None:
            row.error_message = error_message
        elif requested in (DeliveryState.SENT, DeliveryState.DELIVERED, DeliveryState.READ):
            row.error_message = None
        if requested is DeliveryState.DELIVERED:
            row.delivered_at = delivered_at or row.delivered_at or utcnow()
        elif delivered_at is not None:
            row.delivered_at = delivered_at
        if requested is DeliveryState.READ:
            row.read_at = read_at or row.read_at or utcnow()

        await session.flush()
        self._lazy.debug(
            lambda: f"tracker.update_status({notification_id}, {channel}) -> {requested.value}"
        )
        return row

    async def get_status(
        self, session: AsyncSession, notification_id: UUID
    ) -> Sequence[NotificationDeliveryStatus]:
        return await self._deliveries.list_for_notification(session, notification_id)

    async def mark_as_read(
        self, session: AsyncSession, notification_id: UUID, user_id: str
    ) -> int:
        """Mark the notification read for its recipient.

        Sent or delivered rows on read-receipt channels move to ``read``.
        Returns how many ledger rows changed.
        """
        notification = await self._notifications.get(session, notification_id)
        if notification is None or notification.deleted_by_recipient:
            raise NotificationNotFoundError(notification_id)
        if notification.recipient_id != user_id:
            raise NotificationAccessDeniedError(notification_id, user_id, role="recipient")

        now = utcnow()
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = now

        transitioned = 0
        for row in await self._deliveries.list_for_notification(session, notification_id):
            if row.status not in (DeliveryState.SENT.value, DeliveryState.DELIVERED.value):
                continue
            if not can_transition(row.channel, row.status, DeliveryState.READ.value):
                continue
            row.status = DeliveryState.READ.value
            row.read_at = now
            transitioned += 1

        await session.flush()
        self.logger.info(
            "Notification marked as read",
            extra={
                "notification_id": str(notification_id),
                "user_id": user_id,
                "transitioned": transitioned,
                "operation": "tracker.mark_as_read",
            },
        )
        return transitioned

    async def handle_delivery_callback(
        self,
        session: AsyncSession,
        channel: str,
        provider_message_id: str,
        status: str,
        *,
        delivered_at: datetime | None = None,
        read_at: datetime | None = None,
        error: str | None = None,
    ) -> NotificationDeliveryStatus | None:
        """Apply a provider-reported status change.

        Unknown message ids and illegal transitions are logged and dropped;
        providers retry callbacks, so neither is an error for the caller.
        """
        row = await self._deliveries.find_by_provider_message(session, channel, provider_message_id)
        if row is None:
            self.logger.warning(
                "Delivery callback for unknown provider message",
                extra={
                    "channel": channel,
                    "provider_message_id": provider_message_id,
                    "operation": "tracker.callback",
                },
            )
            return None

        try:
            return await self.update_status(
                session,
                row.notification_id,
                channel,
                status,
                error_message=error,
                delivered_at=delivered_at,
                read_at=read_at,
            )
        except (InvalidDeliveryTransitionError, ValueError) as exc:
            self.logger.warning(
                "Discarded delivery callback",
                extra={
                    "channel": channel,
                    "provider_message_id": provider_message_id,
                    "current": row.status,
                    "requested": status,
                    "error": str(exc),
                    "operation": "tracker.callback",
                },
            )
            return None

"""Routes reservation business events to notifications.

The page layer calls :meth:`ReservationNotificationRouter.route_notification`
after its own transaction commits. Routing uses a separate session and never
raises: a notification problem must not fail the business action that
triggered it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from sqlalchemy import select

from notify_service.core.models import Tenant, User
from notify_service.core.services.base import BaseService
from notify_service.features.notifications.enums import (
    NotificationChannel,
    NotificationKind,
    NotificationPriority,
)
from notify_service.features.notifications.schemas import NotificationCreate
from notify_service.infra.logging import log_context

from .enums import ReservationStatus
from .messages import build_message
from .models import ReservationSettings

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from notify_service.features.notifications.service import NotificationService

ANONYMOUS_CUSTOMER = "anonymous customer"

_SETTINGS_CHANNELS = (
    ("use_reminder_email", NotificationChannel.EMAIL),
    ("use_reminder_line", NotificationChannel.LINE),
    ("use_reminder_push", NotificationChannel.PUSH),
    ("use_reminder_sms", NotificationChannel.SMS),
    ("use_reminder_telegram", NotificationChannel.TELEGRAM),
    ("use_reminder_whatsapp", NotificationChannel.WHATSAPP),
)


class ReservationEvent(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    CANCELLED = "cancelled"
    DELETED = "deleted"
    CONFIRMED_BY_STORE = "confirmed_by_store"
    CONFIRMED_BY_CUSTOMER = "confirmed_by_customer"
    STATUS_CHANGED = "status_changed"
    PAYMENT_RECEIVED = "payment_received"
    READY = "ready"
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    UNPAID_ORDER_CREATED = "unpaid_order_created"
    REMINDER = "reminder"


@dataclass(frozen=True, slots=True)
class ReservationEventContext:
    """Everything the router needs about one reservation event."""

    reservation_id: UUID | str
    tenant_id: str
    event: ReservationEvent
    customer_id: str | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    locale: str | None = None
    reservation_time: datetime | None = None
    facility_name: str | None = None
    party_size: int | None = None
    message: str | None = None
    previous_status: int | None = None
    new_status: int | None = None
    actor_id: str | None = None
    order_id: str | None = None


@dataclass(frozen=True, slots=True)
class RouteOutcome:
    ok: bool
    notification_ids: tuple[UUID, ...] = ()
    skipped_reason: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class _Target:
    message_key: str
    to_customer: bool
    priority: NotificationPriority = NotificationPriority.NORMAL


@dataclass(slots=True)
class _RouteState:
    notification_ids: list[UUID] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def _targets_for(context: ReservationEventContext) -> list[_Target]:
    """Who hears about an event, with which wording and priority."""
    high = NotificationPriority.HIGH
    match context.event:
        case ReservationEvent.CREATED:
            return [_Target("created", False, high)]
        case ReservationEvent.UPDATED:
            return [_Target("updated", False, high)]
        case ReservationEvent.DELETED:
            return [_Target("deleted", False)]
        case ReservationEvent.PAYMENT_RECEIVED:
            return [_Target("payment_received", False, high)]
        case ReservationEvent.UNPAID_ORDER_CREATED:
            return [_Target("unpaid_order_created", False)]
        case ReservationEvent.CONFIRMED_BY_CUSTOMER:
            return [_Target("confirmed_by_customer", False)]
        case ReservationEvent.CANCELLED:
            return [_Target("cancelled_store", False), _Target("cancelled_customer", True)]
        case ReservationEvent.CONFIRMED_BY_STORE:
            return [_Target("confirmed_by_store", True, high)]
        case ReservationEvent.READY:
            return [_Target("ready", True, high)]
        case ReservationEvent.COMPLETED:
            return [_Target("completed", True)]
        case ReservationEvent.NO_SHOW:
            return [_Target("no_show", True)]
        case ReservationEvent.REMINDER:
            return [_Target("reminder", True, high)]
        case ReservationEvent.STATUS_CHANGED:
            if context.new_status == ReservationStatus.READY_TO_CONFIRM:
                return [_Target("status_changed", False, high)]
            if context.new_status == ReservationStatus.READY:
                return [_Target("ready", True, high)]
    return []


class ReservationNotificationRouter(BaseService):
    """Translates reservation events into preference-gated notifications."""

    def __init__(
        self,
        service: NotificationService,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        after_commit: Callable[[UUID], Awaitable[None]] | None = None,
    ) -> None:
        super().__init__()
        self._service = service
        self._session_factory = session_factory
        self._after_commit = after_commit

    async def route_notification(self, context: ReservationEventContext) -> RouteOutcome:
        """Create the notifications for one event in an independent transaction.

        Never raises; failures are logged and returned as ``ok=False``.
        """
        with log_context(
            tenant_id=context.tenant_id,
            reservation_id=str(context.reservation_id),
            event=str(context.event),
        ):
            try:
                async with self._session_factory() as session:
                    state = await self._route(session, context)
                    await session.commit()
                for notification_id in state.notification_ids:
                    await self.dispatch_committed(notification_id)
            except Exception as exc:
                self.logger.exception(
                    "Reservation notification routing failed",
                    extra={"operation": "reservation.route"},
                )
                return RouteOutcome(ok=False, error=str(exc) or exc.__class__.__name__)

        skipped = None
        if not state.notification_ids:
            skipped = "; ".join(state.skipped) or "event not routed"
        self.logger.info(
            "Reservation event routed",
            extra={
                "event": str(context.event),
                "notifications": len(state.notification_ids),
                "skipped": skipped,
                "operation": "reservation.route",
            },
        )
        return RouteOutcome(
            ok=True,
            notification_ids=tuple(state.notification_ids),
            skipped_reason=skipped,
        )

    async def dispatch_committed(self, notification_id: UUID) -> None:
        """Hand a committed notification to the deferred dispatcher, when one is set."""
        if self._after_commit is not None:
            await self._after_commit(notification_id)

    async def handle_reminder(
        self, session: AsyncSession, context: ReservationEventContext
    ) -> UUID | None:
        """Reminder path used by the sweep; errors propagate to the caller.

        Returns None when nothing was sent (anonymous customer, no channels,
        or the recipient opted out).
        """
        state = _RouteState()
        tenant = await session.get(Tenant, context.tenant_id)
        await self._notify(session, context, _Target("reminder", True, NotificationPriority.HIGH), tenant, state)
        if state.skipped:
            self.logger.info(
                "Reminder not sent",
                extra={
                    "reservation_id": str(context.reservation_id),
                    "reason": "; ".join(state.skipped),
                    "operation": "reservation.reminder",
                },
            )
        return state.notification_ids[0] if state.notification_ids else None

    async def _route(self, session: AsyncSession, context: ReservationEventContext) -> _RouteState:
        state = _RouteState()
        targets = _targets_for(context)
        if not targets:
            state.skipped.append(f"event {context.event} not routed")
            return state

        tenant = await session.get(Tenant, context.tenant_id)
        for target in targets:
            await self._notify(session, context, target, tenant, state)
        return state

    async def _notify(
        self,
        session: AsyncSession,
        context: ReservationEventContext,
        target: _Target,
        tenant: Tenant | None,
        state: _RouteState,
    ) -> None:
        if target.to_customer:
            if not context.customer_id:
                state.skipped.append(ANONYMOUS_CUSTOMER)
                return
            recipient_id = context.customer_id
            sender_id = context.actor_id or (tenant.owner_id if tenant else context.tenant_id)
        else:
            if tenant is None:
                state.skipped.append("unknown tenant")
                return
            recipient_id = tenant.owner_id
            sender_id = context.actor_id or context.customer_id or "system"

        recipient = await session.get(User, recipient_id)
        if target.to_customer:
            locale = context.locale or (recipient.locale if recipient else None)
        else:
            locale = (recipient.locale if recipient else None) or (tenant.default_locale if tenant else None)

        rendered = build_message(
            context,
            target.message_key,
            locale=locale,
            store_name=tenant.name if tenant else None,
            for_customer=target.to_customer,
        )
        channels = await self.get_channels(session, context.tenant_id)
        result = await self._service.create_notification(
            session,
            NotificationCreate(
                sender_id=sender_id,
                recipient_id=recipient_id,
                tenant_id=context.tenant_id,
                subject=rendered.subject,
                body=rendered.body,
                kind=NotificationKind.RESERVATION,
                priority=target.priority,
                action_url=self._action_url(context, target),
                channels=channels,
            ),
        )
        if result.notification is None:
            state.skipped.append(result.blocked_reason or "blocked")
            return
        state.notification_ids.append(result.notification.id)

    async def get_channels(self, session: AsyncSession, tenant_id: str) -> list[NotificationChannel]:
        """Tenant's reservation channel flags; ``onsite`` is always included."""
        stmt = select(ReservationSettings).where(ReservationSettings.tenant_id == tenant_id)
        settings = (await session.execute(stmt)).scalar_one_or_none()
        if settings is None:
            return [NotificationChannel.ONSITE, NotificationChannel.EMAIL]
        channels = [NotificationChannel.ONSITE]
        channels.extend(channel for attr, channel in _SETTINGS_CHANNELS if getattr(settings, attr))
        return channels

    @staticmethod
    def _action_url(context: ReservationEventContext, target: _Target) -> str:
        if target.message_key == "reminder":
            return f"/s/{context.tenant_id}/reservation/{context.reservation_id}"
        if target.to_customer:
            return f"/s/{context.tenant_id}/reservation/history"
        return f"/storeAdmin/{context.tenant_id}/rsvp"

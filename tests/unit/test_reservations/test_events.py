"""Tests for routing reservation events to notifications."""

from __future__ import annotations

from types import SimpleNamespace
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock

import pytest

from notify_service.features.notifications.models import Notification
from notify_service.features.reservations.events import (
    ANONYMOUS_CUSTOMER,
    ReservationEvent,
    ReservationEventContext,
    ReservationNotificationRouter,
)
from notify_service.features.reservations.models import ReservationSettings
from tests.utils import CUSTOMER_ID, OWNER_ID, TENANT_ID, add_rows

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from notify_service.features.notifications.runtime import NotificationRuntime

pytestmark = pytest.mark.usefixtures("seeded", "smtp_send")


def make_context(event: ReservationEvent, **overrides) -> ReservationEventContext:
    values = {
        "reservation_id": "res-1",
        "tenant_id": TENANT_ID,
        "event": event,
        "customer_id": CUSTOMER_ID,
        "customer_name": "Casey Customer",
        "party_size": 2,
    }
    values.update(overrides)
    return ReservationEventContext(**values)


async def load(session_factory: async_sessionmaker[AsyncSession], ids) -> list[Notification]:
    async with session_factory() as session:
        return [await session.get(Notification, notification_id) for notification_id in ids]


class TestRouting:
    @pytest.mark.asyncio
    async def test_created_notifies_store_owner(
        self, runtime: NotificationRuntime, session_factory: async_sessionmaker[AsyncSession]
    ):
        outcome = await runtime.reservation_router.route_notification(
            make_context(ReservationEvent.CREATED)
        )

        assert outcome.ok
        (notification,) = await load(session_factory, outcome.notification_ids)
        assert notification.recipient_id == OWNER_ID
        assert notification.sender_id == CUSTOMER_ID
        assert notification.kind == "reservation"
        assert notification.priority == 1
        assert notification.subject == "New reservation request from Casey Customer"
        assert notification.action_url == f"/storeAdmin/{TENANT_ID}/rsvp"

    @pytest.mark.asyncio
    async def test_cancelled_notifies_both_sides_in_their_locale(
        self, runtime: NotificationRuntime, session_factory: async_sessionmaker[AsyncSession]
    ):
        outcome = await runtime.reservation_router.route_notification(
            make_context(ReservationEvent.CANCELLED, locale="jp")
        )

        store, customer = await load(session_factory, outcome.notification_ids)
        assert store.recipient_id == OWNER_ID
        assert store.subject == "Reservation cancelled by Casey Customer"
        assert customer.recipient_id == CUSTOMER_ID
        assert customer.sender_id == OWNER_ID
        assert customer.subject == "ご予約がキャンセルされました"
        assert customer.action_url == f"/s/{TENANT_ID}/reservation/history"

    @pytest.mark.asyncio
    async def test_anonymous_customer_side_is_skipped(self, runtime: NotificationRuntime):
        cancelled = await runtime.reservation_router.route_notification(
            make_context(ReservationEvent.CANCELLED, customer_id=None, customer_name=None)
        )
        assert cancelled.ok
        assert len(cancelled.notification_ids) == 1

        reminder = await runtime.reservation_router.route_notification(
            make_context(ReservationEvent.REMINDER, customer_id=None)
        )
        assert reminder.ok
        assert reminder.notification_ids == ()
        assert reminder.skipped_reason == ANONYMOUS_CUSTOMER

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("new_status", "recipient", "subject"),
        [
            (10, OWNER_ID, "Reservation awaiting confirmation: Casey Customer"),
            (40, CUSTOMER_ID, "Your reservation is ready"),
        ],
    )
    async def test_status_changed(
        self,
        runtime: NotificationRuntime,
        session_factory: async_sessionmaker[AsyncSession],
        new_status: int,
        recipient: str,
        subject: str,
    ):
        outcome = await runtime.reservation_router.route_notification(
            make_context(ReservationEvent.STATUS_CHANGED, previous_status=0, new_status=new_status)
        )

        (notification,) = await load(session_factory, outcome.notification_ids)
        assert notification.recipient_id == recipient
        assert notification.subject == subject

    @pytest.mark.asyncio
    async def test_other_status_changes_are_not_routed(self, runtime: NotificationRuntime):
        outcome = await runtime.reservation_router.route_notification(
            make_context(ReservationEvent.STATUS_CHANGED, previous_status=40, new_status=50)
        )
        assert outcome.ok
        assert outcome.notification_ids == ()
        assert outcome.skipped_reason == "event status_changed not routed"

    @pytest.mark.asyncio
    async def test_unknown_tenant(self, runtime: NotificationRuntime):
        outcome = await runtime.reservation_router.route_notification(
            make_context(ReservationEvent.CREATED, tenant_id="store-404")
        )
        assert outcome.ok
        assert outcome.skipped_reason == "unknown tenant"

    @pytest.mark.asyncio
    async def test_failures_are_returned_not_raised(
        self, session_factory: async_sessionmaker[AsyncSession]
    ):
        service = SimpleNamespace(create_notification=AsyncMock(side_effect=RuntimeError("db down")))
        router = ReservationNotificationRouter(service, session_factory)  # type: ignore[arg-type]

        outcome = await router.route_notification(make_context(ReservationEvent.CREATED))

        assert not outcome.ok
        assert outcome.error == "db down"

    @pytest.mark.asyncio
    async def test_after_commit_receives_each_notification(
        self, runtime: NotificationRuntime, session_factory: async_sessionmaker[AsyncSession]
    ):
        dispatch = AsyncMock()
        router = ReservationNotificationRouter(
            runtime.service, session_factory, after_commit=dispatch
        )

        outcome = await router.route_notification(make_context(ReservationEvent.CANCELLED))

        assert dispatch.await_count == 2
        assert [c.args[0] for c in dispatch.await_args_list] == list(outcome.notification_ids)


class TestChannels:
    @pytest.mark.asyncio
    async def test_default_channels_without_settings(
        self, runtime: NotificationRuntime, db_session: AsyncSession
    ):
        channels = await runtime.reservation_router.get_channels(db_session, TENANT_ID)
        assert channels == ["onsite", "email"]

    @pytest.mark.asyncio
    async def test_channels_follow_tenant_flags(
        self, runtime: NotificationRuntime, db_session: AsyncSession
    ):
        db_session.add(
            ReservationSettings(
                tenant_id=TENANT_ID,
                use_reminder_email=False,
                use_reminder_line=True,
                use_reminder_sms=True,
            )
        )
        await db_session.flush()

        channels = await runtime.reservation_router.get_channels(db_session, TENANT_ID)
        assert channels == ["onsite", "line", "sms"]

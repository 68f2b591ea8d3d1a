"""Tests for the delivery ledger state machine."""

from __future__ import annotations

from datetime import UTC, datetime
from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from notify_service.features.notifications.enums import NotificationChannel
from notify_service.features.notifications.exceptions import (
    InvalidDeliveryTransitionError,
    NotificationAccessDeniedError,
    NotificationNotFoundError,
)
from notify_service.features.notifications.models import Notification
from notify_service.features.notifications.tracker import (
    DeliveryTracker,
    can_transition,
    overall_status,
)


@pytest.fixture
def tracker() -> DeliveryTracker:
    return DeliveryTracker()


@pytest.fixture
async def notification(db_session: AsyncSession) -> Notification:
    row = Notification(
        sender_id="sender-1",
        recipient_id="user-1",
        tenant_id="store-1",
        subject="Hello",
        body="Body",
    )
    db_session.add(row)
    await db_session.flush()
    return row


class TestTransitions:
    @pytest.mark.parametrize(
        ("current", "requested", "expected"),
        [
            ("pending", "sent", True),
            ("pending", "failed", True),
            ("pending", "delivered", False),
            ("sent", "delivered", True),
            ("sent", "bounced", True),
            ("delivered", "read", True),
            ("delivered", "sent", False),
            ("failed", "pending", True),
            ("failed", "sent", False),
            ("read", "delivered", False),
            ("bounced", "pending", False),
            ("sent", "sent", True),
            ("sent", "exploded", False),
        ],
    )
    def test_table(self, current: str, requested: str, expected: bool):
        assert can_transition("email", current, requested) is expected

    def test_read_requires_receipt_channel(self):
        assert can_transition("line", "delivered", "read")
        assert not can_transition("sms", "delivered", "read")
        assert not can_transition("onsite", "delivered", "read")
        assert not can_transition("fax", "delivered", "read")
        assert can_transition("fax", "sent", "delivered")
        assert NotificationChannel.TELEGRAM.supports_read_receipts
        assert not NotificationChannel.PUSH.supports_read_receipts

    def test_overall_status_precedence(self):
        rows = [SimpleNamespace(status=s) for s in ("sent", "read", "pending")]
        assert overall_status(rows) == "read"
        rows.append(SimpleNamespace(status="failed"))
        assert overall_status(rows) == "failed"
        assert overall_status([SimpleNamespace(status="bounced")]) is None
        assert overall_status([]) is None


class TestDeliveryTracker:
    @pytest.mark.asyncio
    async def test_create_and_advance(
        self, db_session: AsyncSession, tracker: DeliveryTracker, notification: Notification
    ):
        row = await tracker.update_status(db_session, notification.id, "line", "pending")
        assert row.status == "pending"
        assert row.attempt_count == 0

        await tracker.update_status(
            db_session, notification.id, "line", "failed", error_message="HTTP 500"
        )
        await tracker.update_status(db_session, notification.id, "line", "pending")
        row = await tracker.update_status(
            db_session, notification.id, "line", "sent", provider_message_id="m-1"
        )
        assert row.error_message is None
        assert row.provider_message_id == "m-1"

        row = await tracker.update_status(db_session, notification.id, "line", "delivered")
        assert row.delivered_at is not None

    @pytest.mark.asyncio
    async def test_rejects_backwards_and_invalid_initial(
        self, db_session: AsyncSession, tracker: DeliveryTracker, notification: Notification
    ):
        with pytest.raises(InvalidDeliveryTransitionError):
            await tracker.update_status(db_session, notification.id, "email", "delivered")

        await tracker.update_status(db_session, notification.id, "email", "sent")
        await tracker.update_status(db_session, notification.id, "email", "delivered")
        with pytest.raises(InvalidDeliveryTransitionError) as exc_info:
            await tracker.update_status(db_session, notification.id, "email", "sent")
        assert exc_info.value.current == "delivered"

    @pytest.mark.asyncio
    async def test_mark_as_read(
        self, db_session: AsyncSession, tracker: DeliveryTracker, notification: Notification
    ):
        await tracker.update_status(db_session, notification.id, "email", "sent")
        await tracker.update_status(db_session, notification.id, "onsite", "sent")
        await tracker.update_status(db_session, notification.id, "onsite", "delivered")
        await tracker.update_status(db_session, notification.id, "line", "pending")

        transitioned = await tracker.mark_as_read(db_session, notification.id, "user-1")

        assert transitioned == 1
        assert notification.is_read
        assert notification.read_at is not None
        statuses = {row.channel: row.status for row in await tracker.get_status(db_session, notification.id)}
        assert statuses == {"email": "read", "onsite": "delivered", "line": "pending"}

        # Idempotent
        assert await tracker.mark_as_read(db_session, notification.id, "user-1") == 0

    @pytest.mark.asyncio
    async def test_mark_as_read_checks_recipient(
        self, db_session: AsyncSession, tracker: DeliveryTracker, notification: Notification
    ):
        with pytest.raises(NotificationAccessDeniedError):
            await tracker.mark_as_read(db_session, notification.id, "someone-else")

        notification.deleted_by_recipient = True
        await db_session.flush()
        with pytest.raises(NotificationNotFoundError):
            await tracker.mark_as_read(db_session, notification.id, "user-1")

    @pytest.mark.asyncio
    async def test_delivery_callback(
        self, db_session: AsyncSession, tracker: DeliveryTracker, notification: Notification
    ):
        await tracker.update_status(
            db_session, notification.id, "whatsapp", "sent", provider_message_id="wamid.1"
        )
        delivered_at = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)

        row = await tracker.handle_delivery_callback(
            db_session, "whatsapp", "wamid.1", "delivered", delivered_at=delivered_at
        )
        assert row is not None
        assert row.status == "delivered"
        assert row.delivered_at == delivered_at

    @pytest.mark.asyncio
    async def test_delivery_callback_drops_unknown_and_illegal(
        self, db_session: AsyncSession, tracker: DeliveryTracker, notification: Notification
    ):
        assert await tracker.handle_delivery_callback(db_session, "line", "nope", "delivered") is None

        await tracker.update_status(
            db_session, notification.id, "line", "sent", provider_message_id="line-1"
        )
        await tracker.update_status(db_session, notification.id, "line", "read")
        assert await tracker.handle_delivery_callback(db_session, "line", "line-1", "delivered") is None
        assert await tracker.handle_delivery_callback(db_session, "line", "line-1", "weird") is None

        rows = await tracker.get_status(db_session, notification.id)
        assert rows[0].status == "read"

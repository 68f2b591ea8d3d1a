"""Tests for NotificationService: gated creation, dispatch and soft delete."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import uuid4

import pytest

from notify_service.core.exceptions import ValidationException
from notify_service.core.models import User
from notify_service.features.notifications.exceptions import (
    NotificationAccessDeniedError,
    NotificationNotFoundError,
)
from notify_service.features.notifications.models import ChannelConfig, NotificationPreference
from notify_service.features.notifications.repository import get_email_queue_repository
from notify_service.features.notifications.schemas import NotificationCreate
from tests.utils import CUSTOMER_ID, OWNER_ID, SENDER_ID, TENANT_ID, ProviderStub, add_rows

if TYPE_CHECKING:
    from unittest.mock import AsyncMock

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from notify_service.features.notifications.runtime import NotificationRuntime

pytestmark = pytest.mark.usefixtures("seeded")


def make_create(**overrides: Any) -> NotificationCreate:
    values: dict[str, Any] = {
        "sender_id": SENDER_ID,
        "recipient_id": CUSTOMER_ID,
        "tenant_id": TENANT_ID,
        "subject": "Table ready",
        "body": "Your table is ready",
        "kind": "reservation",
    }
    values.update(overrides)
    return NotificationCreate(**values)


async def enable_line(session_factory: async_sessionmaker[AsyncSession], **credentials: Any) -> None:
    await add_rows(
        session_factory,
        ChannelConfig(tenant_id=TENANT_ID, channel="line", enabled=True, credentials=credentials),
    )


class TestCreateNotification:
    @pytest.mark.asyncio
    async def test_inline_onsite_and_email(
        self, db_session: AsyncSession, runtime: NotificationRuntime, smtp_send: AsyncMock
    ):
        result = await runtime.service.create_notification(db_session, make_create())

        assert result.created
        assert result.channels == ("onsite", "email")
        assert result.sends["onsite"].success
        assert result.sends["email"].success
        smtp_send.assert_awaited_once()

        view = await runtime.service.get_notification_status(db_session, result.notification.id)
        assert {d.channel: d.status for d in view.deliveries} == {
            "onsite": "delivered",
            "email": "sent",
        }
        assert view.overall_status == "delivered"

        item = await get_email_queue_repository().get_for_notification(
            db_session, result.notification.id
        )
        assert item.sent_on is not None
        assert item.send_tries == 1
        assert item.provider_message_id == result.sends["email"].provider_message_id

    @pytest.mark.asyncio
    async def test_deferred_creation_only_queues(
        self, db_session: AsyncSession, runtime: NotificationRuntime, smtp_send: AsyncMock
    ):
        result = await runtime.service.create_notification(db_session, make_create(), send_now=False)

        assert result.sends == {}
        smtp_send.assert_not_awaited()
        view = await runtime.service.get_notification_status(db_session, result.notification.id)
        assert view.overall_status == "pending"
        assert view.queued_channels == ("onsite", "email")

    @pytest.mark.asyncio
    async def test_blocked_by_kind_opt_out(self, db_session: AsyncSession, runtime: NotificationRuntime):
        db_session.add(
            NotificationPreference(user_id=CUSTOMER_ID, tenant_id=None, reservation_notifications=False)
        )
        await db_session.flush()

        result = await runtime.service.create_notification(db_session, make_create())

        assert not result.created
        assert result.blocked_reason == "User has disabled reservation notifications"
        assert await runtime.service.list_for_recipient(db_session, CUSTOMER_ID) == []

    @pytest.mark.asyncio
    async def test_email_skipped_without_address(
        self, db_session: AsyncSession, runtime: NotificationRuntime
    ):
        result = await runtime.service.create_notification(
            db_session, make_create(sender_id=OWNER_ID, recipient_id=SENDER_ID)
        )
        assert result.channels == ("onsite",)

    @pytest.mark.asyncio
    async def test_sms_skipped_without_phone(
        self, db_session: AsyncSession, runtime: NotificationRuntime
    ):
        result = await runtime.service.create_notification(
            db_session,
            make_create(recipient_id=OWNER_ID, tenant_id=None, channels=["sms", "onsite"]),
        )
        assert result.channels == ("onsite",)

    @pytest.mark.asyncio
    async def test_sms_skipped_for_invalid_phone(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        runtime: NotificationRuntime,
    ):
        await add_rows(session_factory, User(id="guest-9", name="Guest", phone_number="+10000000000"))

        result = await runtime.service.create_notification(
            db_session,
            make_create(recipient_id="guest-9", tenant_id=None, channels=["sms", "onsite"]),
        )

        assert result.channels == ("onsite",)

    @pytest.mark.asyncio
    async def test_tenant_email_disabled_delivers_onsite_only(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        runtime: NotificationRuntime,
        smtp_send: AsyncMock,
    ):
        await add_rows(
            session_factory, ChannelConfig(tenant_id=TENANT_ID, channel="email", enabled=False)
        )

        result = await runtime.service.create_notification(
            db_session, make_create(channels=["onsite", "email"])
        )

        assert result.channels == ("onsite",)
        assert result.sends["onsite"].success
        smtp_send.assert_not_awaited()
        view = await runtime.service.get_notification_status(db_session, result.notification.id)
        assert [d.channel for d in view.deliveries] == ["onsite"]
        assert (
            await get_email_queue_repository().get_for_notification(db_session, result.notification.id)
            is None
        )

    @pytest.mark.asyncio
    async def test_line_through_tenant_config(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        runtime: NotificationRuntime,
        provider: ProviderStub,
    ):
        await enable_line(session_factory, channel_access_token="line-token")
        provider.route("api.line.me", json={"sentMessages": [{"id": "L-1"}]})

        result = await runtime.service.create_notification(
            db_session, make_create(channels=["line"])
        )

        assert result.sends["line"].provider_message_id == "L-1"
        (row,) = await runtime.tracker.get_status(db_session, result.notification.id)
        assert row.status == "sent"
        assert row.attempt_count == 1

    @pytest.mark.asyncio
    async def test_configuration_error_becomes_failed_send(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        runtime: NotificationRuntime,
        provider: ProviderStub,
    ):
        await enable_line(session_factory)

        result = await runtime.service.create_notification(
            db_session, make_create(channels=["line"])
        )

        send = result.sends["line"]
        assert not send.success
        assert "channel_access_token" in send.error
        assert provider.requests == []
        (row,) = await runtime.tracker.get_status(db_session, result.notification.id)
        assert row.status == "failed"
        assert row.attempt_count == 1


class TestBulk:
    @pytest.mark.asyncio
    async def test_each_item_is_independent(
        self, db_session: AsyncSession, runtime: NotificationRuntime
    ):
        db_session.add(
            NotificationPreference(user_id=OWNER_ID, tenant_id=None, marketing_notifications=False)
        )
        await db_session.flush()

        result = await runtime.service.send_bulk_notifications(
            db_session,
            [
                make_create(channels=["onsite"]),
                make_create(channels=["onsite"], subject="", body="", template_id=uuid4()),
                make_create(recipient_id=OWNER_ID, channels=["onsite"], kind="marketing"),
            ],
        )

        assert result.success == 1
        assert result.failed == 2
        assert result.errors[0].startswith("[1] customer-1: Template ")
        assert result.errors[1] == "[2] owner-1: User has disabled marketing notifications"


class TestReadAndDelete:
    @pytest.fixture
    async def notification_id(self, db_session: AsyncSession, runtime: NotificationRuntime):
        result = await runtime.service.create_notification(
            db_session, make_create(channels=["onsite"])
        )
        return result.notification.id

    @pytest.mark.asyncio
    async def test_recipient_delete_hides_from_inbox(
        self, db_session: AsyncSession, runtime: NotificationRuntime, notification_id
    ):
        assert len(await runtime.service.list_for_recipient(db_session, CUSTOMER_ID)) == 1

        deleted = await runtime.service.delete_notification(db_session, notification_id, CUSTOMER_ID)

        assert deleted.deleted_by_recipient
        assert not deleted.deleted_by_sender
        assert await runtime.service.list_for_recipient(db_session, CUSTOMER_ID) == []

    @pytest.mark.asyncio
    async def test_delete_checks_role_ownership(
        self, db_session: AsyncSession, runtime: NotificationRuntime, notification_id
    ):
        with pytest.raises(NotificationAccessDeniedError):
            await runtime.service.delete_notification(db_session, notification_id, SENDER_ID)

        deleted = await runtime.service.delete_notification(
            db_session, notification_id, SENDER_ID, role="sender"
        )
        assert deleted.deleted_by_sender

        with pytest.raises(ValidationException):
            await runtime.service.delete_notification(
                db_session, notification_id, SENDER_ID, role="admin"  # type: ignore[arg-type]
            )

    @pytest.mark.asyncio
    async def test_unknown_notification(self, db_session: AsyncSession, runtime: NotificationRuntime):
        with pytest.raises(NotificationNotFoundError):
            await runtime.service.get_notification_status(db_session, uuid4())

"""Tests for queue processing: batches, retries, rate limiting."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import pytest

from notify_service.features.notifications.exceptions import NotificationNotFoundError
from notify_service.features.notifications.models import ChannelConfig, SystemNotificationSettings
from notify_service.features.notifications.repository import get_email_queue_repository
from notify_service.features.notifications.schemas import NotificationCreate
from tests.utils import CUSTOMER_ID, SENDER_ID, TENANT_ID, ProviderStub, add_rows

if TYPE_CHECKING:
    from unittest.mock import AsyncMock

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from notify_service.features.notifications.runtime import NotificationRuntime

pytestmark = pytest.mark.usefixtures("seeded")


async def queue_notification(
    session: AsyncSession, runtime: NotificationRuntime, **overrides: Any
):
    values: dict[str, Any] = {
        "sender_id": SENDER_ID,
        "recipient_id": CUSTOMER_ID,
        "tenant_id": TENANT_ID,
        "subject": "Order update",
        "body": "Your order has shipped",
        "kind": "order",
    }
    values.update(overrides)
    result = await runtime.service.create_notification(
        session, NotificationCreate(**values), send_now=False
    )
    return result.notification


@pytest.fixture
async def line_enabled(session_factory: async_sessionmaker[AsyncSession]) -> None:
    await add_rows(
        session_factory,
        ChannelConfig(
            tenant_id=TENANT_ID,
            channel="line",
            enabled=True,
            credentials={"channel_access_token": "line-token"},
        ),
    )


class TestProcessBatch:
    @pytest.mark.asyncio
    @pytest.mark.usefixtures("line_enabled")
    async def test_highest_priority_first(
        self, db_session: AsyncSession, runtime: NotificationRuntime, provider: ProviderStub
    ):
        provider.route("api.line.me", json={"sentMessages": [{"id": "L-1"}]})
        await queue_notification(db_session, runtime, subject="Routine", channels=["line"])
        await queue_notification(db_session, runtime, subject="Urgent", channels=["line"], priority=2)

        batch = await runtime.queue.process_batch(db_session)

        assert batch.processed == 2
        assert batch.succeeded == 2
        texts = [json.loads(r.content)["messages"][0]["text"] for r in provider.requests]
        assert texts[0].startswith("Urgent")
        assert texts[1].startswith("Routine")

    @pytest.mark.asyncio
    async def test_limit_caps_the_batch(self, db_session: AsyncSession, runtime: NotificationRuntime):
        for _ in range(3):
            await queue_notification(db_session, runtime, channels=["onsite"])

        assert (await runtime.queue.process_batch(db_session, limit=2)).processed == 2
        assert (await runtime.queue.process_batch(db_session)).processed == 1
        assert (await runtime.queue.process_batch(db_session)).processed == 0

    @pytest.mark.asyncio
    async def test_email_drained_from_queue_table(
        self, db_session: AsyncSession, runtime: NotificationRuntime, smtp_send: AsyncMock
    ):
        notification = await queue_notification(db_session, runtime)

        batch = await runtime.queue.process_batch(db_session)

        assert batch.succeeded == 2
        smtp_send.assert_awaited_once()
        sent = smtp_send.call_args.args[0]
        assert sent["To"] == "Casey Customer <casey@example.com>"
        item = await get_email_queue_repository().get_for_notification(db_session, notification.id)
        assert item.sent_on is not None
        statuses = {r.channel: r.status for r in await runtime.tracker.get_status(db_session, notification.id)}
        assert statuses == {"onsite": "delivered", "email": "sent"}

    @pytest.mark.asyncio
    async def test_email_sends_queued_bodies(
        self, db_session: AsyncSession, runtime: NotificationRuntime, smtp_send: AsyncMock
    ):
        notification = await queue_notification(
            db_session, runtime, body="<p>Hi <b>Amy</b></p>", channels=["email"]
        )
        item = await get_email_queue_repository().get_for_notification(db_session, notification.id)

        await runtime.queue.process_notification(db_session, notification.id, "email")

        sent = smtp_send.call_args.args[0]
        assert sent.get_body(preferencelist=("plain",)).get_content().strip() == "Hi Amy"
        html = sent.get_body(preferencelist=("html",)).get_content()
        assert html.strip() == item.html_body.strip()
        assert "&lt;p&gt;" not in html

    @pytest.mark.asyncio
    @pytest.mark.usefixtures("line_enabled")
    async def test_failed_delivery_is_retried(
        self, db_session: AsyncSession, runtime: NotificationRuntime, provider: ProviderStub
    ):
        provider.route("api.line.me", status_code=500, text="boom")
        notification = await queue_notification(db_session, runtime, channels=["line"])

        first = await runtime.queue.process_batch(db_session)
        assert first.failed == 1
        (row,) = await runtime.tracker.get_status(db_session, notification.id)
        assert row.status == "failed"
        assert row.attempt_count == 1
        assert "HTTP 500" in row.error_message

        provider.route("api.line.me", json={"sentMessages": [{"id": "L-2"}]})
        second = await runtime.queue.process_batch(db_session)
        assert second.succeeded == 1
        (row,) = await runtime.tracker.get_status(db_session, notification.id)
        assert row.status == "sent"
        assert row.attempt_count == 2
        assert row.error_message is None

    @pytest.mark.asyncio
    @pytest.mark.usefixtures("line_enabled")
    async def test_attempt_ceiling_stops_retries(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        runtime: NotificationRuntime,
        provider: ProviderStub,
    ):
        await add_rows(session_factory, SystemNotificationSettings(id=1, max_retry_attempts=1))
        provider.route("api.line.me", status_code=503)
        await queue_notification(db_session, runtime, channels=["line"])

        assert (await runtime.queue.process_batch(db_session)).failed == 1
        assert (await runtime.queue.process_batch(db_session)).processed == 0
        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_rate_limited_delivery_stays_pending(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        runtime: NotificationRuntime,
    ):
        await add_rows(session_factory, SystemNotificationSettings(id=1, global_rate_limit_per_minute=1))
        await queue_notification(db_session, runtime, channels=["onsite"])
        deferred = await queue_notification(db_session, runtime, channels=["onsite"])

        batch = await runtime.queue.process_batch(db_session)

        assert batch.succeeded == 1
        assert batch.rate_limited == 1
        (row,) = await runtime.tracker.get_status(db_session, deferred.id)
        assert row.status == "pending"
        assert row.attempt_count == 0
        assert row.error_message.startswith("Rate limited")


class TestProcessNotification:
    @pytest.mark.asyncio
    @pytest.mark.usefixtures("line_enabled")
    async def test_completed_delivery_is_not_resent(
        self, db_session: AsyncSession, runtime: NotificationRuntime, provider: ProviderStub
    ):
        provider.route("api.line.me", json={"sentMessages": [{"id": "L-3"}]})
        notification = await queue_notification(db_session, runtime, channels=["line"])

        first = await runtime.queue.process_notification(db_session, notification.id, "line")
        again = await runtime.queue.process_notification(db_session, notification.id, "line")

        assert first.provider_message_id == again.provider_message_id == "L-3"
        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_channel_disabled_for_tenant(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        runtime: NotificationRuntime,
    ):
        await add_rows(
            session_factory, ChannelConfig(tenant_id=TENANT_ID, channel="onsite", enabled=False)
        )
        notification = await queue_notification(db_session, runtime, channels=["onsite"])

        result = await runtime.queue.process_notification(db_session, notification.id, "onsite")

        assert result.error == "Channel onsite is not enabled for tenant"

    @pytest.mark.asyncio
    async def test_unknown_notification(self, db_session: AsyncSession, runtime: NotificationRuntime):
        with pytest.raises(NotificationNotFoundError):
            await runtime.queue.process_notification(db_session, uuid4(), "onsite")


class TestChannelConfigLookup:
    @pytest.mark.asyncio
    @pytest.mark.usefixtures("line_enabled")
    async def test_tenant_row_or_builtin_default(
        self, db_session: AsyncSession, runtime: NotificationRuntime
    ):
        line = await runtime.queue.get_channel_config(db_session, TENANT_ID, "line")
        assert line.enabled
        assert line.credentials == {"channel_access_token": "line-token"}

        assert (await runtime.queue.get_channel_config(db_session, TENANT_ID, "onsite")).enabled
        assert (await runtime.queue.get_channel_config(db_session, TENANT_ID, "email")).enabled
        assert not (await runtime.queue.get_channel_config(db_session, "store-2", "line")).enabled

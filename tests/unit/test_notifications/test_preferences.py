"""Tests for layered preference resolution and the send gate."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from notify_service.core.exceptions import ValidationException
from notify_service.features.notifications.models import (
    ChannelConfig,
    NotificationPreference,
    SystemNotificationSettings,
)
from notify_service.features.notifications.preferences import PreferenceCache, PreferenceManager
from notify_service.features.notifications.preferences.manager import (
    REASON_SYSTEM_DISABLED,
    REASON_TENANT_DISABLED,
    REASON_USER_DISABLED,
)

TENANT = "store-1"
USER = "user-1"


@pytest.fixture
def manager() -> PreferenceManager:
    return PreferenceManager(PreferenceCache(ttl_seconds=300))


class TestPreferenceResolution:
    @pytest.mark.asyncio
    async def test_system_default_when_no_records(
        self, db_session: AsyncSession, manager: PreferenceManager
    ):
        resolved = await manager.get_user_preferences(db_session, USER, TENANT)

        assert resolved.source == "system_default"
        assert resolved.channel_enabled("sms")
        assert resolved.kind_enabled("marketing")
        assert resolved.frequency == "immediate"

    @pytest.mark.asyncio
    async def test_most_specific_record_wins(
        self, db_session: AsyncSession, manager: PreferenceManager
    ):
        db_session.add_all(
            [
                NotificationPreference(user_id=None, tenant_id=TENANT, sms_enabled=False),
                NotificationPreference(user_id=USER, tenant_id=None, line_enabled=False),
                NotificationPreference(user_id=USER, tenant_id=TENANT, email_enabled=False),
            ]
        )
        await db_session.flush()

        tenant_user = await manager.get_user_preferences(db_session, USER, TENANT)
        assert tenant_user.source == "tenant_user"
        assert not tenant_user.channel_enabled("email")
        assert tenant_user.channel_enabled("line")

        other_tenant = await manager.get_user_preferences(db_session, USER, "store-2")
        assert other_tenant.source == "user_global"
        assert not other_tenant.channel_enabled("line")

        other_user = await manager.get_user_preferences(db_session, "user-2", TENANT)
        assert other_user.source == "tenant_default"
        assert not other_user.channel_enabled("sms")

    @pytest.mark.asyncio
    async def test_resolution_is_cached_until_update(
        self, db_session: AsyncSession, manager: PreferenceManager
    ):
        first = await manager.get_user_preferences(db_session, USER, TENANT)
        assert first.source == "system_default"

        # Written behind the manager's back: the cache still answers
        db_session.add(NotificationPreference(user_id=USER, tenant_id=TENANT, sms_enabled=False))
        await db_session.flush()
        assert await manager.get_user_preferences(db_session, USER, TENANT) is first

        await manager.update_user_preferences(db_session, USER, TENANT, push_enabled=False)
        updated = await manager.get_user_preferences(db_session, USER, TENANT)
        assert updated.source == "tenant_user"
        assert not updated.channel_enabled("sms")
        assert not updated.channel_enabled("push")

    @pytest.mark.asyncio
    async def test_update_tenant_default_invalidates_tenant_entries(
        self, db_session: AsyncSession, manager: PreferenceManager
    ):
        await manager.get_user_preferences(db_session, "user-2", TENANT)
        await manager.update_tenant_default(db_session, TENANT, marketing_notifications=False)

        resolved = await manager.get_user_preferences(db_session, "user-2", TENANT)
        assert resolved.source == "tenant_default"
        assert not resolved.kind_enabled("marketing")

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_fields(
        self, db_session: AsyncSession, manager: PreferenceManager
    ):
        with pytest.raises(ValidationException) as exc_info:
            await manager.update_user_preferences(db_session, USER, None, fax_enabled=True)
        assert exc_info.value.extra["fields"] == ["fax_enabled"]

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_frequency(
        self, db_session: AsyncSession, manager: PreferenceManager
    ):
        with pytest.raises(ValidationException):
            await manager.update_user_preferences(db_session, USER, None, frequency="hourly")

    @pytest.mark.asyncio
    async def test_update_ignores_none_values(
        self, db_session: AsyncSession, manager: PreferenceManager
    ):
        record = await manager.update_user_preferences(
            db_session, USER, None, email_enabled=None, frequency="daily"
        )
        assert record.email_enabled is True
        assert record.frequency == "daily"


class TestSendGate:
    @pytest.mark.asyncio
    async def test_allows_default_channels(
        self, db_session: AsyncSession, manager: PreferenceManager
    ):
        decision = await manager.should_send_notification(
            db_session, USER, TENANT, "order", ["onsite", "email"]
        )
        assert decision.allowed
        assert decision.allowed_channels == ("onsite", "email")
        assert decision.reason is None

    @pytest.mark.asyncio
    async def test_system_switch_blocks_everything(
        self, db_session: AsyncSession, manager: PreferenceManager
    ):
        db_session.add(SystemNotificationSettings(id=1, notifications_enabled=False))
        await db_session.flush()

        decision = await manager.should_send_notification(
            db_session, USER, TENANT, "order", ["onsite"]
        )
        assert not decision.allowed
        assert decision.reason == REASON_SYSTEM_DISABLED
        assert decision.allowed_channels == ()

    @pytest.mark.asyncio
    async def test_unconfigured_tenant_channels_are_dropped(
        self, db_session: AsyncSession, manager: PreferenceManager
    ):
        db_session.add(ChannelConfig(tenant_id=TENANT, channel="telegram", enabled=True))
        db_session.add(ChannelConfig(tenant_id=TENANT, channel="sms", enabled=False))
        await db_session.flush()

        decision = await manager.should_send_notification(
            db_session, USER, TENANT, "order", ["line", "telegram", "sms", "onsite"]
        )
        assert decision.allowed_channels == ("telegram", "onsite")

        rejected = await manager.should_send_notification(
            db_session, USER, TENANT, "order", ["line", "sms"]
        )
        assert not rejected.allowed
        assert rejected.reason == REASON_TENANT_DISABLED

    @pytest.mark.asyncio
    async def test_system_email_switch_drops_email(
        self, db_session: AsyncSession, manager: PreferenceManager
    ):
        db_session.add(SystemNotificationSettings(id=1, email_enabled=False))
        await db_session.flush()

        decision = await manager.should_send_notification(
            db_session, USER, TENANT, "order", ["onsite", "email"]
        )
        assert decision.allowed_channels == ("onsite",)

    @pytest.mark.asyncio
    async def test_tenant_default_vetoes_all_but_onsite(
        self, db_session: AsyncSession, manager: PreferenceManager
    ):
        db_session.add(
            NotificationPreference(
                user_id=None, tenant_id=TENANT, onsite_enabled=False, email_enabled=False
            )
        )
        # The user's own record re-enables everything; the tenant veto still applies
        db_session.add(NotificationPreference(user_id=USER, tenant_id=TENANT))
        await db_session.flush()

        decision = await manager.should_send_notification(
            db_session, USER, TENANT, "order", ["email", "onsite"]
        )
        assert decision.allowed_channels == ("onsite",)

    @pytest.mark.asyncio
    async def test_kind_opt_out(self, db_session: AsyncSession, manager: PreferenceManager):
        db_session.add(
            NotificationPreference(user_id=USER, tenant_id=None, marketing_notifications=False)
        )
        await db_session.flush()

        decision = await manager.should_send_notification(
            db_session, USER, TENANT, "marketing", ["onsite"]
        )
        assert not decision.allowed
        assert decision.reason == "User has disabled marketing notifications"

    @pytest.mark.asyncio
    async def test_user_disabled_every_requested_channel(
        self, db_session: AsyncSession, manager: PreferenceManager
    ):
        db_session.add(
            NotificationPreference(
                user_id=USER, tenant_id=TENANT, onsite_enabled=False, email_enabled=False
            )
        )
        await db_session.flush()

        decision = await manager.should_send_notification(
            db_session, USER, TENANT, "order", ["onsite", "email"]
        )
        assert not decision.allowed
        assert decision.reason == REASON_USER_DISABLED

    @pytest.mark.asyncio
    async def test_duplicates_collapse_in_requested_order(
        self, db_session: AsyncSession, manager: PreferenceManager
    ):
        decision = await manager.should_send_notification(
            db_session, USER, None, "system", ["email", "onsite", "email"]
        )
        assert decision.allowed_channels == ("email", "onsite")

"""Repositories for the notifications feature."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from notify_service.core.database.repository import BaseRepository
from notify_service.core.models import User
from notify_service.features.notifications.enums import DeliveryState
from notify_service.features.notifications.models import (
    ChannelConfig,
    EmailQueueItem,
    MessageTemplate,
    MessageTemplateLocalized,
    Notification,
    NotificationDeliveryStatus,
    NotificationPreference,
    SystemNotificationSettings,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession


class NotificationRepository(BaseRepository[Notification]):
    """Repository for Notification rows."""

    def __init__(self) -> None:
        super().__init__(Notification)

    async def list_for_recipient(
        self,
        session: AsyncSession,
        user_id: str,
        *,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[Notification]:
        """Recipient inbox, newest first, excluding rows the recipient deleted."""
        stmt = select(Notification).where(
            Notification.recipient_id == user_id,
            Notification.deleted_by_recipient.is_(False),
        )
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc()).limit(limit).offset(offset)
        result = await session.execute(stmt)
        items = result.scalars().all()
        self._lazy.debug(lambda: f"db.list_for_recipient({user_id=}, {unread_only=}) -> {len(items)}")
        return items


class DeliveryStatusRepository(BaseRepository[NotificationDeliveryStatus]):
    """Repository for the per-channel delivery ledger."""

    def __init__(self) -> None:
        super().__init__(NotificationDeliveryStatus)

    async def get_for(
        self, session: AsyncSession, notification_id: UUID, channel: str
    ) -> NotificationDeliveryStatus | None:
        stmt = select(NotificationDeliveryStatus).where(
            NotificationDeliveryStatus.notification_id == notification_id,
            NotificationDeliveryStatus.channel == channel,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_notification(
        self, session: AsyncSession, notification_id: UUID
    ) -> Sequence[NotificationDeliveryStatus]:
        stmt = (
            select(NotificationDeliveryStatus)
            .where(NotificationDeliveryStatus.notification_id == notification_id)
            .order_by(NotificationDeliveryStatus.created_at)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def find_by_provider_message(
        self, session: AsyncSession, channel: str, provider_message_id: str
    ) -> NotificationDeliveryStatus | None:
        """Look up a ledger row from a provider callback."""
        stmt = select(NotificationDeliveryStatus).where(
            NotificationDeliveryStatus.channel == channel,
            NotificationDeliveryStatus.provider_message_id == provider_message_id,
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    async def list_dispatchable(
        self,
        session: AsyncSession,
        *,
        max_attempts: int,
        limit: int,
        exclude_channels: Sequence[str] = (),
    ) -> Sequence[tuple[NotificationDeliveryStatus, Notification]]:
        """Pending and retryable failed rows, highest priority first.

        Rows whose attempt count has reached ``max_attempts`` are never
        returned, which is what bounds retries.
        """
        stmt = (
            select(NotificationDeliveryStatus, Notification)
            .join(Notification, Notification.id == NotificationDeliveryStatus.notification_id)
            .where(
                NotificationDeliveryStatus.status.in_(
                    [DeliveryState.PENDING.value, DeliveryState.FAILED.value]
                ),
                NotificationDeliveryStatus.attempt_count < max_attempts,
            )
            .order_by(Notification.priority.desc(), NotificationDeliveryStatus.created_at.asc())
            .limit(limit)
        )
        if exclude_channels:
            stmt = stmt.where(NotificationDeliveryStatus.channel.not_in(list(exclude_channels)))
        result = await session.execute(stmt)
        rows = [(row[0], row[1]) for row in result.all()]
        self._lazy.debug(lambda: f"db.list_dispatchable({max_attempts=}, {limit=}) -> {len(rows)}")
        return rows


class PreferenceRepository(BaseRepository[NotificationPreference]):
    """Repository for layered preference records."""

    def __init__(self) -> None:
        super().__init__(NotificationPreference)

    async def get_exact(
        self, session: AsyncSession, user_id: str | None, tenant_id: str | None
    ) -> NotificationPreference | None:
        """Fetch the record for exactly this (user, tenant) layer.

        ``None`` matches SQL NULL, so ``(user, None)`` is the user's global
        record and ``(None, tenant)`` the tenant default.
        """
        user_clause = (
            NotificationPreference.user_id.is_(None)
            if user_id is None
            else NotificationPreference.user_id == user_id
        )
        tenant_clause = (
            NotificationPreference.tenant_id.is_(None)
            if tenant_id is None
            else NotificationPreference.tenant_id == tenant_id
        )
        stmt = select(NotificationPreference).where(user_clause, tenant_clause)
        result = await session.execute(stmt)
        return result.scalars().first()

    async def upsert(
        self,
        session: AsyncSession,
        user_id: str | None,
        tenant_id: str | None,
        values: dict[str, Any],
    ) -> NotificationPreference:
        """Create or update the record for one layer."""
        record = await self.get_exact(session, user_id, tenant_id)
        if record is None:
            record = NotificationPreference(user_id=user_id, tenant_id=tenant_id, **values)
            session.add(record)
        else:
            for field, value in values.items():
                setattr(record, field, value)
        await session.flush()
        return record


class ChannelConfigRepository(BaseRepository[ChannelConfig]):
    """Read-side repository for tenant channel configuration."""

    def __init__(self) -> None:
        super().__init__(ChannelConfig)

    async def get_for(
        self, session: AsyncSession, tenant_id: str, channel: str
    ) -> ChannelConfig | None:
        stmt = select(ChannelConfig).where(
            ChannelConfig.tenant_id == tenant_id,
            ChannelConfig.channel == channel,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_tenant(
        self, session: AsyncSession, tenant_id: str
    ) -> Sequence[ChannelConfig]:
        stmt = select(ChannelConfig).where(ChannelConfig.tenant_id == tenant_id)
        result = await session.execute(stmt)
        return result.scalars().all()


class SystemSettingsRepository(BaseRepository[SystemNotificationSettings]):
    """Accessor for the singleton platform settings row."""

    SINGLETON_ID = 1

    def __init__(self) -> None:
        super().__init__(SystemNotificationSettings)

    async def get_current(self, session: AsyncSession) -> SystemNotificationSettings | None:
        return await self.get(session, self.SINGLETON_ID)


class EmailQueueRepository(BaseRepository[EmailQueueItem]):
    """Repository for the outbound email queue table."""

    def __init__(self) -> None:
        super().__init__(EmailQueueItem)

    async def get_for_notification(
        self, session: AsyncSession, notification_id: UUID
    ) -> EmailQueueItem | None:
        stmt = select(EmailQueueItem).where(EmailQueueItem.notification_id == notification_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_message_id(
        self, session: AsyncSession, provider_message_id: str
    ) -> EmailQueueItem | None:
        stmt = select(EmailQueueItem).where(
            EmailQueueItem.provider_message_id == provider_message_id
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    async def list_pending(
        self, session: AsyncSession, *, max_attempts: int, limit: int
    ) -> Sequence[EmailQueueItem]:
        """Unsent rows under the attempt ceiling, highest priority first."""
        stmt = (
            select(EmailQueueItem)
            .where(
                EmailQueueItem.sent_on.is_(None),
                EmailQueueItem.send_tries < max_attempts,
                EmailQueueItem.notification_id.is_not(None),
            )
            .order_by(EmailQueueItem.priority.desc(), EmailQueueItem.created_at.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return result.scalars().all()


class TemplateRepository(BaseRepository[MessageTemplate]):
    """Repository for message templates and their localized variants."""

    def __init__(self) -> None:
        super().__init__(MessageTemplate)

    async def get_active_variant(
        self, session: AsyncSession, template_id: UUID, locale: str
    ) -> MessageTemplateLocalized | None:
        stmt = select(MessageTemplateLocalized).where(
            MessageTemplateLocalized.template_id == template_id,
            MessageTemplateLocalized.locale == locale,
            MessageTemplateLocalized.is_active.is_(True),
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()


class RecipientRepository(BaseRepository[User]):
    """Read access to platform users for addressing."""

    def __init__(self) -> None:
        super().__init__(User)


_notification_repository: NotificationRepository | None = None
_delivery_repository: DeliveryStatusRepository | None = None
_preference_repository: PreferenceRepository | None = None
_channel_config_repository: ChannelConfigRepository | None = None
_system_settings_repository: SystemSettingsRepository | None = None
_email_queue_repository: EmailQueueRepository | None = None
_template_repository: TemplateRepository | None = None
_recipient_repository: RecipientRepository | None = None


def get_notification_repository() -> NotificationRepository:
    global _notification_repository
    if _notification_repository is None:
        _notification_repository = NotificationRepository()
    return _notification_repository


def get_delivery_status_repository() -> DeliveryStatusRepository:
    global _delivery_repository
    if _delivery_repository is None:
        _delivery_repository = DeliveryStatusRepository()
    return _delivery_repository


def get_preference_repository() -> PreferenceRepository:
    global _preference_repository
    if _preference_repository is None:
        _preference_repository = PreferenceRepository()
    return _preference_repository


def get_channel_config_repository() -> ChannelConfigRepository:
    global _channel_config_repository
    if _channel_config_repository is None:
        _channel_config_repository = ChannelConfigRepository()
    return _channel_config_repository


def get_system_settings_repository() -> SystemSettingsRepository:
    global _system_settings_repository
    if _system_settings_repository is None:
        _system_settings_repository = SystemSettingsRepository()
    return _system_settings_repository


def get_email_queue_repository() -> EmailQueueRepository:
    global _email_queue_repository
    if _email_queue_repository is None:
        _email_queue_repository = EmailQueueRepository()
    return _email_queue_repository


def get_template_repository() -> TemplateRepository:
    global _template_repository
    if _template_repository is None:
        _template_repository = TemplateRepository()
    return _template_repository


def get_recipient_repository() -> RecipientRepository:
    global _recipient_repository
    if _recipient_repository is None:
        _recipient_repository = RecipientRepository()
    return _recipient_repository

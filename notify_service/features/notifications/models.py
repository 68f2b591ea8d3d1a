"""SQLAlchemy models for the notifications feature."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notify_service.core.database import Base, TenantMixin, TimestampMixin, UUIDTimestampedBase

from .enums import DeliveryState, DigestFrequency, NotificationKind, NotificationPriority


class Notification(UUIDTimestampedBase, TenantMixin):
    """A message addressed to one recipient.

    Content is immutable once created. The only mutations are mark-read and
    the two independent soft-delete flags; rows are never physically deleted.
    """

    __tablename__ = "notifications"

    sender_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    recipient_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text(), nullable=False)
    kind: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=NotificationKind.SYSTEM.value,
        comment="order | reservation | credit | payment | system | marketing",
    )
    action_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    priority: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=NotificationPriority.NORMAL.value,
        comment="0 normal, 1 high, 2 urgent",
    )

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by_sender: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_by_recipient: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    deliveries: Mapped[list[NotificationDeliveryStatus]] = relationship(
        back_populates="notification",
        lazy="selectin",
        order_by="NotificationDeliveryStatus.created_at",
    )

    __table_args__ = (
        Index("ix_notifications_recipient_unread", "recipient_id", "is_read"),
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, recipient={self.recipient_id!r}, kind={self.kind!r})>"


class NotificationDeliveryStatus(UUIDTimestampedBase):
    """Delivery ledger row for one (notification, channel) pair.

    The only record in the subsystem that is mutated repeatedly, by the
    queue manager and by inbound provider callbacks.
    """

    __tablename__ = "notification_delivery_status"

    notification_id: Mapped[UUID] = mapped_column(
        ForeignKey("notifications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    channel: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DeliveryState.PENDING.value,
        index=True,
    )
    provider_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text(), nullable=True)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    notification: Mapped[Notification] = relationship(back_populates="deliveries")

    __table_args__ = (
        UniqueConstraint("notification_id", "channel", name="uq_delivery_notification_channel"),
        Index("ix_delivery_channel_message", "channel", "provider_message_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<NotificationDeliveryStatus(notification_id={self.notification_id}, "
            f"channel={self.channel!r}, status={self.status!r})>"
        )


class NotificationPreference(UUIDTimestampedBase, TenantMixin):
    """Layered preference record.

    ``user_id`` NULL means the tenant-wide default; ``tenant_id`` NULL means
    the user's global default. Both NULL is not used; the system default is
    implicit and all-enabled.
    """

    __tablename__ = "notification_preferences"

    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    onsite_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    email_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    line_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    whatsapp_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    telegram_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sms_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    push_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    order_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    reservation_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    credit_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    payment_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    system_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    marketing_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    frequency: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DigestFrequency.IMMEDIATE.value,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "tenant_id", name="uq_preference_user_tenant"),
    )


class ChannelConfig(UUIDTimestampedBase):
    """Per-tenant, per-channel configuration, owned by tenant administration."""

    __tablename__ = "notification_channel_configs"

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    channel: Mapped[str] = mapped_column(String(32), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    credentials: Mapped[dict[str, Any]] = mapped_column(
        JSONB().with_variant(JSON(), "sqlite"),
        nullable=False,
        default=dict,
        comment="Opaque provider credentials (tokens, keys)",
    )
    settings: Mapped[dict[str, Any]] = mapped_column(
        JSONB().with_variant(JSON(), "sqlite"),
        nullable=False,
        default=dict,
        comment="Opaque channel settings (template names, limits)",
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "channel", name="uq_channel_config_tenant_channel"),
    )


class SystemNotificationSettings(Base, TimestampMixin):
    """Platform-wide notification switches (singleton row, id=1)."""

    __tablename__ = "system_notification_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    email_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    global_rate_limit_per_minute: Mapped[int | None] = mapped_column(Integer, nullable=True)
    queue_batch_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_retry_attempts: Mapped[int | None] = mapped_column(Integer, nullable=True)
    default_locale: Mapped[str | None] = mapped_column(String(10), nullable=True)


class EmailQueueItem(UUIDTimestampedBase, TenantMixin):
    """Provider-agnostic outbound email row.

    At most one row per notification; the SMTP relay drains unsent rows in
    priority order.
    """

    __tablename__ = "email_queue"

    notification_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("notifications.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )
    to_address: Mapped[str] = mapped_column(String(255), nullable=False)
    to_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    text_body: Mapped[str] = mapped_column(Text(), nullable=False)
    html_body: Mapped[str | None] = mapped_column(Text(), nullable=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    send_tries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sent_on: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text(), nullable=True)
    provider_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_email_queue_pending", "sent_on", "priority", "created_at"),
    )


class MessageTemplate(UUIDTimestampedBase, TenantMixin):
    """Named message template; content lives in localized variants."""

    __tablename__ = "message_templates"

    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    template_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="email",
        comment="email | sms | line | push | onsite",
    )

    localizations: Mapped[list[MessageTemplateLocalized]] = relationship(
        back_populates="template",
        lazy="selectin",
    )


class MessageTemplateLocalized(UUIDTimestampedBase):
    """Locale-specific subject/body for a MessageTemplate."""

    __tablename__ = "message_template_localized"

    template_id: Mapped[UUID] = mapped_column(
        ForeignKey("message_templates.id", ondelete="CASCADE"),
        nullable=False,
    )
    locale: Mapped[str] = mapped_column(String(10), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    body: Mapped[str] = mapped_column(Text(), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    template: Mapped[MessageTemplate] = relationship(back_populates="localizations")

    __table_args__ = (
        UniqueConstraint("template_id", "locale", name="uq_template_locale"),
    )

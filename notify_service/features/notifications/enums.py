"""Enumerations shared across the notification feature.

Values are persisted as plain strings (priority as an int) so they survive
dialect changes without database ENUM migrations.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class NotificationChannel(StrEnum):
    """Communication medium a notification can be delivered through."""

    ONSITE = "onsite"
    EMAIL = "email"
    LINE = "line"
    WHATSAPP = "whatsapp"
    TELEGRAM = "telegram"
    SMS = "sms"
    PUSH = "push"

    @property
    def supports_read_receipts(self) -> bool:
        """Whether a delivered message on this channel may move to ``read``."""
        return self in READ_RECEIPT_CHANNELS


READ_RECEIPT_CHANNELS = frozenset(
    {
        NotificationChannel.EMAIL,
        NotificationChannel.LINE,
        NotificationChannel.WHATSAPP,
        NotificationChannel.TELEGRAM,
    }
)

DEFAULT_CHANNELS = (NotificationChannel.ONSITE, NotificationChannel.EMAIL)


class NotificationKind(StrEnum):
    """Business category of a notification, used for coarse opt-out."""

    ORDER = "order"
    RESERVATION = "reservation"
    CREDIT = "credit"
    PAYMENT = "payment"
    SYSTEM = "system"
    MARKETING = "marketing"


class NotificationPriority(IntEnum):
    NORMAL = 0
    HIGH = 1
    URGENT = 2


class DeliveryState(StrEnum):
    """Per-channel lifecycle state of one notification's delivery."""

    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"
    BOUNCED = "bounced"


class DigestFrequency(StrEnum):
    IMMEDIATE = "immediate"
    DAILY = "daily"
    WEEKLY = "weekly"


# Channels that cannot send without tenant-supplied provider credentials
TENANT_CONFIGURED_CHANNELS = frozenset(
    {
        NotificationChannel.LINE,
        NotificationChannel.WHATSAPP,
        NotificationChannel.TELEGRAM,
        NotificationChannel.SMS,
        NotificationChannel.PUSH,
    }
)

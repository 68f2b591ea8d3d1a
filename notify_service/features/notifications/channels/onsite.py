"""In-app channel: the notification row itself is the delivery."""

from __future__ import annotations

from typing import TYPE_CHECKING

from notify_service.core.database import utcnow
from notify_service.features.notifications.enums import NotificationChannel

from .base import BaseChannelAdapter, SendResult

if TYPE_CHECKING:
    from .base import ChannelConfigData, OutboundMessage


class OnsiteChannelAdapter(BaseChannelAdapter):
    """Always succeeds; the inbox query reads the notification table directly."""

    channel = NotificationChannel.ONSITE

    async def _deliver(self, message: OutboundMessage, config: ChannelConfigData) -> SendResult:
        return SendResult.ok(str(message.notification_id), delivered_at=utcnow())

"""Channel adapter registry."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from notify_service.core.exceptions import ConfigurationException
from notify_service.features.notifications.enums import NotificationChannel
from notify_service.features.notifications.exceptions import ChannelNotRegisteredError

from .email import EmailChannelAdapter
from .line import LineChannelAdapter
from .onsite import OnsiteChannelAdapter
from .push import PushChannelAdapter
from .sms import SmsChannelAdapter
from .telegram import TelegramChannelAdapter
from .whatsapp import WhatsAppChannelAdapter

if TYPE_CHECKING:
    import httpx
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from notify_service.core.settings import EmailSettings, NotificationSettings

    from .base import ChannelAdapter

logger = logging.getLogger(__name__)


class ChannelAdapterRegistry:
    """Maps channel names to adapters.

    Populated once at startup and then frozen; lookups after that are
    read-only and safe to share across tasks.
    """

    def __init__(self) -> None:
        self._adapters: dict[str, ChannelAdapter] = {}
        self._frozen = False

    def register(self, adapter: ChannelAdapter) -> None:
        if self._frozen:
            msg = "Channel adapter registry is frozen"
            raise RuntimeError(msg)
        name = str(adapter.channel)
        if name in self._adapters:
            logger.warning("Replacing channel adapter", extra={"channel": name})
        self._adapters[name] = adapter

    def get(self, channel: str) -> ChannelAdapter:
        try:
            return self._adapters[str(channel)]
        except KeyError:
            raise ChannelNotRegisteredError(str(channel)) from None

    def __contains__(self, channel: object) -> bool:
        return str(channel) in self._adapters

    def channels(self) -> list[str]:
        return list(self._adapters)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def ensure_complete(self) -> None:
        """Fail startup when a known channel has no adapter."""
        missing = [c.value for c in NotificationChannel if c.value not in self._adapters]
        if missing:
            raise ConfigurationException(
                detail=f"No adapter registered for channels: {', '.join(missing)}",
                type="channel-registry-incomplete",
                extra={"missing": missing},
            )


def build_default_registry(
    http_client: httpx.AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
    settings: NotificationSettings,
    email_settings: EmailSettings | None = None,
) -> ChannelAdapterRegistry:
    """Register one adapter per channel, check completeness and freeze."""
    registry = ChannelAdapterRegistry()
    registry.register(OnsiteChannelAdapter(http_client, session_factory))
    registry.register(EmailChannelAdapter(http_client, session_factory, settings=email_settings))
    registry.register(
        LineChannelAdapter(http_client, session_factory, api_base=settings.line_api_base)
    )
    registry.register(
        TelegramChannelAdapter(http_client, session_factory, api_base=settings.telegram_api_base)
    )
    registry.register(
        WhatsAppChannelAdapter(http_client, session_factory, api_base=settings.whatsapp_api_base)
    )
    registry.register(
        SmsChannelAdapter(http_client, session_factory, gateway_url=settings.sms_gateway_url)
    )
    registry.register(
        PushChannelAdapter(http_client, session_factory, gateway_url=settings.push_gateway_url)
    )
    registry.ensure_complete()
    registry.freeze()
    logger.info("Channel adapters registered", extra={"channels": registry.channels()})
    return registry

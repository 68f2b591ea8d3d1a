"""Telegram Bot API adapter."""

from __future__ import annotations

from typing import TYPE_CHECKING

from notify_service.features.notifications.enums import NotificationChannel

from .base import BaseChannelAdapter, SendResult, chunk_text
from .line import compose_text

if TYPE_CHECKING:
    import httpx
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from .base import ChannelConfigData, OutboundMessage

MAX_MESSAGE_LENGTH = 4096


class TelegramChannelAdapter(BaseChannelAdapter):
    """One ``sendMessage`` call per 4096-character chunk.

    The provider message id is the id of the first chunk, formatted as
    ``{chat_id}:{message_id}`` since Telegram ids are only unique per chat.
    """

    channel = NotificationChannel.TELEGRAM
    required_credentials = ("bot_token",)

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        api_base: str = "https://api.telegram.org",
    ) -> None:
        super().__init__(http_client, session_factory)
        self._api_base = api_base.rstrip("/")

    async def _deliver(self, message: OutboundMessage, config: ChannelConfigData) -> SendResult:
        chat_id = message.telegram_chat_id
        if not chat_id:
            return SendResult.failure("Recipient has no Telegram chat id")

        url = f"{self._api_base}/bot{config.credentials['bot_token']}/sendMessage"
        first_id: str | None = None
        for chunk in chunk_text(compose_text(message), MAX_MESSAGE_LENGTH):
            response = await self.http.post(
                url,
                json={"chat_id": chat_id, "text": chunk, "disable_web_page_preview": True},
            )
            response.raise_for_status()
            payload = response.json()
            if not payload.get("ok", False):
                return SendResult.failure(f"Telegram rejected message: {payload.get('description', 'unknown error')}")
            if first_id is None:
                first_id = f"{chat_id}:{payload['result']['message_id']}"
        return SendResult.ok(first_id)

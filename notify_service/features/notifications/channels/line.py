"""LINE Messaging API push adapter."""

from __future__ import annotations

from typing import TYPE_CHECKING

from notify_service.features.notifications.enums import NotificationChannel

from .base import BaseChannelAdapter, SendResult, chunk_text, truncate

if TYPE_CHECKING:
    import httpx
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from .base import ChannelConfigData, OutboundMessage

MAX_TEXT_LENGTH = 5000
MAX_MESSAGES_PER_PUSH = 5


def compose_text(message: OutboundMessage) -> str:
    parts = [message.subject, message.body]
    if message.action_url:
        parts.append(message.action_url)
    return "\n\n".join(p for p in parts if p)


def split_for_push(text: str) -> list[str]:
    """Chunks of at most 5000 chars, at most 5 of them; overflow is truncated."""
    chunks = chunk_text(text, MAX_TEXT_LENGTH)
    if len(chunks) <= MAX_MESSAGES_PER_PUSH:
        return chunks
    kept = chunks[:MAX_MESSAGES_PER_PUSH]
    kept[-1] = truncate(kept[-1] + chunks[MAX_MESSAGES_PER_PUSH], MAX_TEXT_LENGTH)
    return kept


class LineChannelAdapter(BaseChannelAdapter):
    channel = NotificationChannel.LINE
    required_credentials = ("channel_access_token",)

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        api_base: str = "https://api.line.me",
    ) -> None:
        super().__init__(http_client, session_factory)
        self._api_base = api_base.rstrip("/")

    async def _deliver(self, message: OutboundMessage, config: ChannelConfigData) -> SendResult:
        if not message.line_user_id:
            return SendResult.failure("Recipient has no LINE user id")

        chunks = split_for_push(compose_text(message))
        response = await self.http.post(
            f"{self._api_base}/v2/bot/message/push",
            headers={"Authorization": f"Bearer {config.credentials['channel_access_token']}"},
            json={
                "to": message.line_user_id,
                "messages": [{"type": "text", "text": chunk} for chunk in chunks],
            },
        )
        response.raise_for_status()

        message_id = response.headers.get("x-line-request-id")
        if response.content:
            sent = response.json().get("sentMessages") or []
            if sent and sent[0].get("id"):
                message_id = str(sent[0]["id"])
        self._lazy.debug(lambda: f"line.push({message.notification_id}) -> {len(chunks)} messages")
        return SendResult.ok(message_id)

"""WhatsApp Cloud API adapter."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from notify_service.features.notifications.enums import NotificationChannel

from .base import BaseChannelAdapter, SendResult, truncate
from .line import compose_text

if TYPE_CHECKING:
    import httpx
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from .base import ChannelConfigData, OutboundMessage

MAX_TEXT_LENGTH = 4096


class WhatsAppChannelAdapter(BaseChannelAdapter):
    """Sends a pre-approved template when ``settings.template_name`` is set.

    Business-initiated conversations outside the 24h service window only
    accept templates; free text is the fallback for tenants without one.
    """

    channel = NotificationChannel.WHATSAPP
    required_credentials = ("access_token", "phone_number_id")

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        api_base: str = "https://graph.facebook.com/v19.0",
    ) -> None:
        super().__init__(http_client, session_factory)
        self._api_base = api_base.rstrip("/")

    def build_payload(self, message: OutboundMessage, config: ChannelConfigData) -> dict[str, Any]:
        to = (message.whatsapp_number or "").lstrip("+")
        template_name = config.settings.get("template_name")
        if template_name:
            return {
                "messaging_product": "whatsapp",
                "to": to,
                "type": "template",
                "template": {
                    "name": template_name,
                    "language": {"code": config.settings.get("template_language", "en")},
                    "components": [
                        {
                            "type": "body",
                            "parameters": [
                                {"type": "text", "text": truncate(message.subject, 1024)},
                                {"type": "text", "text": truncate(message.body, 1024)},
                            ],
                        }
                    ],
                },
            }
        return {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": truncate(compose_text(message), MAX_TEXT_LENGTH), "preview_url": False},
        }

    async def _deliver(self, message: OutboundMessage, config: ChannelConfigData) -> SendResult:
        if not message.whatsapp_number:
            return SendResult.failure("Recipient has no WhatsApp number")

        response = await self.http.post(
            f"{self._api_base}/{config.credentials['phone_number_id']}/messages",
            headers={"Authorization": f"Bearer {config.credentials['access_token']}"},
            json=self.build_payload(message, config),
        )
        response.raise_for_status()
        messages = response.json().get("messages") or []
        return SendResult.ok(messages[0].get("id") if messages else None)

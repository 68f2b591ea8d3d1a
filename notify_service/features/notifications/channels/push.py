"""Push adapter for an FCM-style HTTP gateway."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from notify_service.features.notifications.enums import NotificationChannel

from .base import BaseChannelAdapter, SendResult, truncate

if TYPE_CHECKING:
    import httpx
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from .base import ChannelConfigData, OutboundMessage

MAX_TITLE_LENGTH = 100
MAX_BODY_LENGTH = 1000


class PushChannelAdapter(BaseChannelAdapter):
    channel = NotificationChannel.PUSH
    required_credentials = ("server_key",)

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        gateway_url: str = "https://fcm.googleapis.com/fcm/send",
    ) -> None:
        super().__init__(http_client, session_factory)
        self._gateway_url = gateway_url

    @staticmethod
    def build_payload(message: OutboundMessage) -> dict[str, Any]:
        data: dict[str, Any] = {
            "notification_id": str(message.notification_id),
            "kind": message.kind,
        }
        if message.action_url:
            data["action_url"] = message.action_url
        return {
            "to": message.push_token,
            "priority": "high" if message.priority > 0 else "normal",
            "notification": {
                "title": truncate(message.subject, MAX_TITLE_LENGTH),
                "body": truncate(message.body, MAX_BODY_LENGTH),
            },
            "data": data,
        }

    async def _deliver(self, message: OutboundMessage, config: ChannelConfigData) -> SendResult:
        if not message.push_token:
            return SendResult.failure("Recipient has no push token")

        response = await self.http.post(
            self._gateway_url,
            headers={"Authorization": f"key={config.credentials['server_key']}"},
            json=self.build_payload(message),
        )
        response.raise_for_status()

        payload = response.json()
        if payload.get("failure"):
            results = payload.get("results") or [{}]
            return SendResult.failure(f"Push gateway rejected token: {results[0].get('error', 'unknown')}")
        results = payload.get("results") or []
        message_id = results[0].get("message_id") if results else payload.get("message_id")
        return SendResult.ok(message_id)

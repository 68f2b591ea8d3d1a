"""Email channel: platform SMTP relay with a sandboxed HTML frame."""

from __future__ import annotations

from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import TYPE_CHECKING

import aiosmtplib
from jinja2 import DictLoader
from jinja2.sandbox import SandboxedEnvironment

from notify_service.core.settings import EmailSettings, get_email_settings
from notify_service.features.notifications.enums import DeliveryState, NotificationChannel
from notify_service.features.notifications.repository import (
    get_email_queue_repository,
    get_system_settings_repository,
)

from .base import BaseChannelAdapter, SendResult

if TYPE_CHECKING:
    import httpx
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from .base import ChannelConfigData, OutboundMessage

_FRAME_TEMPLATE = """\
<!DOCTYPE html>
<html lang="{{ lang }}">
<head><meta charset="utf-8"><title>{{ subject }}</title></head>
<body style="font-family: sans-serif; color: #222;">
  <h2 style="margin-bottom: 16px;">{{ subject }}</h2>
  <div>
  {%- for line in lines %}
    {{ line }}<br>
  {%- endfor %}
  </div>
  {%- if action_url %}
  <p><a href="{{ action_url }}" style="color: #0a66c2;">{{ action_label }}</a></p>
  {%- endif %}
  {%- if sender_name %}
  <p style="color: #888; font-size: 12px;">{{ sender_name }}</p>
  {%- endif %}
</body>
</html>
"""

_ACTION_LABELS = {"en": "View details", "tw": "查看詳情", "jp": "詳細を見る"}

_env = SandboxedEnvironment(
    loader=DictLoader({"email/frame.html": _FRAME_TEMPLATE}),
    autoescape=True,
    trim_blocks=True,
    lstrip_blocks=True,
)


def render_html_frame(
    subject: str,
    body: str,
    *,
    action_url: str | None = None,
    locale: str | None = None,
    sender_name: str | None = None,
) -> str:
    """Wrap a plain-text body in the platform HTML layout.

    The body is escaped line by line; nothing from a notification can
    inject markup.
    """
    lang = (locale or "en")[:2]
    return _env.get_template("email/frame.html").render(
        lang=lang,
        subject=subject,
        lines=body.splitlines() or [""],
        action_url=action_url,
        action_label=_ACTION_LABELS.get(lang, _ACTION_LABELS["en"]),
        sender_name=sender_name,
    )


class EmailChannelAdapter(BaseChannelAdapter):
    """Relays through the platform SMTP server configured by ``EMAIL_*``."""

    channel = NotificationChannel.EMAIL

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        settings: EmailSettings | None = None,
    ) -> None:
        super().__init__(http_client, session_factory)
        self._settings = settings or get_email_settings()

    def build_message(self, message: OutboundMessage, config: ChannelConfigData) -> EmailMessage:
        from_name = config.settings.get("from_name") or self._settings.default_from_name
        domain = str(self._settings.default_from_email).rsplit("@", 1)[-1]

        mime = EmailMessage()
        mime["Subject"] = message.subject
        mime["From"] = formataddr((from_name, str(self._settings.default_from_email)))
        mime["To"] = formataddr((message.recipient_name or "", message.email or ""))
        mime["Message-ID"] = make_msgid(domain=domain)
        if reply_to := config.settings.get("reply_to"):
            mime["Reply-To"] = reply_to
        text = message.text_body or message.body
        html = message.html_body or render_html_frame(
            message.subject,
            text,
            action_url=message.action_url,
            locale=message.locale,
            sender_name=from_name,
        )
        mime.set_content(text)
        mime.add_alternative(html, subtype="html")
        return mime

    async def _deliver(self, message: OutboundMessage, config: ChannelConfigData) -> SendResult:
        if not message.email:
            return SendResult.failure("Recipient has no email address")

        mime = self.build_message(message, config)
        password = self._settings.smtp_password
        await aiosmtplib.send(
            mime,
            hostname=self._settings.smtp_host,
            port=self._settings.smtp_port,
            username=self._settings.smtp_username,
            password=password.get_secret_value() if password else None,
            use_tls=self._settings.use_ssl,
            start_tls=self._settings.use_tls,
            validate_certs=self._settings.validate_certs,
            timeout=self._settings.timeout,
        )
        message_id = mime["Message-ID"]
        self._logger.info(
            "Email relayed",
            extra={
                "notification_id": str(message.notification_id),
                "message_id": message_id,
                "operation": "channel.email.send",
            },
        )
        return SendResult.ok(message_id)

    async def _enabled_without_config(self, session: AsyncSession) -> bool:
        system = await get_system_settings_repository().get_current(session)
        return system.email_enabled if system is not None else True

    async def get_delivery_status(self, provider_message_id: str) -> str | None:
        """Ledger state when callbacks advanced it, else derived from the queue row."""
        status = await super().get_delivery_status(provider_message_id)
        if status is not None:
            return status
        async with self._session() as session:
            item = await get_email_queue_repository().get_by_message_id(session, provider_message_id)
            if item is None:
                return None
            if item.sent_on is not None:
                return DeliveryState.SENT.value
            if item.last_error:
                return DeliveryState.FAILED.value
            return DeliveryState.PENDING.value

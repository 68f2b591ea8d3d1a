"""SMS adapter for a Mitake-style HTTP gateway."""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import parse_qsl

import phonenumbers

from notify_service.features.notifications.enums import NotificationChannel

from .base import BaseChannelAdapter, SendResult, truncate

if TYPE_CHECKING:
    import httpx
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from .base import ChannelConfigData, OutboundMessage

# Five concatenated UCS-2 segments of 67 characters
DEFAULT_MAX_LENGTH = 335

# Numbers without a country prefix are read as Taiwanese
DEFAULT_REGION = "TW"
TW_COUNTRY_CODE = 886

# Gateway status codes 0-4 mean the message was accepted
_ACCEPTED_CODES = frozenset({"0", "1", "2", "3", "4"})


def normalize_phone(raw: str | None, region: str = DEFAULT_REGION) -> str | None:
    """Gateway form of a phone number, or None when it is not addressable.

    Taiwanese numbers (``+886 912 345 678``, ``0912-345-678``) become the
    local ``09XXXXXXXX`` form the gateway expects; valid numbers elsewhere
    are sent as E.164.
    """
    if not raw or not raw.strip():
        return None
    try:
        parsed = phonenumbers.parse(raw.strip(), region)
    except phonenumbers.NumberParseException:
        return None
    if not phonenumbers.is_valid_number(parsed):
        return None
    if parsed.country_code == TW_COUNTRY_CODE:
        return f"0{parsed.national_number}"
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


def parse_gateway_response(text: str) -> dict[str, str]:
    """Parse ``key=value`` pairs from either response layout.

    The gateway answers either URL-encoded (``statuscode=1&msgid=...``) or
    one pair per line with ``[n]`` section markers.
    """
    stripped = text.strip()
    if "&" in stripped and "\n" not in stripped:
        return {k.strip(): v.strip() for k, v in parse_qsl(stripped, keep_blank_values=True)}

    fields: dict[str, str] = {}
    for line in stripped.splitlines():
        line = line.strip()
        if not line or line.startswith("[") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        fields[key.strip()] = value.strip()
    return fields


class SmsChannelAdapter(BaseChannelAdapter):
    channel = NotificationChannel.SMS
    required_credentials = ("username", "password")

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        gateway_url: str = "https://smsapi.mitake.com.tw/api/mtk/SmSend",
    ) -> None:
        super().__init__(http_client, session_factory)
        self._gateway_url = gateway_url

    @staticmethod
    def compose_text(message: OutboundMessage, max_length: int) -> str:
        text = f"{message.subject}\n{message.body}" if message.subject else message.body
        return truncate(text.strip(), max_length)

    async def _deliver(self, message: OutboundMessage, config: ChannelConfigData) -> SendResult:
        phone = normalize_phone(message.phone_number)
        if phone is None:
            return SendResult.failure("Recipient has no valid phone number")

        max_length = int(config.settings.get("max_length", DEFAULT_MAX_LENGTH))
        text = self.compose_text(message, max_length)
        if not text:
            return SendResult.failure("SMS body is empty")

        response = await self.http.post(
            self._gateway_url,
            params={"CharsetURL": "UTF-8"},
            data={
                "username": config.credentials["username"],
                "password": config.credentials["password"],
                "dstaddr": phone,
                "smbody": text,
            },
        )
        response.raise_for_status()

        fields = parse_gateway_response(response.text)
        status_code = fields.get("statuscode")
        if status_code in _ACCEPTED_CODES:
            return SendResult.ok(fields.get("msgid") or None)

        detail = fields.get("statusstr") or response.text[:200]
        return SendResult.failure(f"SMS gateway error {status_code or 'unknown'}: {detail}")

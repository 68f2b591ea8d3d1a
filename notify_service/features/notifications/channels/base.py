"""Base protocol and types for channel adapters."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, ClassVar, Protocol

import httpx

from notify_service.features.notifications.enums import (
    TENANT_CONFIGURED_CHANNELS,
    NotificationChannel,
)
from notify_service.features.notifications.exceptions import ChannelConfigurationError
from notify_service.features.notifications.repository import (
    get_channel_config_repository,
    get_delivery_status_repository,
)
from notify_service.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from notify_service.core.models import User
    from notify_service.features.notifications.models import Notification


@dataclass(frozen=True, slots=True)
class OutboundMessage:
    """A notification plus everything needed to address its recipient.

    Built once per send so adapters never touch the ORM.
    """

    notification_id: UUID
    recipient_id: str
    subject: str
    body: str
    kind: str
    priority: int = 0
    tenant_id: str | None = None
    action_url: str | None = None
    recipient_name: str | None = None
    email: str | None = None
    phone_number: str | None = None
    line_user_id: str | None = None
    telegram_chat_id: str | None = None
    whatsapp_number: str | None = None
    push_token: str | None = None
    locale: str | None = None
    # Pre-rendered email parts from the queue row; the email adapter prefers them to ``body``
    text_body: str | None = None
    html_body: str | None = None

    @classmethod
    def build(cls, notification: Notification, recipient: User | None) -> OutboundMessage:
        contact: dict[str, Any] = {}
        if recipient is not None:
            contact = {
                "recipient_name": recipient.name,
                "email": recipient.email,
                "phone_number": recipient.phone_number,
                "line_user_id": recipient.line_user_id,
                "telegram_chat_id": recipient.telegram_chat_id,
                "whatsapp_number": recipient.whatsapp_number,
                "push_token": recipient.push_token,
                "locale": recipient.locale,
            }
        return cls(
            notification_id=notification.id,
            recipient_id=notification.recipient_id,
            subject=notification.subject,
            body=notification.body,
            kind=notification.kind,
            priority=notification.priority,
            tenant_id=notification.tenant_id,
            action_url=notification.action_url,
            **contact,
        )


@dataclass(frozen=True, slots=True)
class ChannelConfigData:
    """Effective configuration of one channel for one tenant."""

    enabled: bool
    credentials: Mapping[str, Any] = field(default_factory=dict)
    settings: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class SendResult:
    """Result of a channel send attempt.

    Attributes:
        success: Whether the provider accepted the message
        provider_message_id: Provider reference used to correlate callbacks
        error: Error description if failed
        delivered_at: Set when the provider confirms delivery synchronously
        retry_after: Seconds to wait when the send was deferred by rate limiting
    """

    success: bool
    provider_message_id: str | None = None
    error: str | None = None
    delivered_at: datetime | None = None
    retry_after: int | None = None

    @property
    def rate_limited(self) -> bool:
        return self.retry_after is not None

    @classmethod
    def ok(cls, provider_message_id: str | None, delivered_at: datetime | None = None) -> SendResult:
        return cls(success=True, provider_message_id=provider_message_id, delivered_at=delivered_at)

    @classmethod
    def failure(cls, error: str) -> SendResult:
        return cls(success=False, error=error)

    @classmethod
    def deferred(cls, retry_after: int) -> SendResult:
        return cls(success=False, error=f"Rate limited, retry after {retry_after}s", retry_after=retry_after)


@dataclass(frozen=True, slots=True)
class ConfigValidation:
    valid: bool
    errors: tuple[str, ...] = ()


class ChannelAdapter(Protocol):
    """Protocol every channel implementation satisfies.

    The registry only deals in this protocol; adapters may or may not
    inherit :class:`BaseChannelAdapter`.
    """

    channel: NotificationChannel

    @property
    def requires_tenant_config(self) -> bool: ...

    async def send(self, message: OutboundMessage, config: ChannelConfigData) -> SendResult:
        """Deliver one message; transport failures come back as ``success=False``."""
        ...

    def validate_config(self, config: ChannelConfigData) -> ConfigValidation: ...

    async def get_delivery_status(self, provider_message_id: str) -> str | None: ...

    async def is_enabled(self, tenant_id: str) -> bool: ...


class BaseChannelAdapter:
    """Shared plumbing for adapters.

    Subclasses set ``channel`` and ``required_credentials`` and implement
    :meth:`_deliver`. ``send`` validates the configuration first, so
    ``_deliver`` can index credentials directly.
    """

    channel: ClassVar[NotificationChannel]
    required_credentials: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self._http = http_client
        self._session_factory = session_factory
        self._logger = logging.getLogger(f"channels.{self.channel.value}")
        self._lazy = get_lazy_logger(f"channels.{self.channel.value}")

    @property
    def requires_tenant_config(self) -> bool:
        return self.channel in TENANT_CONFIGURED_CHANNELS

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            msg = f"{self.channel.value} adapter has no HTTP client"
            raise RuntimeError(msg)
        return self._http

    def validate_config(self, config: ChannelConfigData) -> ConfigValidation:
        errors = [
            f"missing credential '{key}'"
            for key in self.required_credentials
            if not config.credentials.get(key)
        ]
        return ConfigValidation(valid=not errors, errors=tuple(errors))

    async def send(self, message: OutboundMessage, config: ChannelConfigData) -> SendResult:
        """Validate, deliver and fold transport errors into a failed result.

        Raises:
            ChannelConfigurationError: If the tenant configuration is unusable.
        """
        validation = self.validate_config(config)
        if not validation.valid:
            raise ChannelConfigurationError(self.channel.value, list(validation.errors))

        try:
            return await self._deliver(message, config)
        except httpx.HTTPStatusError as exc:
            error = f"{self.channel.value} provider returned HTTP {exc.response.status_code}: {exc.response.text[:200]}"
        except httpx.HTTPError as exc:
            error = f"{self.channel.value} request failed: {exc!r}"
        except Exception as exc:
            self._logger.exception(
                "Channel adapter raised",
                extra={
                    "channel": self.channel.value,
                    "notification_id": str(message.notification_id),
                    "operation": "channel.send",
                },
            )
            error = str(exc) or exc.__class__.__name__

        self._logger.warning(
            "Channel delivery failed",
            extra={
                "channel": self.channel.value,
                "notification_id": str(message.notification_id),
                "error": error,
                "operation": "channel.send",
            },
        )
        return SendResult.failure(error)

    async def _deliver(self, message: OutboundMessage, config: ChannelConfigData) -> SendResult:
        raise NotImplementedError

    async def is_enabled(self, tenant_id: str) -> bool:
        """Whether the tenant has this channel switched on.

        Channels that need no tenant credentials are on unless a config row
        explicitly turns them off.
        """
        async with self._session() as session:
            row = await get_channel_config_repository().get_for(session, tenant_id, self.channel.value)
            if row is None:
                return await self._enabled_without_config(session)
            return row.enabled

    async def _enabled_without_config(self, session: AsyncSession) -> bool:
        return not self.requires_tenant_config

    async def get_delivery_status(self, provider_message_id: str) -> str | None:
        """Ledger status of the message, or None if it is unknown."""
        async with self._session() as session:
            row = await get_delivery_status_repository().find_by_provider_message(
                session, self.channel.value, provider_message_id
            )
            return row.status if row is not None else None

    def _session(self) -> AsyncSession:
        if self._session_factory is None:
            msg = f"{self.channel.value} adapter has no session factory"
            raise RuntimeError(msg)
        return self._session_factory()


def truncate(text: str, limit: int, ellipsis: str = "…") -> str:
    """Cut ``text`` to at most ``limit`` characters, marking the cut."""
    if len(text) <= limit:
        return text
    return text[: max(0, limit - len(ellipsis))] + ellipsis


def chunk_text(text: str, size: int) -> list[str]:
    """Split on line boundaries where possible, hard-split otherwise."""
    if len(text) <= size:
        return [text]
    chunks: list[str] = []
    current = ""
    for line in text.splitlines(keepends=True):
        while len(line) > size:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:size])
            line = line[size:]
        if len(current) + len(line) > size:
            chunks.append(current)
            current = line
        else:
            current += line
    if current:
        chunks.append(current)
    return chunks

"""Notification delivery settings.

Environment variables use NOTIFY_ prefix.
Example: NOTIFY_DISPATCH_MODE=inline, NOTIFY_PREFERENCE_CACHE_TTL_SECONDS=120

These are process-level knobs. Tenant-visible behaviour (global rate cap,
batch size, retry ceiling) lives in the ``system_notification_settings``
table and overrides the fallbacks declared here.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DispatchMode = Literal["inline", "deferred"]


class NotificationSettings(BaseSettings):
    """Notification runtime configuration."""

    dispatch_mode: DispatchMode = Field(
        default="deferred",
        description="inline: send right after enqueue; deferred: leave to batch sweep/worker",
    )

    # Preference cache
    preference_cache_ttl_seconds: float = Field(
        default=300.0,
        gt=0,
        le=86400,
        description="TTL for resolved preference entries",
    )
    preference_cache_sweep_seconds: float = Field(
        default=60.0,
        gt=0,
        le=3600,
        description="Interval of the background purge of expired cache entries",
    )

    # Rate limiting
    rate_limit_config_ttl_seconds: float = Field(
        default=60.0,
        gt=0,
        le=3600,
        description="TTL for the cached system-wide per-minute cap",
    )
    rate_limit_prune_interval_seconds: float = Field(
        default=10.0,
        gt=0,
        le=600,
        description="Minimum interval between lazy bucket prunes",
    )

    # Timeouts
    send_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        le=300,
        description="Upper bound for one adapter send, including retries inside the adapter",
    )
    http_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Timeout for outbound HTTP calls to chat/SMS/push providers",
    )

    # Queue fallbacks when system settings row is absent
    default_batch_size: int = Field(default=100, ge=1, le=10000)
    default_max_attempts: int = Field(default=3, ge=1, le=50)

    # Reminders
    reminder_window_minutes: int = Field(
        default=5,
        ge=1,
        le=60,
        description="Half-width of the reminder due window around now + lead time",
    )

    default_locale: str = Field(default="tw", min_length=2, max_length=10)

    # Provider endpoints
    line_api_base: str = Field(default="https://api.line.me")
    telegram_api_base: str = Field(default="https://api.telegram.org")
    whatsapp_api_base: str = Field(default="https://graph.facebook.com/v19.0")
    sms_gateway_url: str = Field(default="https://smsapi.mitake.com.tw/api/mtk/SmSend")
    push_gateway_url: str = Field(default="https://fcm.googleapis.com/fcm/send")

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

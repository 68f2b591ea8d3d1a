"""Pydantic schemas for the notifications feature."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from notify_service.features.notifications.enums import (
    DeliveryState,
    DigestFrequency,
    NotificationChannel,
    NotificationKind,
    NotificationPriority,
)

# ============================================================================
# Notification creation
# ============================================================================


class NotificationCreate(BaseModel):
    """Request to notify one recipient.

    Either ``subject``/``body`` or ``template_id`` must be given; when a
    template is used the rendered content replaces both.
    """

    sender_id: str = Field(..., min_length=1, max_length=64)
    recipient_id: str = Field(..., min_length=1, max_length=64)
    tenant_id: str | None = Field(default=None, max_length=64)
    subject: str = Field(default="", max_length=255)
    body: str = Field(default="")
    kind: NotificationKind = NotificationKind.SYSTEM
    priority: NotificationPriority = NotificationPriority.NORMAL
    action_url: str | None = Field(default=None, max_length=1024)
    channels: list[NotificationChannel] | None = Field(
        default=None,
        description="Requested channels; defaults to onsite and email",
    )
    template_id: UUID | None = None
    locale: str | None = Field(default=None, max_length=10)
    variables: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def require_content(self) -> NotificationCreate:
        if self.template_id is None and not (self.subject.strip() and self.body.strip()):
            msg = "subject and body are required when no template_id is given"
            raise ValueError(msg)
        return self


# ============================================================================
# Responses
# ============================================================================


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    sender_id: str
    recipient_id: str
    tenant_id: str | None
    subject: str
    body: str
    kind: str
    priority: int
    action_url: str | None
    is_read: bool
    read_at: datetime | None
    created_at: datetime


class DeliveryStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    channel: str
    status: str
    provider_message_id: str | None
    error_message: str | None
    attempt_count: int
    delivered_at: datetime | None
    read_at: datetime | None
    updated_at: datetime


class NotificationStatusResponse(BaseModel):
    notification: NotificationResponse
    overall_status: str | None
    deliveries: list[DeliveryStatusResponse]
    queued_channels: list[str]


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse]
    limit: int
    offset: int


class MarkReadResponse(BaseModel):
    notification_id: UUID
    transitioned: int


# ============================================================================
# Provider callbacks
# ============================================================================


class DeliveryCallback(BaseModel):
    """Provider-reported status change, normalized by the gateway."""

    channel: NotificationChannel
    provider_message_id: str = Field(..., min_length=1, max_length=255)
    status: DeliveryState
    delivered_at: datetime | None = None
    read_at: datetime | None = None
    error: str | None = Field(default=None, max_length=2000)


class DeliveryCallbackResponse(BaseModel):
    accepted: bool


# ============================================================================
# Preferences
# ============================================================================


class PreferenceUpdate(BaseModel):
    """Partial preference update; omitted fields are left unchanged."""

    model_config = ConfigDict(extra="forbid")

    onsite_enabled: bool | None = None
    email_enabled: bool | None = None
    line_enabled: bool | None = None
    whatsapp_enabled: bool | None = None
    telegram_enabled: bool | None = None
    sms_enabled: bool | None = None
    push_enabled: bool | None = None

    order_notifications: bool | None = None
    reservation_notifications: bool | None = None
    credit_notifications: bool | None = None
    payment_notifications: bool | None = None
    system_notifications: bool | None = None
    marketing_notifications: bool | None = None

    frequency: DigestFrequency | None = None


class PreferenceResponse(BaseModel):
    enabled_channels: list[str]
    enabled_kinds: list[str]
    frequency: str
    source: Literal["tenant_user", "user_global", "tenant_default", "system_default"]

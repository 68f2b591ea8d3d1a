"""Notification feature exceptions.

Configuration errors (missing adapter, credentials, localized template) are
fatal for one operation and surface to the immediate caller. Preference-gate
rejections are not exceptions at all; see ``PreferenceDecision``.
"""

from __future__ import annotations

from uuid import UUID

from notify_service.core.exceptions import (
    ConfigurationException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)


class NotificationNotFoundError(NotFoundException):
    def __init__(self, notification_id: UUID | str) -> None:
        super().__init__(
            detail=f"Notification {notification_id} not found",
            type="notification-not-found",
            extra={"notification_id": str(notification_id)},
        )


class NotificationAccessDeniedError(ForbiddenException):
    """Raised when a user acts on a notification they neither sent nor received."""

    def __init__(self, notification_id: UUID | str, user_id: str, role: str = "recipient") -> None:
        super().__init__(
            detail=f"User is not the {role} of notification {notification_id}",
            type="notification-access-denied",
            extra={"notification_id": str(notification_id), "user_id": user_id, "role": role},
        )


class ChannelNotRegisteredError(ConfigurationException):
    """Raised when dispatch targets a channel with no registered adapter."""

    def __init__(self, channel: str) -> None:
        self.channel = channel
        super().__init__(
            detail=f"No adapter registered for channel '{channel}'",
            type="channel-not-registered",
            extra={"channel": channel},
        )


class ChannelConfigurationError(ConfigurationException):
    """Raised when a tenant's channel config lacks what the adapter needs."""

    def __init__(self, channel: str, errors: list[str]) -> None:
        self.channel = channel
        self.errors = errors
        super().__init__(
            detail=f"Invalid configuration for channel '{channel}': {'; '.join(errors)}",
            type="channel-misconfigured",
            extra={"channel": channel, "errors": errors},
        )


class TemplateNotFoundError(ConfigurationException):
    """Raised when no active localized variant exists for the resolved locale."""

    def __init__(self, template_id: UUID | str, locale: str) -> None:
        self.template_id = template_id
        self.locale = locale
        super().__init__(
            detail=f"Template {template_id} has no active variant for locale '{locale}'",
            type="template-not-found",
            extra={"template_id": str(template_id), "locale": locale},
        )


class InvalidDeliveryTransitionError(ValidationException):
    """Raised when a delivery status change violates the state machine."""

    def __init__(self, channel: str, current: str, requested: str) -> None:
        self.channel = channel
        self.current = current
        self.requested = requested
        super().__init__(
            detail=f"Cannot move {channel} delivery from '{current}' to '{requested}'",
            type="invalid-delivery-transition",
            extra={"channel": channel, "current": current, "requested": requested},
        )

"""Value objects produced by preference resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from notify_service.features.notifications.enums import (
    DigestFrequency,
    NotificationChannel,
    NotificationKind,
)

if TYPE_CHECKING:
    from notify_service.features.notifications.models import NotificationPreference

CHANNEL_FIELDS: dict[NotificationChannel, str] = {
    channel: f"{channel.value}_enabled" for channel in NotificationChannel
}
KIND_FIELDS: dict[NotificationKind, str] = {
    kind: f"{kind.value}_notifications" for kind in NotificationKind
}

PreferenceSource = str  # "tenant_user" | "user_global" | "tenant_default" | "system_default"


@dataclass(frozen=True, slots=True)
class ResolvedPreferences:
    """Effective preferences for one (user, tenant) lookup.

    Immutable so a cached instance can be handed to concurrent callers.
    """

    enabled_channels: frozenset[str]
    enabled_kinds: frozenset[str]
    frequency: str = DigestFrequency.IMMEDIATE.value
    source: PreferenceSource = "system_default"

    def channel_enabled(self, channel: str) -> bool:
        return channel in self.enabled_channels

    def kind_enabled(self, kind: str) -> bool:
        return kind in self.enabled_kinds

    @classmethod
    def all_enabled(cls) -> ResolvedPreferences:
        """Implicit system default: every channel and kind on, immediate."""
        return cls(
            enabled_channels=frozenset(c.value for c in NotificationChannel),
            enabled_kinds=frozenset(k.value for k in NotificationKind),
        )

    @classmethod
    def from_record(cls, record: NotificationPreference, source: PreferenceSource) -> ResolvedPreferences:
        return cls(
            enabled_channels=frozenset(
                channel.value for channel, attr in CHANNEL_FIELDS.items() if getattr(record, attr)
            ),
            enabled_kinds=frozenset(
                kind.value for kind, attr in KIND_FIELDS.items() if getattr(record, attr)
            ),
            frequency=record.frequency,
            source=source,
        )


@dataclass(frozen=True, slots=True)
class PreferenceDecision:
    """Outcome of the send gate.

    ``allowed_channels`` preserves the caller's requested order.
    """

    allowed: bool
    allowed_channels: tuple[str, ...] = field(default_factory=tuple)
    reason: str | None = None

    @classmethod
    def reject(cls, reason: str) -> PreferenceDecision:
        return cls(allowed=False, allowed_channels=(), reason=reason)

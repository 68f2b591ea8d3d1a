"""Preference resolution and the per-send gate."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from notify_service.core.exceptions import ValidationException
from notify_service.core.services.base import BaseService
from notify_service.features.notifications.enums import (
    DigestFrequency,
    NotificationChannel,
    TENANT_CONFIGURED_CHANNELS,
)
from notify_service.features.notifications.repository import (
    ChannelConfigRepository,
    PreferenceRepository,
    SystemSettingsRepository,
    get_channel_config_repository,
    get_preference_repository,
    get_system_settings_repository,
)

from .types import CHANNEL_FIELDS, KIND_FIELDS, PreferenceDecision, ResolvedPreferences

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from notify_service.features.notifications.models import NotificationPreference

    from .cache import PreferenceCache

_UPDATABLE_FIELDS = frozenset(CHANNEL_FIELDS.values()) | frozenset(KIND_FIELDS.values()) | {"frequency"}

REASON_SYSTEM_DISABLED = "Notifications are disabled system-wide"
REASON_TENANT_DISABLED = "All requested channels are disabled for this tenant"
REASON_USER_DISABLED = "All requested channels disabled by user"


class PreferenceManager(BaseService):
    """Resolves layered preferences and decides which channels may be used.

    Resolution order for a (user, tenant) lookup, most specific first:
    tenant-specific user record, the user's global record, the tenant
    default, then the implicit all-enabled system default.
    """

    def __init__(
        self,
        cache: PreferenceCache,
        *,
        preference_repository: PreferenceRepository | None = None,
        channel_config_repository: ChannelConfigRepository | None = None,
        system_settings_repository: SystemSettingsRepository | None = None,
    ) -> None:
        super().__init__()
        self._cache = cache
        self._preferences = preference_repository or get_preference_repository()
        self._channel_configs = channel_config_repository or get_channel_config_repository()
        self._system_settings = system_settings_repository or get_system_settings_repository()

    @property
    def cache(self) -> PreferenceCache:
        return self._cache

    @staticmethod
    def get_default_preferences() -> ResolvedPreferences:
        return ResolvedPreferences.all_enabled()

    async def get_user_preferences(
        self,
        session: AsyncSession,
        user_id: str,
        tenant_id: str | None = None,
    ) -> ResolvedPreferences:
        cached = self._cache.get(user_id, tenant_id)
        if cached is not None:
            return cached

        resolved = await self._resolve(session, user_id, tenant_id)
        self._cache.set(user_id, tenant_id, resolved)
        self._lazy.debug(
            lambda: f"preferences.resolve({user_id=}, {tenant_id=}) -> {resolved.source}"
        )
        return resolved

    async def _resolve(
        self, session: AsyncSession, user_id: str, tenant_id: str | None
    ) -> ResolvedPreferences:
        if tenant_id:
            record = await self._preferences.get_exact(session, user_id, tenant_id)
            if record is not None:
                return ResolvedPreferences.from_record(record, "tenant_user")

        record = await self._preferences.get_exact(session, user_id, None)
        if record is not None:
            return ResolvedPreferences.from_record(record, "user_global")

        if tenant_id:
            record = await self._preferences.get_exact(session, None, tenant_id)
            if record is not None:
                return ResolvedPreferences.from_record(record, "tenant_default")

        return self.get_default_preferences()

    async def update_user_preferences(
        self,
        session: AsyncSession,
        user_id: str,
        tenant_id: str | None = None,
        **changes: Any,
    ) -> NotificationPreference:
        """Upsert the user's record for one layer and drop affected cache keys."""
        values = self._validate_changes(changes)
        record = await self._preferences.upsert(session, user_id, tenant_id, values)
        self._cache.invalidate_user(user_id, tenant_id)
        self.logger.info(
            "User notification preferences updated",
            extra={
                "user_id": user_id,
                "tenant_id": tenant_id,
                "fields": sorted(values),
                "operation": "preferences.update_user",
            },
        )
        return record

    async def update_tenant_default(
        self,
        session: AsyncSession,
        tenant_id: str,
        **changes: Any,
    ) -> NotificationPreference:
        """Upsert the tenant default; every cached entry for the tenant is dropped."""
        values = self._validate_changes(changes)
        record = await self._preferences.upsert(session, None, tenant_id, values)
        self._cache.invalidate_tenant(tenant_id)
        self.logger.info(
            "Tenant default notification preferences updated",
            extra={
                "tenant_id": tenant_id,
                "fields": sorted(values),
                "operation": "preferences.update_tenant_default",
            },
        )
        return record

    @staticmethod
    def _validate_changes(changes: dict[str, Any]) -> dict[str, Any]:
        unknown = sorted(set(changes) - _UPDATABLE_FIELDS)
        if unknown:
            raise ValidationException(
                detail=f"Unknown preference fields: {', '.join(unknown)}",
                type="invalid-preference-field",
                extra={"fields": unknown},
            )
        values = {k: v for k, v in changes.items() if v is not None}
        if "frequency" in values:
            try:
                values["frequency"] = DigestFrequency(values["frequency"]).value
            except ValueError as exc:
                raise ValidationException(
                    detail=f"Unknown digest frequency '{values['frequency']}'",
                    type="invalid-preference-field",
                    extra={"fields": ["frequency"]},
                ) from exc
        return values

    async def should_send_notification(
        self,
        session: AsyncSession,
        user_id: str,
        tenant_id: str | None,
        kind: str,
        requested_channels: Iterable[str],
    ) -> PreferenceDecision:
        """Run the four gates in order and return the surviving channels.

        1. System switch.
        2. Tenant channel configuration (``onsite`` always survives).
        3. Tenant default preference veto (never applied to ``onsite``).
        4. The user's effective preference: kind opt-out, then per-channel.
        """
        channels = list(dict.fromkeys(str(c) for c in requested_channels))

        system = await self._system_settings.get_current(session)
        if system is not None and not system.notifications_enabled:
            return PreferenceDecision.reject(REASON_SYSTEM_DISABLED)
        system_email_enabled = system.email_enabled if system is not None else True

        configs = {}
        if tenant_id:
            configs = {
                row.channel: row
                for row in await self._channel_configs.list_for_tenant(session, tenant_id)
            }
        channels = [
            c for c in channels if self._channel_available(c, configs.get(c), system_email_enabled)
        ]

        if tenant_id and channels:
            tenant_default = await self._preferences.get_exact(session, None, tenant_id)
            if tenant_default is not None:
                vetoed = ResolvedPreferences.from_record(tenant_default, "tenant_default")
                channels = [
                    c
                    for c in channels
                    if c == NotificationChannel.ONSITE or vetoed.channel_enabled(c)
                ]

        if not channels:
            return PreferenceDecision.reject(REASON_TENANT_DISABLED)

        preferences = await self.get_user_preferences(session, user_id, tenant_id)
        if not preferences.kind_enabled(kind):
            return PreferenceDecision.reject(f"User has disabled {kind} notifications")

        channels = [c for c in channels if preferences.channel_enabled(c)]
        if not channels:
            return PreferenceDecision.reject(REASON_USER_DISABLED)

        return PreferenceDecision(allowed=True, allowed_channels=tuple(channels))

    @staticmethod
    def _channel_available(channel: str, config: Any, system_email_enabled: bool) -> bool:
        if channel == NotificationChannel.ONSITE:
            return True
        if config is not None:
            return bool(config.enabled)
        if channel == NotificationChannel.EMAIL:
            return system_email_enabled
        return channel not in TENANT_CONFIGURED_CHANNELS

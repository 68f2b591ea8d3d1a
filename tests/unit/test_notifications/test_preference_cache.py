"""Tests for the resolved-preference TTL cache."""

from __future__ import annotations

import pytest

from notify_service.features.notifications.preferences import PreferenceCache, ResolvedPreferences
from notify_service.features.notifications.preferences.cache import cache_key


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> PreferenceCache:
    return PreferenceCache(ttl_seconds=300, sweep_interval_seconds=60, clock=clock)


PREFS = ResolvedPreferences.all_enabled()


class TestPreferenceCache:
    def test_cache_key_uses_global_scope(self):
        assert cache_key("u1", None) == ("u1", "global")
        assert cache_key("u1", "store-1") == ("u1", "store-1")

    def test_get_set_and_expiry(self, cache: PreferenceCache, clock: FakeClock):
        assert cache.get("u1", "store-1") is None
        cache.set("u1", "store-1", PREFS)
        assert cache.get("u1", "store-1") is PREFS

        clock.now = 300
        assert cache.get("u1", "store-1") is None

        stats = cache.stats()
        assert stats.hits == 1
        assert stats.misses == 2
        assert stats.size == 0

    def test_invalidate_tenant_record_drops_global_key(self, cache: PreferenceCache):
        cache.set("u1", "store-1", PREFS)
        cache.set("u1", "store-2", PREFS)
        cache.set("u1", None, PREFS)

        cache.invalidate_user("u1", "store-1")

        assert cache.get("u1", "store-1") is None
        assert cache.get("u1", None) is None
        assert cache.get("u1", "store-2") is PREFS

    def test_invalidate_global_record_drops_every_tenant(self, cache: PreferenceCache):
        cache.set("u1", "store-1", PREFS)
        cache.set("u1", "store-2", PREFS)
        cache.set("u2", "store-1", PREFS)

        cache.invalidate_user("u1")

        assert cache.get("u1", "store-1") is None
        assert cache.get("u1", "store-2") is None
        assert cache.get("u2", "store-1") is PREFS

    def test_invalidate_tenant(self, cache: PreferenceCache):
        cache.set("u1", "store-1", PREFS)
        cache.set("u2", "store-1", PREFS)
        cache.set("u1", "store-2", PREFS)

        cache.invalidate_tenant("store-1")

        assert cache.stats().size == 1
        assert cache.get("u1", "store-2") is PREFS

    def test_purge_expired(self, cache: PreferenceCache, clock: FakeClock):
        cache.set("u1", None, PREFS)
        clock.now = 100
        cache.set("u2", None, PREFS)
        clock.now = 350

        assert cache.purge_expired() == 1
        assert cache.get("u2", None) is PREFS

    @pytest.mark.asyncio
    async def test_start_is_idempotent_and_stop_clears(self, cache: PreferenceCache):
        await cache.start()
        await cache.start()
        cache.set("u1", None, PREFS)

        await cache.stop()

        assert cache.stats().size == 0

"""Time-bounded in-memory cache of resolved notification preferences."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from notify_service.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from .types import ResolvedPreferences

logger = logging.getLogger(__name__)
_lazy = get_lazy_logger(__name__)

GLOBAL_SCOPE = "global"

CacheKey = tuple[str, str]


def cache_key(user_id: str, tenant_id: str | None) -> CacheKey:
    """Key for a (user, tenant) pair; tenant-less lookups use ``"global"``."""
    return (user_id, tenant_id or GLOBAL_SCOPE)


@dataclass(slots=True)
class _Entry:
    value: ResolvedPreferences
    expires_at: float


@dataclass(frozen=True, slots=True)
class CacheStats:
    size: int
    hits: int
    misses: int


class PreferenceCache:
    """TTL map keyed by ``(user_id, tenant_id | "global")``.

    Guarded by a lock so request handlers, batch sweeps and worker threads
    in one process can share a single instance. A background task purges
    expired entries on a fixed interval so memory stays bounded even for
    keys that are never read again.

    Example:
        cache = PreferenceCache(ttl_seconds=300, sweep_interval_seconds=60)
        await cache.start()
        cache.set("u1", "store-1", prefs)
        cache.get("u1", "store-1")
        await cache.stop()
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = 300.0,
        sweep_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._sweep_interval = sweep_interval_seconds
        self._clock = clock
        self._entries: dict[CacheKey, _Entry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._sweeper: asyncio.Task[None] | None = None

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, user_id: str, tenant_id: str | None) -> ResolvedPreferences | None:
        key = cache_key(user_id, tenant_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def set(self, user_id: str, tenant_id: str | None, value: ResolvedPreferences) -> None:
        key = cache_key(user_id, tenant_id)
        with self._lock:
            self._entries[key] = _Entry(value=value, expires_at=self._clock() + self._ttl)

    def invalidate_user(self, user_id: str, tenant_id: str | None = None) -> None:
        """Drop the tenant-specific key and the user's global key.

        The global record is the fallback for every tenant lookup, so it is
        dropped even when only a tenant-specific record changed.
        """
        with self._lock:
            self._entries.pop(cache_key(user_id, tenant_id), None)
            self._entries.pop(cache_key(user_id, None), None)
            if tenant_id is None:
                # A global write changes the fallback of every tenant entry
                for key in [k for k in self._entries if k[0] == user_id]:
                    del self._entries[key]
        _lazy.debug(lambda: f"preference_cache.invalidate_user({user_id=}, {tenant_id=})")

    def invalidate_tenant(self, tenant_id: str) -> None:
        """Drop every entry resolved under a tenant (tenant default changed)."""
        with self._lock:
            for key in [k for k in self._entries if k[1] == tenant_id]:
                del self._entries[key]
        _lazy.debug(lambda: f"preference_cache.invalidate_tenant({tenant_id=})")

    def purge_expired(self) -> int:
        """Remove expired entries; returns how many were dropped."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.expires_at <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            _lazy.debug(lambda: f"preference_cache.purge: {len(expired)} expired")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(size=len(self._entries), hits=self._hits, misses=self._misses)

    async def start(self) -> None:
        """Start the background purge task (idempotent)."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_loop(), name="preference-cache-sweep")
        logger.info(
            "Preference cache sweeper started",
            extra={"ttl_seconds": self._ttl, "sweep_interval_seconds": self._sweep_interval},
        )

    async def stop(self) -> None:
        """Cancel the purge task and drop all entries."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None
        self.clear()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                self.purge_expired()
            except Exception:
                logger.exception("Preference cache sweep failed")

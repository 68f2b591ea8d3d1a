"""In-process sliding-window rate limiter for channel adapters.

Each (channel, tenant) pair gets a bucket of request timestamps. The limiter
is advisory and local to one process: with several worker processes each
enforces its own copy of the limits, so the effective provider-side rate is
up to N times the configured one. Deployments that need a hard cap across
processes must front the providers with a shared store.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from notify_service.infra.logging import get_lazy_logger

from .config import GlobalRateLimitProvider, RateLimitConfig, effective_config

logger = logging.getLogger(__name__)
_lazy = get_lazy_logger(__name__)


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    """Outcome of one admission check.

    Attributes:
        allowed: Whether the caller may send now.
        limit: Effective capacity of the window.
        remaining: Slots left in the window after this call.
        reset_after: Seconds until the oldest recorded request leaves the window.
        retry_after: Whole seconds to wait when rejected, else None.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_after: float
    retry_after: int | None = None


def make_key(channel: str, tenant_id: str | None = None) -> str:
    """Composite bucket key: ``channel:tenant`` or just ``channel``."""
    return f"{channel}:{tenant_id}" if tenant_id else channel


class NotificationRateLimiter:
    """Sliding-window admission control keyed by (channel, tenant).

    The bucket map is the only mutable state and is guarded by a lock, so a
    single instance can be shared by every caller in the process.

    Example:
        limiter = NotificationRateLimiter(provider)
        decision = await limiter.check_rate_limit("sms", tenant_id="store-1")
        if not decision.allowed:
            logger.info("Retry in %ss", decision.retry_after)
    """

    def __init__(
        self,
        config_provider: GlobalRateLimitProvider | None = None,
        *,
        prune_interval_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._provider = config_provider
        self._prune_interval = prune_interval_seconds
        self._clock = clock
        self._buckets: dict[str, deque[float]] = {}
        self._windows: dict[str, float] = {}
        self._last_prune = clock()
        self._lock = threading.Lock()

    async def get_config(self, channel: str) -> RateLimitConfig:
        """Effective limit for a channel, honouring the global cap."""
        cap = await self._provider.get_global_cap() if self._provider else None
        return effective_config(channel, cap)

    async def check_rate_limit(
        self, channel: str, tenant_id: str | None = None
    ) -> RateLimitDecision:
        """Admit or reject one request.

        Records the request timestamp only when admitted; a rejected call
        leaves the bucket untouched.
        """
        config = await self.get_config(channel)
        key = make_key(channel, tenant_id)

        with self._lock:
            now = self._clock()
            self._maybe_prune(now)
            bucket = self._buckets.setdefault(key, deque())
            self._windows[key] = config.window_seconds

            if len(bucket) >= config.max_requests and bucket and bucket[0] <= now - config.window_seconds:
                # Full bucket holding stale entries; drop them before deciding
                self._trim(bucket, now - config.window_seconds)

            if len(bucket) < config.max_requests:
                bucket.append(now)
                reset_after = bucket[0] + config.window_seconds - now
                return RateLimitDecision(
                    allowed=True,
                    limit=config.max_requests,
                    remaining=config.max_requests - len(bucket),
                    reset_after=reset_after,
                )

            reset_after = bucket[0] + config.window_seconds - now
            retry_after = max(1, math.ceil(reset_after))

        logger.info(
            "Rate limit reached",
            extra={
                "channel": channel,
                "tenant_id": tenant_id,
                "limit": config.max_requests,
                "window_seconds": config.window_seconds,
                "retry_after": retry_after,
                "operation": "ratelimit.check",
            },
        )
        return RateLimitDecision(
            allowed=False,
            limit=config.max_requests,
            remaining=0,
            reset_after=reset_after,
            retry_after=retry_after,
        )

    async def get_status(self, channel: str, tenant_id: str | None = None) -> RateLimitDecision:
        """Peek at a bucket without recording a request."""
        config = await self.get_config(channel)
        key = make_key(channel, tenant_id)
        with self._lock:
            now = self._clock()
            bucket = self._buckets.get(key)
            if bucket:
                self._trim(bucket, now - config.window_seconds)
            used = len(bucket) if bucket else 0
            reset_after = bucket[0] + config.window_seconds - now if bucket else 0.0
        remaining = max(0, config.max_requests - used)
        return RateLimitDecision(
            allowed=remaining > 0,
            limit=config.max_requests,
            remaining=remaining,
            reset_after=reset_after,
            retry_after=None if remaining > 0 else max(1, math.ceil(reset_after)),
        )

    def reset(self, channel: str, tenant_id: str | None = None) -> None:
        """Forget all recorded requests for one bucket."""
        key = make_key(channel, tenant_id)
        with self._lock:
            self._buckets.pop(key, None)
            self._windows.pop(key, None)
        logger.info(
            "Rate limit bucket reset",
            extra={"channel": channel, "tenant_id": tenant_id, "operation": "ratelimit.reset"},
        )

    def clear(self) -> None:
        """Drop every bucket (shutdown and tests)."""
        with self._lock:
            self._buckets.clear()
            self._windows.clear()

    def _maybe_prune(self, now: float) -> None:
        # Caller holds the lock
        if now - self._last_prune < self._prune_interval:
            return
        self._last_prune = now
        for key in list(self._buckets):
            bucket = self._buckets[key]
            self._trim(bucket, now - self._windows.get(key, 60.0))
            if not bucket:
                del self._buckets[key]
                self._windows.pop(key, None)
        _lazy.debug(lambda: f"ratelimit.prune: {len(self._buckets)} live buckets")

    @staticmethod
    def _trim(bucket: deque[float], cutoff: float) -> None:
        while bucket and bucket[0] <= cutoff:
            bucket.popleft()

"""Rate-limit configuration: per-channel defaults and the global cap provider."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    """Sliding-window capacity: ``max_requests`` per ``window_seconds``."""

    max_requests: int
    window_seconds: float


# Provider limits per channel; chat APIs are per-second, relays per-minute.
CHANNEL_DEFAULTS: dict[str, RateLimitConfig] = {
    "onsite": RateLimitConfig(10_000, 60),
    "email": RateLimitConfig(100, 60),
    "line": RateLimitConfig(1_000, 1),
    "whatsapp": RateLimitConfig(1_000, 1),
    "telegram": RateLimitConfig(30, 1),
    "sms": RateLimitConfig(60, 60),
    "push": RateLimitConfig(1_000, 1),
}

FALLBACK_LIMIT = RateLimitConfig(100, 60)


def effective_config(channel: str, global_cap_per_minute: int | None) -> RateLimitConfig:
    """Combine a channel default with the system-wide per-minute cap.

    The cap is converted into the channel's own window unit and the stricter
    of the two limits wins.

    Example:
        >>> effective_config("line", 120)
        RateLimitConfig(max_requests=2, window_seconds=1)
    """
    base = CHANNEL_DEFAULTS.get(channel, FALLBACK_LIMIT)
    if not global_cap_per_minute or global_cap_per_minute <= 0:
        return base

    converted = max(1, math.floor(global_cap_per_minute * base.window_seconds / 60))
    return RateLimitConfig(min(base.max_requests, converted), base.window_seconds)


class GlobalRateLimitProvider:
    """Short-TTL cache in front of the system-wide per-minute cap.

    The loader is whatever reads the platform setting (the notifications
    feature passes a repository-backed coroutine). A failing loader keeps the
    last known value so the limiter never blocks dispatch on a settings read.
    """

    def __init__(
        self,
        loader: Callable[[], Awaitable[int | None]],
        *,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self._ttl = ttl_seconds
        self._clock = clock
        self._value: int | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    async def get_global_cap(self) -> int | None:
        """Return the cached cap, refreshing it once the TTL has passed."""
        if self._clock() < self._expires_at:
            return self._value

        async with self._lock:
            if self._clock() < self._expires_at:
                return self._value
            try:
                self._value = await self._loader()
            except Exception:
                logger.exception(
                    "Failed to load global rate limit; keeping previous value",
                    extra={"previous": self._value, "operation": "ratelimit.load_global"},
                )
            self._expires_at = self._clock() + self._ttl
            return self._value

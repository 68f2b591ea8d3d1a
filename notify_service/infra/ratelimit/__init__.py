"""Channel rate limiting."""

from .config import (
    CHANNEL_DEFAULTS,
    FALLBACK_LIMIT,
    GlobalRateLimitProvider,
    RateLimitConfig,
    effective_config,
)
from .limiter import NotificationRateLimiter, RateLimitDecision, make_key

__all__ = [
    "CHANNEL_DEFAULTS",
    "FALLBACK_LIMIT",
    "GlobalRateLimitProvider",
    "NotificationRateLimiter",
    "RateLimitConfig",
    "RateLimitDecision",
    "effective_config",
    "make_key",
]

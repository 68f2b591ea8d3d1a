"""Layered notification preferences with an in-process cache."""

from .cache import CacheStats, PreferenceCache, cache_key
from .manager import PreferenceManager
from .types import PreferenceDecision, ResolvedPreferences

__all__ = [
    "CacheStats",
    "PreferenceCache",
    "PreferenceDecision",
    "PreferenceManager",
    "ResolvedPreferences",
    "cache_key",
]

"""Database foundation: declarative base, mixins, repository and errors."""

from __future__ import annotations

from .base import (
    Base,
    TenantMixin,
    TimestampMixin,
    UUIDPKMixin,
    UUIDTimestampedBase,
    as_utc,
    utcnow,
)
from .exceptions import DuplicateError, RepositoryError
from .repository import BaseRepository

__all__ = [
    "Base",
    "BaseRepository",
    "DuplicateError",
    "RepositoryError",
    "TenantMixin",
    "TimestampMixin",
    "UUIDPKMixin",
    "UUIDTimestampedBase",
    "as_utc",
    "utcnow",
]

"""Database models package.

Platform-owned tables live here; feature tables live in each feature's
``models`` module. ``load_all_models`` imports every one of them so the
metadata is complete before ``create_all`` or migrations run.
"""

from __future__ import annotations

import importlib

from .tenant import Tenant
from .user import User

_FEATURE_MODEL_MODULES = (
    "notify_service.features.notifications.models",
    "notify_service.features.reservations.models",
)


def load_all_models() -> None:
    """Import every feature models module so Base.metadata is populated."""
    for module_name in _FEATURE_MODEL_MODULES:
        importlib.import_module(module_name)


__all__ = ["Tenant", "User", "load_all_models"]

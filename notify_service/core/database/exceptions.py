"""Repository-layer errors raised instead of raw SQLAlchemy exceptions."""

from __future__ import annotations

from typing import Any


class RepositoryError(Exception):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        rendered = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
        return f"{self.message} ({rendered})"


class DuplicateError(RepositoryError):
    """An insert hit a uniqueness constraint.

    Callers that rely on the datastore for idempotency (the reminder ledger,
    for one) catch this to tell "already exists" apart from real failures.
    """

    def __init__(self, model_name: str, identifier: dict[str, Any]):
        self.model_name = model_name
        self.identifier = identifier
        keys = ", ".join(f"{k}={v!r}" for k, v in identifier.items())
        super().__init__(
            f"{model_name} already exists with {keys}",
            details={"model": model_name, **identifier},
        )


__all__ = [
    "DuplicateError",
    "RepositoryError",
]

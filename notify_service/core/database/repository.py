"""Generic repository base with explicit session passing.

Feature repositories subclass ``BaseRepository`` and add their own queries;
the session always comes from the caller so the unit of work stays visible
at the service layer::

    class DeliveryStatusRepository(BaseRepository[NotificationDeliveryStatus]):
        async def list_for_notification(self, session, notification_id):
            stmt = select(NotificationDeliveryStatus).where(
                NotificationDeliveryStatus.notification_id == notification_id
            )
            return (await session.execute(stmt)).scalars().all()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy.exc import IntegrityError

from notify_service.core.database.exceptions import DuplicateError
from notify_service.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


T = TypeVar("T")


class BaseRepository(Generic[T]):
    """Primary-key lookup and inserts shared by every feature repository."""

    __slots__ = ("_lazy", "_logger", "model")

    def __init__(self, model: type[T]) -> None:
        self.model = model
        self._logger = logging.getLogger(f"repository.{model.__name__}")
        # DEBUG-only messages; callables are skipped when DEBUG is off
        self._lazy = get_lazy_logger(f"repository.{model.__name__}")

    async def get(self, session: AsyncSession, id: Any) -> T | None:  # noqa: A002
        instance = await session.get(self.model, id)
        self._lazy.debug(
            lambda: f"db.get: {self.model.__name__}({id}) -> {'hit' if instance else 'miss'}"
        )
        return instance

    async def create(self, session: AsyncSession, instance: T) -> T:
        """Add ``instance`` and flush so generated columns are populated."""
        session.add(instance)
        await session.flush()
        await session.refresh(instance)
        self._lazy.debug(
            lambda: f"db.create: {self.model.__name__}(id={getattr(instance, 'id', None)})"
        )
        return instance

    async def create_unique(self, session: AsyncSession, instance: T, **identifier: Any) -> T:
        """Insert a row guarded by a unique constraint.

        The session is rolled back on a violation, so the caller must not
        have other pending writes in it.

        Raises:
            DuplicateError: If a row with ``identifier`` already exists.
        """
        session.add(instance)
        try:
            await session.flush()
        except IntegrityError as exc:
            await session.rollback()
            self._logger.info(
                "Duplicate insert rejected",
                extra={
                    "entity": self.model.__name__,
                    "identifier": {k: str(v) for k, v in identifier.items()},
                    "operation": "db.create_unique",
                },
            )
            raise DuplicateError(self.model.__name__, identifier) from exc
        return instance


__all__ = [
    "BaseRepository",
]

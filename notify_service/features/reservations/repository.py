"""Repositories for reservation reads and the reminder ledger."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import exists, select

from notify_service.core.database.repository import BaseRepository

from .enums import REMINDABLE_STATUSES
from .models import ReminderRecord, Reservation, ReservationSettings

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession


class ReservationRepository(BaseRepository[Reservation]):
    def __init__(self) -> None:
        super().__init__(Reservation)

    async def list_reminder_settings(self, session: AsyncSession) -> Sequence[ReservationSettings]:
        """Tenants that accept reservations and have a reminder lead time."""
        stmt = select(ReservationSettings).where(
            ReservationSettings.accept_reservation.is_(True),
            ReservationSettings.reminder_hours > 0,
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def list_due_for_reminder(
        self,
        session: AsyncSession,
        tenant_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> Sequence[Reservation]:
        """Remindable reservations in the window that were never reminded."""
        already_reminded = exists().where(ReminderRecord.reservation_id == Reservation.id)
        stmt = (
            select(Reservation)
            .where(
                Reservation.tenant_id == tenant_id,
                Reservation.status.in_([int(s) for s in REMINDABLE_STATUSES]),
                Reservation.reservation_time >= window_start,
                Reservation.reservation_time <= window_end,
                ~already_reminded,
            )
            .order_by(Reservation.reservation_time.asc())
        )
        result = await session.execute(stmt)
        items = result.scalars().all()
        self._lazy.debug(lambda: f"db.list_due_for_reminder({tenant_id=}) -> {len(items)}")
        return items


class ReminderRecordRepository(BaseRepository[ReminderRecord]):
    def __init__(self) -> None:
        super().__init__(ReminderRecord)

    async def record(self, session: AsyncSession, record: ReminderRecord) -> ReminderRecord:
        """Insert a ledger row.

        Raises:
            DuplicateError: If the reservation already has a reminder row
        """
        return await self.create_unique(session, record, reservation_id=record.reservation_id)


_reservation_repository: ReservationRepository | None = None
_reminder_repository: ReminderRecordRepository | None = None


def get_reservation_repository() -> ReservationRepository:
    global _reservation_repository
    if _reservation_repository is None:
        _reservation_repository = ReservationRepository()
    return _reservation_repository


def get_reminder_repository() -> ReminderRecordRepository:
    global _reminder_repository
    if _reminder_repository is None:
        _reminder_repository = ReminderRecordRepository()
    return _reminder_repository

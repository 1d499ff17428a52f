"""Boundary contracts between the engine and the booking backend."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date
from typing import Optional, Protocol

from tapechart.domain.models import DateRange, Reservation, Room, RoomStatus
from tapechart.repository.data_repository import DataRepository


@dataclass(frozen=True)
class CalendarSnapshot:
    rooms: list[Room]
    bookings: list[Reservation]


@dataclass(frozen=True)
class AssignmentOptions:
    notes: Optional[str] = None
    reason: Optional[str] = None
    notify: bool = False
    lock_room: bool = False
    override: bool = False


class CalendarBackend(Protocol):
    async def fetch_calendar_snapshot(
        self,
        view_id: str,
        date_range: DateRange,
    ) -> CalendarSnapshot: ...

    async def assign_reservation(
        self,
        reservation_id: str,
        room_id: Optional[str],
        target_date: date,
        options: AssignmentOptions,
    ) -> None: ...

    async def set_room_status(
        self,
        room_id: str,
        status: RoomStatus,
        reason: Optional[str],
    ) -> None: ...


class RepositoryGateway:
    """Serves the backend contract from the local SQLite repository.

    Repository calls are blocking, so each one runs in a worker thread to
    keep the event loop free while a commit is in flight.
    """

    def __init__(self, repository: DataRepository) -> None:
        self._repository = repository

    async def fetch_calendar_snapshot(
        self,
        view_id: str,
        date_range: DateRange,
    ) -> CalendarSnapshot:
        rooms, bookings = await asyncio.to_thread(
            self._repository.fetch_calendar_snapshot,
            view_id,
            date_range.start,
            date_range.end,
        )
        return CalendarSnapshot(rooms=rooms, bookings=bookings)

    async def assign_reservation(
        self,
        reservation_id: str,
        room_id: Optional[str],
        target_date: date,
        options: AssignmentOptions,
    ) -> None:
        await asyncio.to_thread(
            self._repository.assign_reservation,
            reservation_id,
            room_id,
            target_date,
            notes=options.notes,
            reason=options.reason,
            notify=options.notify,
        )

    async def set_room_status(
        self,
        room_id: str,
        status: RoomStatus,
        reason: Optional[str],
    ) -> None:
        await asyncio.to_thread(
            self._repository.set_room_status,
            room_id,
            status.value,
            reason,
        )

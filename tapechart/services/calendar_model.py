"""In-memory room x date projection backing the tape chart grid."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from threading import RLock
from typing import Iterable, Iterator, Optional, Sequence

import pandas as pd

from tapechart.domain.errors import CellNotFoundError, OccupancyError
from tapechart.domain.models import (
    BookingStatus,
    DateRange,
    Reservation,
    Room,
    RoomStatus,
    TimelineCell,
    VACANT_CELL_OVERRIDES,
)
from tapechart.utils.logger import get_logger


logger = get_logger(__name__)

CellKey = tuple[str, date]
Patch = tuple[str, date, Optional[Reservation]]

_VIP_TIERS = frozenset({"vip", "svip"})


def _notifications(room: Room, reservation: Optional[Reservation]) -> tuple[str, ...]:
    badges: list[str] = []
    if room.status == RoomStatus.DIRTY:
        badges.append("housekeeping")
    if room.status == RoomStatus.MAINTENANCE:
        badges.append("maintenance")
    if reservation is not None:
        if reservation.vip_status in _VIP_TIERS:
            badges.append("vip")
        if reservation.special_requests:
            badges.append("request")
    return tuple(badges)


def _vacant_cell(room: Room, day: date) -> TimelineCell:
    status = room.status if room.status in VACANT_CELL_OVERRIDES else RoomStatus.AVAILABLE
    return TimelineCell(
        room_id=room.room_id,
        date=day,
        status=status,
        notifications=_notifications(room, None),
    )


def _occupied_cell(room: Room, day: date, reservation: Reservation) -> TimelineCell:
    status = (
        RoomStatus.OCCUPIED
        if reservation.status == BookingStatus.CHECKED_IN
        else RoomStatus.RESERVED
    )
    return TimelineCell(
        room_id=room.room_id,
        date=day,
        status=status,
        reservation_id=reservation.reservation_id,
        guest_name=reservation.guest_name,
        vip_status=reservation.vip_status,
        booking_type=reservation.booking_type,
        rate=round(reservation.nightly_rate, 2),
        notifications=_notifications(room, reservation),
    )


class CalendarModel:
    """Authoritative local snapshot of rooms and their per-date timeline.

    All writes (`load`, `patch`, `apply_patches`, `move_reservation`,
    `update_room_status`) build replacement cells first and swap them in
    while holding the lock, so readers holding `consistent()` never observe
    a half-applied change.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._rooms: dict[str, Room] = {}
        self._reservations: dict[str, Reservation] = {}
        self._cells: dict[CellKey, TimelineCell] = {}
        self._date_range: Optional[DateRange] = None
        self._load_warnings: list[str] = []
        self._version = 0
        self._stale_reason: Optional[str] = None

    @contextmanager
    def consistent(self) -> Iterator["CalendarModel"]:
        with self._lock:
            yield self

    @property
    def is_loaded(self) -> bool:
        return self._date_range is not None

    @property
    def version(self) -> int:
        """Incremented on every write; lets callers detect stale reads."""
        return self._version

    @property
    def is_stale(self) -> bool:
        """True once a backend outcome could not be mirrored locally; cleared by `load`."""
        return self._stale_reason is not None

    @property
    def stale_reason(self) -> Optional[str]:
        return self._stale_reason

    def mark_stale(self, reason: str) -> None:
        with self._lock:
            if self._stale_reason is None:
                self._stale_reason = reason
        logger.warning("Calendar marked stale | reason=%s", reason)

    @property
    def date_range(self) -> Optional[DateRange]:
        return self._date_range

    @property
    def load_warnings(self) -> list[str]:
        return list(self._load_warnings)

    @property
    def rooms(self) -> list[Room]:
        with self._lock:
            return list(self._rooms.values())

    @property
    def reservations(self) -> list[Reservation]:
        with self._lock:
            return list(self._reservations.values())

    @property
    def dates(self) -> list[date]:
        if self._date_range is None:
            return []
        return list(self._date_range)

    def room(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def reservation(self, reservation_id: str) -> Optional[Reservation]:
        return self._reservations.get(reservation_id)

    def contains(self, room_id: str, day: date) -> bool:
        return (room_id, day) in self._cells

    def load(
        self,
        rooms: Iterable[Room],
        bookings: Iterable[Reservation],
        date_range: DateRange,
    ) -> None:
        """Rebuild every cell of `date_range` from a backend snapshot."""
        room_map = {
            room.room_id: room
            for room in sorted(rooms, key=lambda item: (item.floor, item.room_number, item.room_id))
        }
        reservation_map = {booking.reservation_id: booking for booking in bookings}

        cells: dict[CellKey, TimelineCell] = {
            (room.room_id, day): _vacant_cell(room, day)
            for room in room_map.values()
            for day in date_range
        }
        warnings: list[str] = []
        placed = sorted(
            (
                booking
                for booking in reservation_map.values()
                if booking.is_active and booking.room_id is not None
            ),
            key=lambda item: (item.check_in, item.reservation_id),
        )
        for booking in placed:
            room = room_map.get(booking.room_id or "")
            if room is None:
                warnings.append(
                    f"Booking {booking.reservation_id} references room "
                    f"{booking.room_id} outside the view"
                )
                continue
            for day in booking.stay_dates():
                key = (room.room_id, day)
                current = cells.get(key)
                if current is None:
                    continue
                if current.reservation_id is not None:
                    warnings.append(
                        f"Booking {booking.reservation_id} overlaps "
                        f"{current.reservation_id} in room {room.room_number} on {day.isoformat()}"
                    )
                    continue
                cells[key] = _occupied_cell(room, day, booking)

        with self._lock:
            self._rooms = room_map
            self._reservations = reservation_map
            self._cells = cells
            self._date_range = date_range
            self._load_warnings = warnings
            self._version += 1
            self._stale_reason = None

        for warning in warnings:
            logger.warning("Calendar load anomaly | %s", warning)
        logger.info(
            "Calendar loaded | rooms=%s | bookings=%s | start=%s | end=%s",
            len(room_map),
            len(reservation_map),
            date_range.start.isoformat(),
            date_range.end.isoformat(),
        )

    def cell_at(self, room_id: str, day: date) -> TimelineCell:
        cell = self._cells.get((room_id, day))
        if cell is None:
            raise CellNotFoundError(
                f"No cell for room {room_id} on {day.isoformat()}; reload the chart"
            )
        return cell

    def cells_for_room(self, room_id: str) -> list[TimelineCell]:
        with self._lock:
            return [self.cell_at(room_id, day) for day in self.dates if (room_id, day) in self._cells]

    def occupant_at(self, room_id: str, day: date) -> Optional[Reservation]:
        cell = self._cells.get((room_id, day))
        if cell is None or not cell.is_occupied:
            return None
        return self._reservations.get(cell.reservation_id or "")

    def stay_dates_in_range(self, reservation: Reservation) -> list[date]:
        if self._date_range is None:
            return []
        return [day for day in reservation.stay_dates() if day in self._date_range]

    def free_nights(self, room_id: str, reservation: Reservation) -> int:
        """Nights of the stay (inside the chart) the room could host it."""
        with self._lock:
            free = 0
            for day in self.stay_dates_in_range(reservation):
                cell = self._cells.get((room_id, day))
                if cell is None:
                    continue
                if not cell.is_occupied or cell.reservation_id == reservation.reservation_id:
                    free += 1
            return free

    def patch(self, room_id: str, day: date, reservation: Optional[Reservation]) -> TimelineCell:
        """Optimistically place or clear one cell after a confirmed commit."""
        self.apply_patches([(room_id, day, reservation)])
        return self._cells[(room_id, day)]

    def apply_patches(self, patches: Sequence[Patch]) -> None:
        """Validate every patch against the staged state, then swap all in."""
        with self._lock:
            staged: dict[CellKey, TimelineCell] = {}
            registered: dict[str, Reservation] = {}
            for room_id, day, reservation in patches:
                key = (room_id, day)
                current = staged.get(key) or self._cells.get(key)
                if current is None:
                    raise CellNotFoundError(
                        f"No cell for room {room_id} on {day.isoformat()}; reload the chart"
                    )
                room = self._rooms[room_id]
                if reservation is None:
                    staged[key] = _vacant_cell(room, day)
                    continue
                if not reservation.covers(day):
                    raise OccupancyError(
                        f"Reservation {reservation.reservation_id} does not cover {day.isoformat()}"
                    )
                if current.reservation_id not in (None, reservation.reservation_id):
                    raise OccupancyError(
                        f"Room {room.room_number} is already held by "
                        f"{current.guest_name or current.reservation_id} on {day.isoformat()}"
                    )
                staged[key] = _occupied_cell(room, day, reservation)
                registered[reservation.reservation_id] = reservation

            self._cells.update(staged)
            self._reservations.update(registered)
            self._version += 1

    def move_reservation(
        self,
        reservation: Reservation,
        new_room_id: Optional[str],
    ) -> Reservation:
        """Re-home a whole stay; `new_room_id=None` only releases the old cells."""
        with self._lock:
            known = self._reservations.get(reservation.reservation_id, reservation)
            moved = replace(known, room_id=new_room_id)
            patches: list[Patch] = []
            for day in self.stay_dates_in_range(known):
                if known.room_id is None:
                    break
                cell = self._cells.get((known.room_id, day))
                if cell is not None and cell.reservation_id == known.reservation_id:
                    patches.append((known.room_id, day, None))
            if new_room_id is not None:
                for day in self.stay_dates_in_range(moved):
                    if (new_room_id, day) in self._cells:
                        patches.append((new_room_id, day, moved))
            self.apply_patches(patches)
            self._reservations[moved.reservation_id] = moved
            return moved

    def update_room_status(self, room_id: str, status: RoomStatus) -> Room:
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                raise CellNotFoundError(f"Room {room_id} is not on the loaded chart")
            updated = replace(room, status=status)
            self._rooms[room_id] = updated
            for day in self.dates:
                key = (room_id, day)
                cell = self._cells[key]
                occupant = self._reservations.get(cell.reservation_id or "")
                if cell.is_occupied and occupant is not None:
                    self._cells[key] = _occupied_cell(updated, day, occupant)
                else:
                    self._cells[key] = _vacant_cell(updated, day)
            self._version += 1
            return updated

    def to_frame(self) -> pd.DataFrame:
        """Flatten the grid into one row per cell."""
        with self._lock:
            rows = [
                {
                    "room_id": cell.room_id,
                    "room_number": self._rooms[cell.room_id].room_number,
                    "room_type": self._rooms[cell.room_id].room_type,
                    "floor": self._rooms[cell.room_id].floor,
                    "date": cell.date,
                    "status": cell.status.value,
                    "reservation_id": cell.reservation_id,
                    "guest_name": cell.guest_name,
                    "rate": cell.rate,
                }
                for cell in self._cells.values()
            ]
        columns = [
            "room_id",
            "room_number",
            "room_type",
            "floor",
            "date",
            "status",
            "reservation_id",
            "guest_name",
            "rate",
        ]
        return pd.DataFrame(rows, columns=columns)

"""Repository layer responsible for all database access."""

from __future__ import annotations

import random
import sqlite3
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Optional, Sequence

from tapechart.domain.models import (
    BookingStatus,
    INACTIVE_BOOKING_STATUSES,
    Reservation,
    Room,
    RoomStatus,
    UNASSIGNABLE_ROOM_STATUSES,
)
from tapechart.utils.config import Settings, get_settings
from tapechart.utils.logger import get_logger


logger = get_logger(__name__)

_INACTIVE_STATUS_VALUES = tuple(status.value for status in INACTIVE_BOOKING_STATUSES)

_SYNTHETIC_ROOM_TYPES = (
    ("Standard", 120.0, ("wifi", "tv")),
    ("Standard", 125.0, ("wifi", "tv", "city view")),
    ("Standard", 130.0, ("wifi", "tv", "bathtub")),
    ("Deluxe", 185.0, ("wifi", "tv", "minibar", "city view")),
    ("Deluxe", 195.0, ("wifi", "tv", "minibar", "balcony")),
    ("Suite", 320.0, ("wifi", "tv", "minibar", "balcony", "sea view")),
)

_SYNTHETIC_GUESTS = (
    "Amelia Clarke",
    "Rahul Mehta",
    "Sofia Rossi",
    "Kenji Watanabe",
    "Fatima Al-Sayed",
    "Lucas Moreau",
    "Grace Okafor",
    "Mateo Alvarez",
    "Hannah Schmidt",
    "Noah Williams",
    "Priya Nair",
    "Oliver Brown",
)


class RepositoryError(Exception):
    """Base exception for repository failures."""


class RoomNotFoundError(RepositoryError):
    """Raised when a room id does not exist in persisted state."""


class ReservationNotFoundError(RepositoryError):
    """Raised when a booking id does not exist in persisted state."""


class ViewNotFoundError(RepositoryError):
    """Raised when a tape chart view id does not exist."""


class AssignmentRejectedError(RepositoryError):
    """Raised when the store refuses a room assignment."""


def _split(value: Optional[str]) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item for item in value.split("|") if item)


def _join(values: Iterable[str]) -> str:
    return "|".join(values)


def _row_to_room(row: sqlite3.Row) -> Room:
    return Room(
        room_id=str(row["id"]),
        room_number=str(row["room_number"]),
        room_type=str(row["room_type"]),
        floor=int(row["floor"]),
        status=RoomStatus(row["status"]),
        base_rate=float(row["base_rate"]),
        building=row["building"],
        amenities=_split(row["amenities"]),
        is_active=bool(row["is_active"]),
    )


def _row_to_booking(row: sqlite3.Row) -> Reservation:
    return Reservation(
        reservation_id=str(row["id"]),
        guest_name=str(row["guest_name"]),
        room_type=str(row["room_type"]),
        check_in=date.fromisoformat(row["check_in"]),
        check_out=date.fromisoformat(row["check_out"]),
        adults=int(row["adults"]),
        children=int(row["children"]),
        vip_status=str(row["vip_status"]),
        total_amount=float(row["total_amount"]),
        special_requests=_split(row["special_requests"]),
        room_id=row["room_id"],
        status=BookingStatus(row["status"]),
        booking_type=str(row["booking_type"]),
        preferred_floor=row["preferred_floor"],
        preferred_amenities=_split(row["preferred_amenities"]),
    )


class DataRepository:
    """Encapsulates SQLite access so the engine stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Rooms (
                        id TEXT PRIMARY KEY,
                        room_number TEXT NOT NULL UNIQUE,
                        room_type TEXT NOT NULL,
                        floor INTEGER NOT NULL,
                        building TEXT,
                        status TEXT NOT NULL DEFAULT 'available',
                        base_rate REAL NOT NULL DEFAULT 0 CHECK (base_rate >= 0),
                        amenities TEXT NOT NULL DEFAULT '',
                        is_active INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1))
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Bookings (
                        id TEXT PRIMARY KEY,
                        guest_name TEXT NOT NULL,
                        room_type TEXT NOT NULL,
                        check_in TEXT NOT NULL,
                        check_out TEXT NOT NULL,
                        adults INTEGER NOT NULL DEFAULT 1 CHECK (adults >= 1),
                        children INTEGER NOT NULL DEFAULT 0 CHECK (children >= 0),
                        vip_status TEXT NOT NULL DEFAULT 'none',
                        total_amount REAL NOT NULL DEFAULT 0,
                        special_requests TEXT NOT NULL DEFAULT '',
                        room_id TEXT,
                        status TEXT NOT NULL DEFAULT 'confirmed',
                        booking_type TEXT NOT NULL DEFAULT 'individual',
                        preferred_floor INTEGER,
                        preferred_amenities TEXT NOT NULL DEFAULT '',
                        CHECK (check_in < check_out),
                        FOREIGN KEY (room_id) REFERENCES Rooms(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS TapeChartViews (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        floors TEXT NOT NULL DEFAULT '',
                        room_types TEXT NOT NULL DEFAULT '',
                        default_days INTEGER NOT NULL DEFAULT 7 CHECK (default_days > 0)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS RoomAssignmentLog (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        booking_id TEXT NOT NULL,
                        from_room_id TEXT,
                        to_room_id TEXT,
                        target_date TEXT NOT NULL,
                        reason TEXT,
                        notes TEXT,
                        notify INTEGER NOT NULL DEFAULT 0,
                        assigned_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (booking_id) REFERENCES Bookings(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS RoomStatusHistory (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        room_id TEXT NOT NULL,
                        status TEXT NOT NULL,
                        previous_status TEXT,
                        reason TEXT,
                        changed_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (room_id) REFERENCES Rooms(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_room_dates
                    ON Bookings(room_id, check_in, check_out);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_synthetic_data(self) -> None:
        """Seed a deterministic hotel only when the Rooms table is empty."""
        rng = random.Random(self._settings.synthetic_random_seed)
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute("SELECT COUNT(*) AS count FROM Rooms;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Synthetic data already present; skipping seed")
                    return

                rooms: list[tuple[str, str, str, int, str, str, float, str]] = []
                for floor in range(1, self._settings.synthetic_floors + 1):
                    for index in range(self._settings.synthetic_rooms_per_floor):
                        room_type, rate, amenities = _SYNTHETIC_ROOM_TYPES[
                            index % len(_SYNTHETIC_ROOM_TYPES)
                        ]
                        number = f"{floor}{index + 1:02d}"
                        rooms.append(
                            (
                                f"room-{number}",
                                number,
                                room_type,
                                floor,
                                "Main",
                                RoomStatus.AVAILABLE.value,
                                rate,
                                _join(amenities),
                            )
                        )
                cursor.executemany(
                    """
                    INSERT INTO Rooms
                        (id, room_number, room_type, floor, building, status, base_rate, amenities)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    rooms,
                )
                cursor.execute(
                    """
                    INSERT OR IGNORE INTO TapeChartViews (id, name, default_days)
                    VALUES (?, ?, ?);
                    """,
                    (
                        self._settings.default_view_id,
                        "All rooms",
                        self._settings.default_view_days,
                    ),
                )

                today = datetime.now(timezone.utc).date()
                start_date = today - timedelta(days=2)
                bookings = []
                sequence = 0
                for room_id, _, room_type, _, _, _, rate, _ in rooms:
                    day = start_date
                    horizon = start_date + timedelta(days=self._settings.synthetic_booking_days)
                    while day < horizon:
                        if rng.random() >= self._settings.synthetic_occupancy_probability:
                            day += timedelta(days=1)
                            continue
                        nights = rng.randint(1, 4)
                        check_out = day + timedelta(days=nights)
                        sequence += 1
                        status = (
                            BookingStatus.CHECKED_IN
                            if day <= today < check_out
                            else BookingStatus.CONFIRMED
                        )
                        bookings.append(
                            (
                                f"BK-{sequence:05d}",
                                rng.choice(_SYNTHETIC_GUESTS),
                                room_type,
                                day.isoformat(),
                                check_out.isoformat(),
                                rng.randint(1, 2),
                                rng.randint(0, 2),
                                rng.choice(("none", "none", "none", "vip", "svip")),
                                round(rate * nights, 2),
                                room_id,
                                status.value,
                                rng.choice(("individual", "corporate", "online", "group")),
                            )
                        )
                        day = check_out

                # A few arrivals still waiting for a room.
                for offset, (room_type, rate, _) in enumerate(_SYNTHETIC_ROOM_TYPES[::2]):
                    sequence += 1
                    check_in = today + timedelta(days=offset + 1)
                    bookings.append(
                        (
                            f"BK-{sequence:05d}",
                            rng.choice(_SYNTHETIC_GUESTS),
                            room_type,
                            check_in.isoformat(),
                            (check_in + timedelta(days=2)).isoformat(),
                            2,
                            0,
                            "none",
                            round(rate * 2, 2),
                            None,
                            BookingStatus.CONFIRMED.value,
                            "online",
                        )
                    )

                cursor.executemany(
                    """
                    INSERT INTO Bookings
                        (id, guest_name, room_type, check_in, check_out, adults, children,
                         vip_status, total_amount, room_id, status, booking_type)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    bookings,
                )
                conn.commit()
            logger.info(
                "Synthetic seed completed | rooms=%s | bookings=%s",
                len(rooms),
                len(bookings),
            )
        except sqlite3.Error as exc:
            raise RuntimeError(f"Synthetic data seeding failed: {exc}") from exc

    def upsert_room(self, room: Room) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO Rooms
                    (id, room_number, room_type, floor, building, status,
                     base_rate, amenities, is_active)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    room.room_id,
                    room.room_number,
                    room.room_type,
                    room.floor,
                    room.building,
                    RoomStatus(room.status).value,
                    room.base_rate,
                    _join(room.amenities),
                    int(room.is_active),
                ),
            )
            conn.commit()

    def create_booking(self, booking: Reservation) -> str:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO Bookings
                    (id, guest_name, room_type, check_in, check_out, adults, children,
                     vip_status, total_amount, special_requests, room_id, status,
                     booking_type, preferred_floor, preferred_amenities)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    booking.reservation_id,
                    booking.guest_name,
                    booking.room_type,
                    booking.check_in.isoformat(),
                    booking.check_out.isoformat(),
                    booking.adults,
                    booking.children,
                    booking.vip_status,
                    booking.total_amount,
                    _join(booking.special_requests),
                    booking.room_id,
                    BookingStatus(booking.status).value,
                    booking.booking_type,
                    booking.preferred_floor,
                    _join(booking.preferred_amenities),
                ),
            )
            conn.commit()
        return booking.reservation_id

    def create_view(
        self,
        view_id: str,
        name: str,
        floors: Sequence[int] = (),
        room_types: Sequence[str] = (),
        default_days: int = 7,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO TapeChartViews (id, name, floors, room_types, default_days)
                VALUES (?, ?, ?, ?, ?);
                """,
                (
                    view_id,
                    name,
                    _join(str(floor) for floor in floors),
                    _join(room_types),
                    default_days,
                ),
            )
            conn.commit()

    def get_view_default_days(self, view_id: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT default_days FROM TapeChartViews WHERE id = ?;",
                (view_id,),
            ).fetchone()
        if row is None:
            raise ViewNotFoundError(f"Tape chart view {view_id} does not exist")
        return int(row["default_days"])

    def get_room(self, room_id: str) -> Optional[Room]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM Rooms WHERE id = ?;", (room_id,)).fetchone()
        return _row_to_room(row) if row is not None else None

    def get_booking(self, booking_id: str) -> Optional[Reservation]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM Bookings WHERE id = ?;", (booking_id,)).fetchone()
        return _row_to_booking(row) if row is not None else None

    def fetch_calendar_snapshot(
        self,
        view_id: str,
        start: date,
        end: date,
    ) -> tuple[list[Room], list[Reservation]]:
        """Rooms of a view plus every active booking touching [start, end]."""
        with self._connect() as conn:
            cursor = conn.cursor()
            view = cursor.execute(
                "SELECT floors, room_types FROM TapeChartViews WHERE id = ?;",
                (view_id,),
            ).fetchone()
            if view is None:
                raise ViewNotFoundError(f"Tape chart view {view_id} does not exist")

            floors = {int(item) for item in _split(view["floors"])}
            room_types = {item.casefold() for item in _split(view["room_types"])}
            rooms = [
                _row_to_room(row)
                for row in cursor.execute(
                    "SELECT * FROM Rooms ORDER BY floor ASC, room_number ASC;"
                ).fetchall()
            ]
            rooms = [
                room
                for room in rooms
                if (not floors or room.floor in floors)
                and (not room_types or room.room_type.casefold() in room_types)
            ]

            placeholders = ", ".join("?" for _ in _INACTIVE_STATUS_VALUES)
            bookings = [
                _row_to_booking(row)
                for row in cursor.execute(
                    f"""
                    SELECT * FROM Bookings
                    WHERE check_in <= ?
                      AND check_out > ?
                      AND status NOT IN ({placeholders})
                    ORDER BY check_in ASC, id ASC;
                    """,
                    (end.isoformat(), start.isoformat(), *_INACTIVE_STATUS_VALUES),
                ).fetchall()
            ]
        logger.debug(
            "Snapshot fetched | view_id=%s | rooms=%s | bookings=%s",
            view_id,
            len(rooms),
            len(bookings),
        )
        return rooms, bookings

    def assign_reservation(
        self,
        booking_id: str,
        room_id: Optional[str],
        target_date: date,
        *,
        notes: Optional[str] = None,
        reason: Optional[str] = None,
        notify: bool = False,
    ) -> None:
        """Move a booking to `room_id` (or release it when None) after re-checking."""
        conn = self._connect()
        try:
            # Take the write lock before the overlap read.
            conn.execute("BEGIN IMMEDIATE;")
            row = conn.execute("SELECT * FROM Bookings WHERE id = ?;", (booking_id,)).fetchone()
            if row is None:
                raise ReservationNotFoundError(f"Booking {booking_id} does not exist")
            booking = _row_to_booking(row)
            if not booking.is_active:
                raise AssignmentRejectedError(
                    f"Booking {booking_id} is {booking.status.value} and cannot be moved"
                )

            if room_id is not None:
                room_row = conn.execute("SELECT * FROM Rooms WHERE id = ?;", (room_id,)).fetchone()
                if room_row is None:
                    raise RoomNotFoundError(f"Room {room_id} does not exist")
                room = _row_to_room(room_row)
                if not room.is_active or room.status in UNASSIGNABLE_ROOM_STATUSES:
                    raise AssignmentRejectedError(
                        f"Room {room.room_number} is not available for assignment"
                    )
                if not booking.covers(target_date):
                    raise AssignmentRejectedError(
                        f"{target_date.isoformat()} is outside the stay of booking {booking_id}"
                    )
                placeholders = ", ".join("?" for _ in _INACTIVE_STATUS_VALUES)
                clash = conn.execute(
                    f"""
                    SELECT id FROM Bookings
                    WHERE room_id = ?
                      AND id != ?
                      AND check_in < ?
                      AND check_out > ?
                      AND status NOT IN ({placeholders})
                    LIMIT 1;
                    """,
                    (
                        room_id,
                        booking_id,
                        booking.check_out.isoformat(),
                        booking.check_in.isoformat(),
                        *_INACTIVE_STATUS_VALUES,
                    ),
                ).fetchone()
                if clash is not None:
                    raise AssignmentRejectedError(
                        f"Room {room.room_number} is already booked by {clash['id']}"
                    )

            conn.execute("UPDATE Bookings SET room_id = ? WHERE id = ?;", (room_id, booking_id))
            conn.execute(
                """
                INSERT INTO RoomAssignmentLog
                    (booking_id, from_room_id, to_room_id, target_date, reason, notes, notify)
                VALUES (?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    booking_id,
                    booking.room_id,
                    room_id,
                    target_date.isoformat(),
                    reason,
                    notes,
                    int(notify),
                ),
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        logger.info(
            "Booking reassigned | booking_id=%s | from_room=%s | to_room=%s",
            booking_id,
            booking.room_id,
            room_id,
        )

    def set_room_status(self, room_id: str, status: str, reason: Optional[str] = None) -> None:
        resolved = RoomStatus(status)
        with self._connect() as conn:
            row = conn.execute("SELECT status FROM Rooms WHERE id = ?;", (room_id,)).fetchone()
            if row is None:
                raise RoomNotFoundError(f"Room {room_id} does not exist")
            conn.execute("UPDATE Rooms SET status = ? WHERE id = ?;", (resolved.value, room_id))
            conn.execute(
                """
                INSERT INTO RoomStatusHistory (room_id, status, previous_status, reason)
                VALUES (?, ?, ?, ?);
                """,
                (room_id, resolved.value, row["status"], reason),
            )
            conn.commit()
        logger.info(
            "Room status changed | room_id=%s | from=%s | to=%s",
            room_id,
            row["status"],
            resolved.value,
        )

    def count_assignment_logs(self) -> int:
        """Return persisted assignment count for diagnostics and tests."""
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS count FROM RoomAssignmentLog;").fetchone()
            return int(row["count"])

    def count_status_changes(self, room_id: Optional[str] = None) -> int:
        with self._connect() as conn:
            if room_id is None:
                row = conn.execute("SELECT COUNT(*) AS count FROM RoomStatusHistory;").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) AS count FROM RoomStatusHistory WHERE room_id = ?;",
                    (room_id,),
                ).fetchone()
            return int(row["count"])

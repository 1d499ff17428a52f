"""Domain models for tape chart room assignment."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Any, Iterator, Mapping, Optional


class RoomStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"
    DIRTY = "dirty"
    CLEAN = "clean"
    OUT_OF_ORDER = "out_of_order"
    BLOCKED = "blocked"


# Room states that take the room off the assignable inventory.
UNASSIGNABLE_ROOM_STATUSES = frozenset({RoomStatus.MAINTENANCE, RoomStatus.OUT_OF_ORDER})

# Room states projected onto vacant cells instead of `available`.
VACANT_CELL_OVERRIDES = frozenset(
    {RoomStatus.MAINTENANCE, RoomStatus.OUT_OF_ORDER, RoomStatus.BLOCKED}
)

OCCUPIED_CELL_STATUSES = frozenset({RoomStatus.OCCUPIED, RoomStatus.RESERVED})


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


INACTIVE_BOOKING_STATUSES = frozenset(
    {BookingStatus.CHECKED_OUT, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
)


class OperationKind(str, Enum):
    ASSIGN = "assign"
    BATCH_ASSIGN = "batch_assign"


class OperationState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    HOVER_VALIDATING = "hover_validating"
    DROPPING = "dropping"
    COMMITTING = "committing"
    COMMITTED = "committed"
    ABORTED = "aborted"
    FAILED = "failed"


ACTIVE_OPERATION_STATES = frozenset(
    {
        OperationState.DRAGGING,
        OperationState.HOVER_VALIDATING,
        OperationState.DROPPING,
        OperationState.COMMITTING,
    }
)

TERMINAL_OPERATION_STATES = frozenset(
    {OperationState.COMMITTED, OperationState.ABORTED, OperationState.FAILED}
)


class ConflictKind(str, Enum):
    LOCKED = "locked"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"
    UNSUITABLE = "unsuitable"


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of chart columns."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError("date range end must not precede start")

    @classmethod
    def from_start(cls, start: date, days: int) -> "DateRange":
        if days <= 0:
            raise ValueError("days must be > 0")
        return cls(start=start, end=start + timedelta(days=days - 1))

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def __contains__(self, value: object) -> bool:
        return isinstance(value, date) and self.start <= value <= self.end

    def __iter__(self) -> Iterator[date]:
        for offset in range(self.days):
            yield self.start + timedelta(days=offset)


@dataclass(frozen=True)
class Room:
    room_id: str
    room_number: str
    room_type: str
    floor: int
    status: RoomStatus = RoomStatus.AVAILABLE
    base_rate: float = 0.0
    building: Optional[str] = None
    amenities: tuple[str, ...] = ()
    is_active: bool = True

    @property
    def is_assignable(self) -> bool:
        return self.is_active and self.status not in UNASSIGNABLE_ROOM_STATUSES


@dataclass(frozen=True)
class Reservation:
    reservation_id: str
    guest_name: str
    room_type: str
    check_in: date
    check_out: date
    adults: int = 1
    children: int = 0
    vip_status: str = "none"
    total_amount: float = 0.0
    special_requests: tuple[str, ...] = ()
    room_id: Optional[str] = None
    status: BookingStatus = BookingStatus.CONFIRMED
    booking_type: str = "individual"
    preferred_floor: Optional[int] = None
    preferred_amenities: tuple[str, ...] = ()

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days

    @property
    def guest_count(self) -> int:
        return self.adults + self.children

    @property
    def nightly_rate(self) -> float:
        if self.nights <= 0:
            return 0.0
        return self.total_amount / self.nights

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_BOOKING_STATUSES

    def covers(self, day: date) -> bool:
        return self.check_in <= day < self.check_out

    def stay_dates(self) -> Iterator[date]:
        for offset in range(self.nights):
            yield self.check_in + timedelta(days=offset)

    def overlaps(self, other: "Reservation") -> bool:
        return self.check_in < other.check_out and other.check_in < self.check_out


@dataclass(frozen=True)
class TimelineCell:
    room_id: str
    date: date
    status: RoomStatus
    reservation_id: Optional[str] = None
    guest_name: Optional[str] = None
    vip_status: Optional[str] = None
    booking_type: Optional[str] = None
    rate: Optional[float] = None
    notifications: tuple[str, ...] = ()

    @property
    def is_occupied(self) -> bool:
        return self.reservation_id is not None and self.status in OCCUPIED_CELL_STATUSES


@dataclass(frozen=True)
class Target:
    room_id: str
    date: date

    @property
    def cell_key(self) -> tuple[str, date]:
        return (self.room_id, self.date)


@dataclass(frozen=True)
class Conflict:
    kind: ConflictKind
    reservation_id: str
    room_id: str
    date: date
    message: str
    suggestions: tuple[str, ...] = ()
    details: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @property
    def target(self) -> Target:
        return Target(room_id=self.room_id, date=self.date)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "reservation_id": self.reservation_id,
            "room_id": self.room_id,
            "date": self.date.isoformat(),
            "message": self.message,
            "suggestions": list(self.suggestions),
        }


@dataclass(frozen=True)
class Ok:
    reservation_id: str
    target: Target


@dataclass(frozen=True)
class RoomSuggestion:
    room_id: str
    room_number: str
    score: float
    reasons: tuple[str, ...]


@dataclass
class Operation:
    """Transient aggregate for one drag gesture; mutated only by the manager."""

    operation_id: str
    reservations: tuple[Reservation, ...]
    kind: OperationKind
    started_at: float
    state: OperationState = OperationState.DRAGGING
    target: Optional[Target] = None

    @property
    def reservation_ids(self) -> list[str]:
        return [reservation.reservation_id for reservation in self.reservations]


@dataclass(frozen=True)
class PriorAssignment:
    reservation: Reservation
    previous_room_id: Optional[str]
    new_room_id: str


@dataclass(frozen=True)
class UndoEntry:
    operation_id: str
    members: tuple[PriorAssignment, ...]

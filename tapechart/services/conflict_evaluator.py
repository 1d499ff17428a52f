"""Pure move validation for tape chart drops.

Checks run in a fixed order and the first failure wins: room type, stay
dates, occupancy, room availability, capacity. Structural problems are
therefore reported before transient ones. Nothing here raises; lookups that
fail are turned into conflicts so the evaluator is safe to call on every
pointer move.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from tapechart.domain.models import (
    Conflict,
    ConflictKind,
    Ok,
    Reservation,
    RoomStatus,
    Target,
    UNASSIGNABLE_ROOM_STATUSES,
)
from tapechart.services.calendar_model import CalendarModel


DEFAULT_MAX_GUESTS_PER_ROOM = 4

Evaluation = Union[Ok, Conflict]
TargetSpec = Union[Target, Mapping[str, Target]]

MESSAGE_TEMPLATES: dict[str, str] = {
    "room_not_found": "Room {room_id} is not on the loaded chart",
    "room_type_mismatch": (
        "Room {room_number} is a {room_type} room but the booking requires {requested_type}"
    ),
    "no_target": "No drop target was chosen for {guest_name}",
    "before_check_in": "{guest_name} checks in on {check_in}",
    "after_check_out": "{guest_name} checks out on {check_out}",
    "outside_chart": "{date} is outside the loaded chart",
    "cell_occupied": "Room {room_number} is occupied by {occupant} on {date}",
    "batch_overlap": "Room {room_number} would also receive {occupant} from the same move",
    "room_unavailable": "Room {room_number} is {status}",
    "room_inactive": "Room {room_number} is inactive",
    "capacity_exceeded": "Room capacity insufficient for {guests} guests",
}

SUGGESTIONS: dict[ConflictKind, tuple[str, ...]] = {
    ConflictKind.UNSUITABLE: (
        "select a room with matching type",
        "update booking to match room type",
    ),
    ConflictKind.LOCKED: (
        "drop on a date within the stay",
        "modify the stay dates first",
    ),
    ConflictKind.OCCUPIED: (
        "try another room",
        "move the current occupant first",
    ),
    ConflictKind.MAINTENANCE: (
        "select an available room",
        "release the room from maintenance first",
    ),
}

CAPACITY_SUGGESTIONS = ("find a larger room", "split into multiple rooms")


def render_conflict(
    conflict: Conflict,
    templates: Optional[Mapping[str, str]] = None,
) -> str:
    """Re-render a conflict message, e.g. with localized templates."""
    code = str(conflict.details.get("code", ""))
    template = (templates or MESSAGE_TEMPLATES).get(code)
    if template is None:
        return conflict.message
    return template.format(**conflict.details)


def _conflict(
    kind: ConflictKind,
    code: str,
    reservation: Reservation,
    target: Target,
    suggestions: Optional[tuple[str, ...]] = None,
    **params: Any,
) -> Conflict:
    details = {"code": code, **params}
    return Conflict(
        kind=kind,
        reservation_id=reservation.reservation_id,
        room_id=target.room_id,
        date=target.date,
        message=MESSAGE_TEMPLATES[code].format(**details),
        suggestions=suggestions if suggestions is not None else SUGGESTIONS[kind],
        details=details,
    )


def _check_room_type(
    calendar: CalendarModel,
    reservation: Reservation,
    target: Target,
) -> Optional[Conflict]:
    room = calendar.room(target.room_id)
    if room is None:
        return _conflict(
            ConflictKind.UNSUITABLE,
            "room_not_found",
            reservation,
            target,
            room_id=target.room_id,
        )
    if room.room_type.strip().casefold() != reservation.room_type.strip().casefold():
        return _conflict(
            ConflictKind.UNSUITABLE,
            "room_type_mismatch",
            reservation,
            target,
            room_number=room.room_number,
            room_type=room.room_type,
            requested_type=reservation.room_type,
        )
    return None


def _check_dates(
    calendar: CalendarModel,
    reservation: Reservation,
    target: Target,
) -> Optional[Conflict]:
    if target.date < reservation.check_in:
        return _conflict(
            ConflictKind.LOCKED,
            "before_check_in",
            reservation,
            target,
            guest_name=reservation.guest_name,
            check_in=reservation.check_in.isoformat(),
        )
    if target.date >= reservation.check_out:
        return _conflict(
            ConflictKind.LOCKED,
            "after_check_out",
            reservation,
            target,
            guest_name=reservation.guest_name,
            check_out=reservation.check_out.isoformat(),
        )
    if not calendar.contains(target.room_id, target.date):
        return _conflict(
            ConflictKind.LOCKED,
            "outside_chart",
            reservation,
            target,
            date=target.date.isoformat(),
        )
    return None


def _check_occupancy(
    calendar: CalendarModel,
    reservation: Reservation,
    target: Target,
) -> Optional[Conflict]:
    room = calendar.room(target.room_id)
    room_number = room.room_number if room is not None else target.room_id
    # Target cell first so the message names what is under the pointer.
    nights = [target.date] + [
        day for day in calendar.stay_dates_in_range(reservation) if day != target.date
    ]
    for day in nights:
        if not calendar.contains(target.room_id, day):
            continue
        cell = calendar.cell_at(target.room_id, day)
        if not cell.is_occupied or cell.reservation_id == reservation.reservation_id:
            continue
        return _conflict(
            ConflictKind.OCCUPIED,
            "cell_occupied",
            reservation,
            target,
            room_number=room_number,
            occupant=cell.guest_name or cell.reservation_id,
            occupant_id=cell.reservation_id,
            date=day.isoformat(),
        )
    return None


def _check_room_availability(
    calendar: CalendarModel,
    reservation: Reservation,
    target: Target,
) -> Optional[Conflict]:
    room = calendar.room(target.room_id)
    if room is None:
        return None
    if room.status in UNASSIGNABLE_ROOM_STATUSES:
        return _conflict(
            ConflictKind.MAINTENANCE,
            "room_unavailable",
            reservation,
            target,
            room_number=room.room_number,
            status=RoomStatus(room.status).value.replace("_", " "),
        )
    if not room.is_active:
        return _conflict(
            ConflictKind.MAINTENANCE,
            "room_inactive",
            reservation,
            target,
            room_number=room.room_number,
        )
    return None


def evaluate(
    calendar: CalendarModel,
    reservation: Reservation,
    target: Target,
    *,
    max_guests_per_room: int = DEFAULT_MAX_GUESTS_PER_ROOM,
) -> Evaluation:
    """Classify dropping `reservation` on `target` as Ok or a Conflict."""
    with calendar.consistent():
        for check in (
            _check_room_type,
            _check_dates,
            _check_occupancy,
            _check_room_availability,
        ):
            conflict = check(calendar, reservation, target)
            if conflict is not None:
                return conflict
    if reservation.guest_count > max_guests_per_room:
        return _conflict(
            ConflictKind.UNSUITABLE,
            "capacity_exceeded",
            reservation,
            target,
            suggestions=CAPACITY_SUGGESTIONS,
            guests=reservation.guest_count,
        )
    return Ok(reservation_id=reservation.reservation_id, target=target)


@dataclass(frozen=True)
class BatchEvaluation:
    results: dict[str, Evaluation] = field(default_factory=dict)

    @property
    def conflicts(self) -> list[Conflict]:
        return [result for result in self.results.values() if isinstance(result, Conflict)]

    @property
    def is_valid(self) -> bool:
        return bool(self.results) and not self.conflicts


def target_for(targets: TargetSpec, reservation_id: str) -> Optional[Target]:
    if isinstance(targets, Target):
        return targets
    return targets.get(reservation_id)


def evaluate_batch(
    calendar: CalendarModel,
    reservations: list[Reservation],
    targets: TargetSpec,
    *,
    max_guests_per_room: int = DEFAULT_MAX_GUESTS_PER_ROOM,
) -> BatchEvaluation:
    """Evaluate every member against its own target; valid only if all are."""
    results: dict[str, Evaluation] = {}
    accepted: list[tuple[Reservation, Target]] = []
    with calendar.consistent():
        for reservation in reservations:
            target = target_for(targets, reservation.reservation_id)
            if target is None:
                fallback = Target(room_id="", date=reservation.check_in)
                results[reservation.reservation_id] = _conflict(
                    ConflictKind.LOCKED,
                    "no_target",
                    reservation,
                    fallback,
                    guest_name=reservation.guest_name,
                )
                continue

            result = evaluate(
                calendar,
                reservation,
                target,
                max_guests_per_room=max_guests_per_room,
            )
            if isinstance(result, Ok):
                clash = next(
                    (
                        other
                        for other, other_target in accepted
                        if other_target.room_id == target.room_id and other.overlaps(reservation)
                    ),
                    None,
                )
                if clash is not None:
                    room = calendar.room(target.room_id)
                    result = _conflict(
                        ConflictKind.OCCUPIED,
                        "batch_overlap",
                        reservation,
                        target,
                        room_number=room.room_number if room is not None else target.room_id,
                        occupant=clash.guest_name,
                        occupant_id=clash.reservation_id,
                    )
                else:
                    accepted.append((reservation, target))
            results[reservation.reservation_id] = result
    return BatchEvaluation(results=results)

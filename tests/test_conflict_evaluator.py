from __future__ import annotations

from dataclasses import replace
from datetime import date

from tapechart.domain.models import ConflictKind, Ok, Reservation, RoomStatus, Target
from tapechart.services.conflict_evaluator import (
    CAPACITY_SUGGESTIONS,
    evaluate,
    evaluate_batch,
    render_conflict,
)


def test_suite_booking_on_standard_room_is_unsuitable(calendar):
    suite_guest = calendar.reservation("S")
    result = evaluate(calendar, suite_guest, Target("room-103", date(2026, 3, 2)))

    assert result.kind == ConflictKind.UNSUITABLE
    assert result.suggestions == (
        "select a room with matching type",
        "update booking to match room type",
    )
    assert "Suite" in result.message


def test_drop_on_checkout_date_is_locked(calendar):
    bruno = calendar.reservation("B")
    result = evaluate(calendar, bruno, Target("room-103", date(2026, 3, 5)))

    assert result.kind == ConflictKind.LOCKED
    assert "checks out on 2026-03-05" in result.message


def test_drop_before_check_in_is_locked(calendar):
    bruno = calendar.reservation("B")
    result = evaluate(calendar, bruno, Target("room-103", date(2026, 3, 1)))

    assert result.kind == ConflictKind.LOCKED
    assert "checks in on 2026-03-02" in result.message


def test_drop_outside_loaded_chart_is_locked(calendar):
    late = Reservation("E", "Eve Late", "Standard", date(2026, 3, 6), date(2026, 3, 10))
    result = evaluate(calendar, late, Target("room-103", date(2026, 3, 8)))

    assert result.kind == ConflictKind.LOCKED
    assert result.details["code"] == "outside_chart"


def test_occupied_target_names_occupant(calendar):
    chen = calendar.reservation("C")
    result = evaluate(calendar, chen, Target("room-102", date(2026, 3, 4)))

    assert result.kind == ConflictKind.OCCUPIED
    assert "Bruno Baker" in result.message
    assert result.details["occupant_id"] == "B"


def test_later_stay_night_occupied_is_reported(calendar):
    early = Reservation("F", "Finn Early", "Standard", date(2026, 3, 1), date(2026, 3, 3))
    result = evaluate(calendar, early, Target("room-102", date(2026, 3, 1)))

    assert result.kind == ConflictKind.OCCUPIED
    assert result.date == date(2026, 3, 1)
    assert result.details["date"] == "2026-03-02"


def test_maintenance_room_is_blocked(calendar):
    suite_guest = calendar.reservation("S")
    result = evaluate(calendar, suite_guest, Target("room-301", date(2026, 3, 2)))

    assert result.kind == ConflictKind.MAINTENANCE
    assert "maintenance" in result.message


def test_inactive_room_is_blocked(calendar):
    calendar.load(
        [replace(room, is_active=False) if room.room_id == "room-103" else room for room in calendar.rooms],
        calendar.reservations,
        calendar.date_range,
    )
    result = evaluate(calendar, calendar.reservation("C"), Target("room-103", date(2026, 3, 4)))
    assert result.kind == ConflictKind.MAINTENANCE
    assert result.details["code"] == "room_inactive"


def test_capacity_is_checked_last(calendar):
    crowd = replace(calendar.reservation("C"), adults=3, children=2)
    result = evaluate(calendar, crowd, Target("room-103", date(2026, 3, 4)))

    assert result.kind == ConflictKind.UNSUITABLE
    assert result.suggestions == CAPACITY_SUGGESTIONS
    assert "5 guests" in result.message

    relaxed = evaluate(calendar, crowd, Target("room-103", date(2026, 3, 4)), max_guests_per_room=6)
    assert isinstance(relaxed, Ok)


def test_room_type_is_checked_before_dates(calendar):
    suite_guest = calendar.reservation("S")
    result = evaluate(calendar, suite_guest, Target("room-103", date(2026, 3, 6)))
    assert result.kind == ConflictKind.UNSUITABLE


def test_occupancy_is_checked_before_maintenance(calendar):
    calendar.update_room_status("room-102", RoomStatus.MAINTENANCE)
    result = evaluate(calendar, calendar.reservation("C"), Target("room-102", date(2026, 3, 4)))
    assert result.kind == ConflictKind.OCCUPIED


def test_unknown_room_is_unsuitable(calendar):
    result = evaluate(calendar, calendar.reservation("C"), Target("room-999", date(2026, 3, 4)))
    assert result.kind == ConflictKind.UNSUITABLE
    assert result.details["code"] == "room_not_found"


def test_room_type_comparison_ignores_case(calendar):
    lowercase = replace(calendar.reservation("C"), room_type="standard ")
    result = evaluate(calendar, lowercase, Target("room-101", date(2026, 3, 4)))
    assert isinstance(result, Ok)


def test_valid_move_is_ok(calendar):
    result = evaluate(calendar, calendar.reservation("C"), Target("room-101", date(2026, 3, 5)))
    assert result == Ok(reservation_id="C", target=Target("room-101", date(2026, 3, 5)))


def test_dropping_on_own_cells_is_ok(calendar):
    result = evaluate(calendar, calendar.reservation("B"), Target("room-102", date(2026, 3, 3)))
    assert isinstance(result, Ok)


def test_evaluation_does_not_mutate_calendar(calendar):
    version = calendar.version
    frame_before = calendar.to_frame()
    evaluate(calendar, calendar.reservation("C"), Target("room-102", date(2026, 3, 4)))
    evaluate(calendar, calendar.reservation("C"), Target("room-101", date(2026, 3, 4)))
    assert calendar.version == version
    assert calendar.to_frame().equals(frame_before)


def test_batch_with_shared_target_checks_every_member(calendar):
    members = [calendar.reservation("C"), calendar.reservation("S")]
    batch = evaluate_batch(calendar, members, Target("room-101", date(2026, 3, 4)))

    assert not batch.is_valid
    assert isinstance(batch.results["C"], Ok)
    assert batch.results["S"].kind == ConflictKind.UNSUITABLE


def test_batch_members_cannot_share_a_room(calendar):
    twin = Reservation("C2", "Chen Twin", "Standard", date(2026, 3, 5), date(2026, 3, 7))
    batch = evaluate_batch(
        calendar,
        [calendar.reservation("C"), twin],
        {
            "C": Target("room-103", date(2026, 3, 4)),
            "C2": Target("room-103", date(2026, 3, 5)),
        },
    )

    assert isinstance(batch.results["C"], Ok)
    assert batch.results["C2"].kind == ConflictKind.OCCUPIED
    assert batch.results["C2"].details["code"] == "batch_overlap"


def test_batch_member_without_target_conflicts(calendar):
    batch = evaluate_batch(
        calendar,
        [calendar.reservation("C"), calendar.reservation("B")],
        {"C": Target("room-101", date(2026, 3, 4))},
    )
    assert [conflict.details["code"] for conflict in batch.conflicts] == ["no_target"]


def test_render_conflict_uses_custom_templates(calendar):
    result = evaluate(calendar, calendar.reservation("B"), Target("room-103", date(2026, 3, 5)))
    rendered = render_conflict(result, {"after_check_out": "Départ le {check_out}"})
    assert rendered == "Départ le 2026-03-05"
    assert render_conflict(result, {}) == result.message

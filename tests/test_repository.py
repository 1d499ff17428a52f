from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from datetime import date, timedelta

import pytest

from conftest import CHART, make_bookings, make_rooms
from tapechart.domain.errors import CommitFailure
from tapechart.domain.models import BookingStatus, Reservation, RoomStatus, Target
from tapechart.repository.data_repository import (
    AssignmentRejectedError,
    DataRepository,
    ReservationNotFoundError,
    RoomNotFoundError,
    ViewNotFoundError,
)
from tapechart.services.backend_gateway import AssignmentOptions, RepositoryGateway
from tapechart.services.engine import TapeChartEngine
from tapechart.utils.config import get_settings


def _build_test_settings(tmp_path, filename: str):
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        synthetic_floors=2,
        synthetic_rooms_per_floor=4,
    )


def _build_repository(
    tmp_path,
    filename: str = "tapechart.db",
    repository_cls: type[DataRepository] = DataRepository,
) -> DataRepository:
    repository = repository_cls(_build_test_settings(tmp_path, filename))
    repository.initialize_database()
    for room in make_rooms():
        repository.upsert_room(room)
    for booking in make_bookings():
        repository.create_booking(booking)
    repository.create_view("default", "All rooms")
    return repository


def test_seed_is_deterministic_and_idempotent(tmp_path):
    first = DataRepository(_build_test_settings(tmp_path, "first.db"))
    first.initialize_database()
    first.seed_synthetic_data()
    first.seed_synthetic_data()

    second = DataRepository(_build_test_settings(tmp_path, "second.db"))
    second.initialize_database()
    second.seed_synthetic_data()

    start = date.today()
    end = start + timedelta(days=6)
    rooms_a, bookings_a = first.fetch_calendar_snapshot("default", start, end)
    rooms_b, bookings_b = second.fetch_calendar_snapshot("default", start, end)

    assert len(rooms_a) == 8
    assert [room.room_id for room in rooms_a] == [room.room_id for room in rooms_b]
    assert [booking.reservation_id for booking in bookings_a] == [
        booking.reservation_id for booking in bookings_b
    ]
    assert first.get_view_default_days("default") == get_settings().default_view_days
    assert any(booking.room_id is None for booking in bookings_a)


def test_snapshot_filters_rooms_and_inactive_bookings(tmp_path):
    repository = _build_repository(tmp_path)
    repository.create_booking(
        Reservation(
            "X",
            "Xena Cancelled",
            "Standard",
            date(2026, 3, 1),
            date(2026, 3, 4),
            room_id="room-103",
            status=BookingStatus.CANCELLED,
        )
    )
    repository.create_view("standard", "Standard rooms", floors=(1,), room_types=("standard",))

    rooms, bookings = repository.fetch_calendar_snapshot("standard", CHART.start, CHART.end)

    assert [room.room_id for room in rooms] == ["room-101", "room-102", "room-103"]
    assert "X" not in [booking.reservation_id for booking in bookings]
    assert {booking.reservation_id for booking in bookings} == {"A", "B", "C", "S"}


def test_snapshot_round_trips_booking_fields(tmp_path):
    repository = _build_repository(tmp_path)
    bruno = repository.get_booking("B")
    assert bruno == make_bookings()[1]
    assert repository.get_room("room-301").status == RoomStatus.MAINTENANCE


def test_unknown_view_raises(tmp_path):
    repository = _build_repository(tmp_path)
    with pytest.raises(ViewNotFoundError):
        repository.fetch_calendar_snapshot("missing", CHART.start, CHART.end)
    with pytest.raises(ViewNotFoundError):
        repository.get_view_default_days("missing")


def test_assign_moves_booking_and_logs(tmp_path):
    repository = _build_repository(tmp_path)

    repository.assign_reservation(
        "C",
        "room-101",
        date(2026, 3, 4),
        notes="Moved via drag & drop to room 101 for 2026-03-04",
        reason="Staff reassignment via tape chart",
    )

    assert repository.get_booking("C").room_id == "room-101"
    assert repository.count_assignment_logs() == 1

    repository.assign_reservation("C", None, date(2026, 3, 4))
    assert repository.get_booking("C").room_id is None
    assert repository.count_assignment_logs() == 2


def test_assign_rechecks_overlap_server_side(tmp_path):
    repository = _build_repository(tmp_path)
    with pytest.raises(AssignmentRejectedError):
        repository.assign_reservation("C", "room-102", date(2026, 3, 4))
    assert repository.get_booking("C").room_id is None
    assert repository.count_assignment_logs() == 0


@pytest.mark.parametrize(
    "booking_id, room_id, target_date, error",
    [
        ("C", "room-301", date(2026, 3, 4), AssignmentRejectedError),
        ("C", "room-101", date(2026, 3, 6), AssignmentRejectedError),
        ("C", "room-999", date(2026, 3, 4), RoomNotFoundError),
        ("missing", "room-101", date(2026, 3, 4), ReservationNotFoundError),
    ],
)
def test_assign_rejections(tmp_path, booking_id, room_id, target_date, error):
    repository = _build_repository(tmp_path)
    with pytest.raises(error):
        repository.assign_reservation(booking_id, room_id, target_date)
    assert repository.count_assignment_logs() == 0


def test_inactive_booking_cannot_be_moved(tmp_path):
    repository = _build_repository(tmp_path)
    repository.create_booking(
        Reservation(
            "Z",
            "Zoe Gone",
            "Standard",
            date(2026, 3, 1),
            date(2026, 3, 2),
            status=BookingStatus.CHECKED_OUT,
        )
    )
    with pytest.raises(AssignmentRejectedError):
        repository.assign_reservation("Z", "room-103", date(2026, 3, 1))


def test_set_room_status_records_history(tmp_path):
    repository = _build_repository(tmp_path)

    repository.set_room_status("room-103", "dirty", "guest left")
    repository.set_room_status("room-103", "clean")

    assert repository.get_room("room-103").status == RoomStatus.CLEAN
    assert repository.count_status_changes("room-103") == 2
    assert repository.count_status_changes() == 2
    with pytest.raises(RoomNotFoundError):
        repository.set_room_status("room-999", "dirty")


def test_gateway_adapts_repository_to_async_contract(tmp_path):
    repository = _build_repository(tmp_path)
    gateway = RepositoryGateway(repository)

    snapshot = asyncio.run(gateway.fetch_calendar_snapshot("default", CHART))
    asyncio.run(
        gateway.assign_reservation(
            "C",
            "room-103",
            date(2026, 3, 4),
            AssignmentOptions(reason="test", notify=True),
        )
    )
    asyncio.run(gateway.set_room_status("room-101", RoomStatus.DIRTY, None))

    assert len(snapshot.rooms) == 5
    assert repository.get_booking("C").room_id == "room-103"
    assert repository.get_room("room-101").status == RoomStatus.DIRTY


class SlowRepository(DataRepository):
    """Commits the write, but only after the engine has stopped waiting."""

    def assign_reservation(self, *args, **kwargs) -> None:
        time.sleep(0.2)
        super().assign_reservation(*args, **kwargs)


def test_timed_out_commit_flags_chart_until_refresh(tmp_path):
    repository = _build_repository(tmp_path, repository_cls=SlowRepository)
    settings = replace(get_settings(), commit_timeout_seconds=0.05)
    engine = TapeChartEngine(gateway=RepositoryGateway(repository), settings=settings)
    asyncio.run(engine.refresh("default", CHART))
    manager = engine.manager

    manager.start([engine.calendar.reservation("C")])
    with pytest.raises(CommitFailure) as excinfo:
        asyncio.run(manager.drop(Target("room-101", date(2026, 3, 4))))

    assert excinfo.value.retryable
    assert excinfo.value.calendar_stale
    assert "outcome is unknown" in str(excinfo.value)
    assert engine.calendar.is_stale
    assert engine.calendar.reservation("C").room_id is None
    # The worker thread still finished the write.
    assert repository.get_booking("C").room_id == "room-101"

    asyncio.run(engine.refresh("default", CHART))
    assert not engine.calendar.is_stale
    assert engine.calendar.cell_at("room-101", date(2026, 3, 4)).reservation_id == "C"

"""Shared chart fixtures: four rooms over one March week.

    room-101 Standard  A (checked in)   03-01 .. 03-03
    room-102 Standard  B (vip, request) 03-02 .. 03-05
    room-103 Standard  free
    room-201 Deluxe    free
    room-301 Suite     under maintenance
    C (Standard) and S (Suite) are unassigned.
"""

from __future__ import annotations

from datetime import date

import pytest

from tapechart.domain.models import BookingStatus, DateRange, Reservation, Room, RoomStatus
from tapechart.services.calendar_model import CalendarModel


CHART = DateRange(start=date(2026, 3, 1), end=date(2026, 3, 7))


def make_rooms() -> list[Room]:
    return [
        Room("room-101", "101", "Standard", 1, base_rate=120.0, amenities=("wifi", "tv")),
        Room("room-102", "102", "Standard", 1, base_rate=120.0, amenities=("wifi",)),
        Room("room-103", "103", "Standard", 1, base_rate=125.0, amenities=("wifi", "bathtub")),
        Room("room-201", "201", "Deluxe", 2, base_rate=185.0, amenities=("wifi", "balcony")),
        Room(
            "room-301",
            "301",
            "Suite",
            3,
            status=RoomStatus.MAINTENANCE,
            base_rate=320.0,
        ),
    ]


def make_bookings() -> list[Reservation]:
    return [
        Reservation(
            "A",
            "Alice Archer",
            "Standard",
            date(2026, 3, 1),
            date(2026, 3, 3),
            total_amount=240.0,
            room_id="room-101",
            status=BookingStatus.CHECKED_IN,
        ),
        Reservation(
            "B",
            "Bruno Baker",
            "Standard",
            date(2026, 3, 2),
            date(2026, 3, 5),
            adults=2,
            vip_status="vip",
            total_amount=360.0,
            special_requests=("late checkout",),
            room_id="room-102",
        ),
        Reservation(
            "C",
            "Chen Cho",
            "Standard",
            date(2026, 3, 4),
            date(2026, 3, 6),
            total_amount=240.0,
        ),
        Reservation(
            "S",
            "Sara Suite",
            "Suite",
            date(2026, 3, 2),
            date(2026, 3, 4),
            total_amount=640.0,
        ),
    ]


@pytest.fixture
def chart_range() -> DateRange:
    return CHART


@pytest.fixture
def calendar() -> CalendarModel:
    model = CalendarModel()
    model.load(make_rooms(), make_bookings(), CHART)
    return model

from __future__ import annotations

from dataclasses import replace
from datetime import date

from tapechart.domain.constraints import SuggestionWeights
from tapechart.domain.models import Reservation
from tapechart.services.suggestion_ranker import SuggestionOptions, suggest


def test_exact_type_rooms_ranked_by_score(calendar):
    suggestions = suggest(calendar, calendar.reservation("C"))

    assert [item.room_id for item in suggestions] == ["room-101", "room-103"]
    assert suggestions[0].score == 90.0
    assert suggestions[0].score > suggestions[1].score
    assert "Exact room type match (Standard)" in suggestions[0].reasons
    assert "Free for the whole stay" in suggestions[0].reasons


def test_current_room_is_excluded(calendar):
    suggestions = suggest(calendar, calendar.reservation("B"))
    assert "room-102" not in [item.room_id for item in suggestions]


def test_occupied_first_night_is_excluded(calendar):
    suggestions = suggest(calendar, calendar.reservation("B"))
    # room-101 is still held by Alice on Bruno's first night.
    assert [item.room_id for item in suggestions] == ["room-103"]


def test_maintenance_rooms_yield_no_suggestions(calendar):
    assert suggest(calendar, calendar.reservation("S")) == []


def test_type_mismatch_allowed_ranks_alternatives_last(calendar):
    suggestions = suggest(
        calendar,
        calendar.reservation("C"),
        SuggestionOptions(allow_type_mismatch=True),
    )
    assert [item.room_id for item in suggestions] == ["room-101", "room-103", "room-201"]
    assert suggestions[-1].reasons[0] == "Alternative room type (Deluxe)"


def test_accepted_room_types_widen_candidates(calendar):
    suggestions = suggest(
        calendar,
        calendar.reservation("C"),
        SuggestionOptions(accepted_room_types=frozenset({"deluxe"})),
    )
    assert "room-201" in [item.room_id for item in suggestions]


def test_limit_bounds_the_list(calendar):
    suggestions = suggest(calendar, calendar.reservation("C"), SuggestionOptions(limit=1))
    assert len(suggestions) == 1


def test_weights_change_the_order(calendar):
    upstairs = replace(calendar.reservation("C"), preferred_floor=2)
    floor_only = SuggestionWeights(type_match=0.0, availability=0.0, rate=0.0, floor=1.0, amenity=0.0)
    suggestions = suggest(
        calendar,
        upstairs,
        SuggestionOptions(allow_type_mismatch=True),
        floor_only,
    )
    assert suggestions[0].room_id == "room-201"
    assert suggestions[0].score == 100.0
    assert "On preferred floor 2" in suggestions[0].reasons


def test_partially_free_rooms_are_flagged(calendar):
    arrival = Reservation("G", "Gia Guest", "Standard", date(2026, 3, 2), date(2026, 3, 5))
    calendar.move_reservation(calendar.reservation("C"), "room-103")

    suggestions = suggest(calendar, arrival)
    by_room = {item.room_id: item for item in suggestions}
    assert "Free for 2 of 3 nights" in by_room["room-103"].reasons

    full_only = suggest(calendar, arrival, SuggestionOptions(require_full_stay=True))
    assert "room-103" not in [item.room_id for item in full_only]


def test_amenity_preferences_are_explained(calendar):
    bath_lover = replace(calendar.reservation("C"), preferred_amenities=("Bathtub",))
    suggestions = suggest(calendar, bath_lover)
    top = suggestions[0]
    assert top.room_id == "room-103"
    assert "Matches amenities: bathtub" in top.reasons


def test_scores_are_bounded_and_deterministic(calendar):
    options = SuggestionOptions(allow_type_mismatch=True, limit=10)
    first = suggest(calendar, calendar.reservation("C"), options)
    second = suggest(calendar, calendar.reservation("C"), options)
    assert first == second
    assert all(0.0 <= item.score <= 100.0 for item in first)

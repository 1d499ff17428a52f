"""Alternative-room ranking for reservations that do not fit where dropped."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from tapechart.domain.constraints import SuggestionWeights
from tapechart.domain.models import Reservation, Room, RoomSuggestion
from tapechart.services.calendar_model import CalendarModel
from tapechart.utils.logger import get_logger


logger = get_logger(__name__)

FEATURE_NAMES = ("type_match", "availability", "rate", "floor", "amenity")

# Relative rate gap at which rate proximity reaches zero.
RATE_TOLERANCE = 0.5


@dataclass(frozen=True)
class SuggestionOptions:
    limit: int = 5
    accepted_room_types: frozenset[str] = frozenset()
    allow_type_mismatch: bool = False
    target_rate: Optional[float] = None
    require_full_stay: bool = False
    exclude_room_ids: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class Candidate:
    room: Room
    features: tuple[float, float, float, float, float]
    free_nights: int
    stay_nights: int


def _normalize(value: str) -> str:
    return value.strip().casefold()


def _rate_proximity(room_rate: float, reference_rate: float) -> float:
    if reference_rate <= 0.0 or room_rate <= 0.0:
        return 0.5
    gap = abs(room_rate - reference_rate) / reference_rate
    return max(0.0, 1.0 - gap / RATE_TOLERANCE)


def _floor_preference(room: Room, preferred_floor: Optional[int]) -> float:
    if preferred_floor is None:
        return 0.5
    return 1.0 / (1.0 + abs(room.floor - preferred_floor))


def _amenity_overlap(room: Room, preferred: tuple[str, ...]) -> float:
    if not preferred:
        return 0.5
    wanted = {_normalize(item) for item in preferred}
    offered = {_normalize(item) for item in room.amenities}
    return len(wanted & offered) / len(wanted)


def collect_candidates(
    calendar: CalendarModel,
    reservation: Reservation,
    options: SuggestionOptions,
) -> list[Candidate]:
    """Rooms passing the hard type/date/availability constraints."""
    requested_type = _normalize(reservation.room_type)
    accepted_types = {requested_type} | {_normalize(item) for item in options.accepted_room_types}
    reference_rate = (
        options.target_rate if options.target_rate is not None else reservation.nightly_rate
    )

    with calendar.consistent():
        stay_dates = calendar.stay_dates_in_range(reservation)
        if not stay_dates:
            return []
        candidates: list[Candidate] = []
        for room in calendar.rooms:
            if room.room_id == reservation.room_id or room.room_id in options.exclude_room_ids:
                continue
            if not room.is_assignable:
                continue
            room_type = _normalize(room.room_type)
            if room_type not in accepted_types and not options.allow_type_mismatch:
                continue
            first_night = calendar.cell_at(room.room_id, stay_dates[0])
            if first_night.is_occupied and first_night.reservation_id != reservation.reservation_id:
                continue
            free_nights = calendar.free_nights(room.room_id, reservation)
            if options.require_full_stay and free_nights < len(stay_dates):
                continue
            candidates.append(
                Candidate(
                    room=room,
                    features=(
                        1.0 if room_type == requested_type else 0.0,
                        free_nights / len(stay_dates),
                        _rate_proximity(room.base_rate, reference_rate),
                        _floor_preference(room, reservation.preferred_floor),
                        _amenity_overlap(room, reservation.preferred_amenities),
                    ),
                    free_nights=free_nights,
                    stay_nights=len(stay_dates),
                )
            )
    return candidates


def score_candidates(candidates: list[Candidate], weights: SuggestionWeights) -> np.ndarray:
    """Weighted feature sum scaled to 0-100."""
    if not candidates:
        return np.zeros(0, dtype=float)
    weight_vector = np.asarray(weights.as_tuple(), dtype=float)
    total = weight_vector.sum()
    if total <= 0.0:
        return np.zeros(len(candidates), dtype=float)
    matrix = np.asarray([candidate.features for candidate in candidates], dtype=float)
    return np.round(matrix @ (weight_vector / total) * 100.0, 2)


def _reasons(candidate: Candidate, reservation: Reservation) -> tuple[str, ...]:
    type_match, _, rate, floor, amenity = candidate.features
    room = candidate.room
    reasons: list[str] = []
    if type_match == 1.0:
        reasons.append(f"Exact room type match ({room.room_type})")
    else:
        reasons.append(f"Alternative room type ({room.room_type})")
    if candidate.free_nights == candidate.stay_nights:
        reasons.append("Free for the whole stay")
    else:
        reasons.append(f"Free for {candidate.free_nights} of {candidate.stay_nights} nights")
    if rate >= 0.8 and room.base_rate > 0:
        reasons.append(f"Rate close to booked rate ({room.base_rate:.2f})")
    if reservation.preferred_floor is not None and floor == 1.0:
        reasons.append(f"On preferred floor {room.floor}")
    if reservation.preferred_amenities and amenity > 0.0:
        matched = sorted(
            {_normalize(item) for item in reservation.preferred_amenities}
            & {_normalize(item) for item in room.amenities}
        )
        reasons.append("Matches amenities: " + ", ".join(matched))
    return tuple(reasons)


def suggest(
    calendar: CalendarModel,
    reservation: Reservation,
    options: Optional[SuggestionOptions] = None,
    weights: Optional[SuggestionWeights] = None,
) -> list[RoomSuggestion]:
    """Ordered alternative rooms; empty when nothing meets the hard constraints."""
    options = options or SuggestionOptions()
    weights = weights or SuggestionWeights()
    if reservation.nights <= 0 or options.limit <= 0:
        return []

    candidates = collect_candidates(calendar, reservation, options)
    scores = score_candidates(candidates, weights)
    ranked = sorted(
        zip(candidates, scores.tolist()),
        key=lambda item: (-item[1], item[0].room.room_number, item[0].room.room_id),
    )
    suggestions = [
        RoomSuggestion(
            room_id=candidate.room.room_id,
            room_number=candidate.room.room_number,
            score=float(score),
            reasons=_reasons(candidate, reservation),
        )
        for candidate, score in ranked[: options.limit]
    ]
    logger.debug(
        "Suggestions ranked | reservation_id=%s | candidates=%s | returned=%s",
        reservation.reservation_id,
        len(candidates),
        len(suggestions),
    )
    return suggestions

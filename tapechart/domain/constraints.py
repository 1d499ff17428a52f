"""Domain-level validation rules for the assignment engine."""

from __future__ import annotations

from dataclasses import dataclass

from tapechart.domain.errors import ReservationValidationError
from tapechart.domain.models import Reservation
from tapechart.utils.config import Settings


@dataclass(frozen=True)
class SuggestionWeights:
    """Relative weight of each ranking feature; normalized before use."""

    type_match: float = 0.40
    availability: float = 0.25
    rate: float = 0.15
    floor: float = 0.10
    amenity: float = 0.10

    @classmethod
    def from_settings(cls, settings: Settings) -> "SuggestionWeights":
        return cls(
            type_match=settings.suggestion_weight_type_match,
            availability=settings.suggestion_weight_availability,
            rate=settings.suggestion_weight_rate,
            floor=settings.suggestion_weight_floor,
            amenity=settings.suggestion_weight_amenity,
        )

    def as_tuple(self) -> tuple[float, float, float, float, float]:
        # Order matches the ranker's feature columns.
        return (self.type_match, self.availability, self.rate, self.floor, self.amenity)


@dataclass(frozen=True)
class EngineConfig:
    undo_history_depth: int
    commit_timeout_seconds: float
    max_guests_per_room: int
    suggestion_limit: int
    weights: SuggestionWeights

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineConfig":
        return cls(
            undo_history_depth=settings.undo_history_depth,
            commit_timeout_seconds=settings.commit_timeout_seconds,
            max_guests_per_room=settings.max_guests_per_room,
            suggestion_limit=settings.suggestion_limit,
            weights=SuggestionWeights.from_settings(settings),
        )


def validate_suggestion_weights(weights: SuggestionWeights) -> None:
    values = weights.as_tuple()
    if any(value < 0.0 for value in values):
        raise ValueError("suggestion weights must be >= 0")
    if sum(values) <= 0.0:
        raise ValueError("at least one suggestion weight must be > 0")


def validate_engine_config(config: EngineConfig) -> None:
    if config.undo_history_depth <= 0:
        raise ValueError("undo_history_depth must be > 0")
    if config.commit_timeout_seconds <= 0:
        raise ValueError("commit_timeout_seconds must be > 0")
    if config.max_guests_per_room <= 0:
        raise ValueError("max_guests_per_room must be > 0")
    if config.suggestion_limit <= 0:
        raise ValueError("suggestion_limit must be > 0")
    validate_suggestion_weights(config.weights)


def validate_reservation(reservation: Reservation) -> None:
    if not reservation.reservation_id:
        raise ReservationValidationError("reservation_id must be non-empty")
    if not reservation.room_type.strip():
        raise ReservationValidationError(
            f"Reservation {reservation.reservation_id} has no room type"
        )
    if reservation.check_out <= reservation.check_in:
        raise ReservationValidationError(
            f"Reservation {reservation.reservation_id} must check out after it checks in"
        )
    if reservation.adults < 1:
        raise ReservationValidationError("adults must be >= 1")
    if reservation.children < 0:
        raise ReservationValidationError("children must be >= 0")
    if reservation.total_amount < 0:
        raise ReservationValidationError("total_amount must be >= 0")

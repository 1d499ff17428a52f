"""Tests for engine configuration and reservation validation.

Covers every branch of validate_engine_config() and validate_reservation().
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date

import pytest

from tapechart.domain.constraints import (
    EngineConfig,
    SuggestionWeights,
    validate_engine_config,
    validate_reservation,
    validate_suggestion_weights,
)
from tapechart.domain.errors import ReservationValidationError
from tapechart.domain.models import Reservation
from tapechart.utils.config import get_settings


def valid_config(**overrides) -> EngineConfig:
    """Return a valid baseline EngineConfig, optionally overriding fields."""
    defaults = {
        "undo_history_depth": 10,
        "commit_timeout_seconds": 10.0,
        "max_guests_per_room": 4,
        "suggestion_limit": 5,
        "weights": SuggestionWeights(),
    }
    defaults.update(overrides)
    return EngineConfig(**defaults)


def valid_reservation(**overrides) -> Reservation:
    defaults = {
        "reservation_id": "BK-1",
        "guest_name": "Ada Lovelace",
        "room_type": "Standard",
        "check_in": date(2026, 3, 1),
        "check_out": date(2026, 3, 3),
    }
    defaults.update(overrides)
    return Reservation(**defaults)


# --- Baseline pass ---

def test_valid_config_passes() -> None:
    validate_engine_config(valid_config())


def test_config_from_default_settings_is_valid() -> None:
    get_settings.cache_clear()
    config = EngineConfig.from_settings(get_settings())
    validate_engine_config(config)
    assert config.undo_history_depth == 10
    assert config.weights.as_tuple() == (0.40, 0.25, 0.15, 0.10, 0.10)


def test_config_follows_settings_overrides() -> None:
    settings = replace(get_settings(), undo_history_depth=3, suggestion_weight_floor=0.5)
    config = EngineConfig.from_settings(settings)
    assert config.undo_history_depth == 3
    assert config.weights.floor == 0.5


# --- numeric bounds ---

@pytest.mark.parametrize(
    "field_name, value",
    [
        ("undo_history_depth", 0),
        ("commit_timeout_seconds", 0.0),
        ("max_guests_per_room", 0),
        ("suggestion_limit", 0),
    ],
)
def test_non_positive_bounds_raise(field_name: str, value) -> None:
    with pytest.raises(ValueError):
        validate_engine_config(valid_config(**{field_name: value}))


# --- weights ---

def test_negative_weight_raises() -> None:
    with pytest.raises(ValueError):
        validate_suggestion_weights(SuggestionWeights(rate=-0.1))


def test_all_zero_weights_raise() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(
            valid_config(weights=SuggestionWeights(0.0, 0.0, 0.0, 0.0, 0.0))
        )


# --- reservations ---

def test_valid_reservation_passes() -> None:
    validate_reservation(valid_reservation())


def test_reservation_must_check_out_after_check_in() -> None:
    with pytest.raises(ReservationValidationError):
        validate_reservation(valid_reservation(check_out=date(2026, 3, 1)))


def test_reservation_requires_room_type() -> None:
    with pytest.raises(ReservationValidationError):
        validate_reservation(valid_reservation(room_type="  "))


def test_reservation_requires_an_adult() -> None:
    with pytest.raises(ReservationValidationError):
        validate_reservation(valid_reservation(adults=0))


def test_reservation_rejects_negative_children() -> None:
    with pytest.raises(ReservationValidationError):
        validate_reservation(valid_reservation(children=-1))


def test_reservation_rejects_empty_id() -> None:
    with pytest.raises(ReservationValidationError):
        validate_reservation(valid_reservation(reservation_id=""))

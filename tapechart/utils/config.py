"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


_ENV_PREFIX = "TAPECHART_"


def _env(name: str, default: str) -> str:
    return os.getenv(f"{_ENV_PREFIX}{name}", default)


def _env_int(name: str, default: int) -> int:
    return int(_env(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(_env(name, str(default)))


@dataclass(frozen=True)
class Settings:
    app_name: str = "Tape Chart Assignment Engine"
    app_version: str = "1.0.0"
    log_level: str = "INFO"
    database_path: Path = Path("data/tapechart.db")

    default_view_id: str = "default"
    default_view_days: int = 7

    undo_history_depth: int = 10
    commit_timeout_seconds: float = 10.0
    max_guests_per_room: int = 4

    suggestion_limit: int = 5
    suggestion_weight_type_match: float = 0.40
    suggestion_weight_availability: float = 0.25
    suggestion_weight_rate: float = 0.15
    suggestion_weight_floor: float = 0.10
    suggestion_weight_amenity: float = 0.10

    solver_max_time_seconds: int = 5
    solver_random_seed: int = 42
    solver_workers: int = 1
    solver_objective_scale: int = 1000

    synthetic_random_seed: int = 7
    synthetic_floors: int = 3
    synthetic_rooms_per_floor: int = 6
    synthetic_booking_days: int = 21
    synthetic_occupancy_probability: float = 0.55


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process from `TAPECHART_*` variables."""
    defaults = Settings()
    return Settings(
        app_name=_env("APP_NAME", defaults.app_name),
        app_version=_env("APP_VERSION", defaults.app_version),
        log_level=_env("LOG_LEVEL", defaults.log_level),
        database_path=Path(_env("DATABASE_PATH", str(defaults.database_path))),
        default_view_id=_env("DEFAULT_VIEW_ID", defaults.default_view_id),
        default_view_days=_env_int("DEFAULT_VIEW_DAYS", defaults.default_view_days),
        undo_history_depth=_env_int("UNDO_HISTORY_DEPTH", defaults.undo_history_depth),
        commit_timeout_seconds=_env_float(
            "COMMIT_TIMEOUT_SECONDS", defaults.commit_timeout_seconds
        ),
        max_guests_per_room=_env_int("MAX_GUESTS_PER_ROOM", defaults.max_guests_per_room),
        suggestion_limit=_env_int("SUGGESTION_LIMIT", defaults.suggestion_limit),
        suggestion_weight_type_match=_env_float(
            "SUGGESTION_WEIGHT_TYPE_MATCH", defaults.suggestion_weight_type_match
        ),
        suggestion_weight_availability=_env_float(
            "SUGGESTION_WEIGHT_AVAILABILITY", defaults.suggestion_weight_availability
        ),
        suggestion_weight_rate=_env_float(
            "SUGGESTION_WEIGHT_RATE", defaults.suggestion_weight_rate
        ),
        suggestion_weight_floor=_env_float(
            "SUGGESTION_WEIGHT_FLOOR", defaults.suggestion_weight_floor
        ),
        suggestion_weight_amenity=_env_float(
            "SUGGESTION_WEIGHT_AMENITY", defaults.suggestion_weight_amenity
        ),
        solver_max_time_seconds=_env_int(
            "SOLVER_MAX_TIME_SECONDS", defaults.solver_max_time_seconds
        ),
        solver_random_seed=_env_int("SOLVER_RANDOM_SEED", defaults.solver_random_seed),
        solver_workers=_env_int("SOLVER_WORKERS", defaults.solver_workers),
        solver_objective_scale=_env_int(
            "SOLVER_OBJECTIVE_SCALE", defaults.solver_objective_scale
        ),
        synthetic_random_seed=_env_int(
            "SYNTHETIC_RANDOM_SEED", defaults.synthetic_random_seed
        ),
        synthetic_floors=_env_int("SYNTHETIC_FLOORS", defaults.synthetic_floors),
        synthetic_rooms_per_floor=_env_int(
            "SYNTHETIC_ROOMS_PER_FLOOR", defaults.synthetic_rooms_per_floor
        ),
        synthetic_booking_days=_env_int(
            "SYNTHETIC_BOOKING_DAYS", defaults.synthetic_booking_days
        ),
        synthetic_occupancy_probability=_env_float(
            "SYNTHETIC_OCCUPANCY_PROBABILITY", defaults.synthetic_occupancy_probability
        ),
    )

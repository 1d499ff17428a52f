"""Whole-batch room placement using CP-SAT."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional

from ortools.sat.python import cp_model

from tapechart.domain.constraints import SuggestionWeights
from tapechart.domain.models import Reservation, Target
from tapechart.services.calendar_model import CalendarModel
from tapechart.services.conflict_evaluator import DEFAULT_MAX_GUESTS_PER_ROOM
from tapechart.services.suggestion_ranker import (
    SuggestionOptions,
    collect_candidates,
    score_candidates,
)
from tapechart.utils.config import Settings
from tapechart.utils.logger import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class PlannerConfig:
    max_time_seconds: int
    random_seed: int
    workers: int
    objective_scale: int
    max_guests_per_room: int = DEFAULT_MAX_GUESTS_PER_ROOM

    @classmethod
    def from_settings(cls, settings: Settings) -> "PlannerConfig":
        return cls(
            max_time_seconds=settings.solver_max_time_seconds,
            random_seed=settings.solver_random_seed,
            workers=settings.solver_workers,
            objective_scale=settings.solver_objective_scale,
            max_guests_per_room=settings.max_guests_per_room,
        )


@dataclass(frozen=True)
class Placement:
    reservation_id: str
    room_id: str
    target: Target
    score: float


@dataclass(frozen=True)
class AssignmentPlan:
    placements: list[Placement]
    unplaced_reservation_ids: list[str]
    objective_value: float

    @property
    def targets(self) -> dict[str, Target]:
        return {placement.reservation_id: placement.target for placement in self.placements}


@dataclass(frozen=True)
class BuildArtifacts:
    model: Any
    variables: dict[tuple[str, str], Any]
    scores: dict[tuple[str, str], float]
    coefficients: dict[tuple[str, str], int]


def build_model(
    *,
    calendar: CalendarModel,
    reservations: list[Reservation],
    weights: SuggestionWeights,
    options: SuggestionOptions,
    config: PlannerConfig,
) -> BuildArtifacts:
    """One bool per (reservation, room) candidate that is free for the whole stay.

    Parties larger than `config.max_guests_per_room` get no candidates.
    """
    model = cp_model.CpModel()
    variables: dict[tuple[str, str], Any] = {}
    scores: dict[tuple[str, str], float] = {}
    coefficients: dict[tuple[str, str], int] = {}
    full_stay = replace(options, require_full_stay=True)

    for reservation in reservations:
        if reservation.guest_count > config.max_guests_per_room:
            logger.info(
                "Auto-assignment skipped oversized party | reservation_id=%s | guests=%s | limit=%s",
                reservation.reservation_id,
                reservation.guest_count,
                config.max_guests_per_room,
            )
            continue
        candidates = collect_candidates(calendar, reservation, full_stay)
        candidate_scores = score_candidates(candidates, weights)
        for candidate, score in zip(candidates, candidate_scores.tolist()):
            pair = (reservation.reservation_id, candidate.room.room_id)
            variables[pair] = model.NewBoolVar(
                f"x_res_{reservation.reservation_id}_room_{candidate.room.room_id}"
            )
            scores[pair] = float(score)
            # Placement bonus first, then preference: more guests housed always wins.
            coefficients[pair] = config.objective_scale + int(
                round(score / 100.0 * config.objective_scale)
            )

    for reservation in reservations:
        reservation_vars = [
            var
            for (reservation_id, _), var in variables.items()
            if reservation_id == reservation.reservation_id
        ]
        if reservation_vars:
            model.Add(sum(reservation_vars) <= 1)

    by_id = {reservation.reservation_id: reservation for reservation in reservations}
    room_ids = sorted({room_id for (_, room_id) in variables})
    for room_id in room_ids:
        members = [
            by_id[reservation_id]
            for (reservation_id, candidate_room) in variables
            if candidate_room == room_id
        ]
        for index, first in enumerate(members):
            for second in members[index + 1:]:
                if first.overlaps(second):
                    model.Add(
                        variables[(first.reservation_id, room_id)]
                        + variables[(second.reservation_id, room_id)]
                        <= 1
                    )

    if variables:
        model.Maximize(sum(coefficients[pair] * var for pair, var in variables.items()))
    else:
        model.Maximize(0)

    return BuildArtifacts(
        model=model,
        variables=variables,
        scores=scores,
        coefficients=coefficients,
    )


def plan_assignments(
    calendar: CalendarModel,
    reservations: list[Reservation],
    weights: SuggestionWeights,
    config: PlannerConfig,
    options: Optional[SuggestionOptions] = None,
) -> AssignmentPlan:
    """Conflict-free placement maximizing housed reservations, then score."""
    options = options or SuggestionOptions()
    if not reservations:
        return AssignmentPlan(placements=[], unplaced_reservation_ids=[], objective_value=0.0)

    artifacts = build_model(
        calendar=calendar,
        reservations=reservations,
        weights=weights,
        options=options,
        config=config,
    )

    solver = cp_model.CpSolver()
    solver.parameters.max_time_in_seconds = float(config.max_time_seconds)
    solver.parameters.num_workers = config.workers
    solver.parameters.random_seed = config.random_seed

    status = solver.Solve(artifacts.model)
    status_name = solver.StatusName(status)
    if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
        logger.warning("Auto-assignment solve failed | status=%s", status_name)
        return AssignmentPlan(
            placements=[],
            unplaced_reservation_ids=[item.reservation_id for item in reservations],
            objective_value=0.0,
        )

    by_id = {reservation.reservation_id: reservation for reservation in reservations}
    placements: list[Placement] = []
    for (reservation_id, room_id), var in sorted(artifacts.variables.items()):
        if solver.Value(var) != 1:
            continue
        stay_dates = calendar.stay_dates_in_range(by_id[reservation_id])
        placements.append(
            Placement(
                reservation_id=reservation_id,
                room_id=room_id,
                target=Target(room_id=room_id, date=stay_dates[0]),
                score=artifacts.scores[(reservation_id, room_id)],
            )
        )

    placed_ids = {placement.reservation_id for placement in placements}
    unplaced = [item.reservation_id for item in reservations if item.reservation_id not in placed_ids]
    objective_value = float(solver.ObjectiveValue()) / config.objective_scale
    logger.info(
        "Auto-assignment solved | status=%s | placed=%s | unplaced=%s | objective=%.3f",
        status_name,
        len(placements),
        len(unplaced),
        objective_value,
    )
    return AssignmentPlan(
        placements=placements,
        unplaced_reservation_ids=unplaced,
        objective_value=objective_value,
    )

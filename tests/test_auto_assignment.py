from __future__ import annotations

import asyncio
from datetime import date

import pytest

pytest.importorskip("ortools")

from tapechart.domain.constraints import SuggestionWeights
from tapechart.domain.errors import ValidationConflict
from tapechart.domain.models import OperationState, Reservation, Target
from tapechart.services.auto_assignment import (
    AssignmentPlan,
    Placement,
    PlannerConfig,
    build_model,
    plan_assignments,
)
from tapechart.services.backend_gateway import AssignmentOptions
from tapechart.services.engine import TapeChartEngine
from tapechart.services.suggestion_ranker import SuggestionOptions
from tapechart.utils.config import get_settings


class RecordingBackend:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str | None, date, AssignmentOptions]] = []

    async def fetch_calendar_snapshot(self, view_id, date_range):
        raise AssertionError("not used")

    async def assign_reservation(self, reservation_id, room_id, target_date, options):
        self.calls.append((reservation_id, room_id, target_date, options))

    async def set_room_status(self, room_id, status, reason):
        raise AssertionError("not used")


def _planner_config() -> PlannerConfig:
    return PlannerConfig(max_time_seconds=5, random_seed=42, workers=1, objective_scale=1000)


def _arrivals() -> list[Reservation]:
    return [
        Reservation("H", "Hugo Hill", "Standard", date(2026, 3, 4), date(2026, 3, 6)),
        Reservation("I", "Iris Ives", "Standard", date(2026, 3, 4), date(2026, 3, 6)),
    ]


def test_single_reservation_gets_best_scoring_room(calendar):
    plan = plan_assignments(
        calendar,
        [calendar.reservation("C")],
        SuggestionWeights(),
        _planner_config(),
    )

    assert [(item.reservation_id, item.room_id) for item in plan.placements] == [("C", "room-101")]
    assert plan.targets == {"C": Target("room-101", date(2026, 3, 4))}
    assert plan.unplaced_reservation_ids == []
    assert plan.placements[0].score == 90.0


def test_overlapping_stays_never_share_a_room(calendar):
    reservations = [calendar.reservation("C")] + _arrivals()
    plan = plan_assignments(calendar, reservations, SuggestionWeights(), _planner_config())

    rooms = [item.room_id for item in plan.placements]
    assert len(plan.placements) == 2
    assert sorted(rooms) == ["room-101", "room-103"]
    assert len(plan.unplaced_reservation_ids) == 1


def test_plan_is_deterministic(calendar):
    reservations = [calendar.reservation("C")] + _arrivals()
    first = plan_assignments(calendar, reservations, SuggestionWeights(), _planner_config())
    second = plan_assignments(calendar, reservations, SuggestionWeights(), _planner_config())
    assert first == second


def test_unplaceable_reservations_are_reported(calendar):
    plan = plan_assignments(
        calendar,
        [calendar.reservation("S")],
        SuggestionWeights(),
        _planner_config(),
    )
    assert plan.placements == []
    assert plan.unplaced_reservation_ids == ["S"]


def test_model_only_offers_full_stay_candidates(calendar):
    arrival = Reservation("G", "Gia Guest", "Standard", date(2026, 3, 2), date(2026, 3, 5))
    calendar.move_reservation(calendar.reservation("C"), "room-103")

    artifacts = build_model(
        calendar=calendar,
        reservations=[arrival],
        weights=SuggestionWeights(),
        options=SuggestionOptions(),
        config=_planner_config(),
    )
    assert artifacts.variables == {}


def test_accepted_types_let_planner_upgrade(calendar):
    reservations = [calendar.reservation("C")] + _arrivals()
    plan = plan_assignments(
        calendar,
        reservations,
        SuggestionWeights(),
        _planner_config(),
        SuggestionOptions(accepted_room_types=frozenset({"Deluxe"})),
    )
    assert len(plan.placements) == 3
    assert "room-201" in [item.room_id for item in plan.placements]


def test_manager_commits_plan_as_one_batch(calendar):
    backend = RecordingBackend()
    engine = TapeChartEngine(gateway=backend, settings=get_settings(), calendar=calendar)
    reservations = [calendar.reservation("C")] + _arrivals()

    result = asyncio.run(engine.manager.auto_assign(reservations))

    assert result.drop is not None
    assert result.drop.state == OperationState.COMMITTED
    assert len(result.drop.succeeded_ids) == 2
    assert len(backend.calls) == 2
    assert all(call[3].reason == "Automatic room assignment" for call in backend.calls)
    for placement in result.plan.placements:
        cell = calendar.cell_at(placement.room_id, date(2026, 3, 5))
        assert cell.reservation_id == placement.reservation_id
    assert engine.manager.state == OperationState.IDLE
    assert engine.manager.can_undo


def test_manager_skips_commit_when_nothing_fits(calendar):
    backend = RecordingBackend()
    engine = TapeChartEngine(gateway=backend, calendar=calendar)

    result = asyncio.run(engine.manager.auto_assign([calendar.reservation("S")]))

    assert result.drop is None
    assert backend.calls == []
    assert engine.manager.state == OperationState.IDLE


def test_manager_upgrades_into_accepted_room_types(calendar):
    backend = RecordingBackend()
    engine = TapeChartEngine(gateway=backend, calendar=calendar)
    reservations = [calendar.reservation("C")] + _arrivals()

    result = asyncio.run(
        engine.manager.auto_assign(
            reservations,
            SuggestionOptions(accepted_room_types=frozenset({"Deluxe"})),
        )
    )

    assert result.drop is not None
    assert result.drop.state == OperationState.COMMITTED
    assert sorted(result.drop.succeeded_ids) == ["C", "H", "I"]
    assert all(call[3].override for call in backend.calls)
    assert calendar.cell_at("room-201", date(2026, 3, 4)).reservation_id in {"C", "H", "I"}
    assert engine.manager.state == OperationState.IDLE


def test_oversized_party_is_left_unplaced(calendar):
    backend = RecordingBackend()
    engine = TapeChartEngine(gateway=backend, calendar=calendar)
    crowd = Reservation(
        "Q", "Quinn Crowd", "Standard", date(2026, 3, 4), date(2026, 3, 6), adults=5
    )

    result = asyncio.run(engine.manager.auto_assign([crowd]))

    assert result.plan.unplaced_reservation_ids == ["Q"]
    assert result.drop is None
    assert backend.calls == []
    assert engine.manager.state == OperationState.IDLE


def test_blocked_plan_releases_the_engine(calendar, monkeypatch):
    backend = RecordingBackend()
    engine = TapeChartEngine(gateway=backend, calendar=calendar)
    manager = engine.manager
    clash = AssignmentPlan(
        placements=[
            Placement("C", "room-102", Target("room-102", date(2026, 3, 4)), 50.0),
        ],
        unplaced_reservation_ids=[],
        objective_value=1.5,
    )
    monkeypatch.setattr(
        "tapechart.services.operation_manager.plan_assignments",
        lambda *args, **kwargs: clash,
    )

    with pytest.raises(ValidationConflict):
        asyncio.run(manager.auto_assign([calendar.reservation("C")]))

    assert manager.state == OperationState.IDLE
    assert manager.last_operation.state == OperationState.ABORTED
    assert backend.calls == []

    manager.start([calendar.reservation("C")])
    assert manager.state == OperationState.DRAGGING

"""Drag/drop gesture lifecycle as an explicit finite-state machine.

One operation may be in flight at a time across the engine. All state
changes go through `_transition`, which looks the move up in
`_TRANSITIONS`; anything not listed there is rejected. Committed
operations leave an undo entry on a bounded LIFO stack.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Callable, Optional, Sequence

from tapechart.domain.constraints import EngineConfig, validate_reservation
from tapechart.domain.errors import (
    CommitFailure,
    ConcurrencyError,
    NothingToUndo,
    OccupancyError,
    OperationStateError,
    ReservationValidationError,
    TapeChartError,
    ValidationConflict,
)
from tapechart.domain.models import (
    ACTIVE_OPERATION_STATES,
    TERMINAL_OPERATION_STATES,
    Conflict,
    Operation,
    OperationKind,
    OperationState,
    PriorAssignment,
    Reservation,
    RoomSuggestion,
    Target,
    UndoEntry,
)
from tapechart.services.assignment_committer import AssignmentCommitter, CommitResult
from tapechart.services.auto_assignment import AssignmentPlan, PlannerConfig, plan_assignments
from tapechart.services.backend_gateway import AssignmentOptions
from tapechart.services.calendar_model import CalendarModel
from tapechart.services.conflict_evaluator import TargetSpec, evaluate_batch, target_for
from tapechart.services.events import (
    ConflictDetected,
    EventBus,
    OperationAborted,
    OperationCommitted,
    UndoAvailable,
)
from tapechart.services.suggestion_ranker import SuggestionOptions, suggest
from tapechart.utils.logger import bind_operation, get_logger


logger = get_logger(__name__)

S = OperationState

_TRANSITIONS: dict[tuple[OperationState, str], OperationState] = {
    (S.IDLE, "start"): S.DRAGGING,
    (S.DRAGGING, "hover"): S.HOVER_VALIDATING,
    (S.HOVER_VALIDATING, "validated"): S.DRAGGING,
    (S.DRAGGING, "drop"): S.DROPPING,
    (S.DROPPING, "blocked"): S.DRAGGING,
    (S.DROPPING, "commit"): S.COMMITTING,
    (S.COMMITTING, "committed"): S.COMMITTED,
    (S.COMMITTING, "failed"): S.FAILED,
    (S.COMMITTING, "timeout"): S.ABORTED,
    (S.DRAGGING, "abort"): S.ABORTED,
    (S.HOVER_VALIDATING, "abort"): S.ABORTED,
    (S.DROPPING, "abort"): S.ABORTED,
}

# Overriding these would double-book a cell or target nothing at all.
HARD_CONFLICT_CODES = frozenset({"no_target", "room_not_found", "cell_occupied", "batch_overlap"})


@dataclass(frozen=True)
class HoverResult:
    operation_id: str
    conflicts: tuple[Conflict, ...]

    @property
    def is_valid(self) -> bool:
        return not self.conflicts


@dataclass(frozen=True)
class DropResult:
    operation_id: str
    state: OperationState
    result: CommitResult
    calendar_stale: bool = False

    @property
    def partial(self) -> bool:
        return self.result.partial

    @property
    def succeeded_ids(self) -> list[str]:
        return [reservation.reservation_id for reservation in self.result.succeeded]

    @property
    def failed_ids(self) -> list[str]:
        return [failure.reservation.reservation_id for failure in self.result.failed]


@dataclass(frozen=True)
class UndoResult:
    operation_id: str
    restored_ids: list[str]
    calendar_stale: bool = False


@dataclass(frozen=True)
class AutoAssignResult:
    plan: AssignmentPlan
    drop: Optional[DropResult] = None


def _new_operation_id(clock: Callable[[], float]) -> str:
    return f"drag-{int(clock() * 1000)}-{uuid.uuid4().hex[:9]}"


@dataclass
class _Caches:
    conflicts: dict[tuple[str, date], tuple[Conflict, ...]] = field(default_factory=dict)
    suggestions: list[RoomSuggestion] = field(default_factory=list)

    def clear(self) -> None:
        self.conflicts.clear()
        self.suggestions.clear()


class OperationManager:
    """Single writer for room assignments coming from the tape chart."""

    def __init__(
        self,
        calendar: CalendarModel,
        committer: AssignmentCommitter,
        events: EventBus,
        config: EngineConfig,
        planner_config: Optional[PlannerConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._calendar = calendar
        self._committer = committer
        self._events = events
        self._config = config
        self._planner_config = planner_config
        self._clock = clock
        self._current: Optional[Operation] = None
        self._last_operation: Optional[Operation] = None
        self._history: list[UndoEntry] = []
        self._selection: dict[str, None] = {}
        self._caches = _Caches()
        self._undo_in_flight = False

    @property
    def state(self) -> OperationState:
        return self._current.state if self._current is not None else S.IDLE

    @property
    def current(self) -> Optional[Operation]:
        return self._current

    @property
    def last_operation(self) -> Optional[Operation]:
        return self._last_operation

    @property
    def history(self) -> tuple[UndoEntry, ...]:
        return tuple(self._history)

    @property
    def can_undo(self) -> bool:
        return bool(self._history)

    @property
    def conflicts(self) -> dict[tuple[str, date], tuple[Conflict, ...]]:
        return dict(self._caches.conflicts)

    @property
    def suggestions(self) -> list[RoomSuggestion]:
        return list(self._caches.suggestions)

    # Selection

    def select(self, reservation_id: str) -> None:
        self._selection[reservation_id] = None

    def deselect(self, reservation_id: str) -> None:
        self._selection.pop(reservation_id, None)

    def clear_selection(self) -> None:
        self._selection.clear()

    @property
    def selected(self) -> list[str]:
        return list(self._selection)

    def is_selected(self, reservation_id: str) -> bool:
        return reservation_id in self._selection

    # State machine

    def _transition(self, event: str) -> OperationState:
        operation = self._current
        current_state = self.state
        next_state = _TRANSITIONS.get((current_state, event))
        if operation is None or next_state is None:
            raise OperationStateError(
                f"Cannot {event} while the engine is {current_state.value}"
            )
        operation.state = next_state
        bind_operation(logger, operation.operation_id).debug(
            "Operation transition | event=%s | from=%s | to=%s",
            event,
            current_state.value,
            next_state.value,
        )
        if next_state in TERMINAL_OPERATION_STATES:
            self._last_operation = operation
            self._current = None
            self._caches.clear()
            self._selection.clear()
        return next_state

    def _ensure_writable(self) -> None:
        if self._current is not None and self._current.state in ACTIVE_OPERATION_STATES:
            raise ConcurrencyError(
                f"Operation {self._current.operation_id} is {self._current.state.value}; "
                "finish or abort it first"
            )
        if self._undo_in_flight:
            raise ConcurrencyError("An undo is in progress; retry when it completes")

    def _require_state(self, *allowed: OperationState) -> Operation:
        if self._current is None or self._current.state not in allowed:
            if self.state == S.COMMITTING:
                raise ConcurrencyError(
                    f"Operation {self._current.operation_id} is committing"  # type: ignore[union-attr]
                )
            raise OperationStateError(f"No operation is {allowed[0].value}")
        return self._current

    # Gestures

    def start(
        self,
        reservations: Sequence[Reservation],
        kind: Optional[OperationKind] = None,
    ) -> str:
        self._ensure_writable()
        members = tuple(reservations)
        if not members:
            raise ReservationValidationError("An operation needs at least one reservation")
        seen: set[str] = set()
        for reservation in members:
            validate_reservation(reservation)
            if reservation.reservation_id in seen:
                raise ReservationValidationError(
                    f"Reservation {reservation.reservation_id} appears twice in one operation"
                )
            seen.add(reservation.reservation_id)

        resolved_kind = kind or (
            OperationKind.ASSIGN if len(members) == 1 else OperationKind.BATCH_ASSIGN
        )
        operation = Operation(
            operation_id=_new_operation_id(self._clock),
            reservations=members,
            kind=resolved_kind,
            started_at=self._clock(),
            state=S.IDLE,
        )
        self._current = operation
        self._caches.clear()
        self._transition("start")
        self._caches.suggestions = suggest(
            self._calendar,
            members[0],
            SuggestionOptions(limit=self._config.suggestion_limit),
            self._config.weights,
        )
        bind_operation(logger, operation.operation_id).info(
            "Drag started | kind=%s | reservations=%s",
            resolved_kind.value,
            operation.reservation_ids,
        )
        return operation.operation_id

    def start_drag(self, reservation: Reservation) -> str:
        """Drag the whole selection when the grabbed reservation is part of it."""
        members = [reservation]
        if self.is_selected(reservation.reservation_id):
            for reservation_id in self._selection:
                if reservation_id == reservation.reservation_id:
                    continue
                selected = self._calendar.reservation(reservation_id)
                if selected is not None:
                    members.append(selected)
        return self.start(members)

    def _evaluate(self, operation: Operation, targets: TargetSpec) -> tuple[Conflict, ...]:
        batch = evaluate_batch(
            self._calendar,
            list(operation.reservations),
            targets,
            max_guests_per_room=self._config.max_guests_per_room,
        )
        return tuple(batch.conflicts)

    def _remember_conflicts(
        self,
        operation: Operation,
        targets: TargetSpec,
        conflicts: tuple[Conflict, ...],
    ) -> None:
        # Only the cells under the current pointer keep indicators.
        self._caches.conflicts.clear()
        for reservation in operation.reservations:
            target = target_for(targets, reservation.reservation_id)
            if target is None:
                continue
            cell_conflicts = tuple(
                conflict
                for conflict in conflicts
                if conflict.room_id == target.room_id and conflict.date == target.date
            )
            if cell_conflicts:
                self._caches.conflicts[target.cell_key] = cell_conflicts

    def hover(self, targets: TargetSpec) -> HoverResult:
        operation = self._require_state(S.DRAGGING)
        self._transition("hover")
        try:
            conflicts = self._evaluate(operation, targets)
        finally:
            self._transition("validated")
        if isinstance(targets, Target):
            operation.target = targets
        self._remember_conflicts(operation, targets, conflicts)
        if conflicts:
            self._events.emit(
                ConflictDetected(
                    operation_id=operation.operation_id,
                    target=targets if isinstance(targets, Target) else conflicts[0].target,
                    conflicts=conflicts,
                )
            )
        return HoverResult(operation_id=operation.operation_id, conflicts=conflicts)

    async def drop(
        self,
        targets: TargetSpec,
        options: Optional[AssignmentOptions] = None,
    ) -> DropResult:
        options = options or AssignmentOptions()
        operation = self._require_state(S.DRAGGING)
        log = bind_operation(logger, operation.operation_id)
        self._transition("drop")
        if isinstance(targets, Target):
            operation.target = targets

        conflicts = self._evaluate(operation, targets)
        if conflicts:
            hard = [c for c in conflicts if c.details.get("code") in HARD_CONFLICT_CODES]
            if hard or not options.override:
                self._transition("blocked")
                self._remember_conflicts(operation, targets, conflicts)
                self._events.emit(
                    ConflictDetected(
                        operation_id=operation.operation_id,
                        target=operation.target or conflicts[0].target,
                        conflicts=conflicts,
                    )
                )
                log.info("Drop blocked | conflicts=%s", [c.message for c in conflicts])
                raise ValidationConflict(conflicts)
            log.warning(
                "Conflict override accepted | conflicts=%s",
                [f"{c.kind.value}: {c.message}" for c in conflicts],
            )

        resolved: dict[str, Target] = {}
        for reservation in operation.reservations:
            target = target_for(targets, reservation.reservation_id)
            if target is not None:
                resolved[reservation.reservation_id] = target

        self._transition("commit")
        confirmed: list[Reservation] = []
        try:
            result = await self._committer.commit(operation, resolved, options, progress=confirmed)
        except asyncio.CancelledError:
            if confirmed:
                self._record_commit(operation.operation_id, resolved, confirmed)
            self._calendar.mark_stale(f"Commit of {operation.operation_id} was cancelled mid-flight")
            self._transition("timeout")
            self._events.emit(
                OperationAborted(
                    operation_id=operation.operation_id,
                    reason="Commit was cancelled",
                    retryable=True,
                )
            )
            log.warning("Commit cancelled | confirmed=%s", [r.reservation_id for r in confirmed])
            raise

        calendar_stale = False
        if result.unconfirmed:
            calendar_stale = True
            self._calendar.mark_stale(
                f"Backend did not confirm every member of {operation.operation_id}"
            )

        if not result.succeeded:
            if result.timed_out:
                self._transition("timeout")
                reason = "Backend did not confirm in time; the outcome is unknown, refresh the chart"
            else:
                self._transition("failed")
                reason = "; ".join(failure.reason for failure in result.failed)
            self._events.emit(
                OperationAborted(
                    operation_id=operation.operation_id,
                    reason=reason,
                    retryable=result.timed_out,
                )
            )
            log.warning("Commit failed | reason=%s", reason)
            raise CommitFailure(
                reason,
                result=result,
                retryable=result.timed_out,
                calendar_stale=calendar_stale,
            )

        if self._record_commit(operation.operation_id, resolved, result.succeeded):
            calendar_stale = True
        self._transition("committed")
        self._events.emit(
            OperationCommitted(
                operation_id=operation.operation_id,
                succeeded_ids=tuple(r.reservation_id for r in result.succeeded),
                failed_ids=tuple(f.reservation.reservation_id for f in result.failed),
                partial=result.partial,
            )
        )
        self._events.emit(
            UndoAvailable(depth=len(self._history), operation_id=operation.operation_id)
        )
        log.info(
            "Operation committed | succeeded=%s | failed=%s",
            len(result.succeeded),
            len(result.failed),
        )
        return DropResult(
            operation_id=operation.operation_id,
            state=S.COMMITTED,
            result=result,
            calendar_stale=calendar_stale,
        )

    def abort(self, reason: str = "Cancelled by user") -> str:
        operation = self._require_state(S.DRAGGING, S.HOVER_VALIDATING, S.DROPPING)
        self._transition("abort")
        self._events.emit(OperationAborted(operation_id=operation.operation_id, reason=reason))
        bind_operation(logger, operation.operation_id).info("Operation aborted | reason=%s", reason)
        return operation.operation_id

    # Undo

    def _push_undo(self, entry: UndoEntry) -> None:
        self._history.append(entry)
        overflow = len(self._history) - self._config.undo_history_depth
        if overflow > 0:
            dropped = self._history[:overflow]
            del self._history[:overflow]
            logger.info(
                "Undo history trimmed | dropped=%s",
                [item.operation_id for item in dropped],
            )

    def _record_commit(
        self,
        operation_id: str,
        resolved: dict[str, Target],
        succeeded: Sequence[Reservation],
    ) -> bool:
        """Mirror confirmed moves locally and make them undoable; True when the grid diverged."""
        calendar_stale = self._apply_moves(
            [(reservation, resolved[reservation.reservation_id].room_id) for reservation in succeeded]
        )
        self._push_undo(
            UndoEntry(
                operation_id=operation_id,
                members=tuple(
                    PriorAssignment(
                        reservation=reservation,
                        previous_room_id=reservation.room_id,
                        new_room_id=resolved[reservation.reservation_id].room_id,
                    )
                    for reservation in succeeded
                ),
            )
        )
        return calendar_stale

    def _apply_moves(self, moves: list[tuple[Reservation, Optional[str]]]) -> bool:
        """Patch the local calendar; returns True when it diverged from the backend."""
        stale = False
        for reservation, room_id in moves:
            try:
                self._calendar.move_reservation(reservation, room_id)
            except OccupancyError as exc:
                stale = True
                self._calendar.mark_stale(
                    f"Local patch for {reservation.reservation_id} failed after backend success"
                )
                logger.warning(
                    "Local patch skipped; calendar needs refresh | reservation_id=%s | error=%s",
                    reservation.reservation_id,
                    exc,
                )
        return stale

    async def undo_last(self) -> UndoResult:
        self._ensure_writable()
        if not self._history:
            raise NothingToUndo("There is no operation to undo")

        entry = self._history.pop()
        self._undo_in_flight = True
        try:
            result = await self._committer.revert(entry)
        finally:
            self._undo_in_flight = False

        by_id = {member.reservation.reservation_id: member for member in entry.members}
        calendar_stale = self._apply_moves(
            [
                (reservation, by_id[reservation.reservation_id].previous_room_id)
                for reservation in result.succeeded
            ]
        )
        if result.unconfirmed:
            calendar_stale = True
            self._calendar.mark_stale(f"Backend did not confirm every revert of {entry.operation_id}")
        if result.failed:
            failed_ids = {failure.reservation.reservation_id for failure in result.failed}
            remaining = tuple(
                member for member in entry.members if member.reservation.reservation_id in failed_ids
            )
            self._history.append(UndoEntry(operation_id=entry.operation_id, members=remaining))

        last_id = self._history[-1].operation_id if self._history else None
        self._events.emit(UndoAvailable(depth=len(self._history), operation_id=last_id))
        if result.failed:
            reason = "; ".join(failure.reason for failure in result.failed)
            logger.warning(
                "Undo incomplete | operation_id=%s | reverted=%s | failed=%s",
                entry.operation_id,
                len(result.succeeded),
                len(result.failed),
            )
            raise CommitFailure(
                reason,
                result=result,
                retryable=result.timed_out,
                calendar_stale=calendar_stale,
            )

        logger.info(
            "Operation undone | operation_id=%s | reverted=%s",
            entry.operation_id,
            len(result.succeeded),
        )
        return UndoResult(
            operation_id=entry.operation_id,
            restored_ids=[reservation.reservation_id for reservation in result.succeeded],
            calendar_stale=calendar_stale,
        )

    # Auto assignment

    async def auto_assign(
        self,
        reservations: Sequence[Reservation],
        options: Optional[SuggestionOptions] = None,
        assignment_options: Optional[AssignmentOptions] = None,
    ) -> AutoAssignResult:
        """Plan a conflict-free placement and commit it as one batch."""
        self._ensure_writable()
        if self._planner_config is None:
            raise OperationStateError("Auto-assignment is not configured")
        planner_config = replace(
            self._planner_config,
            max_guests_per_room=self._config.max_guests_per_room,
        )
        plan = plan_assignments(
            self._calendar,
            list(reservations),
            self._config.weights,
            planner_config,
            options,
        )
        if not plan.placements:
            return AutoAssignResult(plan=plan)

        by_id = {item.reservation_id: item for item in reservations}
        members = [by_id[placement.reservation_id] for placement in plan.placements]
        assignment_options = assignment_options or AssignmentOptions(
            reason="Automatic room assignment"
        )
        # Placements into accepted alternative types commit as upgrades.
        if any(self._is_type_change(by_id[p.reservation_id], p.room_id) for p in plan.placements):
            assignment_options = replace(assignment_options, override=True)

        operation_id = self.start(members)
        try:
            drop = await self.drop(plan.targets, assignment_options)
        except TapeChartError:
            current = self._current
            if current is not None and current.operation_id == operation_id and current.state in (
                S.DRAGGING,
                S.HOVER_VALIDATING,
                S.DROPPING,
            ):
                self.abort("Automatic assignment could not be committed")
            raise
        return AutoAssignResult(plan=plan, drop=drop)

    def _is_type_change(self, reservation: Reservation, room_id: str) -> bool:
        room = self._calendar.room(room_id)
        return room is not None and (
            room.room_type.strip().casefold() != reservation.room_type.strip().casefold()
        )

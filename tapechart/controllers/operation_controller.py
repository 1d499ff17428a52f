"""HTTP controller layer driving drag/drop operations."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, model_validator

from tapechart.controllers.dependencies import get_engine, to_http_exception
from tapechart.domain.errors import CellNotFoundError, TapeChartError
from tapechart.domain.models import Conflict, Reservation, Target
from tapechart.services.backend_gateway import AssignmentOptions
from tapechart.services.conflict_evaluator import TargetSpec
from tapechart.services.engine import TapeChartEngine
from tapechart.services.operation_manager import DropResult
from tapechart.services.suggestion_ranker import SuggestionOptions
from tapechart.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/operations", tags=["operations"])


class TargetPayload(BaseModel):
    room_id: str = Field(min_length=1)
    date: date

    def to_target(self) -> Target:
        return Target(room_id=self.room_id, date=self.date)


class TargetSelection(BaseModel):
    """Either one target for every member or one target per reservation id."""

    target: Optional[TargetPayload] = None
    targets: Optional[dict[str, TargetPayload]] = None

    @model_validator(mode="after")
    def validate_exactly_one(self) -> "TargetSelection":
        if (self.target is None) == (self.targets is None):
            raise ValueError("provide exactly one of target or targets")
        if self.targets is not None and not self.targets:
            raise ValueError("targets must not be empty")
        return self

    def to_spec(self) -> TargetSpec:
        if self.target is not None:
            return self.target.to_target()
        return {key: value.to_target() for key, value in (self.targets or {}).items()}


class StartRequest(BaseModel):
    reservation_ids: list[str] = Field(min_length=1)


class SuggestionItem(BaseModel):
    room_id: str
    room_number: str
    score: float
    reasons: list[str]


class OperationResponse(BaseModel):
    operation_id: str | None
    state: str
    reservation_ids: list[str]
    suggestions: list[SuggestionItem]
    can_undo: bool


class ConflictItem(BaseModel):
    kind: str
    reservation_id: str
    room_id: str
    date: date
    message: str
    suggestions: list[str]


class HoverResponse(BaseModel):
    operation_id: str
    is_valid: bool
    conflicts: list[ConflictItem]


class DropRequest(TargetSelection):
    notes: str | None = Field(default=None, max_length=1000)
    reason: str | None = Field(default=None, max_length=500)
    notify: bool = False
    lock_room: bool = False
    override: bool = False

    def to_options(self) -> AssignmentOptions:
        return AssignmentOptions(
            notes=self.notes,
            reason=self.reason,
            notify=self.notify,
            lock_room=self.lock_room,
            override=self.override,
        )


class MemberFailureItem(BaseModel):
    reservation_id: str
    reason: str
    retryable: bool


class DropResponse(BaseModel):
    operation_id: str
    state: str
    partial: bool
    succeeded_ids: list[str]
    failed: list[MemberFailureItem]
    calendar_stale: bool


class AbortRequest(BaseModel):
    reason: str = Field(default="Cancelled by user", min_length=1, max_length=500)


class AbortResponse(BaseModel):
    operation_id: str
    state: str


class UndoResponse(BaseModel):
    operation_id: str
    restored_ids: list[str]
    can_undo: bool


class AutoAssignRequest(BaseModel):
    reservation_ids: list[str] = Field(min_length=1)
    accepted_room_types: list[str] = Field(default_factory=list)
    allow_type_mismatch: bool = False


class PlacementItem(BaseModel):
    reservation_id: str
    room_id: str
    date: date
    score: float


class AutoAssignResponse(BaseModel):
    placements: list[PlacementItem]
    unplaced_reservation_ids: list[str]
    objective_value: float
    drop: DropResponse | None = None


def _conflict_item(conflict: Conflict) -> ConflictItem:
    return ConflictItem(
        kind=conflict.kind.value,
        reservation_id=conflict.reservation_id,
        room_id=conflict.room_id,
        date=conflict.date,
        message=conflict.message,
        suggestions=list(conflict.suggestions),
    )


def _drop_response(result: DropResult) -> DropResponse:
    return DropResponse(
        operation_id=result.operation_id,
        state=result.state.value,
        partial=result.partial,
        succeeded_ids=result.succeeded_ids,
        failed=[
            MemberFailureItem(
                reservation_id=failure.reservation.reservation_id,
                reason=failure.reason,
                retryable=failure.retryable,
            )
            for failure in result.result.failed
        ],
        calendar_stale=result.calendar_stale,
    )


def _operation_response(engine: TapeChartEngine) -> OperationResponse:
    manager = engine.manager
    operation = manager.current
    return OperationResponse(
        operation_id=operation.operation_id if operation is not None else None,
        state=manager.state.value,
        reservation_ids=operation.reservation_ids if operation is not None else [],
        suggestions=[
            SuggestionItem(
                room_id=item.room_id,
                room_number=item.room_number,
                score=item.score,
                reasons=list(item.reasons),
            )
            for item in manager.suggestions
        ],
        can_undo=manager.can_undo,
    )


def _resolve_reservations(engine: TapeChartEngine, reservation_ids: list[str]) -> list[Reservation]:
    resolved: list[Reservation] = []
    for reservation_id in reservation_ids:
        reservation = engine.calendar.reservation(reservation_id)
        if reservation is None:
            raise CellNotFoundError(f"Reservation {reservation_id} is not on the loaded chart")
        resolved.append(reservation)
    return resolved


def _unexpected(action: str, exc: Exception) -> HTTPException:
    logger.exception("Unexpected operation failure | action=%s", action)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}",
    )


@router.get("/current", response_model=OperationResponse, status_code=status.HTTP_200_OK)
async def current_operation(
    engine: TapeChartEngine = Depends(get_engine),
) -> OperationResponse:
    return _operation_response(engine)


@router.post("/start", response_model=OperationResponse, status_code=status.HTTP_200_OK)
async def start_operation(
    payload: StartRequest,
    engine: TapeChartEngine = Depends(get_engine),
) -> OperationResponse:
    try:
        engine.manager.start(_resolve_reservations(engine, payload.reservation_ids))
    except TapeChartError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("start operation", exc) from exc
    return _operation_response(engine)


@router.post("/hover", response_model=HoverResponse, status_code=status.HTTP_200_OK)
async def hover_operation(
    payload: TargetSelection,
    engine: TapeChartEngine = Depends(get_engine),
) -> HoverResponse:
    try:
        result = engine.manager.hover(payload.to_spec())
    except TapeChartError as exc:
        raise to_http_exception(exc) from exc
    return HoverResponse(
        operation_id=result.operation_id,
        is_valid=result.is_valid,
        conflicts=[_conflict_item(conflict) for conflict in result.conflicts],
    )


@router.post("/drop", response_model=DropResponse, status_code=status.HTTP_200_OK)
async def drop_operation(
    payload: DropRequest,
    engine: TapeChartEngine = Depends(get_engine),
) -> DropResponse:
    try:
        result = await engine.manager.drop(payload.to_spec(), payload.to_options())
    except TapeChartError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("commit operation", exc) from exc
    return _drop_response(result)


@router.post("/abort", response_model=AbortResponse, status_code=status.HTTP_200_OK)
async def abort_operation(
    payload: AbortRequest,
    engine: TapeChartEngine = Depends(get_engine),
) -> AbortResponse:
    try:
        operation_id = engine.manager.abort(payload.reason)
    except TapeChartError as exc:
        raise to_http_exception(exc) from exc
    return AbortResponse(operation_id=operation_id, state=engine.manager.state.value)


@router.post("/undo", response_model=UndoResponse, status_code=status.HTTP_200_OK)
async def undo_operation(
    engine: TapeChartEngine = Depends(get_engine),
) -> UndoResponse:
    try:
        result = await engine.manager.undo_last()
    except TapeChartError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("undo operation", exc) from exc
    return UndoResponse(
        operation_id=result.operation_id,
        restored_ids=result.restored_ids,
        can_undo=engine.manager.can_undo,
    )


@router.post("/auto_assign", response_model=AutoAssignResponse, status_code=status.HTTP_200_OK)
async def auto_assign(
    payload: AutoAssignRequest,
    engine: TapeChartEngine = Depends(get_engine),
) -> AutoAssignResponse:
    options = SuggestionOptions(
        accepted_room_types=frozenset(payload.accepted_room_types),
        allow_type_mismatch=payload.allow_type_mismatch,
    )
    try:
        reservations = _resolve_reservations(engine, payload.reservation_ids)
        result = await engine.manager.auto_assign(reservations, options)
    except TapeChartError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("auto-assign reservations", exc) from exc
    return AutoAssignResponse(
        placements=[
            PlacementItem(
                reservation_id=placement.reservation_id,
                room_id=placement.room_id,
                date=placement.target.date,
                score=placement.score,
            )
            for placement in result.plan.placements
        ],
        unplaced_reservation_ids=result.plan.unplaced_reservation_ids,
        objective_value=result.plan.objective_value,
        drop=_drop_response(result.drop) if result.drop is not None else None,
    )

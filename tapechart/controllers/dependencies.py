"""Shared FastAPI dependency providers and error translation for controllers."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from tapechart.domain.errors import (
    CellNotFoundError,
    CommitFailure,
    ConcurrencyError,
    LoadError,
    NothingToUndo,
    OperationStateError,
    ReservationValidationError,
    TapeChartError,
    ValidationConflict,
)
from tapechart.services.engine import TapeChartEngine


def get_engine(request: Request) -> TapeChartEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Tape chart engine is not initialized",
        )
    return engine


def to_http_exception(exc: TapeChartError) -> HTTPException:
    """Map an engine error onto the status code a client should act on."""
    if isinstance(exc, ValidationConflict):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(exc),
                "conflicts": [conflict.to_dict() for conflict in exc.conflicts],
            },
        )
    if isinstance(exc, (ConcurrencyError, OperationStateError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, CommitFailure):
        code = (
            status.HTTP_503_SERVICE_UNAVAILABLE
            if exc.retryable
            else status.HTTP_502_BAD_GATEWAY
        )
        return HTTPException(
            status_code=code,
            detail={
                "message": str(exc),
                "retryable": exc.retryable,
                "calendar_stale": exc.calendar_stale,
            },
        )
    if isinstance(exc, (NothingToUndo, CellNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, LoadError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, ReservationValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))

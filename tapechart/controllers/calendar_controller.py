"""HTTP controller layer for calendar reads, refresh and room status."""

from __future__ import annotations

from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator

from tapechart.controllers.dependencies import get_engine, to_http_exception
from tapechart.domain.errors import TapeChartError
from tapechart.domain.models import DateRange, RoomStatus
from tapechart.services.engine import TapeChartEngine
from tapechart.services.suggestion_ranker import SuggestionOptions
from tapechart.utils.config import get_settings
from tapechart.utils.logger import get_logger


logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(tags=["calendar"])


class RefreshRequest(BaseModel):
    view_id: str = Field(default=settings.default_view_id, min_length=1)
    start: date | None = None
    days: int = Field(default=settings.default_view_days, ge=1, le=62)


class RefreshResponse(BaseModel):
    view_id: str
    start: date
    end: date
    rooms: int = Field(ge=0)
    reservations: int = Field(ge=0)
    warnings: list[str]


class CellResponse(BaseModel):
    room_id: str
    date: date
    status: str
    reservation_id: str | None = None
    guest_name: str | None = None
    vip_status: str | None = None
    booking_type: str | None = None
    rate: float | None = None
    notifications: list[str]


class OccupancySummaryResponse(BaseModel):
    on_date: date
    total_rooms: int = Field(ge=0)
    occupied_rooms: int = Field(ge=0)
    reserved_rooms: int = Field(ge=0)
    available_rooms: int = Field(ge=0)
    maintenance_rooms: int = Field(ge=0)
    blocked_rooms: int = Field(ge=0)
    occupancy_rate: float = Field(ge=0.0, le=100.0)
    by_room_type: dict[str, dict[str, int]]


class RoomStatusRequest(BaseModel):
    status: RoomStatus
    reason: str | None = Field(default=None, max_length=500)

    @field_validator("status")
    @classmethod
    def validate_settable_status(cls, value: RoomStatus) -> RoomStatus:
        if value in (RoomStatus.OCCUPIED, RoomStatus.RESERVED):
            raise ValueError("occupied and reserved are derived from bookings")
        return value


class RoomStatusResponse(BaseModel):
    room_id: str
    room_number: str
    status: str


class SuggestionResponse(BaseModel):
    room_id: str
    room_number: str
    score: float = Field(ge=0.0, le=100.0)
    reasons: list[str]


@router.post("/calendar/refresh", response_model=RefreshResponse, status_code=status.HTTP_200_OK)
async def refresh_calendar(
    payload: RefreshRequest,
    engine: TapeChartEngine = Depends(get_engine),
) -> RefreshResponse:
    start = payload.start or datetime.now(timezone.utc).date()
    date_range = DateRange.from_start(start, payload.days)
    try:
        await engine.refresh(payload.view_id, date_range)
    except TapeChartError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected calendar refresh failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to refresh calendar",
        ) from exc

    calendar = engine.calendar
    return RefreshResponse(
        view_id=payload.view_id,
        start=date_range.start,
        end=date_range.end,
        rooms=len(calendar.rooms),
        reservations=len(calendar.reservations),
        warnings=calendar.load_warnings,
    )


@router.get(
    "/calendar/cells/{room_id}/{day}",
    response_model=CellResponse,
    status_code=status.HTTP_200_OK,
)
async def get_cell(
    room_id: str,
    day: date,
    engine: TapeChartEngine = Depends(get_engine),
) -> CellResponse:
    try:
        cell = engine.calendar.cell_at(room_id, day)
    except TapeChartError as exc:
        raise to_http_exception(exc) from exc
    return CellResponse(
        room_id=cell.room_id,
        date=cell.date,
        status=cell.status.value,
        reservation_id=cell.reservation_id,
        guest_name=cell.guest_name,
        vip_status=cell.vip_status,
        booking_type=cell.booking_type,
        rate=cell.rate,
        notifications=list(cell.notifications),
    )


@router.get(
    "/calendar/summary",
    response_model=OccupancySummaryResponse,
    status_code=status.HTTP_200_OK,
)
async def get_summary(
    on_date: date | None = Query(default=None),
    engine: TapeChartEngine = Depends(get_engine),
) -> OccupancySummaryResponse:
    try:
        summary = engine.summary(on_date)
    except TapeChartError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected occupancy summary failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to summarize occupancy",
        ) from exc
    return OccupancySummaryResponse(
        on_date=summary.on_date,
        total_rooms=summary.total_rooms,
        occupied_rooms=summary.occupied_rooms,
        reserved_rooms=summary.reserved_rooms,
        available_rooms=summary.available_rooms,
        maintenance_rooms=summary.maintenance_rooms,
        blocked_rooms=summary.blocked_rooms,
        occupancy_rate=summary.occupancy_rate,
        by_room_type=summary.by_room_type,
    )


@router.put(
    "/rooms/{room_id}/status",
    response_model=RoomStatusResponse,
    status_code=status.HTTP_200_OK,
)
async def set_room_status(
    room_id: str,
    payload: RoomStatusRequest,
    engine: TapeChartEngine = Depends(get_engine),
) -> RoomStatusResponse:
    try:
        room = await engine.set_room_status(room_id, payload.status, payload.reason)
    except TapeChartError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected room status failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update room status",
        ) from exc
    return RoomStatusResponse(
        room_id=room.room_id,
        room_number=room.room_number,
        status=room.status.value,
    )


@router.get(
    "/reservations/{reservation_id}/suggestions",
    response_model=list[SuggestionResponse],
    status_code=status.HTTP_200_OK,
)
async def get_suggestions(
    reservation_id: str,
    limit: int = Query(default=settings.suggestion_limit, ge=1, le=50),
    allow_type_mismatch: bool = Query(default=False),
    engine: TapeChartEngine = Depends(get_engine),
) -> list[SuggestionResponse]:
    options = SuggestionOptions(limit=limit, allow_type_mismatch=allow_type_mismatch)
    try:
        suggestions = engine.suggest(reservation_id, options)
    except TapeChartError as exc:
        raise to_http_exception(exc) from exc
    return [
        SuggestionResponse(
            room_id=item.room_id,
            room_number=item.room_number,
            score=item.score,
            reasons=list(item.reasons),
        )
        for item in suggestions
    ]

"""Engine facade wiring calendar, evaluator, ranker, committer and manager."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

import pandas as pd

from tapechart.domain.constraints import EngineConfig, validate_engine_config
from tapechart.domain.errors import CellNotFoundError, LoadError
from tapechart.domain.models import DateRange, Room, RoomStatus, RoomSuggestion
from tapechart.services.assignment_committer import AssignmentCommitter
from tapechart.services.auto_assignment import PlannerConfig
from tapechart.services.backend_gateway import CalendarBackend
from tapechart.services.calendar_model import CalendarModel
from tapechart.services.events import EventBus
from tapechart.services.operation_manager import OperationManager
from tapechart.services.suggestion_ranker import SuggestionOptions, suggest
from tapechart.utils.config import Settings, get_settings
from tapechart.utils.logger import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class OccupancySummary:
    on_date: date
    total_rooms: int
    occupied_rooms: int
    reserved_rooms: int
    available_rooms: int
    maintenance_rooms: int
    blocked_rooms: int
    occupancy_rate: float
    by_room_type: dict[str, dict[str, int]] = field(default_factory=dict)


def summarize_occupancy(frame: pd.DataFrame, on_date: date) -> OccupancySummary:
    """Count cell statuses for one chart column.

    `occupancy_rate` is the percentage of rooms holding a guest or a
    reservation that night, rounded to two decimals.
    """
    day = frame[frame["date"] == on_date]
    counts = day["status"].value_counts()

    def count(*statuses: RoomStatus) -> int:
        return int(sum(counts.get(status.value, 0) for status in statuses))

    total = int(len(day))
    occupied = count(RoomStatus.OCCUPIED)
    reserved = count(RoomStatus.RESERVED)
    rate = round((occupied + reserved) / total * 100.0, 2) if total else 0.0

    by_type: dict[str, dict[str, int]] = {}
    if total:
        pivot = day.pivot_table(
            index="room_type",
            columns="status",
            values="room_id",
            aggfunc="count",
            fill_value=0,
        )
        for room_type, row in pivot.iterrows():
            by_type[str(room_type)] = {str(status): int(value) for status, value in row.items()}

    return OccupancySummary(
        on_date=on_date,
        total_rooms=total,
        occupied_rooms=occupied,
        reserved_rooms=reserved,
        available_rooms=count(RoomStatus.AVAILABLE),
        maintenance_rooms=count(RoomStatus.MAINTENANCE, RoomStatus.OUT_OF_ORDER),
        blocked_rooms=count(RoomStatus.BLOCKED),
        occupancy_rate=rate,
        by_room_type=by_type,
    )


class TapeChartEngine:
    """Headless tape chart: one calendar, one writer, one event bus."""

    def __init__(
        self,
        gateway: CalendarBackend,
        settings: Optional[Settings] = None,
        calendar: Optional[CalendarModel] = None,
        events: Optional[EventBus] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._config = EngineConfig.from_settings(self._settings)
        validate_engine_config(self._config)
        self._gateway = gateway
        self._calendar = calendar or CalendarModel()
        self._events = events or EventBus()
        self._committer = AssignmentCommitter(
            gateway=gateway,
            calendar=self._calendar,
            timeout_seconds=self._config.commit_timeout_seconds,
        )
        self._manager = OperationManager(
            calendar=self._calendar,
            committer=self._committer,
            events=self._events,
            config=self._config,
            planner_config=PlannerConfig.from_settings(self._settings),
        )
        self._view_id: Optional[str] = None

    @property
    def calendar(self) -> CalendarModel:
        return self._calendar

    @property
    def manager(self) -> OperationManager:
        return self._manager

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def view_id(self) -> Optional[str]:
        return self._view_id

    async def refresh(self, view_id: str, date_range: DateRange) -> None:
        """Rebuild the calendar from a fresh backend snapshot."""
        try:
            snapshot = await self._gateway.fetch_calendar_snapshot(view_id, date_range)
        except Exception as exc:
            logger.warning(
                "Calendar refresh failed | view_id=%s | start=%s | error=%s",
                view_id,
                date_range.start.isoformat(),
                exc,
            )
            raise LoadError(f"Could not load view {view_id}: {exc}") from exc
        self._calendar.load(snapshot.rooms, snapshot.bookings, date_range)
        self._view_id = view_id

    async def set_room_status(
        self,
        room_id: str,
        status: RoomStatus,
        reason: Optional[str] = None,
    ) -> Room:
        if self._calendar.room(room_id) is None:
            raise CellNotFoundError(f"Room {room_id} is not on the loaded chart")
        await self._gateway.set_room_status(room_id, status, reason)
        room = self._calendar.update_room_status(room_id, status)
        logger.info(
            "Room status changed | room_id=%s | status=%s | reason=%s",
            room_id,
            status.value,
            reason,
        )
        return room

    def suggest(
        self,
        reservation_id: str,
        options: Optional[SuggestionOptions] = None,
    ) -> list[RoomSuggestion]:
        reservation = self._calendar.reservation(reservation_id)
        if reservation is None:
            raise CellNotFoundError(f"Reservation {reservation_id} is not on the loaded chart")
        return suggest(
            self._calendar,
            reservation,
            options or SuggestionOptions(limit=self._config.suggestion_limit),
            self._config.weights,
        )

    def summary(self, on_date: Optional[date] = None) -> OccupancySummary:
        date_range = self._calendar.date_range
        if date_range is None:
            raise LoadError("The calendar has not been loaded")
        day = on_date or date_range.start
        if day not in date_range:
            raise CellNotFoundError(f"{day.isoformat()} is outside the loaded chart")
        return summarize_occupancy(self._calendar.to_frame(), day)

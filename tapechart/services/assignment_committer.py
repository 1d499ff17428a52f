"""Executes validated moves against the backend, one call per reservation."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional

from tapechart.domain.models import Operation, Reservation, Target, UndoEntry
from tapechart.services.backend_gateway import AssignmentOptions, CalendarBackend
from tapechart.services.calendar_model import CalendarModel
from tapechart.utils.logger import get_logger


logger = get_logger(__name__)

DEFAULT_MOVE_REASON = "Staff reassignment via tape chart"
UNDO_REASON = "Undo of tape chart reassignment"


@dataclass(frozen=True)
class MemberFailure:
    reservation: Reservation
    reason: str
    retryable: bool = False


@dataclass(frozen=True)
class CommitResult:
    succeeded: tuple[Reservation, ...] = ()
    failed: tuple[MemberFailure, ...] = ()
    targets: Mapping[str, Target] = field(default_factory=dict)

    @property
    def partial(self) -> bool:
        return bool(self.succeeded) and bool(self.failed)

    @property
    def failed_reservations(self) -> list[Reservation]:
        return [failure.reservation for failure in self.failed]

    @property
    def timed_out(self) -> bool:
        return bool(self.failed) and all(failure.retryable for failure in self.failed)

    @property
    def unconfirmed(self) -> bool:
        """Some member timed out, so the backend may hold a move we never saw."""
        return any(failure.retryable for failure in self.failed)


class AssignmentCommitter:
    """Attempts every member; one failure never blocks the rest."""

    def __init__(
        self,
        gateway: CalendarBackend,
        calendar: CalendarModel,
        timeout_seconds: float,
    ) -> None:
        self._gateway = gateway
        self._calendar = calendar
        self._timeout_seconds = timeout_seconds

    def _default_notes(self, target: Target) -> str:
        room = self._calendar.room(target.room_id)
        room_number = room.room_number if room is not None else target.room_id
        return f"Moved via drag & drop to room {room_number} for {target.date.isoformat()}"

    async def _call(
        self,
        reservation: Reservation,
        room_id: Optional[str],
        target_date,
        options: AssignmentOptions,
    ) -> Optional[MemberFailure]:
        try:
            await asyncio.wait_for(
                self._gateway.assign_reservation(
                    reservation.reservation_id,
                    room_id,
                    target_date,
                    options,
                ),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Assignment timed out | reservation_id=%s | room_id=%s | timeout=%.1fs",
                reservation.reservation_id,
                room_id,
                self._timeout_seconds,
            )
            return MemberFailure(
                reservation=reservation,
                reason=(
                    f"Backend did not confirm within {self._timeout_seconds:g}s; "
                    "the outcome is unknown"
                ),
                retryable=True,
            )
        except Exception as exc:
            logger.warning(
                "Assignment rejected | reservation_id=%s | room_id=%s | error=%s",
                reservation.reservation_id,
                room_id,
                exc,
            )
            return MemberFailure(
                reservation=reservation,
                reason=f"Failed to assign {reservation.guest_name}: {exc}",
            )
        return None

    async def commit(
        self,
        operation: Operation,
        targets: Mapping[str, Target],
        options: Optional[AssignmentOptions] = None,
        progress: Optional[list[Reservation]] = None,
    ) -> CommitResult:
        """Attempt every member in order.

        Confirmed members are also appended to `progress` as they land, so a
        caller whose await is cancelled still knows what the backend accepted.
        """
        options = options or AssignmentOptions()
        succeeded: list[Reservation] = progress if progress is not None else []
        failed: list[MemberFailure] = []
        for reservation in operation.reservations:
            target = targets[reservation.reservation_id]
            member_options = replace(
                options,
                notes=options.notes or self._default_notes(target),
                reason=options.reason or DEFAULT_MOVE_REASON,
            )
            failure = await self._call(reservation, target.room_id, target.date, member_options)
            if failure is None:
                succeeded.append(reservation)
                if options.notify:
                    logger.info(
                        "Guest notification queued | reservation_id=%s | room_id=%s",
                        reservation.reservation_id,
                        target.room_id,
                    )
            else:
                failed.append(failure)

        logger.info(
            "Commit finished | operation_id=%s | succeeded=%s | failed=%s",
            operation.operation_id,
            len(succeeded),
            len(failed),
        )
        return CommitResult(succeeded=tuple(succeeded), failed=tuple(failed), targets=dict(targets))

    async def revert(self, entry: UndoEntry) -> CommitResult:
        """Issue compensating assignments, newest member first."""
        succeeded: list[Reservation] = []
        failed: list[MemberFailure] = []
        options = AssignmentOptions(reason=UNDO_REASON, notes=f"Undo of {entry.operation_id}")
        for member in reversed(entry.members):
            failure = await self._call(
                member.reservation,
                member.previous_room_id,
                member.reservation.check_in,
                options,
            )
            if failure is None:
                succeeded.append(member.reservation)
            else:
                failed.append(failure)
        return CommitResult(succeeded=tuple(succeeded), failed=tuple(failed))

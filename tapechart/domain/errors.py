"""Error taxonomy of the assignment engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from tapechart.domain.models import Conflict

if TYPE_CHECKING:
    from tapechart.services.assignment_committer import CommitResult


class TapeChartError(Exception):
    """Base exception for engine failures."""


class ReservationValidationError(TapeChartError):
    """Raised when reservation or target input is malformed."""


class ValidationConflict(TapeChartError):
    """Raised when a drop is blocked by one or more conflicts."""

    def __init__(self, conflicts: Sequence[Conflict]) -> None:
        self.conflicts = tuple(conflicts)
        summary = "; ".join(conflict.message for conflict in self.conflicts)
        super().__init__(f"Move blocked: {summary}")


class ConcurrencyError(TapeChartError):
    """Raised when another operation is already in flight."""


class CommitFailure(TapeChartError):
    """Raised when no member of an operation could be committed."""

    def __init__(
        self,
        message: str,
        result: "CommitResult | None" = None,
        retryable: bool = False,
        calendar_stale: bool = False,
    ) -> None:
        self.result = result
        self.retryable = retryable
        self.calendar_stale = calendar_stale
        super().__init__(message)


class OperationStateError(TapeChartError):
    """Raised when a gesture call does not fit the current operation state."""


class NothingToUndo(TapeChartError):
    """Raised when the undo history is empty."""


class LoadError(TapeChartError):
    """Raised when the calendar could not be populated from the backend."""


class CellNotFoundError(TapeChartError, LookupError):
    """Raised for a room/date outside the loaded chart."""


class OccupancyError(TapeChartError):
    """Raised when a local patch would double-book a cell."""

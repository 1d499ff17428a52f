"""Presentation events emitted by the engine and a minimal synchronous bus."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Optional

from tapechart.domain.models import Conflict, Target
from tapechart.utils.logger import get_logger


logger = get_logger(__name__)

CONFLICT_DETECTED = "conflictDetected"
OPERATION_COMMITTED = "operationCommitted"
OPERATION_ABORTED = "operationAborted"
UNDO_AVAILABLE = "undoAvailable"

ENGINE_EVENT_TYPES = (
    CONFLICT_DETECTED,
    OPERATION_COMMITTED,
    OPERATION_ABORTED,
    UNDO_AVAILABLE,
)


@dataclass(frozen=True)
class ConflictDetected:
    operation_id: str
    target: Target
    conflicts: tuple[Conflict, ...]
    event_type: str = CONFLICT_DETECTED


@dataclass(frozen=True)
class OperationCommitted:
    operation_id: str
    succeeded_ids: tuple[str, ...]
    failed_ids: tuple[str, ...]
    partial: bool
    event_type: str = OPERATION_COMMITTED


@dataclass(frozen=True)
class OperationAborted:
    operation_id: str
    reason: str
    retryable: bool = False
    event_type: str = OPERATION_ABORTED


@dataclass(frozen=True)
class UndoAvailable:
    depth: int
    operation_id: Optional[str]
    event_type: str = UNDO_AVAILABLE


Handler = Callable[[Any], None]


class EventBus:
    """Fan-out to subscribers; a failing subscriber never breaks the engine."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: Handler) -> Callable[[], None]:
        if event_type not in ENGINE_EVENT_TYPES:
            raise ValueError(f"Unknown engine event type: {event_type}")
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)

        return unsubscribe

    def emit(self, event: Any) -> None:
        for handler in list(self._handlers.get(event.event_type, ())):
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed | event_type=%s", event.event_type)

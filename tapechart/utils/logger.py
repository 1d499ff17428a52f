"""Logging setup shared by the engine, the reference backend and the HTTP host."""

from __future__ import annotations

import logging
import sys
from typing import Any, MutableMapping, Optional

from tapechart.utils.config import get_settings


_LOGGER_INITIALIZED = False
_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure process-wide logging once.

    Gesture, commit and undo records from every component go to one stdout
    handler so a single operation can be followed end to end.
    """

    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    resolved_level = (level or get_settings().log_level).upper()
    logging.basicConfig(level=resolved_level, format=_LOG_FORMAT, stream=sys.stdout)
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    """Return a configured logger for the requested module."""
    configure_logging()
    return logging.getLogger(name)


class OperationLogAdapter(logging.LoggerAdapter):
    """Appends `| operation_id=...` to every record of one gesture."""

    def process(
        self,
        msg: Any,
        kwargs: MutableMapping[str, Any],
    ) -> tuple[Any, MutableMapping[str, Any]]:
        operation_id = (self.extra or {}).get("operation_id")
        if operation_id is None:
            return msg, kwargs
        return f"{msg} | operation_id={operation_id}", kwargs


def bind_operation(logger: logging.Logger, operation_id: str | None) -> OperationLogAdapter:
    return OperationLogAdapter(logger, {"operation_id": operation_id})

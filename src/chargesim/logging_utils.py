"""Structured JSON logging utilities for event-based logging."""

import json
import logging
from datetime import datetime, timezone
from typing import Any


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add event-specific fields if present
        if hasattr(record, "event_type"):
            log_data["event_type"] = record.event_type
        if hasattr(record, "event_data"):
            log_data.update(record.event_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def _compact(event_data: dict[str, Any], extra_fields: dict[str, Any]) -> dict[str, Any]:
    for key, value in extra_fields.items():
        if value is not None:
            event_data[key] = value
    return event_data


def log_collector_call(
    logger: logging.Logger,
    operation: str,
    transaction_id: str | None = None,
    payload: dict[str, Any] | None = None,
    **kwargs: Any,
) -> None:
    """
    Log an outgoing collector request.

    Args:
        logger: Logger instance
        operation: "start_charge", "charge_update" or "charge_end"
        transaction_id: Session transaction ID (absent for start_charge)
        payload: Request body
        **kwargs: Additional fields to include
    """
    event_data: dict[str, Any] = {"operation": operation}
    if transaction_id is not None:
        event_data["transaction_id"] = transaction_id
    if payload is not None:
        event_data["payload"] = payload

    extra = {
        "event_type": "collector_call",
        "event_data": _compact(event_data, kwargs),
    }
    logger.debug(f"Collector {operation}", extra=extra)


def log_session_event(
    logger: logging.Logger,
    event: str,
    transaction_id: str | None = None,
    **kwargs: Any,
) -> None:
    """
    Log a session lifecycle event.

    Args:
        logger: Logger instance
        event: Event name (e.g., "started", "stopped", "reset")
        transaction_id: Session transaction ID (if applicable)
        **kwargs: Additional fields to include
    """
    event_data: dict[str, Any] = {"event": event}
    if transaction_id is not None:
        event_data["transaction_id"] = transaction_id

    extra = {
        "event_type": "session_event",
        "event_data": _compact(event_data, kwargs),
    }
    logger.info(f"Session {event}", extra=extra)


def log_error(
    logger: logging.Logger,
    error_type: str,
    message: str,
    transaction_id: str | None = None,
    exc_info: Exception | None = None,
    **kwargs: Any,
) -> None:
    """
    Log an error event.

    Args:
        logger: Logger instance
        error_type: Type of error (e.g., "update_failure", "plugin_error")
        message: Error message
        transaction_id: Session transaction ID (if applicable)
        exc_info: Exception object (will extract traceback)
        **kwargs: Additional fields to include
    """
    event_data: dict[str, Any] = {"error_type": error_type}
    if transaction_id is not None:
        event_data["transaction_id"] = transaction_id

    extra = {
        "event_type": "error",
        "event_data": _compact(event_data, kwargs),
    }
    logger.error(message, extra=extra, exc_info=exc_info)

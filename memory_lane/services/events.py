"""Structured event helpers shared across the application."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional


DEFAULT_EVENT_LOGGER = logging.getLogger("memory_lane.events")

# Longest rendered value; remote paths and error messages are cut here.
MAX_VALUE_LENGTH = 200


def sanitize_context_value(value: Any) -> Any:
    """Return *value* as a loggable scalar, or ``None`` when it is blank.

    Numbers and booleans pass through; sequences such as the updated field
    names are joined with commas; everything else is rendered as text.
    """

    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, (list, tuple, set)):
        value = ", ".join(str(item) for item in value)
    text = str(value).strip()
    if not text:
        return None
    if len(text) > MAX_VALUE_LENGTH:
        return text[:MAX_VALUE_LENGTH] + "…"
    return text


def normalize_context(values: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Sanitize every value and drop keys whose value is blank."""

    cleaned = (
        (str(key), sanitize_context_value(raw)) for key, raw in (values or {}).items() if key
    )
    return {key: value for key, value in cleaned if value is not None}


def emit_structured_event(
    event_type: str,
    message: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    context: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.INFO,
    logger: logging.Logger | logging.LoggerAdapter = DEFAULT_EVENT_LOGGER,
) -> None:
    """Emit a structured event with consistent logging metadata.

    The rendered line looks like ``[TYPE] message (key=value, ...)``; the
    normalised context and payload travel with the record as ``extra`` so
    handlers can inspect them without parsing the text.
    """

    base_message = str(message).strip()
    normalised_context = normalize_context(context)
    normalised_payload = normalize_context(payload)
    combined_details = {**normalised_context, **normalised_payload}
    if duration_ms is not None:
        combined_details["duration_ms"] = round(float(duration_ms), 2)
    details_text = ", ".join(f"{key}={value}" for key, value in combined_details.items())
    display_message = f"[{event_type}] {base_message}" if event_type else base_message
    log_message = f"{display_message} ({details_text})" if details_text else display_message
    extra: Dict[str, Any] = {
        "event": base_message,
        "event_type": event_type or "",
    }
    if normalised_context:
        extra["event_context"] = normalised_context
    if normalised_payload:
        extra["event_payload"] = normalised_payload
    if duration_ms is not None:
        extra["event_duration_ms"] = float(duration_ms)
    logger.log(level, log_message, extra=extra)


def emit_db_event(
    action: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    context: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.DEBUG,
    logger: logging.Logger | logging.LoggerAdapter = DEFAULT_EVENT_LOGGER,
) -> None:
    """Emit a structured database event."""

    emit_structured_event(
        "DB_QUERY",
        action,
        payload=payload,
        context=context,
        duration_ms=duration_ms,
        level=level,
        logger=logger,
    )


def emit_remote_event(
    operation: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    context: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.INFO,
    logger: logging.Logger | logging.LoggerAdapter = DEFAULT_EVENT_LOGGER,
) -> None:
    """Emit a structured event describing a remote-store call."""

    emit_structured_event(
        "REMOTE_CALL",
        operation,
        payload=payload,
        context=context,
        duration_ms=duration_ms,
        level=level,
        logger=logger,
    )


__all__ = [
    "DEFAULT_EVENT_LOGGER",
    "emit_db_event",
    "emit_remote_event",
    "emit_structured_event",
    "normalize_context",
    "sanitize_context_value",
]

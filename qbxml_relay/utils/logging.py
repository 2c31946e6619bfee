"""Structured JSON logging utility with request and ticket context."""

from __future__ import annotations

import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

import structlog

# Context variables propagated into every log event
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
ticket_var: ContextVar[str] = ContextVar("ticket", default="")
operation_var: ContextVar[str] = ContextVar("operation", default="")


def get_request_id() -> str:
    """Get the request ID bound to the current context, or an empty string."""
    return request_id_var.get()


def new_request_id() -> str:
    """Generate a request ID without binding it."""
    return uuid.uuid4().hex[:12]


def set_request_id(rid: str) -> None:
    """Set the request ID for the current context."""
    request_id_var.set(rid)


def set_session_context(ticket: str, operation: str = "") -> None:
    """Bind the Web Connector ticket (and SOAP operation) to the current context."""
    ticket_var.set(ticket)
    if operation:
        operation_var.set(operation)


def clear_session_context() -> None:
    """Drop the ticket and operation from the current context."""
    ticket_var.set("")
    operation_var.set("")


def add_context_info(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add request ID and session context to log events."""
    rid = request_id_var.get()
    if rid:
        event_dict.setdefault("request_id", rid)

    ticket = ticket_var.get()
    if ticket:
        event_dict.setdefault("ticket", ticket)

    operation = operation_var.get()
    if operation:
        event_dict.setdefault("operation", operation)

    return event_dict


def add_timestamp(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add ISO format timestamp to log events."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def configure_logging(
    level: str = "info",
    format_type: str = "json",
    stream: Any = None,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: debug, info, warn or error; unknown names fall back to info
        format_type: 'json' for one object per line, 'console' for humans
        stream: Output stream (default: sys.stderr)
    """
    if stream is None:
        stream = sys.stderr

    level_map = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warn": logging.WARNING,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }
    log_level = level_map.get(level.lower(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=stream,
        level=log_level,
    )

    processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_log_level,
        add_timestamp,
        add_context_info,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if format_type == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(stream),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Optional logger name for context

    Returns:
        Configured structlog logger
    """
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger_name=name)
    return logger


def log_processing_result(
    request_id: str,
    entity_type: str,
    success: bool,
    elapsed_ms: float,
    record_count: int = 0,
    error_count: int = 0,
    warning_count: int = 0,
) -> None:
    """Log the outcome of one pipeline run."""
    logger = get_logger("processing")
    log = logger.info if success else logger.warning
    log(
        "processing_completed",
        request_id=request_id,
        entity_type=entity_type,
        success=success,
        elapsed_ms=round(elapsed_ms, 3),
        record_count=record_count,
        errors=error_count,
        warnings=warning_count,
    )


# Initialize with defaults on import
configure_logging()

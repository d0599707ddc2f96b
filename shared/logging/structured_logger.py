"""Structured logging configuration using structlog.

Every entry carries the service and environment, the request correlation id
and user id bound by the HTTP layer, and the current trace and span ids.
Credentials that end up in an event (passwords, tokens, cookies and the
single-use links mailed to users) are masked before rendering.
"""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

_app_context: dict[str, str] = {"app": "tubenote", "environment": "development"}

MASK = "***"

# Event keys whose values are never written out
SENSITIVE_KEYS = frozenset({
    "password",
    "current_password",
    "new_password",
    "token",
    "access_token",
    "refresh_token",
    "csrf_token",
    "authorization",
    "cookie",
    "code",
    "client_secret",
    "link",
})


def add_app_context(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    for key, value in _app_context.items():
        event_dict.setdefault(key, value)
    return event_dict


def add_trace_context(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add the active OpenTelemetry trace and span ids, if any."""
    from opentelemetry import trace

    span = trace.get_current_span()
    if span and span.is_recording():
        span_context = span.get_span_context()
        event_dict["trace_id"] = format(span_context.trace_id, "032x")
        event_dict["span_id"] = format(span_context.span_id, "016x")

    return event_dict


def mask_sensitive_fields(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Replace credential values with a fixed mask.

    Top-level keys and the keys of dict values are both checked, so
    ``logger.info("x", headers={"cookie": ...})`` is masked too.

    Args:
        logger: The logger instance
        method_name: The logging method name
        event_dict: The event dictionary

    Returns:
        Event dictionary with credentials masked
    """
    for key, value in event_dict.items():
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = MASK
        elif isinstance(value, dict):
            event_dict[key] = {
                k: MASK if str(k).lower() in SENSITIVE_KEYS else v
                for k, v in value.items()
            }
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    service_name: Optional[str] = None,
    environment: Optional[str] = None,
) -> None:
    """Configure structured logging for the application.

    Safe to call more than once; the last call wins.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: JSON lines when true, colored console output otherwise
        service_name: Value of the ``app`` and ``service`` fields
        environment: Deployment environment added to every entry
    """
    if environment:
        _app_context["environment"] = environment
    if service_name:
        _app_context["app"] = service_name

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
        add_app_context,
        add_trace_context,
        mask_sensitive_fields,
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # uvicorn and asyncpg log through the standard library
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
        force=True,
    )

    if service_name:
        structlog.contextvars.bind_contextvars(service=service_name)


def bind_context(**kwargs: Any) -> None:
    """Bind key-value pairs to every later entry of the current request."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()

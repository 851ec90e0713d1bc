"""
Structured logging configuration using structlog.

Provides JSON output in production, pretty console output in development.
Follows 12-factor app pattern: logs to stdout, process manager handles persistence.
"""

import logging
import sys

import structlog

from app.config import settings

# Keys that must never reach a log line, whatever the call site passes
SENSITIVE_KEYS = frozenset({"content", "password", "password_hash", "token", "authorization"})


def drop_sensitive_keys(logger, method_name, event_dict):
    """structlog processor that masks secret material passed as log context."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = "[redacted]"
    return event_dict


def setup_logging() -> None:
    """
    Configure structlog and stdlib logging integration.

    Call this once at application startup.
    """
    if settings.log_format == "json":
        # Production: JSON lines for log aggregation
        renderer = structlog.processors.JSONRenderer()
    else:
        # Development: Pretty console output
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    level = getattr(logging, settings.log_level.upper())

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            # Correlation ID bound by the request middleware
            structlog.contextvars.merge_contextvars,
            drop_sensitive_keys,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # stdlib logging for APScheduler, SQLAlchemy, uvicorn
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


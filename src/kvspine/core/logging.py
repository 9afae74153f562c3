"""
kvspine logging - structured logging for the store and the scheduler.

Manifesto:
    Storage backends degrade on read failures instead of raising, and the
    timeout manager drops fires with no registered descriptor. Both are only
    visible through logs, so every module logs through structlog with
    snake_case event names and key/value context:

    - **Standardizes:** Same event shape for every backend
    - **Structures:** JSON output for log aggregation
    - **Flexes:** Console output for development, JSON for production

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="kvspine")
            │
            ▼
        structlog processor chain:
          1. TimeStamper(iso)
          2. merge_contextvars
          3. add_log_level / add_logger_name
          4. add_service_metadata
          5. JSONRenderer (or ConsoleRenderer when stderr is a tty)

        logger = get_logger(__name__)
        logger.info("record_created", table="main", key="a")

Examples:
    >>> from kvspine.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> logger = get_logger(__name__)
    >>> logger.debug("timeout_armed", key="ping_1700000000000", delay_ms=100)

Tags:
    logging, structlog, observability, kvspine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import logging
import sys
from contextlib import AbstractContextManager
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "kvspine"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service.name", _SERVICE_NAME)
    return event_dict


def _elasticsearch_compatible(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Make field names ECS compatible."""
    if "timestamp" in event_dict:
        event_dict["@timestamp"] = event_dict.pop("timestamp")
    if "level" in event_dict:
        event_dict["log.level"] = event_dict.pop("level")
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "kvspine",
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
        add_timestamp: Include ISO timestamp in logs
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stderr.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]

    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        shared_processors.append(structlog.processors.format_exc_info)
        shared_processors.append(_elasticsearch_compatible)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[structlog.stdlib.filter_by_level] + shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper()),
        force=True,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger.

    Args:
        name: Logger name (usually __name__)
    """
    return structlog.get_logger(name)


def log_context(**fields: Any) -> AbstractContextManager[None]:
    """Bind ``fields`` to every log line emitted inside the ``with`` block.

    Values bound by an enclosing block are restored on exit.

    Example:
        with log_context(timeout_key="ping_1700000000000"):
            logger.info("timeout_fired")  # Includes timeout_key
    """
    return structlog.contextvars.bound_contextvars(**fields)


__all__ = [
    "configure_logging",
    "get_logger",
    "log_context",
]

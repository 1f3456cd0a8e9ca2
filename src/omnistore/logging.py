"""
Structured logging for omnistore.

Adapters log lifecycle events (``storage_connected``, ``table_created``,
``table_skipped``...) through structlog. Generated SQL/CQL and bound
parameters are only logged when debug mode is on, either through
``OMNISTORE_DEBUG`` or the plain ``DEBUG`` environment variable.

Architecture:
    ::

        configure_logging(level="INFO", json_format=True, service="omnistore")
              │
              ▼
        structlog processor chain:
          1. TimeStamper(iso)
          2. merge_contextvars / add_log_level
          3. _add_service_metadata
          4. _elasticsearch_compatible   (JSON only)
          5. JSONRenderer | ConsoleRenderer

Examples:
    >>> from omnistore.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> logger = get_logger(__name__)
    >>> logger.info("storage_connected", backend="sqlite")

Tags:
    logging, structlog, observability, debug-sql

Doc-Types:
    - API Reference
    - Observability Guide
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "omnistore"

_FALSY = {"", "0", "false", "no", "off"}


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service.name", _SERVICE_NAME)
    return event_dict


def _elasticsearch_compatible(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Make field names Elasticsearch/ECS compatible."""
    if "timestamp" in event_dict:
        event_dict["@timestamp"] = event_dict.pop("timestamp")
    if "level" in event_dict:
        event_dict["log.level"] = event_dict.pop("level")
    if "logger" in event_dict:
        event_dict["log.logger"] = event_dict.pop("logger")
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "omnistore",
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
        json_format = not sys.stdout.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]

    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        shared_processors.append(_elasticsearch_compatible)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )


def configure_logging_from_settings(service: str = "omnistore") -> None:
    """Configure logging from ``OMNISTORE_LOG_LEVEL`` / ``OMNISTORE_LOG_FORMAT``."""
    from omnistore.settings import get_settings

    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_format == "json",
        service=service,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``).

    The name is bound as the ``logger`` field; PrintLogger has no name of
    its own.
    """
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger().bind(logger=name)


def debug_enabled() -> bool:
    """True when statement-level debug logging is switched on.

    ``OMNISTORE_DEBUG`` wins over the bare ``DEBUG`` variable.
    """
    value = os.environ.get("OMNISTORE_DEBUG")
    if value is None:
        value = os.environ.get("DEBUG", "")
    return value.strip().lower() not in _FALSY


def log_statement(logger: Any, statement: str, params: Any = None, **fields: Any) -> None:
    """Log a generated statement and its parameters when debug mode is on."""
    if debug_enabled():
        logger.debug("statement", sql=statement, params=params, **fields)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(backend="s3", table="users"):
            logger.info("scan_started")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "configure_logging_from_settings",
    "get_logger",
    "debug_enabled",
    "log_statement",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]

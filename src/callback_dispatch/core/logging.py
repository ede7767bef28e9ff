"""
Structured logging for callback dispatch.

Manifesto:
    A dispatcher runs on a background thread where nobody is watching
    stdout. Its logs are the only observer of callback failures and
    shutdown timeouts, so they must be structured and carry enough context
    to identify the failing dispatch.

    - **Structured:** JSON output for log aggregation, console for TTYs
    - **Leveled and lazy:** disabled levels return before any processing,
      and ``Lazy`` values are only rendered when a record is emitted
    - **Correlated:** context binding via structlog contextvars

Architecture:
    ::

        ┌────────────────────────────────────────────────────────────┐
        │ configure_logging(level="INFO", json_format=None,          │
        │                   service="callback-dispatch")             │
        │                                                             │
        │     ↓                                                       │
        │ structlog configured with processor chain:                  │
        │   1. TimeStamper (iso)                                      │
        │   2. merge_contextvars                                      │
        │   3. add_log_level                                          │
        │   4. StackInfoRenderer / set_exc_info                       │
        │   5. add_service_metadata                                   │
        │   6. format_exc_info + elasticsearch_compatible (JSON only) │
        │   7. JSONRenderer (or ConsoleRenderer for TTY)              │
        └────────────────────────────────────────────────────────────┘

        ┌────────────────────────────────────────────────────────────┐
        │ log.debug("worker_spawned", callback=lazy(expensive_repr)) │
        │                                                             │
        │ level disabled → filtering logger returns, thunk not called │
        │ level enabled  → renderer calls repr() → thunk called once  │
        └────────────────────────────────────────────────────────────┘

Examples:
    >>> from callback_dispatch.core.logging import configure_logging, get_logger
    >>> configure_logging(level="INFO", json_format=True)
    >>> logger = get_logger(__name__)
    >>> logger.info("dispatcher_started", dispatcher="events")

Tags:
    logging, structlog, observability, lazy-evaluation, dispatch

Doc-Types:
    - API Reference
    - Observability Guide
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from callback_dispatch.core.settings import DispatchSettings, get_settings

_SERVICE_NAME = "callback-dispatch"

_UNSET = object()


class Lazy:
    """A log value produced on demand.

    The thunk runs the first time the value is rendered (``str`` or
    ``repr``) and the result is memoized. Log records for disabled levels
    are dropped before rendering, so the thunk never runs for them.
    """

    __slots__ = ("_thunk", "_value")

    def __init__(self, thunk: Callable[[], Any]):
        self._thunk = thunk
        self._value: Any = _UNSET

    def resolve(self) -> Any:
        if self._value is _UNSET:
            self._value = self._thunk()
        return self._value

    def __str__(self) -> str:
        return str(self.resolve())

    def __repr__(self) -> str:
        value = self.resolve()
        return value if isinstance(value, str) else repr(value)


def lazy(thunk: Callable[[], Any]) -> Lazy:
    """Wrap *thunk* so it is only evaluated if the log record is emitted."""
    return Lazy(thunk)


def _resolve_lazy_values(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Render Lazy values to plain values before serialization."""
    for key, value in event_dict.items():
        if isinstance(value, Lazy):
            event_dict[key] = value.resolve()
    return event_dict


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

    if "logger_name" in event_dict:
        event_dict["log.logger"] = event_dict.pop("logger_name")

    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "callback-dispatch",
    add_timestamp: bool = True,
    cache_logger_on_first_use: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
        add_timestamp: Include ISO timestamp in logs
        cache_logger_on_first_use: Freeze logger configuration after first use

    Example:
        # Production (JSON for log aggregation)
        configure_logging(level="INFO", json_format=True, service="zk-client")

        # Development (auto-detect: colored console if tty)
        configure_logging(level="DEBUG")
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    numeric_level = getattr(logging, level.upper())

    if json_format is None:
        json_format = not sys.stdout.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _resolve_lazy_values,
        _add_service_metadata,
    ]

    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        shared_processors.append(structlog.processors.format_exc_info)
        shared_processors.append(_elasticsearch_compatible)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=cache_logger_on_first_use,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )


def configure_from_settings(settings: DispatchSettings | None = None) -> None:
    """Configure logging from ``CALLBACK_DISPATCH_LOG_LEVEL`` / ``CALLBACK_DISPATCH_JSON_LOGS``."""
    settings = settings or get_settings()
    configure_logging(level=settings.log_level, json_format=settings.json_logs)


def get_logger(name: str | None = None, **initial_values: Any) -> Any:
    """Get a structured logger.

    The result is a lazy proxy. Until it is cached on first use, each call
    resolves against the current structlog configuration, so loggers
    created at import time or before ``configure_logging`` still honour
    the configured level.

    Args:
        name: Logger name (usually __name__), carried as the ``logger_name`` field
        **initial_values: Context bound to every record from this logger
    """
    if name is not None:
        initial_values["logger_name"] = name
    return structlog.get_logger(**initial_values)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs.

    Example:
        bind_context(session_id="0x1f", dispatcher="watcher-events")
        logger.info("worker_spawned")  # Includes session_id and dispatcher
    """
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
        with LogContext(session_id="0x1f"):
            dispatcher.shutdown()
        # Context cleared here
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
    "configure_from_settings",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
    "Lazy",
    "lazy",
]

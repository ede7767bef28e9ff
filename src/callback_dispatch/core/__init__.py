"""Core primitives shared by dispatchers: errors, logging and settings."""

from callback_dispatch.core.errors import (
    CallbackError,
    DispatchError,
    ErrorCategory,
    ErrorContext,
    InvalidStateError,
    ShutdownTimeoutError,
    categorize_error,
    is_unrecoverable,
)
from callback_dispatch.core.logging import configure_from_settings, configure_logging, get_logger, lazy
from callback_dispatch.core.settings import DispatchSettings, get_settings, reset_settings

__all__ = [
    "CallbackError",
    "DispatchError",
    "ErrorCategory",
    "ErrorContext",
    "InvalidStateError",
    "ShutdownTimeoutError",
    "categorize_error",
    "is_unrecoverable",
    "configure_logging",
    "configure_from_settings",
    "get_logger",
    "lazy",
    "DispatchSettings",
    "get_settings",
    "reset_settings",
]

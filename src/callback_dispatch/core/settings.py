"""Settings for callback dispatch.

Every dispatcher shares a few knobs: how long ``shutdown()`` waits by
default, what the worker thread is called and whether it is a daemon.
``DispatchSettings`` reads them from ``CALLBACK_DISPATCH_*`` environment
variables and an optional ``.env`` file.

Examples:
    >>> from callback_dispatch.core.settings import DispatchSettings
    >>> DispatchSettings(shutdown_timeout=1.5).shutdown_timeout
    1.5

Tags:
    settings, configuration, pydantic, environment, dispatch

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DispatchSettings(BaseSettings):
    """Defaults applied to every ThreadedCallback.

    Fields
    ──────
    shutdown_timeout : Seconds ``shutdown()`` waits for the worker by default
    thread_name      : Prefix for worker thread names
    daemon           : Run workers as daemon threads
    fork_safe        : Register dispatchers with the os.register_at_fork hooks
    log_level        : Structlog log level
    json_logs        : JSON output (None = auto-detect from TTY)
    """

    model_config = SettingsConfigDict(
        env_prefix="CALLBACK_DISPATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Lifecycle ────────────────────────────────────────────────
    shutdown_timeout: float = Field(default=5.0, gt=0)
    thread_name: str = "callback-dispatch"
    daemon: bool = True
    fork_safe: bool = False

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        value = value.upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return value


@lru_cache(maxsize=1)
def get_settings() -> DispatchSettings:
    """Process-wide settings, read once from the environment."""
    return DispatchSettings()


def reset_settings() -> None:
    """Forget cached settings so the next get_settings() re-reads the env."""
    get_settings.cache_clear()


__all__ = ["DispatchSettings", "get_settings", "reset_settings"]

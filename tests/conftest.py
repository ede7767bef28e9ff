"""
Shared pytest fixtures and configuration for callback-dispatch tests.

This module provides:
- structlog / settings / fork-hook reset fixtures for test isolation
- Recorder and Gate fixtures (see tests/_support)
- A dispatcher factory that always shuts its dispatchers down

Usage:
    def test_something(make_dispatcher, recorder):
        d = make_dispatcher(recorder)
        d.call(1)
        assert recorder.wait_for(1) == [1]
"""

import os
import sys
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
import structlog

# Ensure callback_dispatch package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from callback_dispatch.core.settings import DispatchSettings, reset_settings
from callback_dispatch.dispatch import fork
from callback_dispatch.dispatch.threaded import ThreadedCallback
from tests._support import Gate, Recorder


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Restore structlog's built-in configuration around every test."""
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Drop cached settings and any CALLBACK_DISPATCH_* variables."""
    for key in list(os.environ):
        if key.startswith("CALLBACK_DISPATCH_"):
            monkeypatch.delenv(key)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture(autouse=True)
def clean_fork_hooks() -> Generator[None, None, None]:
    """Give each test a fresh default fork-hook registry."""
    fork._clear_for_testing()
    yield
    fork._clear_for_testing()


# =============================================================================
# Dispatcher Fixtures
# =============================================================================


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def gate(recorder: Recorder) -> Generator[Gate, None, None]:
    g = Gate(recorder)
    yield g
    g.open()


@pytest.fixture
def settings() -> DispatchSettings:
    return DispatchSettings(shutdown_timeout=2.0)


@pytest.fixture
def make_dispatcher(
    settings: DispatchSettings,
) -> Generator[Callable[..., ThreadedCallback], None, None]:
    """
    Factory for dispatchers that are shut down after the test.

    Not a plain fixture because several tests need more than one
    dispatcher, or need to pass a custom callback.
    """
    created: list[ThreadedCallback] = []

    def factory(callback: Callable[..., Any], **kwargs: Any) -> ThreadedCallback:
        kwargs.setdefault("settings", settings)
        d = ThreadedCallback(callback, **kwargs)
        created.append(d)
        return d

    yield factory

    for d in created:
        d.shutdown(timeout=1.0)

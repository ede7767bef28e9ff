"""
Test support utilities for callback-dispatch tests.

This module provides helpers that don't fit as pytest fixtures but are
useful across multiple test files: a thread-safe recording sink, a
callback that parks the dispatch thread, and polling helpers.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any


class Recorder:
    """Thread-safe sink that records every delivered call."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self.items: list[Any] = []
        self.threads: list[str] = []

    def __call__(self, item: Any) -> None:
        with self._cond:
            self.items.append(item)
            self.threads.append(threading.current_thread().name)
            self._cond.notify_all()

    def wait_for(self, count: int, timeout: float = 5.0) -> list[Any]:
        """Block until at least *count* items arrived, then return a copy."""
        with self._cond:
            self._cond.wait_for(lambda: len(self.items) >= count, timeout=timeout)
            return list(self.items)


class Gate:
    """
    Callback that records items and parks on ``"block"`` until opened.

    Usage:
        gate = Gate(recorder)
        dispatcher.call("block")
        gate.entered.wait()   # dispatch thread is now inside the callback
        gate.open()
    """

    def __init__(self, recorder: Recorder) -> None:
        self.recorder = recorder
        self.entered = threading.Event()
        self.released = threading.Event()

    def __call__(self, item: Any) -> None:
        self.recorder(item)
        if item == "block":
            self.entered.set()
            self.released.wait(10)

    def open(self) -> None:
        self.released.set()


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll *predicate* until it is true or *timeout* elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def live_workers(dispatcher: Any) -> list[threading.Thread]:
    """Dispatch threads currently alive for *dispatcher*."""
    prefix = f"{dispatcher.name}-"
    return [t for t in threading.enumerate() if t.name.startswith(prefix) and t.is_alive()]

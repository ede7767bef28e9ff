"""Queue + thread that delivers calls to a callback in the background.

┌──────────────────────────────────────────────────────────────────────────────┐
│  THREADED CALLBACK ARCHITECTURE                                               │
│                                                                               │
│   producer threads                       dispatch thread (exactly one)        │
│   ────────────────                       ─────────────────────────────        │
│                                                                               │
│   call(*args)                            while True:                          │
│      │                                      with lock:                        │
│      ▼                                        wait while queue empty          │
│   ┌───────────────── lock ─────────────┐          and state == RUNNING        │
│   │ queue.append(PendingInvocation)    │        if state != RUNNING:          │
│   │ cond.notify()                      │          return  ◄── backlog kept    │
│   └────────────────────────────────────┘        inv = queue.popleft()         │
│                                                 inv.invoke(callback)          │
│   shutdown(timeout)                             (outside the lock; failures   │
│      state = SHUTDOWN, notify,                   captured and logged)         │
│      join(timeout) ─ log on timeout                                           │
│                                                                               │
│   pause_before_fork_in_parent()          resume_after_fork_in_parent()        │
│      state = PAUSED, notify,                state = RUNNING, spawn worker     │
│      join() ─ unbounded, handle cleared     (drains the retained backlog)     │
│                                                                               │
│   reopen_after_fork()                                                         │
│      spawn a worker iff RUNNING and no live worker                            │
└──────────────────────────────────────────────────────────────────────────────┘

A state change wakes the worker ahead of any backlog: items still queued
when the worker observes PAUSED or SHUTDOWN are not delivered by that
worker. After a pause they are delivered by the next worker; after a
shutdown nothing consumes them.

You will not get a useful return value from ``call()``, so this is only
useful for background processing (watch events, notifications, etc.).

Example:
    >>> received = []
    >>> dispatcher = ThreadedCallback(received.append)
    >>> dispatcher.call(1)
    >>> dispatcher.call(2)
    >>> # ... later ...
    >>> dispatcher.shutdown()
"""

from __future__ import annotations

import itertools
import os
import threading
from collections import deque
from collections.abc import Callable
from typing import Any, Generic, ParamSpec

from callback_dispatch.core.errors import (
    UNRECOVERABLE_ERRORS,
    CallbackError,
    ErrorContext,
    InvalidStateError,
    ShutdownTimeoutError,
)
from callback_dispatch.core.logging import get_logger, lazy
from callback_dispatch.core.settings import DispatchSettings, get_settings

from .fork import default_hooks, install_fork_hooks
from .protocol import DispatcherHealth, DispatcherState, PendingInvocation

P = ParamSpec("P")

_instance_ids = itertools.count(1)


class ThreadedCallback(Generic[P]):
    """Encapsulates the queue + thread that calls a callback.

    ``call()`` places the arguments on a queue and returns immediately;
    a single dispatch thread delivers them in order. Exceptions raised by
    the callback are logged and never reach the producer.

    Args:
        callback: Callable that receives each queued call's arguments.
        name: Name used in logs and as the worker thread name prefix.
        settings: Overrides the process-wide DispatchSettings.
        fork_safe: Register with the default fork hooks so the dispatcher
            is paused/resumed/reopened automatically around ``os.fork()``.
            Defaults to ``settings.fork_safe``.
    """

    def __init__(
        self,
        callback: Callable[P, Any],
        *,
        name: str | None = None,
        settings: DispatchSettings | None = None,
        fork_safe: bool | None = None,
    ) -> None:
        if not callable(callback):
            raise TypeError(f"callback must be callable, got {type(callback).__name__}")

        self._callback = callback
        self._settings = settings or get_settings()
        self._name = name or f"{self._settings.thread_name}-{next(_instance_ids)}"
        self._log = get_logger(__name__, dispatcher=self._name)

        self._lock = threading.Lock()
        self._cond = threading.Condition(self._lock)
        self._queue: deque[PendingInvocation] = deque()
        self._state = DispatcherState.RUNNING
        self._thread: threading.Thread | None = None
        self._pid = os.getpid()
        self._generation = 0
        self._inherited = 0

        self._delivered = 0
        self._failed = 0
        self._last_error: CallbackError | None = None

        with self._lock:
            self._spawn_worker()

        self._log.debug("dispatcher_started", callback=lazy(lambda: repr(self._callback)))

        if fork_safe is None:
            fork_safe = self._settings.fork_safe
        if fork_safe:
            default_hooks().register(self)
            install_fork_hooks()

    # ------------------------------------------------------------------ #
    # Producer side
    # ------------------------------------------------------------------ #

    def call(self, *args: P.args, **kwargs: P.kwargs) -> None:
        """Queue a call for delivery on the dispatch thread.

        Never blocks on the callback. Valid after shutdown, but nothing
        will ever deliver the call.
        """
        invocation = PendingInvocation.capture(args, kwargs)
        with self._cond:
            self._queue.append(invocation)
            self._cond.notify()

    __call__ = call

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def shutdown(self, timeout: float | None = None) -> None:
        """Stop delivery for good.

        Waits up to *timeout* seconds (``settings.shutdown_timeout`` when
        None) for the dispatch thread to exit. A timeout is logged, not
        raised. Queued calls that were not delivered are abandoned.
        """
        if timeout is None:
            timeout = self._settings.shutdown_timeout

        self._log.debug("shutdown_requested", timeout=timeout)

        with self._cond:
            if self._state is DispatcherState.SHUTDOWN:
                return

            self._state = DispatcherState.SHUTDOWN
            self._cond.notify_all()
            thread = self._thread

        if thread is None:
            return

        if thread is threading.current_thread():
            # called from inside the callback; the loop exits when it returns
            self._log.debug("shutdown_from_dispatch_thread")
            return

        thread.join(timeout)
        if thread.is_alive():
            error = ShutdownTimeoutError(timeout, context=self._error_context(thread))
            self._log.error(
                "shutdown_timeout",
                callback=lazy(lambda: repr(self._callback)),
                **error.to_dict(),
            )

    def pause_before_fork_in_parent(self) -> None:
        """Stop the dispatch thread but keep the queue.

        Blocks (without a timeout) until the thread has exited. Queued
        calls are delivered after :meth:`resume_after_fork_in_parent`.
        Does nothing, and leaves the state RUNNING, if no worker is alive.
        """
        thread = self._thread
        if thread is None or not thread.is_alive():
            self._log.debug("pause_skipped", reason="no live worker")
            return

        if thread is threading.current_thread():
            raise InvalidStateError("cannot pause from the dispatch thread").with_context(
                dispatcher=self._name,
                state=self._state.value,
                thread=thread.name,
            )

        with self._cond:
            if self._state is not DispatcherState.RUNNING:
                return
            thread = self._thread
            if thread is None:
                return
            self._state = DispatcherState.PAUSED
            self._cond.notify_all()

        self._log.debug("pause_requested", thread=thread.name)
        thread.join()

        with self._cond:
            if self._thread is thread:
                self._thread = None

        self._log.debug("worker_joined", thread=thread.name)

    def resume_after_fork_in_parent(self) -> None:
        """Restart delivery after :meth:`pause_before_fork_in_parent`.

        Raises:
            InvalidStateError: if the dispatcher is not paused, or a worker
                thread is still registered.
        """
        with self._cond:
            if self._state is not DispatcherState.PAUSED:
                raise InvalidStateError(
                    f"state was not paused, state: {self._state.value}"
                ).with_context(dispatcher=self._name, state=self._state.value)

            if self._thread is not None:
                raise InvalidStateError(
                    f"dispatch thread was not cleared: {self._thread!r}"
                ).with_context(dispatcher=self._name, state=self._state.value)

            self._state = DispatcherState.RUNNING
            self._spawn_worker()

        self._log.debug("resume_requested", pending=lazy(lambda: len(self._queue)))

    def reopen_after_fork(self) -> None:
        """Replace a dead dispatch thread, e.g. in the child after a fork.

        Only one thread survives a fork (the one that called it), so the
        child inherits a RUNNING dispatcher with no worker. Spawns a worker
        only if the state is RUNNING and no worker is alive; otherwise the
        queue is left as it is.

        In a new process the lock is always replaced. Calls inherited from
        the parent are dropped when the child spawns its first worker,
        here or in a later ``resume_after_fork_in_parent()``.
        """
        self._log.debug("reopen_requested")

        if os.getpid() != self._pid:
            self._reset_after_fork()

        with self._cond:
            if self._state is not DispatcherState.RUNNING:
                self._log.debug("reopen_skipped", reason="not running", state=self._state.value)
                return

            if self._thread is not None and self._thread.is_alive():
                self._log.debug("reopen_skipped", reason="worker alive", thread=self._thread.name)
                return

            self._spawn_worker()

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    @property
    def callback(self) -> Callable[P, Any]:
        return self._callback

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> DispatcherState:
        with self._lock:
            return self._state

    @property
    def running(self) -> bool:
        """True iff the state is exactly RUNNING."""
        with self._lock:
            return self._state is DispatcherState.RUNNING

    def is_running(self) -> bool:
        return self.running

    @property
    def pending(self) -> int:
        """Number of queued calls not yet taken by the worker."""
        with self._lock:
            return len(self._queue)

    @property
    def worker_alive(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    @property
    def delivered_count(self) -> int:
        with self._lock:
            return self._delivered

    @property
    def failed_count(self) -> int:
        with self._lock:
            return self._failed

    @property
    def last_error(self) -> CallbackError | None:
        with self._lock:
            return self._last_error

    def health(self) -> DispatcherHealth:
        """Return structured health status."""
        worker_alive = self.worker_alive
        with self._lock:
            return DispatcherHealth(
                healthy=self._state is DispatcherState.RUNNING and worker_alive,
                name=self._name,
                state=self._state,
                worker_alive=worker_alive,
                pending=len(self._queue),
                delivered=self._delivered,
                failed=self._failed,
                last_error=self._last_error.message if self._last_error else None,
            )

    def __enter__(self) -> ThreadedCallback[P]:
        return self

    def __exit__(self, *args) -> None:
        self.shutdown()

    def __repr__(self) -> str:
        # no lock: repr may be requested while the lock is held
        return (
            f"<{self.__class__.__name__} {self._name!r} state={self._state.value} "
            f"pending={len(self._queue)} callback={self._callback!r}>"
        )

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _spawn_worker(self) -> None:
        """Start a new dispatch thread. Caller holds the lock."""
        for _ in range(self._inherited):
            self._queue.popleft()
        self._inherited = 0

        self._generation += 1
        thread = threading.Thread(
            target=self._dispatch_thread_body,
            name=f"{self._name}-{self._generation}",
            daemon=self._settings.daemon,
        )
        self._thread = thread
        thread.start()
        self._log.debug("worker_spawned", thread=thread.name)

    def _reset_after_fork(self) -> None:
        # Only the forking thread exists in the child. The inherited lock
        # may be held by a parent thread that no longer exists. The inherited
        # backlog stays queued until a worker is spawned here; the parent
        # delivers it.
        self._log.debug("reopen_reset_after_fork", parent_pid=self._pid, pid=os.getpid())
        self._lock = threading.Lock()
        self._cond = threading.Condition(self._lock)
        self._thread = None
        self._inherited = len(self._queue)
        self._pid = os.getpid()

    def _dispatch_thread_body(self) -> None:
        try:
            while True:
                with self._cond:
                    while not self._queue and self._state is DispatcherState.RUNNING:
                        self._cond.wait()

                    if self._state is not DispatcherState.RUNNING:
                        self._log.debug(
                            "worker_exiting",
                            state=self._state.value,
                            pending=len(self._queue),
                        )
                        return

                    invocation = self._queue.popleft()

                self._deliver(invocation)
        finally:
            self._log.debug("worker_returning", thread=threading.current_thread().name)

    def _deliver(self, invocation: PendingInvocation) -> None:
        """Run one invocation, recording a failure as ``last_error``."""
        try:
            invocation.invoke(self._callback)
        except UNRECOVERABLE_ERRORS:
            raise
        except Exception as e:
            failure = CallbackError.from_exception(e, invocation).with_context(
                dispatcher=self._name,
                thread=threading.current_thread().name,
            )
            with self._lock:
                self._failed += 1
                self._last_error = failure

            self._log.error(
                "callback_failed",
                callback=lazy(lambda: repr(self._callback)),
                invocation=lazy(lambda: repr(invocation)),
                error_type=type(e).__name__,
                error=str(e),
                exc_info=e,
            )
            return

        with self._lock:
            self._delivered += 1

    def _error_context(self, thread: threading.Thread | None = None) -> ErrorContext:
        return ErrorContext(
            dispatcher=self._name,
            callback=repr(self._callback),
            state=self._state.value,
            thread=thread.name if thread else None,
        )


__all__ = ["ThreadedCallback"]

"""Host integration for fork boundaries.

A dispatcher never intercepts ``os.fork()`` itself; it only exposes the
three hooks described by :class:`~callback_dispatch.dispatch.protocol.ForkAware`.
``ForkHooks`` is the host side: it keeps a weak set of registered
dispatchers and drives their hooks, and :func:`install_fork_hooks` wires
the default registry into ``os.register_at_fork`` once per process.

Sequence around one fork::

    parent                                   child
    ──────                                   ─────
    before_fork()
      pause_before_fork_in_parent() each
                      ── os.fork() ──────────►
    after_fork_in_parent()                   after_fork_in_child()
      resume_after_fork_in_parent()            reopen_after_fork() each
        for each PAUSED dispatcher             resume_after_fork_in_parent()
                                                 for each still PAUSED

A hook that fails for one dispatcher is logged and does not stop the
others.
"""

from __future__ import annotations

import os
import threading
import weakref

from callback_dispatch.core.logging import get_logger, lazy

from .protocol import DispatcherState, ForkAware

logger = get_logger(__name__)


class ForkHooks:
    """Registry of fork-aware objects and the hooks that drive them."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._members: weakref.WeakSet[ForkAware] = weakref.WeakSet()

    def register(self, target: ForkAware) -> None:
        if not isinstance(target, ForkAware):
            raise TypeError(f"{type(target).__name__} does not implement the fork hooks")
        with self._lock:
            self._members.add(target)

    def unregister(self, target: ForkAware) -> None:
        with self._lock:
            self._members.discard(target)

    def registered(self) -> list[ForkAware]:
        with self._lock:
            return list(self._members)

    def __len__(self) -> int:
        return len(self.registered())

    def before_fork(self) -> None:
        for target in self.registered():
            self._run(target, "pause_before_fork_in_parent")

    def after_fork_in_parent(self) -> None:
        for target in self.registered():
            if target.state is DispatcherState.PAUSED:
                self._run(target, "resume_after_fork_in_parent")

    def after_fork_in_child(self) -> None:
        # the registry lock may have been held by a thread that did not survive the fork
        self._lock = threading.Lock()
        for target in self.registered():
            self._run(target, "reopen_after_fork")
            if target.state is DispatcherState.PAUSED:
                self._run(target, "resume_after_fork_in_parent")

    def _run(self, target: ForkAware, hook: str) -> None:
        try:
            getattr(target, hook)()
        except Exception:
            logger.exception("fork_hook_failed", hook=hook, target=lazy(lambda: repr(target)))


_default_hooks = ForkHooks()
_install_lock = threading.Lock()
_installed = False


def default_hooks() -> ForkHooks:
    """The process-wide registry used by ``ThreadedCallback(fork_safe=True)``."""
    return _default_hooks


# Each call reads the current _default_hooks.
def _before_fork() -> None:
    _default_hooks.before_fork()


def _after_fork_in_parent() -> None:
    _default_hooks.after_fork_in_parent()


def _after_fork_in_child() -> None:
    _default_hooks.after_fork_in_child()


def install_fork_hooks() -> bool:
    """Wire the default registry into ``os.register_at_fork``.

    Idempotent. Returns False on platforms without ``register_at_fork``.
    """
    global _installed

    with _install_lock:
        if _installed:
            return True

        register_at_fork = getattr(os, "register_at_fork", None)
        if register_at_fork is None:
            logger.debug("fork_hooks_unavailable")
            return False

        register_at_fork(
            before=_before_fork,
            after_in_parent=_after_fork_in_parent,
            after_in_child=_after_fork_in_child,
        )
        _installed = True
        logger.debug("fork_hooks_installed")
        return True


def _clear_for_testing() -> None:
    global _default_hooks, _installed
    _default_hooks = ForkHooks()
    _installed = False


__all__ = ["ForkHooks", "default_hooks", "install_fork_hooks"]

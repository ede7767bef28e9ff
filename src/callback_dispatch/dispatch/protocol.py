"""Dispatcher data model and fork-hook protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  DISPATCHER STATE MACHINE                                                     │
│                                                                               │
│            pause_before_fork_in_parent()                                      │
│        ┌────────────────────────────────────┐                                 │
│        │                                    ▼                                 │
│   ┌─────────┐                          ┌─────────┐                            │
│   │ RUNNING │ ◄─────────────────────── │ PAUSED  │                            │
│   └─────────┘  resume_after_fork_in_   └─────────┘                            │
│        │       parent()                                                       │
│        │ shutdown()                                                           │
│        ▼                                                                      │
│   ┌──────────┐                                                                │
│   │ SHUTDOWN │  terminal; further shutdown() calls are no-ops                 │
│   └──────────┘                                                                │
│                                                                               │
│  reopen_after_fork(): RUNNING → RUNNING, spawns a worker only if none alive   │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Protocol, runtime_checkable


class DispatcherState(str, Enum):
    """Lifecycle state of a dispatcher."""

    RUNNING = "running"
    PAUSED = "paused"
    SHUTDOWN = "shutdown"


@dataclass(frozen=True)
class PendingInvocation:
    """Arguments captured by one ``call()``, waiting for delivery."""

    args: tuple[Any, ...] = ()
    kwargs: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def capture(cls, args: tuple[Any, ...], kwargs: dict[str, Any]) -> PendingInvocation:
        return cls(tuple(args), MappingProxyType(dict(kwargs)))

    def invoke(self, callback: Callable[..., Any]) -> Any:
        return callback(*self.args, **self.kwargs)

    def __repr__(self) -> str:
        parts = [repr(a) for a in self.args]
        parts.extend(f"{k}={v!r}" for k, v in self.kwargs.items())
        return f"PendingInvocation({', '.join(parts)})"


@dataclass
class DispatcherHealth:
    """Point-in-time snapshot of a dispatcher."""

    healthy: bool
    name: str
    state: DispatcherState
    worker_alive: bool
    pending: int
    delivered: int
    failed: int
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "name": self.name,
            "state": self.state.value,
            "worker_alive": self.worker_alive,
            "pending": self.pending,
            "delivered": self.delivered,
            "failed": self.failed,
            "last_error": self.last_error,
        }


@runtime_checkable
class ForkAware(Protocol):
    """Anything that can be suspended and restored around ``os.fork()``.

    The host calls ``pause_before_fork_in_parent`` before forking, then
    ``resume_after_fork_in_parent`` in the parent and ``reopen_after_fork``
    in the child.
    """

    def pause_before_fork_in_parent(self) -> None: ...

    def resume_after_fork_in_parent(self) -> None: ...

    def reopen_after_fork(self) -> None: ...

    @property
    def state(self) -> DispatcherState: ...


__all__ = [
    "DispatcherState",
    "PendingInvocation",
    "DispatcherHealth",
    "ForkAware",
]

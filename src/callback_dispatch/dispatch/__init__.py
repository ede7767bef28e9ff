"""Background delivery of calls to a single callback.

Modules
-------
protocol    DispatcherState, PendingInvocation, DispatcherHealth, ForkAware
threaded    ThreadedCallback -- queue + single dispatch thread
fork        ForkHooks -- drives the fork hooks via os.register_at_fork
"""

from callback_dispatch.dispatch.fork import ForkHooks, default_hooks, install_fork_hooks
from callback_dispatch.dispatch.protocol import (
    DispatcherHealth,
    DispatcherState,
    ForkAware,
    PendingInvocation,
)
from callback_dispatch.dispatch.threaded import ThreadedCallback

__all__ = [
    "ThreadedCallback",
    "DispatcherState",
    "DispatcherHealth",
    "PendingInvocation",
    "ForkAware",
    "ForkHooks",
    "default_hooks",
    "install_fork_hooks",
]

"""
callback-dispatch - Deliver calls to a callback on a dedicated thread.

Producers call ``ThreadedCallback.call()`` from any thread and return
immediately; one dispatch thread per instance delivers the calls in order.

- callback_dispatch.core: errors, structured logging, settings
- callback_dispatch.dispatch: ThreadedCallback and the fork hooks
"""

__version__ = "0.1.0"

from callback_dispatch.core.errors import (
    CallbackError,
    DispatchError,
    InvalidStateError,
    ShutdownTimeoutError,
)
from callback_dispatch.dispatch import (
    DispatcherHealth,
    DispatcherState,
    ForkHooks,
    PendingInvocation,
    ThreadedCallback,
    install_fork_hooks,
)

__all__ = [
    "__version__",
    "ThreadedCallback",
    "DispatcherState",
    "DispatcherHealth",
    "PendingInvocation",
    "ForkHooks",
    "install_fork_hooks",
    "DispatchError",
    "InvalidStateError",
    "CallbackError",
    "ShutdownTimeoutError",
]

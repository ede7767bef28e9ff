"""
Structured error types for callback dispatch.

The dispatcher has exactly three failure modes, and each one gets a typed
error carrying enough metadata to be logged, inspected or re-raised:

- **Invalid lifecycle usage:** the fork hooks were called out of order.
  This is the only error that propagates to a caller.
- **Callback failure:** a queued invocation raised. Captured per delivery
  attempt, logged, never propagated to the producer.
- **Shutdown timeout:** the worker outlived the shutdown bound. Logged,
  never raised.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                      DispatchError                           │
        │           (category, context, cause, to_dict())              │
        ├─────────────────────────────────────────────────────────────┤
        │                                                              │
        │  InvalidStateError     CallbackError      ShutdownTimeoutError│
        │  (LIFECYCLE, raised)   (CALLBACK, logged) (LIFECYCLE, logged)│
        │                                                              │
        └─────────────────────────────────────────────────────────────┘

        Unrecoverable (ends the worker, never captured):
            MemoryError, and any BaseException that is not an Exception
            (SystemExit, KeyboardInterrupt, GeneratorExit)

Examples:
    Adding context to an error:

    >>> error = InvalidStateError("state was not paused")
    >>> error.with_context(dispatcher="events", state="running")
    InvalidStateError('state was not paused', category=LIFECYCLE)
    >>> error.context.dispatcher
    'events'

    Capturing a callback failure:

    >>> try:
    ...     raise ValueError("boom")
    ... except ValueError as e:
    ...     failure = CallbackError.from_exception(e)
    >>> failure.category
    <ErrorCategory.CALLBACK: 'CALLBACK'>

Guardrails:
    ❌ DON'T: Catch BaseException around a callback
    ✅ DO: Re-raise anything is_unrecoverable() reports

    ❌ DON'T: Raise CallbackError to the producer that enqueued the call
    ✅ DO: Log it and keep the worker alive

Tags:
    error-handling, exception-hierarchy, error-context, dispatch,
    observability

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    LIFECYCLE = "LIFECYCLE"
    CALLBACK = "CALLBACK"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured context attached to dispatch errors.

    Attributes:
        dispatcher: Name of the dispatcher that produced the error
        callback: ``repr`` of the owned callback
        state: Lifecycle state at the time of the error
        thread: Name of the thread the error was observed on
        metadata: Additional key-value pairs
    """

    dispatcher: str | None = None
    callback: str | None = None
    state: str | None = None
    thread: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["dispatcher", "callback", "state", "thread"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class DispatchError(Exception):
    """
    Base exception for all dispatch errors.

    Carries a category, structured context and an optional chained cause.
    Subclasses set ``default_category``.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> DispatchError:
        """
        Add context to this error (fluent API).

        Usage:
            raise InvalidStateError("not paused").with_context(
                dispatcher="watcher-events",
                state="running",
            )
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


class InvalidStateError(DispatchError):
    """A lifecycle hook was invoked in a state that does not allow it.

    Signals misuse of the fork hooks, e.g. resuming a dispatcher that was
    never paused. Propagates to the caller.
    """

    default_category = ErrorCategory.LIFECYCLE


class CallbackError(DispatchError):
    """Captured outcome of one failed delivery attempt.

    Holds the invocation that failed and chains the original exception.
    Logged by the worker, never raised to producers.
    """

    default_category = ErrorCategory.CALLBACK

    def __init__(
        self,
        message: str,
        *,
        invocation: Any = None,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, category=category, context=context, cause=cause)
        self.invocation = invocation

    @classmethod
    def from_exception(cls, exc: BaseException, invocation: Any = None) -> CallbackError:
        return cls(
            f"callback raised {type(exc).__name__}: {exc}",
            invocation=invocation,
            cause=exc,
        )


class ShutdownTimeoutError(DispatchError):
    """The worker did not exit within the shutdown bound. Logged, not raised."""

    default_category = ErrorCategory.LIFECYCLE

    def __init__(
        self,
        timeout: float,
        *,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"timed out after {timeout}s waiting for dispatch thread",
            context=context,
        )
        self.timeout = timeout


# Faults that are allowed to end the worker. Everything else raised by a
# callback is captured as a CallbackError.
UNRECOVERABLE_ERRORS: tuple[type[BaseException], ...] = (MemoryError,)


def is_unrecoverable(error: BaseException) -> bool:
    """Check if an error must be allowed to terminate the worker."""
    if not isinstance(error, Exception):
        return True
    return isinstance(error, UNRECOVERABLE_ERRORS)


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, DispatchError):
        return error.category
    if is_unrecoverable(error):
        return ErrorCategory.INTERNAL
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "DispatchError",
    "InvalidStateError",
    "CallbackError",
    "ShutdownTimeoutError",
    "UNRECOVERABLE_ERRORS",
    "is_unrecoverable",
    "categorize_error",
]

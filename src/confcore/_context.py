"""
Cancellation and deadlines for blocking operations.

Every public operation of the library accepts an optional `ctx` keyword.
A Context carries a cancel flag and an optional deadline; derived contexts
are cancelled together with their parent.

Example:
    >>> from confcore import Context
    >>> ctx = Context.background().with_timeout(5.0)
    >>> response = client.get("platform/slo/v1/slos", ctx=ctx)
    >>>
    >>> # From another thread
    >>> ctx.cancel()
    >>>
    >>> # Scoped: cancelled (and released by its parent) on exit
    >>> with parent.with_timeout(5.0) as ctx:
    ...     client.get("platform/slo/v1/slos", ctx=ctx)
"""

from __future__ import annotations

import threading
import time


# =============================================================================
# Exceptions
# =============================================================================


class ContextError(Exception):
    """Base class for errors raised when a Context ends."""


class ContextCancelledError(ContextError):
    """Raised when an operation observes that its context was cancelled."""

    def __init__(self, message: str = "context cancelled"):
        super().__init__(message)


class DeadlineExceededError(ContextError, TimeoutError):
    """Raised when an operation observes that its context deadline passed."""

    def __init__(self, message: str = "context deadline exceeded"):
        super().__init__(message)


# =============================================================================
# Context
# =============================================================================


class Context:
    """
    Cancellation signal with an optional deadline.

    Instances are thread-safe. Use `Context.background()` for a context that
    never ends, then derive children with `with_cancel()` or `with_timeout()`.

    Args:
        deadline: Absolute deadline as a `time.monotonic()` value, or None.
        parent: Parent context whose cancellation propagates to this one.
    """

    def __init__(self, deadline: float | None = None, parent: Context | None = None):
        if parent is not None and parent._deadline is not None:
            deadline = parent._deadline if deadline is None else min(deadline, parent._deadline)

        self._deadline = deadline
        self._parent = parent
        self._cancelled = threading.Event()
        self._children: list[Context] = []
        self._lock = threading.Lock()

        if parent is not None:
            parent._add_child(self)

    @classmethod
    def background(cls) -> Context:
        """Return a fresh root context that is never cancelled and has no deadline."""
        return cls()

    def with_cancel(self) -> Context:
        """Derive a child context that can be cancelled independently."""
        return Context(parent=self)

    def with_timeout(self, seconds: float) -> Context:
        """Derive a child context whose deadline is `seconds` from now."""
        return Context(deadline=time.monotonic() + seconds, parent=self)

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def cancel(self) -> None:
        """
        Cancel this context and all contexts derived from it.

        A cancelled context is detached from its parent, so callers deriving
        a context per operation should cancel it once the operation is over.
        """
        with self._lock:
            self._cancelled.set()
            children = self._children
            self._children = []
        for child in children:
            child.cancel()

        if self._parent is not None:
            self._parent._remove_child(self)
            self._parent = None

    def __enter__(self) -> Context:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cancel()

    def remaining(self) -> float | None:
        """Seconds until the deadline (never negative), or None without a deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def error(self) -> ContextError | None:
        """Return the reason this context ended, or None while it is still live."""
        if self._cancelled.is_set():
            return ContextCancelledError()
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return DeadlineExceededError()
        return None

    def done(self) -> bool:
        return self.error() is not None

    def raise_if_done(self) -> None:
        err = self.error()
        if err is not None:
            raise err

    def sleep(self, seconds: float) -> None:
        """
        Block for up to `seconds`, waking early if the context ends.

        Raises:
            ContextCancelledError: If the context is cancelled during the sleep.
            DeadlineExceededError: If the deadline passes before `seconds` elapse.
        """
        self.raise_if_done()
        if seconds <= 0:
            return

        remaining = self.remaining()
        if remaining is not None and remaining < seconds:
            self._cancelled.wait(remaining)
            self.raise_if_done()
            # wait() may return a hair before the deadline
            raise DeadlineExceededError()

        if self._cancelled.wait(seconds):
            raise ContextCancelledError()

    def _add_child(self, child: Context) -> None:
        with self._lock:
            if self._cancelled.is_set():
                child._cancelled.set()
                return
            # children past their deadline are never cancelled by their owner
            self._children = [c for c in self._children if not c.done()]
            self._children.append(child)

    def _remove_child(self, child: Context) -> None:
        with self._lock:
            if child in self._children:
                self._children.remove(child)

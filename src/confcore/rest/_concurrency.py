"""Concurrency limiter bounding the number of in-flight requests."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from confcore._context import Context

# How often a context-aware acquire re-checks its context.
_POLL_INTERVAL = 0.05


class ConcurrentRequestLimiter:
    """
    Counting semaphore limiting in-flight requests.

    A limit <= 0 means unlimited: acquire and release do nothing.
    Releasing more slots than were acquired is a silent no-op, so callers
    may release in `finally` blocks without tracking ownership.

    Example:
        >>> limiter = ConcurrentRequestLimiter(max_concurrent=5)
        >>> with limiter.slot():
        ...     do_request()
    """

    def __init__(self, max_concurrent: int):
        self.max_concurrent = max_concurrent
        self._semaphore = threading.BoundedSemaphore(max_concurrent) if max_concurrent > 0 else None

    @property
    def unlimited(self) -> bool:
        return self._semaphore is None

    def acquire(self, ctx: Context | None = None) -> None:
        """
        Block until a slot is available.

        Raises:
            ContextError: If `ctx` ends while waiting. No slot is held then.
        """
        if self._semaphore is None:
            return

        if ctx is None:
            self._semaphore.acquire()
            return

        while True:
            ctx.raise_if_done()
            timeout = _POLL_INTERVAL
            remaining = ctx.remaining()
            if remaining is not None:
                timeout = min(timeout, remaining)
            if self._semaphore.acquire(timeout=timeout):
                return

    def release(self) -> None:
        """Release a slot. Never blocks."""
        if self._semaphore is None:
            return
        try:
            self._semaphore.release()
        except ValueError:
            # released more times than acquired
            pass

    @contextmanager
    def slot(self, ctx: Context | None = None) -> Iterator[None]:
        """Hold one slot for the duration of the `with` block."""
        self.acquire(ctx)
        try:
            yield
        finally:
            self.release()

"""
Clock abstraction used by time-based components.

The rate limiter reads wall-clock time (reset headers are Unix timestamps)
and sleeps through a Clock so tests can substitute a fake one.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
import sys
from typing import TYPE_CHECKING

if sys.version_info >= (3, 12):
    from typing import override
else:
    from typing_extensions import override

if TYPE_CHECKING:
    from confcore._context import Context


class Clock(ABC):
    """Source of the current time and of blocking sleeps."""

    @abstractmethod
    def now(self) -> float:
        """Return the current time as Unix seconds."""
        pass

    @abstractmethod
    def sleep(self, seconds: float, ctx: Context | None = None) -> None:
        """
        Block for the given duration.

        Args:
            seconds: Duration to sleep. Non-positive values return immediately.
            ctx: Optional context. When given, the sleep is interrupted
                as soon as the context is cancelled or its deadline passes.

        Raises:
            ContextError: If the context ends before the duration elapses.
        """
        pass


class RealtimeClock(Clock):
    """Clock backed by the system time."""

    @override
    def now(self) -> float:
        return time.time()

    @override
    def sleep(self, seconds: float, ctx: Context | None = None) -> None:
        if seconds <= 0:
            return
        if ctx is not None:
            ctx.sleep(seconds)
        else:
            time.sleep(seconds)

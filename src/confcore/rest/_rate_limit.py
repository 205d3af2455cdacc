"""
Server-driven rate limiting for the REST transport.

The API advertises its limits through response headers:

- `X-RateLimit-Limit`: sustained requests per second. It installs (or
  retunes) a soft token-bucket limiter that paces outgoing requests.
- `X-RateLimit-Reset` on HTTP 429: Unix timestamp (seconds) until which the
  server refuses requests. It sets a hard deadline; every request waits it
  out before being sent.

Example:
    >>> limiter = RateLimiter()
    >>> limiter.wait()                       # before each request
    >>> response = send_request()
    >>> limiter.update(response.status_code, response.headers)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping

from confcore._clock import Clock, RealtimeClock
from confcore._context import Context, ContextError, DeadlineExceededError

logger = logging.getLogger(__name__)

LIMIT_HEADER = "X-RateLimit-Limit"
RESET_HEADER = "X-RateLimit-Reset"

# Hard-deadline duration used when a 429 carries no parseable reset header.
DEFAULT_TIMEOUT = 0.1


# =============================================================================
# Token Bucket
# =============================================================================


class TokenBucket:
    """
    Token bucket pacing calls to `limit` per second.

    The bucket starts full. With the default burst of 1, consecutive calls
    are spaced 1/limit seconds apart. The limit can be changed at any time.

    Args:
        limit: Tokens refilled per second. Must be > 0.
        burst: Bucket capacity.
        clock: Time source used for refills and sleeps.
    """

    def __init__(self, limit: float, burst: int = 1, clock: Clock | None = None):
        assert limit > 0, "limit must be > 0."
        assert burst >= 1, "burst must be >= 1."

        self._limit = float(limit)
        self.burst = burst
        self._clock = clock or RealtimeClock()

        self._tokens = float(burst)
        self._last_refill = self._clock.now()
        self._lock = threading.Lock()

    @property
    def limit(self) -> float:
        with self._lock:
            return self._limit

    def set_limit(self, limit: float) -> None:
        assert limit > 0, "limit must be > 0."
        with self._lock:
            self._refill()
            self._limit = float(limit)

    def _refill(self) -> None:
        # caller holds the lock
        now = self._clock.now()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self._limit)
        self._last_refill = now

    def wait(self, ctx: Context | None = None) -> None:
        """
        Block until a token is available, then consume it.

        A caller that has to wait reserves the next token under the lock and
        sleeps once until it is due, so concurrent callers queue in order.

        Raises:
            ContextError: If `ctx` ends while waiting, or if the wait for the
                next token would outlast its deadline. No token is consumed.
        """
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return

            wait_time = (1.0 - self._tokens) / self._limit
            if ctx is not None:
                remaining = ctx.remaining()
                if remaining is not None and wait_time > remaining:
                    raise DeadlineExceededError(
                        f"rate limiter wait of {wait_time:.3f}s would exceed context deadline"
                    )

            # Reserve the token now; later callers queue behind it.
            self._tokens -= 1.0

        # Sleep outside the lock so other threads can proceed
        try:
            self._clock.sleep(wait_time, ctx)
        except ContextError:
            with self._lock:
                self._tokens = min(float(self.burst), self._tokens + 1.0)
            raise


# =============================================================================
# Rate Limiter
# =============================================================================


class RateLimiter:
    """
    Combined soft and hard rate limiter fed by response headers.

    Thread-safe: `update()` and `wait()` may be called concurrently from any
    number of threads. State is read and written under a lock; waits happen
    outside of it.

    Args:
        clock: Time source. Defaults to the system clock.
    """

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or RealtimeClock()
        self._lock = threading.Lock()

        self._limiter: TokenBucket | None = None
        self._reset_at: float | None = None
        self._reset_timeout: float | None = None

    @property
    def limiter(self) -> TokenBucket | None:
        with self._lock:
            return self._limiter

    @property
    def reset_at(self) -> float | None:
        with self._lock:
            return self._reset_at

    @property
    def reset_timeout(self) -> float | None:
        with self._lock:
            return self._reset_timeout

    def update(self, status_code: int, headers: Mapping[str, str]) -> None:
        """
        Adjust the limiter from a response.

        Args:
            status_code: HTTP status of the response.
            headers: Response headers (case-insensitive mapping).
        """
        with self._lock:
            self._update_soft_limit(headers)

            if status_code != 429:
                self._reset_at = None
                self._reset_timeout = None
                return

            now = self._clock.now()
            raw_reset = headers.get(RESET_HEADER)
            try:
                reset_at = float(int(raw_reset))  # type: ignore[arg-type]
            except (TypeError, ValueError):
                logger.debug(
                    f"Failed to parse rate limit reset header {RESET_HEADER}={raw_reset!r}, "
                    f"using default timeout of {DEFAULT_TIMEOUT}s."
                )
                self._reset_at = now + DEFAULT_TIMEOUT
                self._reset_timeout = DEFAULT_TIMEOUT
                return

            self._reset_at = reset_at
            self._reset_timeout = reset_at - now
            logger.debug(f"Rate limit reached, requests will wait until {reset_at} ({self._reset_timeout:.3f}s).")

    def _update_soft_limit(self, headers: Mapping[str, str]) -> None:
        # caller holds the lock
        raw_limit = headers.get(LIMIT_HEADER)
        if raw_limit is None:
            return
        try:
            limit = int(raw_limit)
        except ValueError:
            return
        if limit <= 0:
            return

        if self._limiter is None:
            logger.debug(f"Creating rate limiter with limit of {limit} requests per second.")
            self._limiter = TokenBucket(limit, burst=1, clock=self._clock)
        elif self._limiter.limit != limit:
            logger.debug(f"Changing rate limit from {self._limiter.limit:g} to {limit} requests per second.")
            self._limiter.set_limit(limit)

    def wait(self, ctx: Context | None = None) -> None:
        """
        Block until a request may be sent.

        Waits out any active hard deadline, then takes a token from the soft
        limiter if one is installed. An interrupted wait is logged, not
        raised; the caller checks its context afterwards.
        """
        with self._lock:
            reset_at = self._reset_at
            reset_timeout = self._reset_timeout
            limiter = self._limiter

        try:
            if reset_at is not None and reset_timeout is not None and reset_at > self._clock.now():
                logger.debug(f"Rate limit deadline active, waiting {reset_timeout:.3f}s.")
                self._clock.sleep(reset_timeout, ctx)

            if limiter is not None:
                limiter.wait(ctx)
        except ContextError as e:
            logger.error(f"Rate limiter wait interrupted: {e}")

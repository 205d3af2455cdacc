"""
Response-based retry policy for the REST transport.

A retry is decided by a predicate over the received `Response`. Transport
errors (connection failures, timeouts) never reach the predicate and are
never retried. When retries are exhausted, the last response is returned
to the caller unchanged, even if it is a failure.

Example:
    >>> from confcore.rest import RetryOptions, retry_if_too_many_requests
    >>> options = RetryOptions(
    ...     max_retries=3,
    ...     delay_after_retry=0.5,
    ...     should_retry=retry_if_too_many_requests,
    ... )
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from confcore._response import Response
    from confcore.rest._client import RequestOptions

# Predicate deciding whether a received response should be retried.
RetryFunc = Callable[["Response"], bool]

DEFAULT_DELAY_AFTER_RETRY = 0.1


def retry_if_not_success(response: Response) -> bool:
    """Retry any response whose status is outside 2xx."""
    return not response.is_success()


def retry_if_too_many_requests(response: Response) -> bool:
    """Retry only HTTP 429 responses."""
    return response.status_code == 429


def retry_on_failure_except_404(response: Response) -> bool:
    """Retry failures, except HTTP 404 which is treated as final."""
    return not response.is_success() and response.status_code != 404


def should_retry_status(status_code: int) -> bool:
    """Status-level default: retry everything but 2xx and 403 (missing permissions are final)."""
    return not (200 <= status_code <= 299 or status_code == 403)


@dataclass(frozen=True)
class RetryOptions:
    """
    Retry policy applied to every attempt of a call.

    Attributes:
        max_retries: Number of retries after the first attempt (0 disables retries).
        delay_after_retry: Seconds to wait before each retry.
        should_retry: Predicate over the response. None disables retries.
    """

    max_retries: int = 0
    delay_after_retry: float = DEFAULT_DELAY_AFTER_RETRY
    should_retry: RetryFunc | None = None

    def __post_init__(self) -> None:
        assert self.max_retries >= 0, "max_retries must be >= 0."
        assert self.delay_after_retry >= 0, "delay_after_retry must be >= 0."

    def resolve(self, options: RequestOptions | None) -> RetryOptions:
        """
        Return the policy for one call: each per-call value that is set
        replaces the corresponding client-level value.
        """
        if options is None:
            return self

        return RetryOptions(
            max_retries=self.max_retries if options.max_retries is None else options.max_retries,
            delay_after_retry=(
                self.delay_after_retry if options.delay_after_retry is None else options.delay_after_retry
            ),
            should_retry=self.should_retry if options.should_retry is None else options.should_retry,
        )

    def should_retry_after(self, response: Response, attempt: int) -> bool:
        """
        Decide whether to retry after the given zero-based attempt.

        Args:
            response: Response received by the attempt.
            attempt: Zero-based index of the attempt that produced `response`.
        """
        if self.should_retry is None or attempt >= self.max_retries:
            return False
        return self.should_retry(response)

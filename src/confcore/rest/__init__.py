"""
REST transport: rate limiting, concurrency limiting, retries and recording
composed around every HTTP call.

Main Classes:
    - RestClient: Executes GET/POST/PUT/PATCH/DELETE against a base URL.
    - ClientOptions: Transport configuration of a RestClient.
    - RequestOptions: Per-call query parameters, content type and retry overrides.
    - RetryOptions: Response-predicate retry policy.
    - RateLimiter: Header-driven soft and hard rate limiting.
    - ConcurrentRequestLimiter: Bound on in-flight requests.
    - RequestResponseRecorder: Synchronous request/response observer.
"""

from confcore.rest._client import (
    DEFAULT_CONTENT_TYPE,
    ClientOptions,
    ConnectionClosedError,
    RequestOptions,
    RestClient,
    encode_query,
    join_path,
)
from confcore.rest._concurrency import ConcurrentRequestLimiter
from confcore.rest._rate_limit import (
    DEFAULT_TIMEOUT,
    LIMIT_HEADER,
    RESET_HEADER,
    RateLimiter,
    TokenBucket,
)
from confcore.rest._recorder import RecordedEvent, RequestResponseRecorder
from confcore.rest._retry import (
    RetryFunc,
    RetryOptions,
    retry_if_not_success,
    retry_if_too_many_requests,
    retry_on_failure_except_404,
    should_retry_status,
)

__all__ = [
    # Client
    "RestClient",
    "ClientOptions",
    "RequestOptions",
    "ConnectionClosedError",
    "DEFAULT_CONTENT_TYPE",
    "join_path",
    "encode_query",
    # Rate limiting
    "RateLimiter",
    "TokenBucket",
    "LIMIT_HEADER",
    "RESET_HEADER",
    "DEFAULT_TIMEOUT",
    # Concurrency
    "ConcurrentRequestLimiter",
    # Retry
    "RetryOptions",
    "RetryFunc",
    "retry_if_not_success",
    "retry_if_too_many_requests",
    "retry_on_failure_except_404",
    "should_retry_status",
    # Recording
    "RequestResponseRecorder",
    "RecordedEvent",
]

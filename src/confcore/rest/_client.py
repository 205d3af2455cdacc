"""
REST transport client.

`RestClient` executes HTTP calls against one base URL and composes the
transport concerns around each attempt, in this order:

1. Wait for the rate limiter (hard deadline, then soft limit).
2. Acquire a concurrency slot (released when the attempt ends).
3. Record the request, send it, buffer the body, record the response.
4. Feed the response headers back into the rate limiter.
5. Evaluate the retry policy; sleep and repeat, or return the response.

Every call returns a `Response`, including 4xx and 5xx ones. Only transport
failures raise.

Example:
    >>> from confcore.rest import ClientOptions, RestClient, RetryOptions
    >>> client = RestClient(
    ...     "https://abc123.apps.example.com",
    ...     options=ClientOptions(
    ...         concurrent_request_limit=5,
    ...         rate_limiter=True,
    ...         retry_options=RetryOptions(max_retries=3, should_retry=retry_if_not_success),
    ...     ),
    ... )
    >>> response = client.get("platform/slo/v1/slos")
    >>> response.is_success()
    True
"""

from __future__ import annotations

import http.client
import logging
import threading
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from urllib.parse import quote, urlencode, urlsplit

import requests
from requests.structures import CaseInsensitiveDict

from confcore._context import Context
from confcore._http import HttpClient, SessionHttpClient
from confcore._response import RequestInfo, Response
from confcore.rest._concurrency import ConcurrentRequestLimiter
from confcore.rest._rate_limit import RateLimiter
from confcore.rest._recorder import RequestResponseRecorder
from confcore.rest._retry import RetryFunc, RetryOptions

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/json"

QueryParams = Mapping[str, str | Sequence[str]]


# =============================================================================
# Options
# =============================================================================


class ConnectionClosedError(requests.ConnectionError):
    """Raised when the server closes the connection before sending a response."""


@dataclass(frozen=True)
class ClientOptions:
    """
    Transport configuration of a RestClient.

    Attributes:
        concurrent_request_limit: Maximum in-flight requests (<= 0 means unlimited).
        timeout: Per-request timeout in seconds, or None for no timeout.
        retry_options: Client-level retry policy. None disables retries.
        recorder: Observer receiving request and response events.
        rate_limiter: Install a header-driven rate limiter using the system clock.
    """

    concurrent_request_limit: int = 0
    timeout: float | None = None
    retry_options: RetryOptions | None = None
    recorder: RequestResponseRecorder | None = None
    rate_limiter: bool = False


@dataclass(frozen=True)
class RequestOptions:
    """
    Per-call options.

    Retry fields that are set replace the client-level value for this call;
    a per-call `should_retry` is used instead of, never in addition to, the
    client predicate.

    Attributes:
        query_params: Query parameters; a value may be a string or a sequence of strings.
        content_type: Content-Type of the body (defaults to application/json).
        resource_path: Overrides the path of a ResourceClient for this call.
        max_retries: Retries after the first attempt.
        delay_after_retry: Seconds to wait before each retry.
        should_retry: Predicate deciding whether a response is retried.
    """

    query_params: QueryParams | None = None
    content_type: str | None = None
    resource_path: str | None = None
    max_retries: int | None = None
    delay_after_retry: float | None = None
    should_retry: RetryFunc | None = None


# =============================================================================
# URL and Query Helpers
# =============================================================================


def join_path(base: str, *segments: str) -> str:
    """
    Join URL path segments onto a base URL with single slashes.

    Empty segments are skipped. Segments are percent-escaped, so an id
    containing `?`, `#` or `%` stays part of the path; `/` and `:` are kept.
    The base is used as given.

    Example:
        >>> join_path("https://host/e/", "/platform/slo/v1/slos", "my-id")
        'https://host/e/platform/slo/v1/slos/my-id'
    """
    parts = [base.rstrip("/")]
    parts.extend(quote(s.strip("/"), safe="/:") for s in segments if s and s.strip("/"))
    return "/".join(parts)


def _resolve_url(base: str, path: str) -> str:
    # paths built by the resource clients are already escaped
    base = base.rstrip("/")
    path = path.strip("/")
    return f"{base}/{path}" if path else base


def encode_query(params: QueryParams) -> str:
    """Encode query parameters sorted by key, keeping the order of repeated values."""
    pairs = []
    for key in sorted(params):
        value = params[key]
        pairs.append((key, [value] if isinstance(value, str) else list(value)))
    return urlencode(pairs, doseq=True)


def _is_connection_reset(err: BaseException) -> bool:
    """Look through the exception chain for a connection closed by the peer."""
    seen: set[int] = set()
    pending: list[BaseException] = [err]
    while pending:
        current = pending.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))

        if isinstance(current, (ConnectionResetError, http.client.RemoteDisconnected)):
            return True

        pending.extend(arg for arg in current.args if isinstance(arg, BaseException))
        for linked in (current.__cause__, current.__context__):
            if linked is not None:
                pending.append(linked)
    return False


# =============================================================================
# Client
# =============================================================================


class RestClient:
    """
    HTTP transport bound to a base URL.

    Thread-safe: one instance can be shared by any number of threads.

    Args:
        base_url: URL every request path is joined onto.
        http_client: Executor sending prepared requests. Defaults to an
            unauthenticated SessionHttpClient.
        options: Transport configuration.

    Attributes:
        http_client: The executor in use.
        retry_options: Client-level retry policy.
        concurrent_request_limiter: Limiter bounding in-flight requests.
        recorder: Request/response observer, or None.
        rate_limiter: Header-driven rate limiter, or None.
        timeout: Per-request timeout in seconds, or None.
    """

    def __init__(
        self,
        base_url: str,
        http_client: HttpClient | None = None,
        options: ClientOptions | None = None,
    ):
        assert base_url, "base_url cannot be empty."
        options = options or ClientOptions()

        self._base_url = base_url
        self.http_client = http_client or SessionHttpClient()
        self.timeout = options.timeout
        self.retry_options = options.retry_options or RetryOptions()
        self.concurrent_request_limiter = ConcurrentRequestLimiter(options.concurrent_request_limit)
        self.recorder = options.recorder
        self.rate_limiter: RateLimiter | None = RateLimiter() if options.rate_limiter else None

        self._headers: dict[str, str] = {}
        self._headers_lock = threading.Lock()

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_header(self, key: str, value: str) -> None:
        """Set a header sent with every request. Applied after the Content-Type default."""
        with self._headers_lock:
            self._headers[key] = value

    def get(self, path: str, options: RequestOptions | None = None, *, ctx: Context | None = None) -> Response:
        return self.request("GET", path, options=options, ctx=ctx)

    def post(
        self,
        path: str,
        body: bytes | str | None = None,
        options: RequestOptions | None = None,
        *,
        ctx: Context | None = None,
    ) -> Response:
        return self.request("POST", path, body, options, ctx=ctx)

    def put(
        self,
        path: str,
        body: bytes | str | None = None,
        options: RequestOptions | None = None,
        *,
        ctx: Context | None = None,
    ) -> Response:
        return self.request("PUT", path, body, options, ctx=ctx)

    def patch(
        self,
        path: str,
        body: bytes | str | None = None,
        options: RequestOptions | None = None,
        *,
        ctx: Context | None = None,
    ) -> Response:
        return self.request("PATCH", path, body, options, ctx=ctx)

    def delete(self, path: str, options: RequestOptions | None = None, *, ctx: Context | None = None) -> Response:
        return self.request("DELETE", path, options=options, ctx=ctx)

    def request(
        self,
        method: str,
        path: str,
        body: bytes | str | None = None,
        options: RequestOptions | None = None,
        *,
        ctx: Context | None = None,
    ) -> Response:
        """
        Execute a request, retrying according to the resolved retry policy.

        Args:
            method: HTTP method.
            path: Path joined onto the base URL.
            body: Request body; strings are UTF-8 encoded.
            options: Per-call options.
            ctx: Cancellation context. Background if None.

        Returns:
            The response of the last attempt, whatever its status.

        Raises:
            ConnectionClosedError: If the server closed the connection without answering.
            requests.RequestException: On any other transport failure (never retried).
            ContextError: If `ctx` is cancelled or its deadline passes.
        """
        ctx = ctx or Context.background()
        options = options or RequestOptions()
        policy = self.retry_options.resolve(options)

        url = _resolve_url(self._base_url, path)
        if options.query_params:
            url = f"{url}?{encode_query(options.query_params)}"
        data = body.encode("utf-8") if isinstance(body, str) else body

        attempt = 0
        while True:
            response = self._execute(method, url, data, options, ctx)
            if not policy.should_retry_after(response, attempt):
                return response

            attempt += 1
            logger.debug(
                f"Retrying failed request {method} {url} (HTTP {response.status_code}) "
                f"after {policy.delay_after_retry * 1000:.0f} ms delay... (try {attempt}/{policy.max_retries})"
            )
            ctx.sleep(policy.delay_after_retry)

    def _execute(
        self,
        method: str,
        url: str,
        data: bytes | None,
        options: RequestOptions,
        ctx: Context,
    ) -> Response:
        """Run a single attempt."""
        ctx.raise_if_done()
        if self.rate_limiter is not None:
            self.rate_limiter.wait(ctx)
            ctx.raise_if_done()

        with self.concurrent_request_limiter.slot(ctx):
            prepared = self._prepare(method, url, data, options)
            request_id = str(uuid.uuid4())
            if self.recorder is not None:
                self.recorder.record_request(request_id, prepared)

            try:
                raw = self.http_client.send(prepared, timeout=self._timeout_for(ctx))
            except Exception as e:
                if self.recorder is not None:
                    self.recorder.record_response(request_id, error=e)
                if not isinstance(e, requests.RequestException):
                    raise
                translated = self._translate_error(e, url, ctx)
                if translated is e:
                    raise
                raise translated from e

            response = self._read_response(raw, method, url)

        if self.recorder is not None:
            self.recorder.record_response(request_id, response=response)
        if self.rate_limiter is not None:
            self.rate_limiter.update(response.status_code, response.headers)

        return response

    def _prepare(
        self,
        method: str,
        url: str,
        data: bytes | None,
        options: RequestOptions,
    ) -> requests.PreparedRequest:
        headers = {"Content-Type": options.content_type or DEFAULT_CONTENT_TYPE}
        with self._headers_lock:
            headers.update(self._headers)
        return requests.Request(method=method, url=url, data=data, headers=headers).prepare()

    def _timeout_for(self, ctx: Context) -> float | None:
        remaining = ctx.remaining()
        if remaining is None:
            return self.timeout
        if self.timeout is None:
            return remaining
        return min(self.timeout, remaining)

    @staticmethod
    def _read_response(raw: requests.Response, method: str, url: str) -> Response:
        """Buffer the body and close the raw response exactly once."""
        try:
            data = raw.content or b""
        except (requests.RequestException, OSError) as e:
            logger.error(
                f"Failed to read response body of {method} {url} (HTTP {raw.status_code}): {e}",
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            data = b""
        finally:
            raw.close()

        return Response(
            status_code=raw.status_code,
            data=data,
            headers=CaseInsensitiveDict(raw.headers),
            request=RequestInfo(method=method, url=url),
        )

    @staticmethod
    def _translate_error(err: requests.RequestException, url: str, ctx: Context) -> Exception:
        ctx_err = ctx.error()
        if ctx_err is not None:
            return ctx_err
        if _is_connection_reset(err):
            host = urlsplit(url).netloc
            return ConnectionClosedError(
                f"unable to connect to host '{host}', connection closed unexpectedly: {err}",
                request=err.request,
            )
        return err

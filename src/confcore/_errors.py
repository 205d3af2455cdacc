"""
Error types raised by the resource clients.

Transport-level failures (connection errors, timeouts, context errors)
surface as their own exception types; the classes below describe failures
at the API level: a non-success HTTP status, invalid arguments detected
before any call, or a response that lacks required data.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from confcore._response import RequestInfo


class APIError(Exception):
    """
    Raised when the API answers with a non-success HTTP status.

    Attributes:
        status_code: HTTP status code of the response.
        body: Raw response body.
        request: Method and URL of the request that produced the response.

    Example:
        >>> try:
        ...     buckets.get("my-bucket")
        ... except APIError as e:
        ...     if e.is_4xx_error():
        ...         print(f"Client error: {e.status_code}")
    """

    def __init__(self, status_code: int, body: bytes, request: RequestInfo):
        self.status_code = status_code
        self.body = body
        self.request = request
        text = body.decode("utf-8", errors="replace")
        super().__init__(
            f"API request HTTP {request.method} {request.url} failed with status code {status_code}: {text}"
        )

    def is_4xx_error(self) -> bool:
        return 400 <= self.status_code <= 499

    def is_5xx_error(self) -> bool:
        return 500 <= self.status_code <= 599


def is_not_found_error(err: BaseException) -> bool:
    """Return True if `err` is an APIError carrying HTTP 404."""
    return isinstance(err, APIError) and err.status_code == 404


class ValidationError(ValueError):
    """Raised synchronously when an argument fails validation, before any network call."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"validation failed for field {field}: {reason}.")


class ClientRuntimeError(RuntimeError):
    """Raised when a response is well-formed HTTP but misses data the client needs."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        reason: str,
        cause: Exception | None = None,
    ):
        self.resource = resource
        self.identifier = identifier
        self.reason = reason
        self.cause = cause
        message = f"{resource} with id {identifier}: {reason}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class ClientError(Exception):
    """
    Raised when a resource operation fails below the HTTP layer.

    Wraps the transport error (connection failure, timeout, context error)
    together with the operation that was being attempted.
    """

    def __init__(
        self,
        operation: str,
        resource: str,
        identifier: str,
        cause: Exception,
        reason: str | None = None,
    ):
        self.operation = operation
        self.resource = resource
        self.identifier = identifier
        self.cause = cause
        self.reason = reason
        detail = f"{reason}: {cause}" if reason else str(cause)
        if identifier:
            message = f"failed to {operation} {resource} with id {identifier}: {detail}"
        else:
            message = f"failed to {operation} {resource}: {detail}"
        super().__init__(message)
        self.__cause__ = cause

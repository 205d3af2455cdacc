"""
Request/response recording for observability.

A recorder receives, synchronously and in order, one event when a request
is about to be sent and one event with either its response or its error.
Both events of an attempt share the same `id`.

Example:
    >>> events = []
    >>> recorder = RequestResponseRecorder(events.append)
    >>> client = RestClient(base_url, options=ClientOptions(recorder=recorder))
"""

from __future__ import annotations

import datetime
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import requests

    from confcore._response import Response


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


@dataclass(frozen=True)
class RecordedEvent:
    """
    One observed step of an HTTP attempt.

    Exactly one of `request`, `response` or `error` is set.

    Attributes:
        id: Correlation id shared by the request event and its outcome event.
        timestamp: UTC time the event was recorded.
        request: Copy of the prepared request (request events only).
        response: Normalized response with a re-readable body.
        error: Transport error raised by the attempt.
    """

    id: str
    timestamp: datetime.datetime = field(default_factory=_utc_now)
    request: requests.PreparedRequest | None = None
    response: Response | None = None
    error: Exception | None = None

    def is_request(self) -> bool:
        return self.request is not None

    def is_response(self) -> bool:
        return self.response is not None


class RequestResponseRecorder:
    """
    Forwards request and response events to a callback.

    The callback runs on the thread issuing the request, before the
    transport proceeds, so a slow callback slows down requests.

    Args:
        callback: Called with each `RecordedEvent`.
    """

    def __init__(self, callback: Callable[[RecordedEvent], None]):
        assert callback is not None, "callback cannot be None."
        self.callback = callback

    def record_request(self, id: str, request: requests.PreparedRequest) -> None:
        self.callback(RecordedEvent(id=id, request=request.copy()))

    def record_response(
        self,
        id: str,
        response: Response | None = None,
        error: Exception | None = None,
    ) -> None:
        self.callback(RecordedEvent(id=id, response=response, error=error))

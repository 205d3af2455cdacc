"""
Normalized HTTP responses.

The transport never hands raw `requests.Response` objects to callers: every
call ends in a `Response` holding the status, headers and fully buffered
body. Resource clients then use `process_response()` to turn non-success
statuses into `APIError`.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from requests.structures import CaseInsensitiveDict

from confcore._errors import APIError

# Transforms applied to a successful body, in order (e.g. extracting a nested array).
ResponseTransformer = Callable[[bytes], bytes]


# =============================================================================
# Response Types
# =============================================================================


@dataclass(frozen=True)
class RequestInfo:
    """Method and URL of the request a response belongs to."""

    method: str = ""
    url: str = ""


@dataclass(frozen=True)
class Response:
    """
    Normalized response returned by every transport operation.

    Non-success statuses are returned as-is; call `raise_for_status()` or
    pass the response through `process_response()` to get an `APIError`.

    Attributes:
        status_code: HTTP status code.
        data: Full response body (empty when the body could not be read).
        headers: Case-insensitive response headers.
        request: Method and URL of the originating request.
    """

    status_code: int
    data: bytes = b""
    headers: Mapping[str, str] = field(default_factory=CaseInsensitiveDict)
    request: RequestInfo = field(default_factory=RequestInfo)

    def is_success(self) -> bool:
        return 200 <= self.status_code <= 299

    def is_4xx_error(self) -> bool:
        return 400 <= self.status_code <= 499

    def is_5xx_error(self) -> bool:
        return 500 <= self.status_code <= 599

    def json(self) -> Any:
        """Decode the body as JSON."""
        return json.loads(self.data)

    def raise_for_status(self) -> Response:
        """Return self for 2xx statuses, raise `APIError` otherwise."""
        if not self.is_success():
            raise APIError(self.status_code, self.data, self.request)
        return self


@dataclass(frozen=True)
class ListResponse(Response):
    """One page of a list call; `objects` holds the raw JSON of each element."""

    objects: list[bytes] = field(default_factory=list)


class PagedListResponse(list[ListResponse]):
    """All pages collected by a paginated list call."""

    def all(self) -> list[bytes]:
        """Return the objects of every page, in page order."""
        return [obj for page in self for obj in page.objects]


# =============================================================================
# Processing
# =============================================================================


def process_response(response: Response, *transformers: ResponseTransformer) -> Response:
    """
    Turn a transport response into a successful response or an APIError.

    Args:
        response: The transport response.
        *transformers: Functions applied in order to the body of a
            successful response.

    Returns:
        A copy of the response with transformed data.

    Raises:
        APIError: If the status is not 2xx, or a transformer fails (the error
            then carries the status and the body as transformed so far).
    """
    response.raise_for_status()

    data = response.data
    for transform in transformers:
        try:
            data = transform(data)
        except (ValueError, KeyError, TypeError) as e:
            raise APIError(response.status_code, data, response.request) from e

    return replace(response, data=data)


def decode_json(response: Response) -> Any:
    """Decode the body of a response as JSON."""
    return response.json()


def decode_json_objects(response: ListResponse) -> list[Any]:
    """Decode each object of a single list page."""
    return [json.loads(obj) for obj in response.objects]


def decode_paginated_json_objects(responses: Iterable[ListResponse]) -> list[Any]:
    """Decode the objects of every page of a paginated list."""
    return [json.loads(obj) for page in responses for obj in page.objects]


def extract_field(name: str) -> ResponseTransformer:
    """Build a transformer that replaces a JSON object body with one of its fields."""

    def _transform(data: bytes) -> bytes:
        return json.dumps(json.loads(data)[name]).encode("utf-8")

    return _transform

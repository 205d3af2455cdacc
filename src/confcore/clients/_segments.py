"""Grail filter-segments client."""

from __future__ import annotations

import json
import logging

from confcore._context import Context
from confcore._errors import ClientRuntimeError
from confcore._response import Response, extract_field, process_response
from confcore.clients._utils import (
    OPTIMISTIC_LOCKING_VERSION,
    dump_json,
    load_json_object,
    require,
    transport_errors,
)
from confcore.rest import RequestOptions, RestClient, join_path, retry_if_too_many_requests

logger = logging.getLogger(__name__)

ENDPOINT_PATH = "platform/storage/filter-segments/v1/filter-segments"

_RETRY_ON_429 = RequestOptions(should_retry=retry_if_too_many_requests)


class SegmentClient:
    """
    Client for filter segments.

    Every call retries on HTTP 429. Non-success statuses raise APIError.
    """

    def __init__(self, rest_client: RestClient):
        assert rest_client is not None, "rest_client cannot be None."
        self._client = rest_client

    def list(self, *, ctx: Context | None = None) -> Response:
        """
        List segments with a minimal set of fields.

        Returns:
            A response whose data is the JSON array of segments.
        """
        options = RequestOptions(
            query_params={"add-fields": ["EXTERNALID"]},
            should_retry=retry_if_too_many_requests,
        )
        with transport_errors("list", "segments"):
            response = self._client.get(f"{ENDPOINT_PATH}:lean", options, ctx=ctx)
        return process_response(response, extract_field("filterSegments"))

    def get(self, id: str, *, ctx: Context | None = None) -> Response:
        require(id, "id")
        options = RequestOptions(
            query_params={"add-fields": ["INCLUDES", "VARIABLES", "EXTERNALID", "RESOURCECONTEXT"]},
            should_retry=retry_if_too_many_requests,
        )
        with transport_errors("get", "segments resource", id):
            response = self._client.get(join_path(ENDPOINT_PATH, id), options, ctx=ctx)
        return process_response(response)

    def create(self, data: bytes, *, ctx: Context | None = None) -> Response:
        with transport_errors("create", "segments resource"):
            response = self._client.post(ENDPOINT_PATH, data, _RETRY_ON_429, ctx=ctx)
        return process_response(response)

    def update(self, id: str, data: bytes, *, ctx: Context | None = None) -> Response:
        """
        Update a segment.

        The existing segment provides the optimistic locking version and,
        when `data` has none, the owner. The `uid` is always set to `id`.

        Raises:
            ClientRuntimeError: If the existing segment has no version or owner.
        """
        require(id, "id")
        payload = load_json_object(data)

        existing = self.get(id, ctx=ctx)
        try:
            current = json.loads(existing.data)
        except ValueError as e:
            raise ClientRuntimeError("segments resource", id, "failed to unmarshal JSON response", cause=e) from e

        version = current.get("version")
        owner = current.get("owner")
        if not version or not owner:
            raise ClientRuntimeError("segments resource", id, "existing segment has no version or owner")

        payload.setdefault("owner", owner)
        payload["uid"] = id

        options = RequestOptions(
            query_params={OPTIMISTIC_LOCKING_VERSION: str(version)},
            should_retry=retry_if_too_many_requests,
        )
        with transport_errors("update", "segments resource", id):
            response = self._client.put(join_path(ENDPOINT_PATH, id), dump_json(payload), options, ctx=ctx)
        return process_response(response)

    def delete(self, id: str, *, ctx: Context | None = None) -> Response:
        require(id, "id")
        with transport_errors("delete", "segments resource", id):
            response = self._client.delete(join_path(ENDPOINT_PATH, id), _RETRY_ON_429, ctx=ctx)
        return process_response(response)

    def get_all(self, *, ctx: Context | None = None) -> list[Response]:
        """Fetch every segment with full details, one request per segment."""
        listed = self.list(ctx=ctx)
        try:
            uids = [segment["uid"] for segment in json.loads(listed.data)]
        except (ValueError, KeyError, TypeError) as e:
            raise ClientRuntimeError("segments", "", "failed to unmarshal JSON response", cause=e) from e

        logger.debug(f"Fetching {len(uids)} segments")
        return [self.get(uid, ctx=ctx) for uid in uids]

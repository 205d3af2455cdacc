"""Service-level objectives client."""

from __future__ import annotations

import json

from confcore._context import Context
from confcore._errors import APIError, ClientRuntimeError
from confcore._response import ListResponse, PagedListResponse, Response, process_response
from confcore.clients._utils import OPTIMISTIC_LOCKING_VERSION, dump_json, require, transport_errors
from confcore.rest import RequestOptions, RestClient, join_path, retry_if_too_many_requests

ENDPOINT_PATH = "platform/slo/v1/slos"

_RETRY_ON_429 = RequestOptions(should_retry=retry_if_too_many_requests)


class SloClient:
    """
    Client for SLOs.

    Every call retries on HTTP 429. Non-success statuses raise APIError.
    """

    def __init__(self, rest_client: RestClient):
        assert rest_client is not None, "rest_client cannot be None."
        self._client = rest_client

    def list(self, *, ctx: Context | None = None) -> PagedListResponse:
        """List all SLOs, one ListResponse per page."""
        pages = PagedListResponse()
        page_key = ""

        while True:
            query = {"page-key": page_key} if page_key else None
            options = RequestOptions(query_params=query, should_retry=retry_if_too_many_requests)
            with transport_errors("list", "slo resource"):
                response = self._client.get(ENDPOINT_PATH, options, ctx=ctx)
            response = process_response(response)

            try:
                body = json.loads(response.data)
                objects = [dump_json(slo) for slo in body.get("slos") or []]
            except (ValueError, AttributeError) as e:
                raise APIError(response.status_code, response.data, response.request) from e

            pages.append(
                ListResponse(
                    status_code=response.status_code,
                    data=response.data,
                    headers=response.headers,
                    request=response.request,
                    objects=objects,
                )
            )

            page_key = body.get("nextPageKey") or ""
            if not page_key:
                return pages

    def get(self, id: str, *, ctx: Context | None = None) -> Response:
        require(id, "id")
        with transport_errors("get", "slo resource", id):
            response = self._client.get(join_path(ENDPOINT_PATH, id), _RETRY_ON_429, ctx=ctx)
        return process_response(response)

    def create(self, data: bytes, *, ctx: Context | None = None) -> Response:
        with transport_errors("create", "slo resource"):
            response = self._client.post(ENDPOINT_PATH, data, _RETRY_ON_429, ctx=ctx)
        return process_response(response)

    def update(self, id: str, data: bytes, *, ctx: Context | None = None) -> Response:
        require(id, "id")
        version = self._optimistic_locking_version(id, ctx)
        options = RequestOptions(
            query_params={OPTIMISTIC_LOCKING_VERSION: version},
            should_retry=retry_if_too_many_requests,
        )
        with transport_errors("update", "slo resource", id):
            response = self._client.put(join_path(ENDPOINT_PATH, id), data, options, ctx=ctx)
        return process_response(response)

    def delete(self, id: str, *, ctx: Context | None = None) -> Response:
        require(id, "id")
        version = self._optimistic_locking_version(id, ctx)
        options = RequestOptions(
            query_params={OPTIMISTIC_LOCKING_VERSION: version},
            should_retry=retry_if_too_many_requests,
        )
        with transport_errors("delete", "slo resource", id):
            response = self._client.delete(join_path(ENDPOINT_PATH, id), options, ctx=ctx)
        return process_response(response)

    def _optimistic_locking_version(self, id: str, ctx: Context | None) -> str:
        existing = self.get(id, ctx=ctx)
        try:
            version = json.loads(existing.data).get("version")
        except (ValueError, AttributeError) as e:
            raise ClientRuntimeError("slo resource", id, "failed to unmarshal JSON response", cause=e) from e
        if not version:
            raise ClientRuntimeError("slo resource", id, "existing SLO has no version")
        return str(version)

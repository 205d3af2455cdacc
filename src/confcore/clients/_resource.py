"""Generic CRUD client mapping operations onto a resource path."""

from __future__ import annotations

from dataclasses import replace

from confcore._context import Context
from confcore._response import Response
from confcore.clients._utils import require, transport_errors
from confcore.rest import RequestOptions, RestClient, join_path


class ResourceClient:
    """
    CRUD operations on `<resource_path>[/<id>]`.

    Unlike the typed clients, responses are returned unprocessed: a 404 comes
    back as a Response, not as an APIError. `RequestOptions.resource_path`
    replaces the client's path for a single call.

    Example:
        >>> automations = ResourceClient(rest_client, "platform/automation/v1/workflows")
        >>> response = automations.get("my-workflow-id")
        >>> response.status_code
        200
    """

    def __init__(self, rest_client: RestClient, resource_path: str):
        assert rest_client is not None, "rest_client cannot be None."
        self._client = rest_client
        self.resource_path = resource_path

    def get(self, id: str, options: RequestOptions | None = None, *, ctx: Context | None = None) -> Response:
        require(id, "id")
        path, options = self._resolve(options, id)
        with transport_errors("get", "object", id):
            return self._client.get(path, options, ctx=ctx)

    def list(self, options: RequestOptions | None = None, *, ctx: Context | None = None) -> Response:
        path, options = self._resolve(options)
        with transport_errors("list", "objects"):
            return self._client.get(path, options, ctx=ctx)

    def create(self, data: bytes, options: RequestOptions | None = None, *, ctx: Context | None = None) -> Response:
        path, options = self._resolve(options)
        with transport_errors("create", "object"):
            return self._client.post(path, data, options, ctx=ctx)

    def update(
        self,
        id: str,
        data: bytes,
        options: RequestOptions | None = None,
        *,
        ctx: Context | None = None,
    ) -> Response:
        require(id, "id")
        path, options = self._resolve(options, id)
        with transport_errors("update", "object", id):
            return self._client.put(path, data, options, ctx=ctx)

    def patch(
        self,
        id: str,
        data: bytes,
        options: RequestOptions | None = None,
        *,
        ctx: Context | None = None,
    ) -> Response:
        require(id, "id")
        path, options = self._resolve(options, id)
        with transport_errors("patch", "object", id):
            return self._client.patch(path, data, options, ctx=ctx)

    def delete(self, id: str, options: RequestOptions | None = None, *, ctx: Context | None = None) -> Response:
        require(id, "id")
        path, options = self._resolve(options, id)
        with transport_errors("delete", "object", id):
            return self._client.delete(path, options, ctx=ctx)

    def _resolve(self, options: RequestOptions | None, id: str = "") -> tuple[str, RequestOptions]:
        options = options or RequestOptions()
        resource_path = options.resource_path or self.resource_path
        return join_path(resource_path, id), replace(options, resource_path=None)

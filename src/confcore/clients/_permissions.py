"""
Settings-object permissions client.

Permissions are addressed as
`.../settings/objects/<object id>/permissions[/<accessor type>/<accessor id>]`;
the "all-users" accessor has no accessor id.
"""

from __future__ import annotations

from confcore._context import Context
from confcore._errors import ClientError, ValidationError
from confcore._response import Response, process_response
from confcore.clients._utils import transport_errors
from confcore.rest import RequestOptions, RestClient, join_path, retry_if_too_many_requests

ENDPOINT_PATH = "platform/classic/environment-api/v2/settings/objects"
PERMISSION_RESOURCE_PATH = "permissions"
ALL_USERS_ACCESSOR_TYPE = "all-users"

_RETRY_ON_429 = RequestOptions(should_retry=retry_if_too_many_requests)


class PermissionsError(ClientError):
    """Raised when a permissions operation fails below the HTTP layer."""

    def __str__(self) -> str:
        return f"failed to {self.operation} permission(s): {self.cause}"


def _require_object_id(object_id: str) -> None:
    if not object_id:
        raise ValidationError("objectID", "objectID cannot be empty")


def _require_accessor(accessor_type: str, accessor_id: str) -> None:
    if not accessor_type:
        raise ValidationError("accessorType", "accessorType cannot be empty")
    if not accessor_id:
        raise ValidationError("accessorID", "accessorID cannot be empty")


class PermissionClient:
    """
    Client for permissions of settings objects.

    Every call retries on HTTP 429. Empty identifiers raise ValidationError,
    non-success statuses raise APIError, transport failures raise PermissionsError.
    """

    def __init__(self, rest_client: RestClient):
        assert rest_client is not None, "rest_client cannot be None."
        self._client = rest_client

    def get_all_accessors(self, object_id: str, *, ctx: Context | None = None) -> Response:
        return self._get(object_id, "", "", ctx)

    def get_all_users_accessor(self, object_id: str, *, ctx: Context | None = None) -> Response:
        return self._get(object_id, ALL_USERS_ACCESSOR_TYPE, "", ctx)

    def get_accessor(
        self,
        object_id: str,
        accessor_type: str,
        accessor_id: str,
        *,
        ctx: Context | None = None,
    ) -> Response:
        _require_accessor(accessor_type, accessor_id)
        return self._get(object_id, accessor_type, accessor_id, ctx)

    def create(self, object_id: str, data: bytes, *, ctx: Context | None = None) -> Response:
        _require_object_id(object_id)
        path = join_path(ENDPOINT_PATH, object_id, PERMISSION_RESOURCE_PATH)
        with transport_errors("create", "permission", object_id, error_type=PermissionsError):
            response = self._client.post(path, data, _RETRY_ON_429, ctx=ctx)
        return process_response(response)

    def update_all_users_accessor(self, object_id: str, data: bytes, *, ctx: Context | None = None) -> Response:
        return self._update(object_id, ALL_USERS_ACCESSOR_TYPE, "", data, ctx)

    def update_accessor(
        self,
        object_id: str,
        accessor_type: str,
        accessor_id: str,
        data: bytes,
        *,
        ctx: Context | None = None,
    ) -> Response:
        _require_accessor(accessor_type, accessor_id)
        return self._update(object_id, accessor_type, accessor_id, data, ctx)

    def delete_all_users_accessor(self, object_id: str, *, ctx: Context | None = None) -> Response:
        return self._delete(object_id, ALL_USERS_ACCESSOR_TYPE, "", ctx)

    def delete_accessor(
        self,
        object_id: str,
        accessor_type: str,
        accessor_id: str,
        *,
        ctx: Context | None = None,
    ) -> Response:
        _require_accessor(accessor_type, accessor_id)
        return self._delete(object_id, accessor_type, accessor_id, ctx)

    def _get(self, object_id: str, accessor_type: str, accessor_id: str, ctx: Context | None) -> Response:
        _require_object_id(object_id)
        path = join_path(ENDPOINT_PATH, object_id, PERMISSION_RESOURCE_PATH, accessor_type, accessor_id)
        with transport_errors("get", "permission", object_id, error_type=PermissionsError):
            response = self._client.get(path, _RETRY_ON_429, ctx=ctx)
        return process_response(response)

    def _update(
        self,
        object_id: str,
        accessor_type: str,
        accessor_id: str,
        data: bytes,
        ctx: Context | None,
    ) -> Response:
        _require_object_id(object_id)
        path = join_path(ENDPOINT_PATH, object_id, PERMISSION_RESOURCE_PATH, accessor_type, accessor_id)
        with transport_errors("update", "permission", object_id, error_type=PermissionsError):
            response = self._client.put(path, data, _RETRY_ON_429, ctx=ctx)
        return process_response(response)

    def _delete(self, object_id: str, accessor_type: str, accessor_id: str, ctx: Context | None) -> Response:
        _require_object_id(object_id)
        path = join_path(ENDPOINT_PATH, object_id, PERMISSION_RESOURCE_PATH, accessor_type, accessor_id)
        with transport_errors("delete", "permission", object_id, error_type=PermissionsError):
            response = self._client.delete(path, _RETRY_ON_429, ctx=ctx)
        return process_response(response)

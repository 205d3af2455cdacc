"""
Automation client (workflows, business calendars, scheduling rules).

Workflow requests are first sent with `adminAccess=true`, so objects owned
by other users are visible. When the caller lacks the admin permission the
API answers 403 and the request is repeated without it.

Example:
    >>> automation = factory.automation_client()
    >>> pages = automation.list(AutomationResource.WORKFLOWS)
    >>> automation.upsert(AutomationResource.WORKFLOWS, "my-workflow-id", payload)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from enum import StrEnum

from confcore._context import Context
from confcore._errors import APIError, is_not_found_error
from confcore._response import ListResponse, PagedListResponse, Response, process_response
from confcore.clients._utils import dump_json, load_json_object, require, transport_errors
from confcore.rest import RequestOptions, RestClient, RetryFunc, join_path, retry_on_failure_except_404

logger = logging.getLogger(__name__)

AUTOMATION_BASE_PATH = "platform/automation/v1"
ADMIN_ACCESS_PARAM = "adminAccess"


class AutomationResource(StrEnum):
    """Kinds of automation objects; the value is the path below the API root."""

    WORKFLOWS = "workflows"
    BUSINESS_CALENDARS = "business-calendars"
    SCHEDULING_RULES = "scheduling-rules"

    @property
    def path(self) -> str:
        return join_path(AUTOMATION_BASE_PATH, self.value)


# =============================================================================
# Admin Access
# =============================================================================


def _admin_access_retry(should_retry: RetryFunc | None) -> RetryFunc:
    # a 403 is the signal to drop admin access, never a reason to retry
    def retry(response: Response) -> bool:
        if response.status_code == 403 or should_retry is None:
            return False
        return should_retry(response)

    return retry


Send = Callable[[RequestOptions], Response]


# =============================================================================
# Client
# =============================================================================


class AutomationClient:
    """
    Client for automation objects.

    Non-success statuses raise APIError; transport failures raise ClientError.

    Args:
        rest_client: Transport bound to the platform URL.
    """

    def __init__(self, rest_client: RestClient):
        assert rest_client is not None, "rest_client cannot be None."
        self._client = rest_client

    def get(self, resource: AutomationResource, id: str, *, ctx: Context | None = None) -> Response:
        require(id, "id")
        path = join_path(resource.path, id)
        with transport_errors("get", f"automation resource of type {resource}", id):
            response = self._with_admin_access(resource, lambda options: self._client.get(path, options, ctx=ctx))
        return process_response(response)

    def list(self, resource: AutomationResource, *, ctx: Context | None = None) -> PagedListResponse:
        """
        List every object of a kind, following offset pagination.

        Pages are requested until as many objects as the reported `count`
        were retrieved, or a page comes back empty.

        Raises:
            APIError: On a non-success status or a malformed page.
        """
        pages = PagedListResponse()
        admin_access = resource is AutomationResource.WORKFLOWS
        retrieved = 0
        count = 1

        while retrieved < count:
            query = {"offset": str(retrieved)}
            if admin_access:
                query[ADMIN_ACCESS_PARAM] = "true"

            with transport_errors("list", f"automation resources of type {resource}"):
                response = self._client.get(resource.path, RequestOptions(query_params=query), ctx=ctx)

            if admin_access and response.status_code == 403:
                logger.debug(f"Admin access to {resource} was rejected (HTTP 403), listing without it.")
                admin_access = False
                continue

            response = process_response(response)
            try:
                body = json.loads(response.data)
                count = int(body.get("count", 0))
                objects = [dump_json(obj) for obj in body.get("results") or []]
            except (ValueError, AttributeError, TypeError) as e:
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
            if not objects:
                break
            retrieved += len(objects)

        return pages

    def create(self, resource: AutomationResource, data: bytes, *, ctx: Context | None = None) -> Response:
        with transport_errors("create", f"automation resource of type {resource}"):
            response = self._with_admin_access(
                resource, lambda options: self._client.post(resource.path, data, options, ctx=ctx)
            )
        return process_response(response)

    def update(self, resource: AutomationResource, id: str, data: bytes, *, ctx: Context | None = None) -> Response:
        """Replace an object. An `id` field in `data` is dropped; the path decides."""
        require(id, "id")
        payload = load_json_object(data)
        payload.pop("id", None)

        path = join_path(resource.path, id)
        body = dump_json(payload)
        with transport_errors("update", f"automation resource of type {resource}", id):
            response = self._with_admin_access(
                resource, lambda options: self._client.put(path, body, options, ctx=ctx)
            )
        return process_response(response)

    def upsert(self, resource: AutomationResource, id: str, data: bytes, *, ctx: Context | None = None) -> Response:
        """Update the object, or create it under `id` when it does not exist yet."""
        try:
            return self.update(resource, id, data, ctx=ctx)
        except APIError as e:
            if not is_not_found_error(e):
                raise
            logger.debug(f"Automation resource {resource} with id {id} not found, creating it.")

        payload = load_json_object(data)
        payload["id"] = id
        return self.create(resource, dump_json(payload), ctx=ctx)

    def delete(self, resource: AutomationResource, id: str, *, ctx: Context | None = None) -> Response:
        require(id, "id")
        path = join_path(resource.path, id)
        with transport_errors("delete", f"automation resource of type {resource}", id):
            response = self._with_admin_access(
                resource,
                lambda options: self._client.delete(path, options, ctx=ctx),
                should_retry=retry_on_failure_except_404,
            )
        return process_response(response)

    def _with_admin_access(
        self,
        resource: AutomationResource,
        send: Send,
        should_retry: RetryFunc | None = None,
    ) -> Response:
        """Send a workflow request with admin access first, then without it on HTTP 403."""
        if resource is AutomationResource.WORKFLOWS:
            options = RequestOptions(
                query_params={ADMIN_ACCESS_PARAM: "true"},
                should_retry=_admin_access_retry(should_retry or self._client.retry_options.should_retry),
            )
            response = send(options)
            if response.status_code != 403:
                return response
            logger.debug(f"Admin access to {resource} was rejected (HTTP 403), retrying without it.")

        return send(RequestOptions(should_retry=should_retry))

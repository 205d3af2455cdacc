"""
Grail bucket definitions client.

Example:
    >>> buckets = factory.bucket_client()
    >>> buckets.upsert("my_logs_bucket", b'{"table": "logs", "displayName": "My logs", "retentionDays": 35}')
    >>> await_active_or_not_found(buckets, "my_logs_bucket", max_duration=60, duration_between_tries=1)
    True
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from confcore._context import Context, ContextError
from confcore._errors import APIError, ClientError, ClientRuntimeError, is_not_found_error
from confcore._response import ListResponse, PagedListResponse, Response, process_response
from confcore.clients._utils import (
    OPTIMISTIC_LOCKING_VERSION,
    dump_json,
    load_json_object,
    require,
    transport_errors,
)
from confcore.rest import RequestOptions, RestClient, join_path, retry_if_too_many_requests

logger = logging.getLogger(__name__)

ENDPOINT_PATH = "platform/storage/management/v1/bucket-definitions"
STATUS_ACTIVE = "active"

_RETRY_ON_429 = RequestOptions(should_retry=retry_if_too_many_requests)

# Fields owned by the server; always taken from the existing bucket on update.
_SERVER_FIELDS = ("bucketName", "version", "status")


# =============================================================================
# Client
# =============================================================================


class BucketClient:
    """
    Client for bucket definitions.

    Every call retries on HTTP 429 and bypasses caches (`Cache-Control: no-cache`).
    Non-success statuses raise APIError; transport failures raise ClientError.

    Args:
        rest_client: Transport bound to the platform URL. Its headers are modified.
    """

    def __init__(self, rest_client: RestClient):
        assert rest_client is not None, "rest_client cannot be None."
        rest_client.set_header("Cache-Control", "no-cache")
        self._client = rest_client

    def get(self, bucket_name: str, *, ctx: Context | None = None) -> Response:
        require(bucket_name, "bucketName")
        with transport_errors("get", "bucket", bucket_name):
            response = self._client.get(join_path(ENDPOINT_PATH, bucket_name), _RETRY_ON_429, ctx=ctx)
        return process_response(response)

    def list(self, *, ctx: Context | None = None) -> PagedListResponse:
        """Return every bucket definition as a single page."""
        with transport_errors("list", "buckets"):
            response = self._client.get(ENDPOINT_PATH, _RETRY_ON_429, ctx=ctx)
        response = process_response(response)

        try:
            buckets = json.loads(response.data).get("buckets") or []
            objects = [dump_json(bucket) for bucket in buckets]
        except (ValueError, AttributeError, TypeError) as e:
            logger.error(f"Failed to unmarshal JSON response of {response.request.url}: {e}")
            raise ClientRuntimeError("buckets", "", "failed to unmarshal JSON response", cause=e) from e

        page = ListResponse(
            status_code=response.status_code,
            data=response.data,
            headers=response.headers,
            request=response.request,
            objects=objects,
        )
        return PagedListResponse([page])

    def create(self, bucket_name: str, data: bytes, *, ctx: Context | None = None) -> Response:
        """Create a bucket; `bucketName` in `data` is replaced by `bucket_name`."""
        require(bucket_name, "bucketName")
        payload = load_json_object(data)
        payload["bucketName"] = bucket_name

        with transport_errors("create", "bucket", bucket_name):
            response = self._client.post(ENDPOINT_PATH, dump_json(payload), _RETRY_ON_429, ctx=ctx)
        return process_response(response)

    def update(self, bucket_name: str, data: bytes, *, ctx: Context | None = None) -> Response:
        """
        Update an existing bucket definition.

        The current definition is fetched first. If it already matches `data`
        (ignoring server-owned fields), nothing is sent and a bare 200
        response is returned.
        """
        require(bucket_name, "bucketName")
        payload = load_json_object(data)

        current = _decode_bucket(self.get(bucket_name, ctx=ctx), bucket_name)

        if _buckets_equal(current, payload):
            logger.info(f"Configuration unmodified, no need to update bucket '{bucket_name}'")
            return Response(status_code=200)

        for key in _SERVER_FIELDS:
            payload[key] = current.get(key)

        options = RequestOptions(
            query_params={OPTIMISTIC_LOCKING_VERSION: str(current.get("version", 0))},
            should_retry=retry_if_too_many_requests,
        )
        with transport_errors("update", "bucket", bucket_name):
            response = self._client.put(join_path(ENDPOINT_PATH, bucket_name), dump_json(payload), options, ctx=ctx)
        return process_response(response)

    def upsert(self, bucket_name: str, data: bytes, *, ctx: Context | None = None) -> Response:
        """Create the bucket, or update it when it already exists (HTTP 409 on create)."""
        require(bucket_name, "bucketName")
        try:
            response = self.create(bucket_name, data, ctx=ctx)
            logger.info(f"Created bucket '{bucket_name}'")
            return response
        except APIError as e:
            if e.status_code != 409:
                raise
            logger.debug(
                f"Failed to create bucket '{bucket_name}'. Trying to update existing bucket definition. "
                f"API Error (HTTP {e.status_code}): {e.body.decode('utf-8', errors='replace')}"
            )

        return self.update(bucket_name, data, ctx=ctx)

    def delete(self, bucket_name: str, *, ctx: Context | None = None) -> Response:
        require(bucket_name, "bucketName")
        with transport_errors("delete", "bucket", bucket_name):
            response = self._client.delete(join_path(ENDPOINT_PATH, bucket_name), _RETRY_ON_429, ctx=ctx)
        return process_response(response)


# =============================================================================
# Helpers
# =============================================================================


def _decode_bucket(response: Response, bucket_name: str) -> dict[str, Any]:
    try:
        value = json.loads(response.data)
    except ValueError as e:
        raise ClientRuntimeError("bucket", bucket_name, "failed to unmarshal JSON response", cause=e) from e
    if not isinstance(value, dict):
        raise ClientRuntimeError("bucket", bucket_name, "response is not a JSON object")
    return value


def _buckets_equal(current: dict[str, Any], desired: dict[str, Any]) -> bool:
    desired = {**desired, **{key: current.get(key) for key in _SERVER_FIELDS}}
    current = {**current, **{key: current.get(key) for key in _SERVER_FIELDS}}
    return current == desired


# =============================================================================
# Awaiting
# =============================================================================


class BucketGetter(Protocol):
    def get(self, bucket_name: str, *, ctx: Context | None = None) -> Response: ...


def await_active_or_not_found(
    client: BucketGetter,
    bucket_name: str,
    max_duration: float,
    duration_between_tries: float,
    *,
    ctx: Context | None = None,
) -> bool:
    """
    Poll a bucket until it is active or gone.

    Args:
        client: Anything with a BucketClient-compatible `get`.
        bucket_name: Bucket to poll.
        max_duration: Maximum seconds to keep polling.
        duration_between_tries: Seconds between polls.
        ctx: Parent context.

    Returns:
        True once the bucket reports status "active", False if it does not exist.

    Raises:
        TimeoutError: If the bucket is not stable within `max_duration`.
        ClientError: On transport failures other than the polling deadline.
    """
    poll_ctx = (ctx or Context.background()).with_timeout(max_duration)
    try:
        while True:
            if poll_ctx.done():
                raise TimeoutError(f"context canceled before bucket '{bucket_name}' became stable")

            try:
                response = client.get(bucket_name, ctx=poll_ctx)
            except APIError as e:
                if is_not_found_error(e):
                    return False
                logger.debug(f"Bucket '{bucket_name}' not available yet (HTTP {e.status_code}), retrying.")
            except ClientError as e:
                if poll_ctx.done():
                    raise TimeoutError(f"context canceled before bucket '{bucket_name}' became stable") from e
                raise
            else:
                status = _decode_bucket(response, bucket_name).get("status")
                if status == STATUS_ACTIVE:
                    return True

            logger.debug(f"Waiting for bucket '{bucket_name}' to become stable")
            try:
                poll_ctx.sleep(duration_between_tries)
            except ContextError:
                continue
    finally:
        poll_ctx.cancel()

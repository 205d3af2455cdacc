"""OpenPipeline configurations client."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from confcore._context import Context
from confcore._errors import APIError, ClientRuntimeError
from confcore._response import Response, process_response
from confcore.clients._utils import dump_json, load_json_object, require, transport_errors
from confcore.rest import RestClient, join_path

logger = logging.getLogger(__name__)

ENDPOINT_PATH = "platform/openpipeline/v1/configurations"
MAX_UPDATE_ATTEMPTS = 10

# fields the server requires to match the stored configuration
_LOCKING_FIELDS = ("version", "updateToken")


@dataclass(frozen=True)
class OpenPipelineConfiguration:
    """Entry of the configuration listing."""

    id: str
    editable: bool = False


class OpenPipelineClient:
    """
    Client for OpenPipeline configurations.

    Configurations always exist on the server, so there is no create or
    delete; an update replaces the stored configuration.
    """

    def __init__(self, rest_client: RestClient):
        assert rest_client is not None, "rest_client cannot be None."
        self._client = rest_client

    def get(self, id: str, *, ctx: Context | None = None) -> Response:
        require(id, "id")
        with transport_errors("get", "openpipeline configuration", id):
            response = self._client.get(join_path(ENDPOINT_PATH, id), ctx=ctx)
        return process_response(response)

    def list(self, *, ctx: Context | None = None) -> list[OpenPipelineConfiguration]:
        with transport_errors("list", "openpipeline configurations"):
            response = self._client.get(ENDPOINT_PATH, ctx=ctx)
        response = process_response(response)

        try:
            return [
                OpenPipelineConfiguration(id=entry["id"], editable=bool(entry.get("editable", False)))
                for entry in json.loads(response.data)
            ]
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            raise ClientRuntimeError(
                "openpipeline configurations", "", "failed to unmarshal JSON response", cause=e
            ) from e

    def get_all(self, *, ctx: Context | None = None) -> list[Response]:
        """Fetch every configuration, one GET per listed id."""
        return [self.get(config.id, ctx=ctx) for config in self.list(ctx=ctx)]

    def update(self, id: str, data: bytes, *, ctx: Context | None = None) -> Response:
        """
        Replace a configuration.

        The stored `version` and `updateToken` are copied into the payload.
        A concurrent modification (HTTP 409) refetches them and tries again,
        up to MAX_UPDATE_ATTEMPTS times.

        Raises:
            APIError: On a non-success status, or 409 on the last attempt.
        """
        require(id, "id")
        payload = load_json_object(data)
        for attempt in range(1, MAX_UPDATE_ATTEMPTS):
            try:
                return self._update(id, payload, ctx)
            except APIError as e:
                if e.status_code != 409:
                    raise
                logger.debug(
                    f"Update of openpipeline configuration {id} conflicted "
                    f"(attempt {attempt}/{MAX_UPDATE_ATTEMPTS}), retrying."
                )
        return self._update(id, payload, ctx)

    def _update(self, id: str, payload: dict, ctx: Context | None) -> Response:
        existing = self.get(id, ctx=ctx)
        try:
            remote = json.loads(existing.data)
            locking = {name: remote[name] for name in _LOCKING_FIELDS if name in remote.keys()}
        except (ValueError, AttributeError) as e:
            raise ClientRuntimeError(
                "openpipeline configuration", id, "failed to unmarshal JSON response", cause=e
            ) from e

        with transport_errors("update", "openpipeline configuration", id):
            response = self._client.put(join_path(ENDPOINT_PATH, id), dump_json({**payload, **locking}), ctx=ctx)
        return process_response(response)

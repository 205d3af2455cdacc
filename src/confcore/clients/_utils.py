"""
Internal helpers shared by the resource clients.

Not part of the public API.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import requests

from confcore._auth import AuthenticationError
from confcore._context import ContextError
from confcore._errors import ClientError, ValidationError

# Query parameter carrying the version an update or delete expects to replace.
OPTIMISTIC_LOCKING_VERSION = "optimistic-locking-version"

# Failures below the HTTP layer, wrapped into ClientError by resource operations.
TRANSPORT_ERRORS = (requests.RequestException, ContextError, AuthenticationError)


@contextmanager
def transport_errors(
    operation: str,
    resource: str,
    identifier: str = "",
    error_type: type[ClientError] = ClientError,
) -> Iterator[None]:
    """Wrap transport failures raised inside the block into `error_type`."""
    try:
        yield
    except TRANSPORT_ERRORS as e:
        raise error_type(operation, resource, identifier, cause=e) from e


def require(value: str, field: str) -> None:
    """Raise ValidationError if a required identifier is empty."""
    if not value:
        raise ValidationError(field, "must be non-empty")


def load_json_object(data: bytes, field: str = "data") -> dict[str, Any]:
    """Decode a JSON object payload, raising ValidationError when it is not one."""
    try:
        value = json.loads(data)
    except ValueError as e:
        raise ValidationError(field, f"invalid JSON: {e}") from e
    if not isinstance(value, dict):
        raise ValidationError(field, "must be a JSON object")
    return value


def dump_json(value: Any) -> bytes:
    return json.dumps(value).encode("utf-8")

"""
Documents client (dashboards, notebooks, launchpads).

The documents API exchanges multipart/form-data: documents are written as
form fields plus a `content` file, and read back as a `metadata` part and a
`content` part.

Example:
    >>> documents = factory.document_client()
    >>> created = documents.create("My dashboard", False, "ext-id", content, DocumentType.DASHBOARD)
    >>> documents.get(created.json()["id"]).metadata.version
    1
"""

from __future__ import annotations

import email.parser
import email.policy
import json
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import urllib3

from confcore._context import Context
from confcore._errors import APIError, ClientError, ClientRuntimeError, is_not_found_error
from confcore._response import Response, extract_field, process_response
from confcore.clients._utils import OPTIMISTIC_LOCKING_VERSION, require, transport_errors
from confcore.rest import RequestOptions, RestClient, join_path, retry_on_failure_except_404

logger = logging.getLogger(__name__)

DOCUMENT_RESOURCE_PATH = "/platform/document/v1/documents"
TRASH_RESOURCE_PATH = "/platform/document/v1/trash/documents"

# A freshly created document may not be visible to PATCH yet.
PATCH_MAX_RETRIES = 5
PATCH_RETRY_DELAY = 0.2


# =============================================================================
# Models
# =============================================================================


class DocumentType(StrEnum):
    DASHBOARD = "dashboard"
    NOTEBOOK = "notebook"
    LAUNCHPAD = "launchpad"


@dataclass(frozen=True)
class Document:
    """A document as written to the API."""

    kind: str
    name: str
    external_id: str = ""
    public: bool = False
    content: bytes | None = None

    def encode(self) -> tuple[bytes, str]:
        """
        Encode as multipart/form-data.

        Returns:
            The body and its Content-Type (including the boundary).
        """
        fields: list[tuple[str, Any]] = [
            ("type", self.kind),
            ("name", self.name),
            ("isPrivate", "false" if self.public else "true"),
        ]
        if self.external_id:
            fields.append(("externalId", self.external_id))
        if self.content is not None:
            fields.append(("content", (self.name, self.content, "application/octet-stream")))

        return urllib3.encode_multipart_formdata(fields)


@dataclass(frozen=True)
class Metadata:
    """Server-side metadata of a document."""

    id: str = ""
    external_id: str = ""
    actor: str = ""
    owner: str = ""
    name: str = ""
    type: str = ""
    version: int = 0
    is_private: bool = False
    origin_app_id: str | None = None
    origin_extension_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Metadata:
        return cls(
            id=data.get("id", ""),
            external_id=data.get("externalId", ""),
            actor=data.get("actor", ""),
            owner=data.get("owner", ""),
            name=data.get("name", ""),
            type=data.get("type", ""),
            version=int(data.get("version", 0)),
            is_private=bool(data.get("isPrivate", False)),
            origin_app_id=data.get("originAppId"),
            origin_extension_id=data.get("originExtensionId"),
        )

    @classmethod
    def from_json(cls, data: bytes) -> Metadata:
        """
        Raises:
            ValueError: If `data` is not a JSON object.
        """
        value = json.loads(data)
        if not isinstance(value, dict):
            raise ValueError("metadata must be a JSON object")
        return cls.from_dict(value)


@dataclass(frozen=True)
class DocumentResponse(Response):
    """Response of a single document: `data` is the content, `metadata` its metadata."""

    metadata: Metadata = field(default_factory=Metadata)


@dataclass(frozen=True)
class DocumentListResponse(Response):
    """All documents matched by a list call, with metadata only."""

    responses: list[DocumentResponse] = field(default_factory=list)


# =============================================================================
# Multipart
# =============================================================================


def parse_multipart(data: bytes, content_type: str) -> dict[str, bytes]:
    """
    Split a multipart body into its parts, keyed by form field name.

    Raises:
        ValueError: If the content type is not multipart.
    """
    if not content_type.lower().startswith("multipart/"):
        raise ValueError("http response is not multipart")

    raw = f"Content-Type: {content_type}\r\n\r\n".encode("latin-1") + data
    message = email.parser.BytesParser(policy=email.policy.HTTP).parsebytes(raw)

    parts: dict[str, bytes] = {}
    for part in message.iter_parts():
        name = part.get_param("name", header="content-disposition")
        if name:
            parts[str(name)] = part.get_payload(decode=True) or b""
    return parts


# =============================================================================
# Client
# =============================================================================


class DocumentClient:
    """
    Client for documents.

    Args:
        rest_client: Transport bound to the platform URL.
    """

    def __init__(self, rest_client: RestClient):
        assert rest_client is not None, "rest_client cannot be None."
        self._client = rest_client

    def get(self, id: str, *, ctx: Context | None = None) -> DocumentResponse:
        """
        Fetch a document with its metadata and content.

        Raises:
            ValidationError: If `id` is empty.
            APIError: On a non-success status.
            ClientRuntimeError: If the response lacks the metadata or content part.
        """
        require(id, "id")
        with transport_errors("get", "document", id):
            response = self._client.get(join_path(DOCUMENT_RESOURCE_PATH, id), ctx=ctx)
        response = process_response(response)

        try:
            parts = parse_multipart(response.data, response.headers.get("Content-Type", ""))
        except ValueError as e:
            raise ClientRuntimeError("document", id, "failed to read the content of the document", cause=e) from e

        if "metadata" not in parts:
            raise ClientRuntimeError("document", id, "metadata not present")
        if "content" not in parts:
            raise ClientRuntimeError("document", id, "content not present")

        try:
            metadata = Metadata.from_json(parts["metadata"])
        except ValueError as e:
            raise ClientRuntimeError("document", id, "unable to unmarshal metadata", cause=e) from e

        return DocumentResponse(
            status_code=response.status_code,
            data=parts["content"],
            headers=response.headers,
            request=response.request,
            metadata=metadata,
        )

    def list(self, filter: str, *, ctx: Context | None = None) -> DocumentListResponse:
        """List the metadata of all documents matching `filter`, following every page."""
        documents: list[DocumentResponse] = []
        page_key = ""
        response: Response | None = None

        while True:
            query = {"filter": filter}
            if page_key:
                query["page-key"] = page_key

            with transport_errors("list", "documents"):
                response = self._client.get(DOCUMENT_RESOURCE_PATH, RequestOptions(query_params=query), ctx=ctx)
            response = process_response(response)

            try:
                body = response.json()
                page = [Metadata.from_dict(item) for item in body.get("documents") or []]
            except (ValueError, AttributeError, TypeError) as e:
                raise ClientRuntimeError("documents", "", "failed to unmarshal JSON response", cause=e) from e

            documents.extend(
                DocumentResponse(status_code=response.status_code, request=response.request, metadata=md)
                for md in page
            )
            page_key = body.get("nextPageKey") or ""
            if not page_key:
                break

        return DocumentListResponse(
            status_code=response.status_code,
            headers=response.headers,
            request=response.request,
            responses=documents,
        )

    def create(
        self,
        name: str,
        is_private: bool,
        external_id: str,
        data: bytes,
        document_type: str,
        *,
        ctx: Context | None = None,
    ) -> Response:
        """
        Create a document.

        The document is posted, then patched with the same payload. If the
        patch fails for any reason but a 404, the new document is deleted
        again before the error is raised.

        Returns:
            The patch response, whose data is the document metadata JSON.
        """
        document = Document(
            kind=document_type,
            name=name,
            external_id=external_id,
            public=not is_private,
            content=data,
        )
        body, content_type = document.encode()

        with transport_errors("create", "document"):
            response = self._client.post(
                DOCUMENT_RESOURCE_PATH, body, RequestOptions(content_type=content_type), ctx=ctx
            )
        response = process_response(response)

        try:
            metadata = Metadata.from_json(response.data)
        except ValueError as e:
            raise ClientRuntimeError("document", name, "unable to unmarshal metadata", cause=e) from e

        try:
            return self._patch_with_retry(metadata.id, metadata.version, document, ctx)
        except (APIError, ClientError) as e:
            if not is_not_found_error(e):
                logger.debug(f"Patching new document {metadata.id} failed, deleting it: {e}")
                try:
                    self._delete(metadata.id, metadata.version, ctx)
                except (APIError, ClientError) as cleanup_error:
                    e.add_note(f"cleanup of document {metadata.id} failed: {cleanup_error}")
            raise

    def update(
        self,
        id: str,
        name: str,
        is_private: bool,
        data: bytes,
        document_type: str,
        *,
        ctx: Context | None = None,
    ) -> Response:
        """Replace name, visibility and content of an existing document."""
        require(id, "id")
        metadata = self.get(id, ctx=ctx).metadata
        document = Document(kind=document_type, name=name, public=not is_private, content=data)
        return self._patch(id, metadata.version, document, ctx)

    def delete(self, id: str, *, ctx: Context | None = None) -> Response:
        """Delete a document and remove it from the trash."""
        require(id, "id")
        metadata = self.get(id, ctx=ctx).metadata
        return self._delete(id, metadata.version, ctx)

    def _patch_with_retry(self, id: str, version: int, document: Document, ctx: Context | None) -> Response:
        last_error: APIError | None = None
        for _ in range(PATCH_MAX_RETRIES):
            try:
                return self._patch(id, version, document, ctx)
            except APIError as e:
                if not is_not_found_error(e):
                    raise
                last_error = e
                (ctx or Context.background()).sleep(PATCH_RETRY_DELAY)

        assert last_error is not None
        raise last_error

    def _patch(self, id: str, version: int, document: Document, ctx: Context | None) -> Response:
        require(id, "id")
        body, content_type = document.encode()
        options = RequestOptions(
            content_type=content_type,
            query_params={OPTIMISTIC_LOCKING_VERSION: str(version)},
        )
        with transport_errors("update", "document", id):
            response = self._client.patch(join_path(DOCUMENT_RESOURCE_PATH, id), body, options, ctx=ctx)
        return process_response(response, extract_field("documentMetadata"))

    def _delete(self, id: str, version: int, ctx: Context | None) -> Response:
        options = RequestOptions(
            query_params={OPTIMISTIC_LOCKING_VERSION: str(version)},
            should_retry=retry_on_failure_except_404,
        )
        with transport_errors("delete", "document", id):
            response = self._client.delete(join_path(DOCUMENT_RESOURCE_PATH, id), options, ctx=ctx)
        process_response(response)

        with transport_errors("trash", "document", id):
            response = self._client.delete(join_path(TRASH_RESOURCE_PATH, id), ctx=ctx)
        return process_response(response)

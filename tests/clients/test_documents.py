"""Tests for DocumentClient and multipart handling."""

import json

import pytest
import urllib3

from confcore import APIError, ClientRuntimeError, RestClient, ValidationError
from confcore.clients import Document, DocumentClient, DocumentType, Metadata
from confcore.clients._documents import parse_multipart

BASE_URL = "https://env.example.com"
DOCUMENTS_URL = f"{BASE_URL}/platform/document/v1/documents"
TRASH_URL = f"{BASE_URL}/platform/document/v1/trash/documents"

METADATA = {
    "id": "doc-1",
    "externalId": "ext-1",
    "actor": "user-1",
    "owner": "user-1",
    "name": "My dashboard",
    "type": "dashboard",
    "version": 4,
    "isPrivate": True,
    "originAppId": None,
}


@pytest.fixture
def documents(http_client):
    return DocumentClient(RestClient(BASE_URL, http_client=http_client))


@pytest.fixture(autouse=True)
def no_patch_delay(monkeypatch):
    monkeypatch.setattr("confcore.clients._documents.PATCH_RETRY_DELAY", 0)


def multipart_response(raw_response, metadata=METADATA, content=b'{"tiles": []}'):
    fields = []
    if metadata is not None:
        fields.append(("metadata", ("metadata", json.dumps(metadata).encode(), "application/json")))
    if content is not None:
        fields.append(("content", ("content", content, "application/json")))
    body, content_type = urllib3.encode_multipart_formdata(fields)
    return raw_response(200, body, {"Content-Type": content_type})


def metadata_response(raw_response, status=200, **overrides):
    return raw_response(status, json.dumps({**METADATA, **overrides}).encode())


def patch_response(raw_response, **overrides):
    return raw_response(200, json.dumps({"documentMetadata": {**METADATA, **overrides}}).encode())


def sent_parts(request):
    return parse_multipart(request.body, request.headers["Content-Type"])


# =============================================================================
# Multipart Tests
# =============================================================================


class TestDocumentEncoding:
    """Tests for Document.encode() and parse_multipart()."""

    def test_encode_private_document(self):
        """Every field is encoded as a form part, content included."""
        body, content_type = Document(
            kind=DocumentType.NOTEBOOK, name="Notes", external_id="ext", content=b"{}"
        ).encode()

        parts = parse_multipart(body, content_type)

        assert content_type.startswith("multipart/form-data; boundary=")
        assert parts == {
            "type": b"notebook",
            "name": b"Notes",
            "isPrivate": b"true",
            "externalId": b"ext",
            "content": b"{}",
        }

    def test_encode_public_document_without_external_id(self):
        """An empty external id is left out of the form."""
        body, content_type = Document(kind="dashboard", name="Board", public=True, content=b"x").encode()

        parts = parse_multipart(body, content_type)

        assert parts["isPrivate"] == b"false"
        assert "externalId" not in parts

    def test_parse_rejects_non_multipart(self):
        """parse_multipart() needs a multipart content type."""
        with pytest.raises(ValueError, match="not multipart"):
            parse_multipart(b"{}", "application/json")


class TestMetadata:
    """Tests for Metadata."""

    def test_from_json(self):
        """Metadata maps the camelCase API fields."""
        metadata = Metadata.from_json(json.dumps(METADATA).encode())

        assert metadata.id == "doc-1"
        assert metadata.external_id == "ext-1"
        assert metadata.version == 4
        assert metadata.is_private
        assert metadata.origin_app_id is None

    def test_from_json_rejects_non_object(self):
        """Metadata must be a JSON object."""
        with pytest.raises(ValueError):
            Metadata.from_json(b"[]")


# =============================================================================
# DocumentClient Tests
# =============================================================================


class TestDocumentClientGet:
    """Tests for DocumentClient.get()."""

    def test_get_splits_metadata_and_content(self, documents, http_client, raw_response):
        """get() returns the metadata part and the raw content."""
        http_client.script(multipart_response(raw_response))

        response = documents.get("doc-1")

        assert response.data == b'{"tiles": []}'
        assert response.metadata.id == "doc-1"
        assert response.metadata.version == 4
        assert http_client.requests[0].url == f"{DOCUMENTS_URL}/doc-1"

    def test_get_requires_id(self, documents):
        """An empty id is rejected."""
        with pytest.raises(ValidationError):
            documents.get("")

    def test_missing_content_part(self, documents, http_client, raw_response):
        """A response without content is a ClientRuntimeError."""
        http_client.script(multipart_response(raw_response, content=None))

        with pytest.raises(ClientRuntimeError, match="content not present"):
            documents.get("doc-1")

    def test_missing_metadata_part(self, documents, http_client, raw_response):
        """A response without metadata is a ClientRuntimeError."""
        http_client.script(multipart_response(raw_response, metadata=None))

        with pytest.raises(ClientRuntimeError, match="metadata not present"):
            documents.get("doc-1")

    def test_non_multipart_response(self, documents, http_client, raw_response):
        """A JSON body where multipart is expected is a ClientRuntimeError."""
        http_client.script(raw_response(200, b"{}", {"Content-Type": "application/json"}))

        with pytest.raises(ClientRuntimeError, match="failed to read the content"):
            documents.get("doc-1")

    def test_not_found(self, documents, http_client, raw_response):
        """A 404 is raised as APIError."""
        http_client.script(raw_response(404))

        with pytest.raises(APIError):
            documents.get("doc-1")


class TestDocumentClientList:
    """Tests for DocumentClient.list()."""

    def test_list_follows_pages(self, documents, http_client, raw_response):
        """Listing follows nextPageKey across pages."""
        http_client.script(
            raw_response(200, json.dumps({"documents": [METADATA], "nextPageKey": "page-2"}).encode()),
            raw_response(200, json.dumps({"documents": [{**METADATA, "id": "doc-2"}]}).encode()),
        )

        response = documents.list("type=='dashboard'")

        assert [r.metadata.id for r in response.responses] == ["doc-1", "doc-2"]
        assert http_client.requests[0].url == f"{DOCUMENTS_URL}?filter=type%3D%3D%27dashboard%27"
        assert http_client.requests[1].url == f"{DOCUMENTS_URL}?filter=type%3D%3D%27dashboard%27&page-key=page-2"

    def test_empty_next_page_key_stops(self, documents, http_client, raw_response):
        """An empty nextPageKey ends the listing."""
        http_client.script(raw_response(200, json.dumps({"documents": [], "nextPageKey": ""}).encode()))

        response = documents.list("")

        assert response.responses == []
        assert len(http_client.requests) == 1


class TestDocumentClientCreate:
    """Tests for DocumentClient.create()."""

    def test_create_posts_then_patches(self, documents, http_client, raw_response):
        """create() posts the metadata, then patches in the content."""
        http_client.script(metadata_response(raw_response, 201, version=1), patch_response(raw_response, version=2))

        response = documents.create("My dashboard", True, "ext-1", b'{"tiles": []}', DocumentType.DASHBOARD)

        post, patch = http_client.requests
        assert post.method == "POST"
        assert post.url == DOCUMENTS_URL
        assert sent_parts(post)["externalId"] == b"ext-1"
        assert sent_parts(post)["isPrivate"] == b"true"
        assert patch.method == "PATCH"
        assert patch.url == f"{DOCUMENTS_URL}/doc-1?optimistic-locking-version=1"
        assert sent_parts(patch)["content"] == b'{"tiles": []}'
        assert json.loads(response.data)["version"] == 2

    def test_patch_not_found_is_retried(self, documents, http_client, raw_response):
        """A 404 right after creation is retried."""
        http_client.script(
            metadata_response(raw_response, 201, version=1),
            raw_response(404),
            patch_response(raw_response, version=2),
        )

        documents.create("My dashboard", False, "", b"{}", DocumentType.DASHBOARD)

        assert [r.method for r in http_client.requests] == ["POST", "PATCH", "PATCH"]

    def test_patch_keeps_failing_with_not_found(self, documents, http_client, raw_response):
        """The PATCH gives up after five attempts."""
        http_client.script(metadata_response(raw_response, 201, version=1), raw_response(404))

        with pytest.raises(APIError) as exc_info:
            documents.create("My dashboard", False, "", b"{}", DocumentType.DASHBOARD)

        assert exc_info.value.status_code == 404
        assert [r.method for r in http_client.requests] == ["POST"] + ["PATCH"] * 5

    def test_failed_patch_deletes_created_document(self, documents, http_client, raw_response):
        """A failed PATCH removes the half-created document."""
        http_client.script(
            metadata_response(raw_response, 201, version=1),
            raw_response(500, b"boom"),
            raw_response(200),
            raw_response(200),
        )

        with pytest.raises(APIError) as exc_info:
            documents.create("My dashboard", False, "", b"{}", DocumentType.DASHBOARD)

        assert exc_info.value.status_code == 500
        methods_and_urls = [(r.method, r.url) for r in http_client.requests]
        assert methods_and_urls[2:] == [
            ("DELETE", f"{DOCUMENTS_URL}/doc-1?optimistic-locking-version=1"),
            ("DELETE", f"{TRASH_URL}/doc-1"),
        ]

    def test_failed_cleanup_is_attached_to_error(self, documents, http_client, raw_response):
        """A failed cleanup is noted on the original error."""
        http_client.script(
            metadata_response(raw_response, 201, version=1),
            raw_response(500, b"boom"),
            raw_response(503, b"unavailable"),
        )

        with pytest.raises(APIError) as exc_info:
            documents.create("My dashboard", False, "", b"{}", DocumentType.DASHBOARD)

        assert exc_info.value.status_code == 500
        assert any("cleanup of document doc-1 failed" in note for note in exc_info.value.__notes__)

    def test_invalid_create_response(self, documents, http_client, raw_response):
        """An unreadable create response is a ClientRuntimeError."""
        http_client.script(raw_response(201, b"[]"))

        with pytest.raises(ClientRuntimeError, match="unable to unmarshal metadata"):
            documents.create("My dashboard", False, "", b"{}", DocumentType.DASHBOARD)


class TestDocumentClientUpdateAndDelete:
    """Tests for DocumentClient.update() and delete()."""

    def test_update_patches_with_current_version(self, documents, http_client, raw_response):
        """update() patches with the version it just read."""
        http_client.script(multipart_response(raw_response), patch_response(raw_response, version=5))

        response = documents.update("doc-1", "Renamed", False, b'{"tiles": [1]}', DocumentType.DASHBOARD)

        patch = http_client.requests[1]
        assert patch.url == f"{DOCUMENTS_URL}/doc-1?optimistic-locking-version=4"
        assert sent_parts(patch)["name"] == b"Renamed"
        assert json.loads(response.data)["version"] == 5

    def test_delete_removes_document_and_trash_entry(self, documents, http_client, raw_response):
        """delete() also empties the trash entry."""
        http_client.script(multipart_response(raw_response), raw_response(200), raw_response(204))

        response = documents.delete("doc-1")

        assert response.status_code == 204
        assert [(r.method, r.url) for r in http_client.requests[1:]] == [
            ("DELETE", f"{DOCUMENTS_URL}/doc-1?optimistic-locking-version=4"),
            ("DELETE", f"{TRASH_URL}/doc-1"),
        ]

    def test_delete_requires_id(self, documents, http_client):
        """An empty id fails before any call."""
        with pytest.raises(ValidationError):
            documents.delete("")

        assert http_client.requests == []

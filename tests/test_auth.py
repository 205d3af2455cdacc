"""Tests for authentication module."""

import threading
import time
import unittest
from unittest.mock import Mock, patch

import requests

from confcore._auth import (
    AccessTokenAuthProvider,
    AuthenticationError,
    AuthProvider,
    ClientCredentialsAuthProvider,
    TokenInfo,
)

TOKEN_URL = "https://sso.example.com/sso/oauth2/token"


def token_response(access_token="test-token", expires_in=300):
    mock_response = Mock()
    mock_response.json.return_value = {"access_token": access_token, "expires_in": expires_in}
    mock_response.raise_for_status = Mock()
    return mock_response


class TestTokenInfo(unittest.TestCase):
    """Tests for TokenInfo dataclass."""

    def test_creation(self):
        """TokenInfo keeps the token and its expiry."""
        token = TokenInfo(access_token="test-token", expires_at=1234567890.0)
        self.assertEqual(token.access_token, "test-token")
        self.assertEqual(token.expires_at, 1234567890.0)


class TestAuthenticationError(unittest.TestCase):
    """Tests for AuthenticationError exception."""

    def test_creation_with_message_only(self):
        """The message is kept and there is no cause."""
        error = AuthenticationError("Test error")
        self.assertEqual(error.message, "Test error")
        self.assertIsNone(error.cause)
        self.assertEqual(str(error), "Test error")

    def test_creation_with_message_and_cause(self):
        """The cause is kept alongside the message."""
        cause = ValueError("Original error")
        error = AuthenticationError("Test error", cause=cause)
        self.assertEqual(error.cause, cause)


class TestAuthProvider(unittest.TestCase):
    """Tests for the AuthProvider interface."""

    def test_cannot_instantiate_directly(self):
        """AuthProvider is abstract."""
        with self.assertRaises(TypeError):
            AuthProvider()


class TestAccessTokenAuthProvider(unittest.TestCase):
    """Tests for AccessTokenAuthProvider."""

    def test_get_auth_headers_returns_api_token(self):
        """The static token is sent with the Api-Token scheme."""
        auth = AccessTokenAuthProvider("dt0c01.ABC")
        self.assertEqual(auth.get_auth_headers(), {"Authorization": "Api-Token dt0c01.ABC"})

    def test_init_fails_with_empty_token(self):
        """An empty token is rejected."""
        with self.assertRaises(AssertionError):
            AccessTokenAuthProvider("")


class TestClientCredentialsAuthProviderInit(unittest.TestCase):
    """Tests for ClientCredentialsAuthProvider initialization."""

    def test_init_fails_with_empty_client_id(self):
        """client_id is required."""
        with self.assertRaises(AssertionError) as context:
            ClientCredentialsAuthProvider(client_id="", client_secret="secret", token_url=TOKEN_URL)
        self.assertIn("client_id", str(context.exception))

    def test_init_fails_with_empty_client_secret(self):
        """client_secret is required."""
        with self.assertRaises(AssertionError) as context:
            ClientCredentialsAuthProvider(client_id="id", client_secret="", token_url=TOKEN_URL)
        self.assertIn("client_secret", str(context.exception))

    def test_init_fails_with_empty_token_url(self):
        """token_url is required."""
        with self.assertRaises(AssertionError) as context:
            ClientCredentialsAuthProvider(client_id="id", client_secret="secret", token_url="")
        self.assertIn("token_url", str(context.exception))


class TestClientCredentialsAuthProviderGetToken(unittest.TestCase):
    """Tests for ClientCredentialsAuthProvider.get_access_token()."""

    def setUp(self):
        self.auth = ClientCredentialsAuthProvider(
            client_id="test-id",
            client_secret="test-secret",
            token_url=TOKEN_URL,
            scopes=("storage:buckets:read", "document:documents:write"),
        )

    @patch("confcore._auth.requests.post")
    def test_get_access_token_fetches_new_token(self, mock_post):
        """The first call posts a client credentials grant."""
        mock_post.return_value = token_response("new-token")

        token = self.auth.get_access_token()

        self.assertEqual(token, "new-token")
        mock_post.assert_called_once()
        call_args = mock_post.call_args
        self.assertEqual(call_args[0][0], TOKEN_URL)
        self.assertEqual(call_args[1]["data"]["grant_type"], "client_credentials")
        self.assertEqual(call_args[1]["data"]["client_id"], "test-id")
        self.assertEqual(call_args[1]["data"]["client_secret"], "test-secret")
        self.assertEqual(call_args[1]["data"]["scope"], "storage:buckets:read document:documents:write")

    @patch("confcore._auth.requests.post")
    def test_scope_is_omitted_without_scopes(self, mock_post):
        """No scope field is sent when no scopes are configured."""
        mock_post.return_value = token_response()
        auth = ClientCredentialsAuthProvider(client_id="id", client_secret="secret", token_url=TOKEN_URL)

        auth.get_access_token()

        self.assertNotIn("scope", mock_post.call_args[1]["data"])

    @patch("confcore._auth.requests.post")
    def test_get_access_token_returns_cached_token(self, mock_post):
        """A valid token is reused without another request."""
        mock_post.return_value = token_response("cached-token")

        token1 = self.auth.get_access_token()
        token2 = self.auth.get_access_token()

        self.assertEqual(token1, "cached-token")
        self.assertEqual(token2, "cached-token")
        self.assertEqual(mock_post.call_count, 1)

    @patch("confcore._auth.requests.post")
    @patch("confcore._auth.time.time")
    def test_get_access_token_refreshes_expiring_token(self, mock_time, mock_post):
        """A token close to expiry is refreshed."""
        mock_post.return_value = token_response(expires_in=100)

        mock_time.return_value = 0.0
        self.auth.get_access_token()

        # within the 60s refresh margin of the expiry at 100
        mock_time.return_value = 50.0
        self.auth.get_access_token()

        self.assertEqual(mock_post.call_count, 2)

    @patch("confcore._auth.requests.post")
    @patch("confcore._auth.time.time")
    def test_missing_expires_in_uses_default(self, mock_time, mock_post):
        """A response without expires_in gets the default lifetime."""
        mock_response = Mock()
        mock_response.json.return_value = {"access_token": "token"}
        mock_response.raise_for_status = Mock()
        mock_post.return_value = mock_response
        mock_time.return_value = 0.0

        self.auth.get_access_token()

        self.assertEqual(self.auth._token.expires_at, ClientCredentialsAuthProvider.DEFAULT_EXPIRES_IN)

    @patch("confcore._auth.requests.post")
    def test_get_access_token_raises_on_http_error(self, mock_post):
        """An HTTP error becomes AuthenticationError."""
        mock_response = Mock()
        mock_response.status_code = 401
        mock_response.raise_for_status.side_effect = requests.HTTPError(response=mock_response)
        mock_post.return_value = mock_response

        with self.assertRaises(AuthenticationError) as context:
            self.auth.get_access_token()
        self.assertIn("Failed to obtain access token (HTTP 401)", context.exception.message)
        self.assertIsInstance(context.exception.cause, requests.HTTPError)

    @patch("confcore._auth.requests.post")
    def test_get_access_token_raises_on_connection_error(self, mock_post):
        """A connection error becomes AuthenticationError."""
        mock_post.side_effect = requests.ConnectionError("Connection refused")

        with self.assertRaises(AuthenticationError) as context:
            self.auth.get_access_token()
        self.assertIn("Failed to obtain access token", context.exception.message)

    @patch("confcore._auth.requests.post")
    def test_get_access_token_raises_on_missing_field(self, mock_post):
        """A response without access_token is rejected."""
        mock_response = Mock()
        mock_response.json.return_value = {"expires_in": 300}
        mock_response.raise_for_status = Mock()
        mock_post.return_value = mock_response

        with self.assertRaises(AuthenticationError) as context:
            self.auth.get_access_token()
        self.assertIn("missing", context.exception.message.lower())


class TestClientCredentialsAuthProviderGetAuthHeaders(unittest.TestCase):
    """Tests for ClientCredentialsAuthProvider.get_auth_headers()."""

    @patch("confcore._auth.requests.post")
    def test_get_auth_headers_returns_bearer_token(self, mock_post):
        """Headers carry the token with the Bearer scheme."""
        mock_post.return_value = token_response("test-token")
        auth = ClientCredentialsAuthProvider(client_id="test-id", client_secret="test-secret", token_url=TOKEN_URL)

        headers = auth.get_auth_headers()

        self.assertEqual(headers, {"Authorization": "Bearer test-token"})


class TestClientCredentialsAuthProviderThreadSafety(unittest.TestCase):
    """Tests for ClientCredentialsAuthProvider thread safety."""

    @patch("confcore._auth.requests.post")
    def test_concurrent_calls_only_fetch_once(self, mock_post):
        """Threads racing for a token share a single fetch."""
        call_count = 0

        def mock_post_fn(*args, **kwargs):
            nonlocal call_count
            call_count += 1
            time.sleep(0.1)
            return token_response(f"token-{call_count}")

        mock_post.side_effect = mock_post_fn
        auth = ClientCredentialsAuthProvider(client_id="test-id", client_secret="test-secret", token_url=TOKEN_URL)

        results = []
        errors = []

        def get_token():
            try:
                results.append(auth.get_access_token())
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=get_token) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(errors), 0)
        self.assertEqual(results, ["token-1"] * 5)
        self.assertEqual(call_count, 1)

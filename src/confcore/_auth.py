"""
Authentication providers.

Platform APIs authenticate with OAuth2 bearer tokens obtained through the
client credentials grant; classic environment APIs accept a static API
token. Both are exposed through the same AuthProvider interface and applied
by `AuthenticatedHttpClient`.

Example:
    >>> from confcore import ClientCredentialsAuthProvider
    >>> auth = ClientCredentialsAuthProvider(
    ...     client_id="my-client-id",
    ...     client_secret="my-client-secret",
    ...     token_url="https://sso.example.com/sso/oauth2/token",
    ... )
    >>> headers = auth.get_auth_headers()
    >>> # {"Authorization": "Bearer eyJ..."}
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
import sys
if sys.version_info >= (3, 12):
    from typing import override
else:
    from typing_extensions import override

import requests

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class AuthenticationError(Exception):
    """
    Raised when an access token cannot be obtained.

    Attributes:
        message: Description of the failure.
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


# =============================================================================
# Token
# =============================================================================


@dataclass
class TokenInfo:
    """OAuth2 access token with its expiration (Unix seconds)."""

    access_token: str
    expires_at: float


# =============================================================================
# Providers
# =============================================================================


class AuthProvider(ABC):
    """
    Source of authorization headers. Implementations must be thread-safe.
    """

    @abstractmethod
    def get_auth_headers(self) -> dict[str, str]:
        """
        Return the headers authenticating a request.

        Raises:
            AuthenticationError: If credentials cannot be obtained.
        """
        pass


class AccessTokenAuthProvider(AuthProvider):
    """
    Static API token, sent as `Authorization: Api-Token <token>`.

    Args:
        token: The API access token.
    """

    def __init__(self, token: str):
        assert token, "token cannot be empty"
        self._token = token

    @override
    def get_auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Api-Token {self._token}"}


class ClientCredentialsAuthProvider(AuthProvider):
    """
    OAuth2 client credentials flow.

    Tokens are cached and refreshed `refresh_margin` seconds before they
    expire. Concurrent callers share a single refresh.

    Args:
        client_id: OAuth client ID.
        client_secret: OAuth client secret.
        token_url: Token endpoint of the identity provider.
        scopes: Scopes requested with the token, sent space-separated.
        refresh_margin: Seconds before expiration to trigger a refresh.
        timeout: Timeout in seconds for the token request.
    """

    DEFAULT_REFRESH_MARGIN = 60
    DEFAULT_EXPIRES_IN = 300

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str,
        scopes: Sequence[str] = (),
        refresh_margin: int = DEFAULT_REFRESH_MARGIN,
        timeout: float = 30,
    ):
        assert client_id, "client_id cannot be empty"
        assert client_secret, "client_secret cannot be empty"
        assert token_url, "token_url cannot be empty"

        self._client_id = client_id
        self._client_secret = client_secret
        self._token_url = token_url
        self._scopes = tuple(scopes)
        self._refresh_margin = refresh_margin
        self._timeout = timeout

        self._token: TokenInfo | None = None
        self._lock = threading.Lock()

    def get_access_token(self) -> str:
        """
        Return a valid access token, fetching a new one when needed.

        Raises:
            AuthenticationError: If the token endpoint call fails.
        """
        with self._lock:
            if self._token is None or time.time() >= self._token.expires_at - self._refresh_margin:
                self._token = self._fetch_new_token()
            return self._token.access_token

    @override
    def get_auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.get_access_token()}"}

    def _fetch_new_token(self) -> TokenInfo:
        form = {
            "grant_type": "client_credentials",
            "client_id": self._client_id,
            "client_secret": self._client_secret,
        }
        if self._scopes:
            form["scope"] = " ".join(self._scopes)

        try:
            response = requests.post(
                self._token_url,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self._timeout,
            )
            response.raise_for_status()

            data = response.json()
            expires_in = data.get("expires_in", self.DEFAULT_EXPIRES_IN)
            logger.debug(f"Obtained OAuth access token from {self._token_url}, expires in {expires_in}s.")

            return TokenInfo(
                access_token=data["access_token"],
                expires_at=time.time() + expires_in,
            )

        except requests.HTTPError as e:
            logger.error(
                f"Failed to obtain OAuth access token (HTTP {e.response.status_code})",
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise AuthenticationError(
                f"Failed to obtain access token (HTTP {e.response.status_code}): {e}",
                cause=e,
            ) from e
        except requests.RequestException as e:
            logger.error(
                f"Failed to obtain OAuth access token: {e}",
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise AuthenticationError(f"Failed to obtain access token: {e}", cause=e) from e
        except KeyError as e:
            raise AuthenticationError(
                f"Invalid token response: missing '{e}' field",
                cause=e,
            ) from e


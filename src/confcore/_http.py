"""
HTTP executors used by the REST transport.

The transport builds and prepares every request itself; an HttpClient is
only responsible for putting a prepared request on the wire. This is the
seam where authentication is applied and where tests plug in fakes.

Available implementations:
    - SessionHttpClient: sends through a `requests.Session`, no authentication.
    - AuthenticatedHttpClient: adds headers from an AuthProvider before sending.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import sys
from typing import TYPE_CHECKING

if sys.version_info >= (3, 12):
    from typing import override
else:
    from typing_extensions import override

import requests

if TYPE_CHECKING:
    from confcore._auth import AuthProvider


# =============================================================================
# Interface
# =============================================================================


class HttpClient(ABC):
    """
    Abstract base class for HTTP executors.

    Implementations send an already prepared request and return the raw
    response. The body is consumed and the response closed by the caller.

    Example:
        >>> class MyHttpClient(HttpClient):
        ...     def send(self, request, timeout=None):
        ...         return requests.Session().send(request, timeout=timeout)
    """

    @abstractmethod
    def send(
        self,
        request: requests.PreparedRequest,
        timeout: float | None = None,
    ) -> requests.Response:
        """
        Send a prepared request.

        Args:
            request: The prepared request, including method, URL, headers and body.
            timeout: Connect/read timeout in seconds, or None to wait forever.

        Returns:
            The raw HTTP response, whatever its status code.

        Raises:
            requests.RequestException: On transport failures.
        """
        pass


# =============================================================================
# Implementations
# =============================================================================


class SessionHttpClient(HttpClient):
    """
    HttpClient sending requests through a `requests.Session`.

    Responses are streamed so the transport controls when the body is read.

    Args:
        session: Session to use. A new one is created if None.
    """

    def __init__(self, session: requests.Session | None = None):
        self.session = session or requests.Session()

    @override
    def send(
        self,
        request: requests.PreparedRequest,
        timeout: float | None = None,
    ) -> requests.Response:
        assert request.url, "URL cannot be empty."
        return self.session.send(request, timeout=timeout, stream=True, allow_redirects=True)


class AuthenticatedHttpClient(SessionHttpClient):
    """
    SessionHttpClient that authenticates every request.

    Authorization headers are merged into the request right before it is
    sent, after the transport has recorded it, so credentials never reach
    request observers.

    Example:
        >>> auth = ClientCredentialsAuthProvider(client_id="x", client_secret="y", token_url=url)
        >>> http_client = AuthenticatedHttpClient(auth_provider=auth)

    Args:
        auth_provider: Provider of the authorization headers.
        session: Session to use. A new one is created if None.
    """

    def __init__(
        self,
        auth_provider: AuthProvider,
        session: requests.Session | None = None,
    ):
        assert auth_provider is not None, "auth_provider cannot be None."
        super().__init__(session=session)
        self.auth_provider = auth_provider

    @override
    def send(
        self,
        request: requests.PreparedRequest,
        timeout: float | None = None,
    ) -> requests.Response:
        request.headers.update(self.auth_provider.get_auth_headers())
        return super().send(request, timeout=timeout)

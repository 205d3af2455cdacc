"""
Factory for configured resource clients.

Example:
    >>> from confcore import ClientFactory, OAuthCredentials
    >>> factory = (
    ...     ClientFactory()
    ...     .with_platform_url("https://abc123.apps.dynatrace.com")
    ...     .with_oauth_credentials(OAuthCredentials(
    ...         client_id="dt0s02.ABC",
    ...         client_secret="dt0s02.ABC.XYZ",
    ...         token_url="https://sso.dynatrace.com/sso/oauth2/token",
    ...     ))
    ...     .with_rate_limiter(True)
    ...     .with_concurrent_request_limit(5)
    ... )
    >>> buckets = factory.bucket_client()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Self
from urllib.parse import urlsplit

from confcore._auth import AccessTokenAuthProvider, ClientCredentialsAuthProvider
from confcore._http import AuthenticatedHttpClient, HttpClient
from confcore.clients._automation import AutomationClient
from confcore.clients._buckets import BucketClient
from confcore.clients._documents import DocumentClient
from confcore.clients._openpipeline import OpenPipelineClient
from confcore.clients._permissions import PermissionClient
from confcore.clients._segments import SegmentClient
from confcore.clients._slo import SloClient
from confcore.rest import ClientOptions, RequestResponseRecorder, RestClient, RetryOptions, retry_if_not_success

if TYPE_CHECKING:
    from confcore._config import CoreConfig

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class FactoryConfigurationError(ValueError):
    """Raised when the factory lacks what is needed to build a client."""


class OAuthCredentialsMissingError(FactoryConfigurationError):
    def __init__(self) -> None:
        super().__init__("no OAuth2 client credentials provided")


class AccessTokenMissingError(FactoryConfigurationError):
    def __init__(self) -> None:
        super().__init__("no access token provided")


class PlatformURLMissingError(FactoryConfigurationError):
    def __init__(self) -> None:
        super().__init__("no platform API URL provided")


class ClassicURLMissingError(FactoryConfigurationError):
    def __init__(self) -> None:
        super().__init__("no classic API URL provided")


# =============================================================================
# Factory
# =============================================================================


@dataclass(frozen=True)
class OAuthCredentials:
    """OAuth2 client credentials for platform APIs."""

    client_id: str
    client_secret: str
    token_url: str
    scopes: tuple[str, ...] = field(default=())


@dataclass(frozen=True)
class ClientFactory:
    """
    Immutable builder of RestClients and resource clients.

    Every `with_*` method returns a new factory. Platform clients
    authenticate with OAuth client credentials; classic clients with an
    access token.
    """

    platform_url: str | None = None
    classic_url: str | None = None
    oauth_credentials: OAuthCredentials | None = None
    access_token: str | None = None
    user_agent: str | None = None
    recorder: RequestResponseRecorder | None = None
    concurrent_request_limit: int = 0
    rate_limiter_enabled: bool = False
    retry_options: RetryOptions | None = None
    timeout: float | None = None

    @classmethod
    def from_config(cls, config: CoreConfig) -> ClientFactory:
        """Build a factory from a validated CoreConfig."""
        config.validate()
        auth, endpoints, transport = config.auth, config.endpoints, config.transport

        oauth = None
        if auth.has_oauth_credentials():
            oauth = OAuthCredentials(
                client_id=auth.client_id,  # type: ignore[arg-type]
                client_secret=auth.client_secret,  # type: ignore[arg-type]
                token_url=auth.token_url,
                scopes=auth.scopes,
            )

        retry_options = None
        if transport.retry_max_retries > 0:
            retry_options = RetryOptions(
                max_retries=transport.retry_max_retries,
                delay_after_retry=transport.retry_delay_after_retry,
                should_retry=retry_if_not_success,
            )

        return cls(
            platform_url=endpoints.platform_url,
            classic_url=endpoints.classic_url,
            oauth_credentials=oauth,
            access_token=auth.access_token,
            user_agent=transport.user_agent,
            concurrent_request_limit=transport.concurrent_request_limit,
            rate_limiter_enabled=transport.rate_limiter_enabled,
            retry_options=retry_options,
            timeout=transport.request_timeout,
        )

    def with_oauth_credentials(self, credentials: OAuthCredentials) -> Self:
        return replace(self, oauth_credentials=credentials)

    def with_access_token(self, access_token: str) -> Self:
        return replace(self, access_token=access_token)

    def with_platform_url(self, url: str) -> Self:
        return replace(self, platform_url=url)

    def with_classic_url(self, url: str) -> Self:
        return replace(self, classic_url=url)

    def with_user_agent(self, user_agent: str) -> Self:
        return replace(self, user_agent=user_agent)

    def with_recorder(self, recorder: RequestResponseRecorder) -> Self:
        return replace(self, recorder=recorder)

    def with_concurrent_request_limit(self, limit: int) -> Self:
        return replace(self, concurrent_request_limit=limit)

    def with_rate_limiter(self, enabled: bool) -> Self:
        return replace(self, rate_limiter_enabled=enabled)

    def with_retry_options(self, retry_options: RetryOptions | None) -> Self:
        return replace(self, retry_options=retry_options)

    def with_timeout(self, timeout: float | None) -> Self:
        return replace(self, timeout=timeout)

    def create_platform_client(self) -> RestClient:
        """
        Create a RestClient for platform APIs.

        Raises:
            OAuthCredentialsMissingError: If no OAuth credentials are set.
            PlatformURLMissingError: If no platform URL is set.
        """
        if self.oauth_credentials is None:
            raise OAuthCredentialsMissingError()
        if not self.platform_url:
            raise PlatformURLMissingError()

        creds = self.oauth_credentials
        auth = ClientCredentialsAuthProvider(
            client_id=creds.client_id,
            client_secret=creds.client_secret,
            token_url=creds.token_url,
            scopes=creds.scopes,
        )
        return self._create_rest_client(self.platform_url, AuthenticatedHttpClient(auth))

    def create_classic_client(self) -> RestClient:
        """
        Create a RestClient for classic environment APIs.

        Raises:
            AccessTokenMissingError: If no access token is set.
            ClassicURLMissingError: If no classic URL is set.
        """
        if not self.access_token:
            raise AccessTokenMissingError()
        if not self.classic_url:
            raise ClassicURLMissingError()

        auth = AccessTokenAuthProvider(self.access_token)
        return self._create_rest_client(self.classic_url, AuthenticatedHttpClient(auth))

    def bucket_client(self) -> BucketClient:
        return BucketClient(self.create_platform_client())

    def document_client(self) -> DocumentClient:
        return DocumentClient(self.create_platform_client())

    def segment_client(self) -> SegmentClient:
        return SegmentClient(self.create_platform_client())

    def slo_client(self) -> SloClient:
        return SloClient(self.create_platform_client())

    def permission_client(self) -> PermissionClient:
        return PermissionClient(self.create_platform_client())

    def automation_client(self) -> AutomationClient:
        return AutomationClient(self.create_platform_client())

    def openpipeline_client(self) -> OpenPipelineClient:
        return OpenPipelineClient(self.create_platform_client())

    def _create_rest_client(self, url: str, http_client: HttpClient) -> RestClient:
        parsed = urlsplit(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise FactoryConfigurationError(f"failed to parse URL {url!r}")

        options = ClientOptions(
            concurrent_request_limit=self.concurrent_request_limit,
            timeout=self.timeout,
            retry_options=self.retry_options,
            recorder=self.recorder,
            rate_limiter=self.rate_limiter_enabled,
        )
        rest_client = RestClient(url, http_client=http_client, options=options)
        if self.user_agent:
            rest_client.set_header("User-Agent", self.user_agent)

        logger.debug(
            f"Created REST client for {parsed.netloc} "
            f"(rate limiter: {self.rate_limiter_enabled}, concurrent limit: {self.concurrent_request_limit})"
        )
        return rest_client

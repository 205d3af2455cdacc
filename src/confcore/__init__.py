"""
confcore: Python client core for configuration-management platform APIs.

Provides a REST transport with server-driven rate limiting, concurrency
limiting, response-based retries and request/response recording, plus
typed clients for buckets, documents, filter segments, SLOs, settings
permissions, automations and OpenPipeline configurations.

Quick Start:
    >>> from confcore import ClientFactory, OAuthCredentials
    >>> factory = (
    ...     ClientFactory()
    ...     .with_platform_url("https://abc123.apps.dynatrace.com")
    ...     .with_oauth_credentials(OAuthCredentials("client-id", "client-secret", token_url))
    ...     .with_rate_limiter(True)
    ... )
    >>> slos = factory.slo_client()
    >>> for slo in slos.list().all():
    ...     print(slo)

Configuration from the environment:
    >>> from confcore import ClientFactory, CoreConfig
    >>> factory = ClientFactory.from_config(CoreConfig.from_env())

Transport:
    - RestClient, ClientOptions, RequestOptions: see `confcore.rest`.
    - RetryOptions and the retry_* predicates.
    - RateLimiter, ConcurrentRequestLimiter, RequestResponseRecorder.

Cancellation:
    - Context: Cancel flag plus optional deadline, passed as `ctx=`.
    - ContextError, ContextCancelledError, DeadlineExceededError.

Responses and Errors:
    - Response, ListResponse, PagedListResponse, RequestInfo.
    - APIError, ValidationError, ClientError, ClientRuntimeError.

Authentication:
    - AuthProvider, ClientCredentialsAuthProvider, AccessTokenAuthProvider.
    - HttpClient, SessionHttpClient, AuthenticatedHttpClient.
"""

from importlib.metadata import version as _get_version

__version__ = _get_version("confcore")

from confcore._auth import (
    AccessTokenAuthProvider,
    AuthenticationError,
    AuthProvider,
    ClientCredentialsAuthProvider,
)
from confcore._clock import Clock, RealtimeClock
from confcore._config import (
    AuthConfig,
    ConfigEnvVarError,
    ConfigValidationError,
    CoreConfig,
    EndpointConfig,
    TransportConfig,
)
from confcore._context import (
    Context,
    ContextCancelledError,
    ContextError,
    DeadlineExceededError,
)
from confcore._errors import (
    APIError,
    ClientError,
    ClientRuntimeError,
    ValidationError,
    is_not_found_error,
)
from confcore._http import AuthenticatedHttpClient, HttpClient, SessionHttpClient
from confcore._response import (
    ListResponse,
    PagedListResponse,
    RequestInfo,
    Response,
    decode_json,
    decode_json_objects,
    decode_paginated_json_objects,
    process_response,
)
from confcore.clients import (
    AutomationClient,
    AutomationResource,
    BucketClient,
    ClientFactory,
    DocumentClient,
    OAuthCredentials,
    OpenPipelineClient,
    PermissionClient,
    ResourceClient,
    SegmentClient,
    SloClient,
)
from confcore.rest import (
    ClientOptions,
    ConcurrentRequestLimiter,
    ConnectionClosedError,
    RateLimiter,
    RecordedEvent,
    RequestOptions,
    RequestResponseRecorder,
    RestClient,
    RetryOptions,
    retry_if_not_success,
    retry_if_too_many_requests,
    retry_on_failure_except_404,
)

__all__ = [
    "__version__",
    # Configuration
    "CoreConfig",
    "AuthConfig",
    "EndpointConfig",
    "TransportConfig",
    "ConfigEnvVarError",
    "ConfigValidationError",
    # Cancellation and time
    "Context",
    "ContextError",
    "ContextCancelledError",
    "DeadlineExceededError",
    "Clock",
    "RealtimeClock",
    # Authentication
    "AuthProvider",
    "ClientCredentialsAuthProvider",
    "AccessTokenAuthProvider",
    "AuthenticationError",
    # HTTP
    "HttpClient",
    "SessionHttpClient",
    "AuthenticatedHttpClient",
    # Transport
    "RestClient",
    "ClientOptions",
    "RequestOptions",
    "ConnectionClosedError",
    "RetryOptions",
    "retry_if_not_success",
    "retry_if_too_many_requests",
    "retry_on_failure_except_404",
    "RateLimiter",
    "ConcurrentRequestLimiter",
    "RequestResponseRecorder",
    "RecordedEvent",
    # Responses and errors
    "Response",
    "ListResponse",
    "PagedListResponse",
    "RequestInfo",
    "process_response",
    "decode_json",
    "decode_json_objects",
    "decode_paginated_json_objects",
    "APIError",
    "ValidationError",
    "ClientError",
    "ClientRuntimeError",
    "is_not_found_error",
    # Resource clients
    "ClientFactory",
    "OAuthCredentials",
    "ResourceClient",
    "BucketClient",
    "DocumentClient",
    "SegmentClient",
    "SloClient",
    "PermissionClient",
    "AutomationClient",
    "AutomationResource",
    "OpenPipelineClient",
]

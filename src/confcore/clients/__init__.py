"""
Resource clients for platform and classic environment APIs.

Main Classes:
    - ClientFactory: Immutable builder of authenticated clients.
    - BucketClient: Grail bucket definitions.
    - DocumentClient: Dashboards, notebooks and launchpads.
    - SegmentClient: Grail filter segments.
    - SloClient: Service-level objectives.
    - PermissionClient: Permissions of settings objects.
    - AutomationClient: Workflows, business calendars and scheduling rules.
    - OpenPipelineClient: OpenPipeline configurations.
    - ResourceClient: Generic CRUD on any resource path.
"""

from confcore.clients._automation import AutomationClient, AutomationResource
from confcore.clients._buckets import BucketClient, await_active_or_not_found
from confcore.clients._documents import (
    Document,
    DocumentClient,
    DocumentListResponse,
    DocumentResponse,
    DocumentType,
    Metadata,
)
from confcore.clients._factory import (
    AccessTokenMissingError,
    ClassicURLMissingError,
    ClientFactory,
    FactoryConfigurationError,
    OAuthCredentials,
    OAuthCredentialsMissingError,
    PlatformURLMissingError,
)
from confcore.clients._openpipeline import OpenPipelineClient, OpenPipelineConfiguration
from confcore.clients._permissions import PermissionClient, PermissionsError
from confcore.clients._resource import ResourceClient
from confcore.clients._segments import SegmentClient
from confcore.clients._slo import SloClient

__all__ = [
    # Factory
    "ClientFactory",
    "OAuthCredentials",
    "FactoryConfigurationError",
    "OAuthCredentialsMissingError",
    "AccessTokenMissingError",
    "PlatformURLMissingError",
    "ClassicURLMissingError",
    # Clients
    "ResourceClient",
    "BucketClient",
    "await_active_or_not_found",
    "DocumentClient",
    "Document",
    "DocumentType",
    "DocumentResponse",
    "DocumentListResponse",
    "Metadata",
    "SegmentClient",
    "SloClient",
    "PermissionClient",
    "PermissionsError",
    "AutomationClient",
    "AutomationResource",
    "OpenPipelineClient",
    "OpenPipelineConfiguration",
]

"""Tests for ClientFactory."""

import unittest
from unittest.mock import MagicMock

import requests

from confcore import (
    AccessTokenAuthProvider,
    AutomationClient,
    AuthConfig,
    AuthenticatedHttpClient,
    BucketClient,
    ClientCredentialsAuthProvider,
    ConfigValidationError,
    CoreConfig,
    DocumentClient,
    EndpointConfig,
    HttpClient,
    OpenPipelineClient,
    PermissionClient,
    RequestResponseRecorder,
    RetryOptions,
    SegmentClient,
    SloClient,
    TransportConfig,
    retry_if_not_success,
)
from confcore.clients import (
    AccessTokenMissingError,
    ClassicURLMissingError,
    ClientFactory,
    FactoryConfigurationError,
    OAuthCredentials,
    OAuthCredentialsMissingError,
    PlatformURLMissingError,
)

PLATFORM_URL = "https://abc.apps.example.com"
CLASSIC_URL = "https://abc.live.example.com"
CREDENTIALS = OAuthCredentials(
    client_id="dt0s02.ABC",
    client_secret="dt0s02.ABC.XYZ",
    token_url="https://sso.example.com/sso/oauth2/token",
)


def platform_factory():
    return ClientFactory().with_platform_url(PLATFORM_URL).with_oauth_credentials(CREDENTIALS)


class TestClientFactoryBuilder(unittest.TestCase):
    """Tests for the with_* builder methods."""

    def test_with_methods_return_new_instances(self):
        """with_* methods leave the original factory untouched."""
        factory = ClientFactory()
        configured = factory.with_platform_url(PLATFORM_URL).with_rate_limiter(True)

        self.assertIsNone(factory.platform_url)
        self.assertFalse(factory.rate_limiter_enabled)
        self.assertEqual(configured.platform_url, PLATFORM_URL)
        self.assertTrue(configured.rate_limiter_enabled)

    def test_defaults(self):
        """A new factory has nothing configured."""
        factory = ClientFactory()

        self.assertEqual(factory.concurrent_request_limit, 0)
        self.assertFalse(factory.rate_limiter_enabled)
        self.assertIsNone(factory.retry_options)
        self.assertIsNone(factory.timeout)


class TestCreatePlatformClient(unittest.TestCase):
    """Tests for ClientFactory.create_platform_client()."""

    def test_requires_oauth_credentials(self):
        """Platform clients need OAuth credentials."""
        with self.assertRaises(OAuthCredentialsMissingError) as context:
            ClientFactory().with_platform_url(PLATFORM_URL).create_platform_client()
        self.assertEqual(str(context.exception), "no OAuth2 client credentials provided")

    def test_requires_platform_url(self):
        """Platform clients need a platform URL."""
        with self.assertRaises(PlatformURLMissingError):
            ClientFactory().with_oauth_credentials(CREDENTIALS).create_platform_client()

    def test_rejects_unparsable_url(self):
        """A URL without scheme or host is rejected."""
        factory = ClientFactory().with_platform_url("not a url").with_oauth_credentials(CREDENTIALS)

        with self.assertRaises(FactoryConfigurationError) as context:
            factory.create_platform_client()
        self.assertIn("failed to parse URL", str(context.exception))

    def test_uses_client_credentials(self):
        """Platform clients authenticate with client credentials."""
        client = platform_factory().create_platform_client()

        self.assertEqual(client.base_url, PLATFORM_URL)
        self.assertIsInstance(client.http_client, AuthenticatedHttpClient)
        self.assertIsInstance(client.http_client.auth_provider, ClientCredentialsAuthProvider)

    def test_applies_transport_options(self):
        """Transport settings reach the RestClient."""
        recorder = RequestResponseRecorder(lambda event: None)
        retry = RetryOptions(max_retries=2, should_retry=retry_if_not_success)
        client = (
            platform_factory()
            .with_rate_limiter(True)
            .with_concurrent_request_limit(4)
            .with_retry_options(retry)
            .with_timeout(30)
            .with_recorder(recorder)
            .create_platform_client()
        )

        self.assertIsNotNone(client.rate_limiter)
        self.assertEqual(client.concurrent_request_limiter.max_concurrent, 4)
        self.assertIs(client.retry_options, retry)
        self.assertEqual(client.timeout, 30)
        self.assertIs(client.recorder, recorder)

    def test_rate_limiter_is_disabled_by_default(self):
        """No rate limiter unless enabled."""
        client = platform_factory().create_platform_client()

        self.assertIsNone(client.rate_limiter)
        self.assertTrue(client.concurrent_request_limiter.unlimited)

    def test_user_agent_is_sent(self):
        """The configured user agent is set on the client."""
        client = platform_factory().with_user_agent("confcore-tests/1.0").create_platform_client()
        raw = requests.Response()
        raw.status_code = 200
        raw._content = b"{}"
        raw._content_consumed = True
        client.http_client = MagicMock(spec=HttpClient)
        client.http_client.send.return_value = raw

        client.get("items")

        sent = client.http_client.send.call_args.args[0]
        self.assertEqual(sent.headers["User-Agent"], "confcore-tests/1.0")

    def test_each_call_creates_an_independent_client(self):
        """Each call builds a fresh RestClient."""
        factory = platform_factory().with_rate_limiter(True)

        first = factory.create_platform_client()
        second = factory.create_platform_client()

        self.assertIsNot(first, second)
        self.assertIsNot(first.rate_limiter, second.rate_limiter)


class TestCreateClassicClient(unittest.TestCase):
    """Tests for ClientFactory.create_classic_client()."""

    def test_requires_access_token(self):
        """Classic clients need an access token."""
        with self.assertRaises(AccessTokenMissingError):
            ClientFactory().with_classic_url(CLASSIC_URL).create_classic_client()

    def test_requires_classic_url(self):
        """Classic clients need a classic URL."""
        with self.assertRaises(ClassicURLMissingError):
            ClientFactory().with_access_token("dt0c01.ABC").create_classic_client()

    def test_uses_access_token(self):
        """Classic clients authenticate with the access token."""
        client = ClientFactory().with_classic_url(CLASSIC_URL).with_access_token("dt0c01.ABC").create_classic_client()

        self.assertEqual(client.base_url, CLASSIC_URL)
        self.assertIsInstance(client.http_client.auth_provider, AccessTokenAuthProvider)


class TestResourceClientHelpers(unittest.TestCase):
    """Tests for the typed client helpers."""

    def test_helpers_build_platform_clients(self):
        """Each accessor returns its typed client."""
        factory = platform_factory()

        self.assertIsInstance(factory.bucket_client(), BucketClient)
        self.assertIsInstance(factory.document_client(), DocumentClient)
        self.assertIsInstance(factory.segment_client(), SegmentClient)
        self.assertIsInstance(factory.slo_client(), SloClient)
        self.assertIsInstance(factory.permission_client(), PermissionClient)
        self.assertIsInstance(factory.automation_client(), AutomationClient)
        self.assertIsInstance(factory.openpipeline_client(), OpenPipelineClient)

    def test_helpers_require_platform_configuration(self):
        """Accessors fail like create_platform_client()."""
        with self.assertRaises(PlatformURLMissingError):
            ClientFactory().with_oauth_credentials(CREDENTIALS).slo_client()


class TestFromConfig(unittest.TestCase):
    """Tests for ClientFactory.from_config()."""

    def test_maps_every_section(self):
        """from_config() carries over every config section."""
        config = CoreConfig(
            auth=AuthConfig(client_id="id", client_secret="secret", access_token="token", scopes=("a", "b")),
            endpoints=EndpointConfig(platform_url=PLATFORM_URL, classic_url=CLASSIC_URL),
            transport=TransportConfig(
                request_timeout=20,
                concurrent_request_limit=3,
                rate_limiter_enabled=True,
                retry_max_retries=2,
                retry_delay_after_retry=0.5,
                user_agent="agent",
            ),
        )

        factory = ClientFactory.from_config(config)

        self.assertEqual(factory.platform_url, PLATFORM_URL)
        self.assertEqual(factory.classic_url, CLASSIC_URL)
        self.assertEqual(factory.oauth_credentials.client_id, "id")
        self.assertEqual(factory.oauth_credentials.scopes, ("a", "b"))
        self.assertEqual(factory.access_token, "token")
        self.assertEqual(factory.user_agent, "agent")
        self.assertEqual(factory.timeout, 20)
        self.assertEqual(factory.concurrent_request_limit, 3)
        self.assertTrue(factory.rate_limiter_enabled)
        self.assertEqual(factory.retry_options.max_retries, 2)
        self.assertEqual(factory.retry_options.delay_after_retry, 0.5)
        self.assertIs(factory.retry_options.should_retry, retry_if_not_success)

    def test_no_retries_and_no_credentials_by_default(self):
        """An empty config gives a bare factory."""
        factory = ClientFactory.from_config(CoreConfig())

        self.assertIsNone(factory.retry_options)
        self.assertIsNone(factory.oauth_credentials)

    def test_invalid_config_raises(self):
        """from_config() validates first."""
        config = CoreConfig(endpoints=EndpointConfig(platform_url="abc.apps.example.com"))

        with self.assertRaises(ConfigValidationError):
            ClientFactory.from_config(config)

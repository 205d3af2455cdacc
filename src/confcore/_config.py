"""
Configuration for confcore clients.

Configuration is made of immutable sections, each a frozen dataclass whose
fields declare the environment variable they can be read from. Values are
resolved with this precedence (highest first):

1. Explicit overrides (`with_overrides()` / `with_section_overrides()`)
2. Environment variables (CONFCORE_*), applied by `with_env_vars()`
3. Dataclass defaults

There is no global configuration: build a CoreConfig and hand it to
`ClientFactory.from_config()`.

Example:
    >>> from confcore import ClientFactory, CoreConfig
    >>> config = CoreConfig.from_env().with_section_overrides(
    ...     transport={"concurrent_request_limit": 5, "rate_limiter_enabled": True},
    ... )
    >>> factory = ClientFactory.from_config(config)
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field, fields, replace
from typing import Any, Self


# =============================================================================
# Exceptions
# =============================================================================


class ConfigEnvVarError(ValueError):
    """Raised when an environment variable holds a value of the wrong type."""

    def __init__(
        self,
        env_var: str,
        value: str,
        expected_type: str,
        cause: Exception | None = None,
    ):
        self.env_var = env_var
        self.value = value
        self.expected_type = expected_type
        super().__init__(f"Invalid value for {env_var}: '{value}' (expected {expected_type})")
        self.__cause__ = cause


class ConfigValidationError(ValueError):
    """Raised when a configuration value fails validation."""

    def __init__(
        self,
        field: str,
        value: Any,
        message: str,
        section: str | None = None,
    ):
        self.field = field
        self.value = value
        self.section = section
        prefix = f"[{section}] " if section else ""
        super().__init__(f"{prefix}Invalid value for '{field}': {value!r}. {message}")


# =============================================================================
# Environment Variables
# =============================================================================


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


def _parse_csv(value: str) -> tuple[str, ...]:
    return tuple(item for item in (part.strip() for part in value.replace(" ", ",").split(",")) if item)


class EnvVars:
    """
    Typed access to environment variables.

    Example:
        >>> EnvVars.get("CONFCORE_TRANSPORT_CONCURRENT_REQUEST_LIMIT", type_hint=int)
        5
        >>> EnvVars.get("UNDEFINED_VAR")
        None
    """

    _CONVERTERS: dict[str, Callable[[str], Any]] = {
        "int": int,
        "float": float,
        "bool": _parse_bool,
    }

    @staticmethod
    def get(
        var_name: str,
        type_hint: Any = str,
        converter: Callable[[str], Any] | None = None,
    ) -> Any:
        """
        Read and convert an environment variable.

        Args:
            var_name: Name of the variable.
            type_hint: Field type used to pick a converter. String annotations
                are supported; optional types use their first member.
            converter: Explicit converter, takes precedence over `type_hint`.

        Returns:
            The converted value, or None when the variable is unset or empty.

        Raises:
            ConfigEnvVarError: If conversion fails.
        """
        raw_value = os.environ.get(var_name)
        if not raw_value:
            return None

        type_name = EnvVars._type_name(type_hint)
        actual_converter = converter or EnvVars._CONVERTERS.get(type_name, str)
        try:
            return actual_converter(raw_value)
        except (ValueError, TypeError) as e:
            raise ConfigEnvVarError(
                env_var=var_name,
                value=raw_value,
                expected_type=type_name,
                cause=e,
            ) from e

    @staticmethod
    def _type_name(type_hint: Any) -> str:
        # "float | None" -> "float" (annotations are strings under PEP 563)
        name = type_hint if isinstance(type_hint, str) else getattr(type_hint, "__name__", str(type_hint))
        return name.split("|")[0].strip()


# =============================================================================
# Base Config
# =============================================================================


@dataclass(frozen=True)
class OverridableConfig:
    """
    Base class of configuration sections.

    Subclasses declare `field(metadata={"env": "VAR_NAME"})` on fields that
    can be read from the environment.
    """

    def with_overrides(
        self,
        overrides: dict[str, Any] | None,
        allow_none_fields: set[str] | None = None,
    ) -> Self:
        """
        Return a copy with the given fields replaced.

        None values are ignored unless the field is listed in `allow_none_fields`.

        Raises:
            ValueError: If `overrides` names a field the section does not have.
        """
        if not overrides:
            return self

        valid_fields = {f.name for f in fields(self)}
        unknown = set(overrides) - valid_fields
        if unknown:
            raise ValueError(f"Unknown config fields: {sorted(unknown)}. Valid fields are: {sorted(valid_fields)}")

        allow_none = allow_none_fields or set()
        changes = {k: v for k, v in overrides.items() if v is not None or k in allow_none}
        return replace(self, **changes) if changes else self

    def with_env_vars(self) -> Self:
        """
        Return a copy with values read from the environment.

        Raises:
            ConfigEnvVarError: If a variable cannot be converted.
        """
        overrides: dict[str, Any] = {}
        for f in fields(self):
            env_var = f.metadata.get("env")
            if not env_var:
                continue
            value = EnvVars.get(env_var, type_hint=f.type, converter=f.metadata.get("converter"))
            if value is not None:
                overrides[f.name] = value
        return self.with_overrides(overrides)


# =============================================================================
# Config Sections
# =============================================================================


def _check_url(value: str | None, field_name: str, section: str) -> None:
    if value and not value.startswith(("http://", "https://")):
        raise ConfigValidationError(field_name, value, "Must start with 'http://' or 'https://'.", section=section)


@dataclass(frozen=True)
class AuthConfig(OverridableConfig):
    """
    Credentials used to authenticate API calls.

    Platform APIs use OAuth client credentials; classic APIs use an access token.

    Attributes:
        client_id: OAuth client ID. Env var: CONFCORE_AUTH_CLIENT_ID
        client_secret: OAuth client secret. Env var: CONFCORE_AUTH_CLIENT_SECRET
        token_url: OAuth token endpoint. Env var: CONFCORE_AUTH_TOKEN_URL
        scopes: Requested OAuth scopes. Env var: CONFCORE_AUTH_SCOPES (comma-separated)
        access_token: API token for classic endpoints. Env var: CONFCORE_AUTH_ACCESS_TOKEN
    """

    client_id: str | None = field(default=None, metadata={"env": "CONFCORE_AUTH_CLIENT_ID"})
    client_secret: str | None = field(default=None, metadata={"env": "CONFCORE_AUTH_CLIENT_SECRET"})
    token_url: str = field(
        default="https://sso.dynatrace.com/sso/oauth2/token",
        metadata={"env": "CONFCORE_AUTH_TOKEN_URL"},
    )
    scopes: tuple[str, ...] = field(
        default=(),
        metadata={"env": "CONFCORE_AUTH_SCOPES", "converter": _parse_csv},
    )
    access_token: str | None = field(default=None, metadata={"env": "CONFCORE_AUTH_ACCESS_TOKEN"})

    def has_oauth_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def validate(self) -> Self:
        for name in ("client_id", "client_secret", "access_token"):
            if getattr(self, name) == "":
                raise ConfigValidationError(name, "", "Must not be empty string.", section="auth")
        if not self.token_url:
            raise ConfigValidationError("token_url", self.token_url, "Must not be empty.", section="auth")
        _check_url(self.token_url, "token_url", "auth")
        return self


@dataclass(frozen=True)
class EndpointConfig(OverridableConfig):
    """
    Base URLs of the target environment.

    Attributes:
        platform_url: Platform API base URL. Env var: CONFCORE_PLATFORM_URL
        classic_url: Classic environment API base URL. Env var: CONFCORE_CLASSIC_URL
    """

    platform_url: str | None = field(default=None, metadata={"env": "CONFCORE_PLATFORM_URL"})
    classic_url: str | None = field(default=None, metadata={"env": "CONFCORE_CLASSIC_URL"})

    def validate(self) -> Self:
        _check_url(self.platform_url, "platform_url", "endpoints")
        _check_url(self.classic_url, "classic_url", "endpoints")
        return self


@dataclass(frozen=True)
class TransportConfig(OverridableConfig):
    """
    Transport settings shared by every client a factory creates.

    Attributes:
        request_timeout: Per-request timeout in seconds; None disables it.
            Env var: CONFCORE_TRANSPORT_REQUEST_TIMEOUT
        concurrent_request_limit: Maximum in-flight requests (0 = unlimited).
            Env var: CONFCORE_TRANSPORT_CONCURRENT_REQUEST_LIMIT
        rate_limiter_enabled: Honor server rate-limit headers.
            Env var: CONFCORE_TRANSPORT_RATE_LIMITER_ENABLED
        retry_max_retries: Client-level retries for failed responses (0 = none).
            Env var: CONFCORE_TRANSPORT_RETRY_MAX_RETRIES
        retry_delay_after_retry: Seconds between retries.
            Env var: CONFCORE_TRANSPORT_RETRY_DELAY_AFTER_RETRY
        user_agent: User-Agent header sent with every request.
            Env var: CONFCORE_TRANSPORT_USER_AGENT
    """

    request_timeout: float | None = field(default=None, metadata={"env": "CONFCORE_TRANSPORT_REQUEST_TIMEOUT"})
    concurrent_request_limit: int = field(default=0, metadata={"env": "CONFCORE_TRANSPORT_CONCURRENT_REQUEST_LIMIT"})
    rate_limiter_enabled: bool = field(default=False, metadata={"env": "CONFCORE_TRANSPORT_RATE_LIMITER_ENABLED"})
    retry_max_retries: int = field(default=0, metadata={"env": "CONFCORE_TRANSPORT_RETRY_MAX_RETRIES"})
    retry_delay_after_retry: float = field(default=0.1, metadata={"env": "CONFCORE_TRANSPORT_RETRY_DELAY_AFTER_RETRY"})
    user_agent: str | None = field(default=None, metadata={"env": "CONFCORE_TRANSPORT_USER_AGENT"})

    def validate(self) -> Self:
        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ConfigValidationError(
                "request_timeout", self.request_timeout,
                "Must be greater than 0 (or None to disable).", section="transport"
            )
        if self.retry_max_retries < 0:
            raise ConfigValidationError(
                "retry_max_retries", self.retry_max_retries,
                "Must be >= 0.", section="transport"
            )
        if self.retry_delay_after_retry < 0:
            raise ConfigValidationError(
                "retry_delay_after_retry", self.retry_delay_after_retry,
                "Must be >= 0.", section="transport"
            )
        return self


# =============================================================================
# Core Config
# =============================================================================


@dataclass(frozen=True)
class CoreConfig:
    """
    Root configuration aggregating every section.

    Example:
        >>> config = CoreConfig.from_env()
        >>> config.transport.concurrent_request_limit
        0
    """

    auth: AuthConfig = field(default_factory=AuthConfig)
    endpoints: EndpointConfig = field(default_factory=EndpointConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)

    @classmethod
    def from_env(cls) -> CoreConfig:
        """Build a configuration from defaults and CONFCORE_* environment variables."""
        return cls(
            auth=AuthConfig().with_env_vars(),
            endpoints=EndpointConfig().with_env_vars(),
            transport=TransportConfig().with_env_vars(),
        )

    def with_section_overrides(
        self,
        auth: dict[str, Any] | None = None,
        endpoints: dict[str, Any] | None = None,
        transport: dict[str, Any] | None = None,
    ) -> CoreConfig:
        """Return a copy with per-section overrides applied."""
        return CoreConfig(
            auth=self.auth.with_overrides(auth),
            endpoints=self.endpoints.with_overrides(endpoints),
            transport=self.transport.with_overrides(transport, allow_none_fields={"request_timeout"}),
        )

    def validate(self) -> CoreConfig:
        """
        Validate every section.

        Raises:
            ConfigValidationError: On the first invalid value found.
        """
        self.auth.validate()
        self.endpoints.validate()
        self.transport.validate()
        return self

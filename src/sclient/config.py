"""Configuration for sclient clients.

The client configuration is a frozen dataclass. Option groups that carry
validation rules (retry, cache, logging) are Pydantic models and may be
given as plain dicts, which are converted when the configuration is built.

Classes:
    RetryConfig: Retry and backoff behavior
    CacheConfig: Response cache behavior
    LoggingConfig: Logging interceptor verbosity
    ClientConfig: Main configuration for a client

Example:
    Configure a client that retries on 503 with exponential backoff::

        config = ClientConfig(
            base_url="https://api.example.com",
            default_headers={"Accept": "application/json"},
            retry={"max_retries": 2, "retry_delay": 0.1, "retry_status_codes": {503}},
            enable_logging=True,
        )
"""

from __future__ import annotations

import json as jsonlib
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ConfigurationError
from .types import Timeouts, normalize_headers

DEFAULT_SUCCESS_CODES = frozenset(range(200, 300))
DEFAULT_ERROR_CODES = frozenset(range(400, 600))
DEFAULT_RETRY_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

CLIENT_TYPES = ("httpx", "aiohttp")


class RetryConfig(BaseModel):
    """Configuration for retry behavior.

    Attributes:
        max_retries: Retries allowed after the first attempt (default: 3)
        retry_delay: Base delay in seconds before a retry (default: 1.0)
        exponential_backoff: Double the delay on every retry (default: True)
        max_delay: Upper bound for a single delay, if any (default: None)
        retry_status_codes: Status codes that make a failed attempt retryable
        respect_retry_after: Use a numeric Retry-After header as the delay

    Example:
        Three dispatches at most, waiting 0.5s then 1s::

            retry = RetryConfig(max_retries=2, retry_delay=0.5)
    """

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)
    exponential_backoff: bool = True
    max_delay: float | None = Field(default=None, ge=0)
    retry_status_codes: frozenset[int] = DEFAULT_RETRY_STATUS_CODES
    respect_retry_after: bool = False


class CacheConfig(BaseModel):
    """Configuration for the response cache.

    Attributes:
        max_entries: Maximum number of cached responses (default: 100)
        max_size: Optional bound on the summed size of cached responses in bytes
        default_max_age: Freshness window in seconds when the response declares none
        cache_methods: Methods whose responses are cached (default: GET)
        cache_only_success: Only cache statuses in the client's ``success_codes``
        respect_cache_control: Honor ``max-age`` and ``no-store`` on responses
        key_headers: Headers that take part in the fingerprint; all if None
        exclude_headers: Headers left out of the fingerprint when key_headers is None
    """

    model_config = ConfigDict(frozen=True)

    max_entries: int = Field(default=100, ge=1)
    max_size: int | None = Field(default=None, ge=1)
    default_max_age: float = Field(default=300.0, ge=0)
    cache_methods: frozenset[str] = frozenset({"GET"})
    cache_only_success: bool = True
    respect_cache_control: bool = True
    key_headers: frozenset[str] | None = None
    exclude_headers: frozenset[str] = frozenset({"x-request-id", "x-correlation-id", "date"})

    @field_validator("cache_methods")
    @classmethod
    def _upper_methods(cls, value: frozenset[str]) -> frozenset[str]:
        return frozenset(method.upper() for method in value)

    @field_validator("key_headers", "exclude_headers")
    @classmethod
    def _lower_headers(cls, value: frozenset[str] | None) -> frozenset[str] | None:
        if value is None:
            return None
        return frozenset(name.lower() for name in value)


class LoggingConfig(BaseModel):
    """Verbosity options for the logging interceptor."""

    model_config = ConfigDict(frozen=True)

    level: int = logging.DEBUG
    log_headers: bool = True
    log_body: bool = False
    max_body_length: int = Field(default=1000, ge=0)
    pretty: bool = False
    redact_headers: frozenset[str] = frozenset(
        {"authorization", "proxy-authorization", "cookie", "set-cookie", "x-api-key"}
    )
    logger_name: str = "sclient.http"

    @field_validator("redact_headers")
    @classmethod
    def _lower_headers(cls, value: frozenset[str]) -> frozenset[str]:
        return frozenset(name.lower() for name in value)


@dataclass(frozen=True)
class ClientConfig:
    """Configuration for a client.

    Immutable once created. Every client owns its configuration; several
    independently configured clients can coexist in one process.

    Attributes:
        base_url: Prefix applied to relative request URLs
        connect_timeout: Connection timeout in seconds (default: 10.0)
        send_timeout: Timeout for sending the request in seconds (default: 30.0)
        receive_timeout: Timeout for receiving the response in seconds (default: 30.0)
        default_headers: Headers added to every request unless overridden per call
        success_codes: Status codes classified as success (default: 200-299)
        error_codes: Status codes classified as errors (default: 400-599)
        strict_status: Treat codes in neither set as errors instead of successes
        retry: Retry configuration
        interceptors: Ordered interceptors
        enable_logging: Append a LoggingInterceptor built from ``logging_config``
        logging_config: Options for that logging interceptor
        client_type: Transport implementation, ``"httpx"`` or ``"aiohttp"``
        json_decoder: Function used by :meth:`Response.json` helpers
        verify_ssl: Verify TLS certificates
        follow_redirects: Follow redirects

    Raises:
        ConfigurationError: If success and error codes overlap, a timeout is
            not positive, or the client type is unknown.
    """

    base_url: str | None = None
    connect_timeout: float | None = 10.0
    send_timeout: float | None = 30.0
    receive_timeout: float | None = 30.0
    default_headers: Mapping[str, str] = field(default_factory=dict)
    success_codes: frozenset[int] = DEFAULT_SUCCESS_CODES
    error_codes: frozenset[int] = DEFAULT_ERROR_CODES
    strict_status: bool = False
    retry: RetryConfig = field(default_factory=RetryConfig)
    interceptors: tuple[Any, ...] = ()
    enable_logging: bool = False
    logging_config: LoggingConfig = field(default_factory=LoggingConfig)
    client_type: str = "httpx"
    json_decoder: Callable[[str], Any] = jsonlib.loads
    verify_ssl: bool = True
    follow_redirects: bool = True

    def __post_init__(self):
        # Convert dict option groups to proper types
        if isinstance(self.retry, Mapping):
            object.__setattr__(self, "retry", RetryConfig(**self.retry))
        if isinstance(self.logging_config, Mapping):
            object.__setattr__(self, "logging_config", LoggingConfig(**self.logging_config))

        object.__setattr__(self, "default_headers", normalize_headers(self.default_headers))
        object.__setattr__(self, "success_codes", frozenset(self.success_codes))
        object.__setattr__(self, "error_codes", frozenset(self.error_codes))
        object.__setattr__(self, "interceptors", tuple(self.interceptors))

        overlap = self.success_codes & self.error_codes
        if overlap:
            raise ConfigurationError(
                f"success_codes and error_codes overlap: {sorted(overlap)}"
            )
        for name in ("connect_timeout", "send_timeout", "receive_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigurationError(f"{name} must be > 0 when provided")
        if self.client_type not in CLIENT_TYPES:
            raise ConfigurationError(
                f"Unknown client_type {self.client_type!r}; expected one of {CLIENT_TYPES}"
            )

    @property
    def timeouts(self) -> Timeouts:
        return Timeouts(
            connect=self.connect_timeout, send=self.send_timeout, receive=self.receive_timeout
        )

    def is_error_status(self, status_code: int) -> bool:
        """Classify a status code. Error codes take precedence over success codes."""
        if status_code in self.error_codes:
            return True
        if status_code in self.success_codes:
            return False
        return self.strict_status

    def resolve_url(self, url: str) -> str:
        """Prefix a relative URL with ``base_url``."""
        if "://" in url or not self.base_url:
            return url
        return f"{self.base_url.rstrip('/')}/{url.lstrip('/')}"

"""Resilient, backend-agnostic HTTP client for asyncio applications.

sclient executes HTTP requests through a pluggable transport (httpx or
aiohttp) and layers the behavior most API clients end up re-implementing
on top of it. Calls never raise: each returns a ``(response, error)``
result.

Key Features:
    - Interceptor chain with built-in logging, authentication and caching
    - Retry with exponential or constant backoff, cancellable while waiting
    - Bounded LRU response cache with Cache-Control support
    - Cancellation of in-flight calls by key
    - Configurable success and error status codes
    - Streamed downloads and multipart uploads with progress callbacks

Quick Start:
    Basic usage example::

        from sclient import ClientConfig, SClient

        config = ClientConfig(
            base_url="https://api.example.com",
            default_headers={"Accept": "application/json"},
        )

        async with SClient(config) as client:
            response, error = await client.get("/users")
            if error is None:
                print(client.decode_json(response))
            else:
                print(f"failed: {error}")

Advanced Features:
    Authenticate, cache and retry::

        from sclient import AuthInterceptor, CacheInterceptor

        config = ClientConfig(
            base_url="https://api.example.com",
            interceptors=[
                AuthInterceptor.bearer(lambda: tokens.access_token),
                CacheInterceptor(max_entries=50, default_max_age=60),
            ],
            retry={"max_retries": 2, "retry_delay": 0.5},
            enable_logging=True,
        )

    Cancel a call from elsewhere::

        task = asyncio.create_task(client.get("/slow", cancel_key="report"))
        client.cancel("report")
        response, error = await task  # error.kind is ErrorKind.CANCELLED
"""

from .cache import CacheEntry, ResponseCache
from .cancellation import CancellationHandle, CancellationRegistry
from .client import SClient
from .config import CacheConfig, ClientConfig, LoggingConfig, RetryConfig
from .errors import ConfigurationError, ErrorKind, SClientError, SClientException, TransportError
from .interceptors import (
    AuthInterceptor,
    AuthScheme,
    CacheInterceptor,
    Interceptor,
    InterceptorChain,
    LoggingInterceptor,
)
from .progress import ProgressNotifier
from .retry import Outcome, RetryEngine, RetryPolicy
from .transports import Transport, create_transport
from .types import FileAttachment, HTTPMethod, Request, Response, Result, Timeouts

__version__ = "0.1.0"

__all__ = [
    # Client
    "SClient",
    # Configuration
    "CacheConfig",
    "ClientConfig",
    "LoggingConfig",
    "RetryConfig",
    # Types
    "FileAttachment",
    "HTTPMethod",
    "Request",
    "Response",
    "Result",
    "Timeouts",
    # Errors
    "ConfigurationError",
    "ErrorKind",
    "SClientError",
    "SClientException",
    "TransportError",
    # Interceptors
    "AuthInterceptor",
    "AuthScheme",
    "CacheInterceptor",
    "Interceptor",
    "InterceptorChain",
    "LoggingInterceptor",
    # Machinery
    "CacheEntry",
    "CancellationHandle",
    "CancellationRegistry",
    "Outcome",
    "ProgressNotifier",
    "ResponseCache",
    "RetryEngine",
    "RetryPolicy",
    "Transport",
    "create_transport",
]

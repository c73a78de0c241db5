"""Response cache interceptor."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from ..cache import ResponseCache, fingerprint, is_no_store, parse_max_age
from ..config import DEFAULT_SUCCESS_CODES, CacheConfig, ClientConfig
from ..types import STREAMED_EXTENSION, Request, Response

logger = logging.getLogger(__name__)

CACHE_KEY_EXTENSION = "sclient.cache_key"


class CacheInterceptor:
    """Serve repeated requests from a bounded response cache.

    In the request phase a live cached response for the request's
    fingerprint short-circuits the call: no dispatch, no retry. In the
    response phase successful responses are stored; with
    ``cache_only_success`` only statuses in the bound client's
    ``success_codes`` qualify. Cache failures are logged and never fail
    the call.

    Place it after interceptors that shape the request (auth, default
    headers) so the fingerprint sees the final headers.

    Args:
        config: Cache options; keyword options build one when omitted
        cache: Cache instance to use, e.g. one shared between clients
        clock: Monotonic clock for the created cache

    Example:
        Cache GET responses for one minute, at most 50 of them::

            CacheInterceptor(max_entries=50, default_max_age=60)
    """

    name = "cache"

    def __init__(
        self,
        config: CacheConfig | None = None,
        cache: ResponseCache | None = None,
        clock: Callable[[], float] = time.monotonic,
        **options: Any,
    ):
        self.config = config or CacheConfig(**options)
        self.cache = cache or ResponseCache(
            max_entries=self.config.max_entries, max_size=self.config.max_size, clock=clock
        )
        self.success_codes = DEFAULT_SUCCESS_CODES

    def bind(self, client_config: ClientConfig) -> None:
        """Adopt the success codes of the client this interceptor serves."""
        self.success_codes = client_config.success_codes

    def key_for(self, request: Request) -> str:
        return fingerprint(
            request,
            key_headers=self.config.key_headers,
            exclude_headers=self.config.exclude_headers,
        )

    def is_cacheable(self, request: Request) -> bool:
        if request.extensions.get(STREAMED_EXTENSION):
            return False
        return request.method.value in self.config.cache_methods

    def on_request(self, request: Request) -> Request | Response:
        if not self.is_cacheable(request):
            return request
        try:
            key = self.key_for(request)
            cached = self.cache.get(key)
        except Exception:
            logger.warning(f"Cache lookup failed for {request.url}", exc_info=True)
            return request

        if cached is None:
            return request.with_extension(CACHE_KEY_EXTENSION, key)
        logger.debug(f"Cache hit for {request.method.value} {request.url}")
        return cached.replace(request=request, from_cache=True)

    def on_response(self, request: Request, response: Response) -> Response:
        if response.from_cache or not self.is_cacheable(request):
            return response
        if self.config.cache_only_success and response.status_code not in self.success_codes:
            return response
        try:
            max_age = self.config.default_max_age
            if self.config.respect_cache_control:
                if is_no_store(response):
                    return response
                declared = parse_max_age(response)
                if declared is not None:
                    max_age = declared
            if max_age <= 0:
                return response

            key = request.extensions.get(CACHE_KEY_EXTENSION) or self.key_for(request)
            self.cache.set(key, response, max_age)
        except Exception:
            logger.warning(f"Cache store failed for {request.url}", exc_info=True)
        return response

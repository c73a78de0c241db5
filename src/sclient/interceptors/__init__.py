"""Interceptors: cross-cutting behavior layered onto every call.

An interceptor is any object exposing any subset of three hooks, each of
which may be sync or async:

- ``on_request(request)`` returns the request to send, a
  :class:`~sclient.types.Response` to short-circuit the call, or None to
  abort it with a ``cancelled`` error.
- ``on_response(request, response)`` returns the (possibly transformed)
  response of a successful call.
- ``on_error(request, error, attempt)`` is told about every failed attempt
  and returns True to ask for a retry.

Built-in interceptors:
    LoggingInterceptor: Logs requests, responses and failures
    AuthInterceptor: Injects bearer, API key or basic credentials
    CacheInterceptor: Serves repeated GET requests from a response cache
"""

from .auth import AuthInterceptor, AuthScheme
from .cache import CacheInterceptor
from .chain import Interceptor, InterceptorChain, RequestPhase
from .log import LoggingInterceptor

__all__ = [
    "AuthInterceptor",
    "AuthScheme",
    "CacheInterceptor",
    "Interceptor",
    "InterceptorChain",
    "LoggingInterceptor",
    "RequestPhase",
]

"""Authentication interceptor."""

from __future__ import annotations

import base64
import inspect
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Union

from ..types import Request

CredentialProvider = Callable[[], Union[Any, Awaitable[Any]]]


class AuthScheme(str, Enum):
    BEARER = "bearer"
    API_KEY = "api_key"
    BASIC = "basic"


class AuthInterceptor:
    """Inject a credential header on every attempt.

    The provider is called for every attempt, including retries, so a token
    refreshed between attempts is picked up. It may be sync or async and
    returns the token (bearer, api_key) or a ``(username, password)`` pair
    (basic). Returning None sends the request without credentials.

    Args:
        provider: Credential provider, or a constant credential
        scheme: Authentication scheme
        header_name: Header to set (default: Authorization, or X-API-Key for api_key)
        prefix: Prefix placed before an API key, e.g. "Token"
        overwrite: Replace a credential header the request already carries

    Example:
        Bearer token read from a token store::

            AuthInterceptor.bearer(lambda: token_store.access_token)
    """

    name = "auth"

    def __init__(
        self,
        provider: CredentialProvider | Any,
        scheme: AuthScheme | str = AuthScheme.BEARER,
        header_name: str | None = None,
        prefix: str | None = None,
        overwrite: bool = True,
    ):
        self.provider = provider if callable(provider) else (lambda: provider)
        self.scheme = AuthScheme(scheme)
        if header_name is None:
            header_name = "X-API-Key" if self.scheme is AuthScheme.API_KEY else "Authorization"
        self.header_name = header_name
        self.prefix = prefix
        self.overwrite = overwrite

    @classmethod
    def bearer(cls, provider: CredentialProvider | str) -> AuthInterceptor:
        return cls(provider, AuthScheme.BEARER)

    @classmethod
    def api_key(
        cls,
        provider: CredentialProvider | str,
        header_name: str = "X-API-Key",
        prefix: str | None = None,
    ) -> AuthInterceptor:
        return cls(provider, AuthScheme.API_KEY, header_name=header_name, prefix=prefix)

    @classmethod
    def basic(cls, provider: CredentialProvider | tuple[str, str]) -> AuthInterceptor:
        return cls(provider, AuthScheme.BASIC)

    async def on_request(self, request: Request) -> Request:
        if not self.overwrite and request.header(self.header_name) is not None:
            return request

        credential = self.provider()
        if inspect.isawaitable(credential):
            credential = await credential
        if credential is None:
            return request

        return request.with_header(self.header_name, self._header_value(credential))

    def _header_value(self, credential: Any) -> str:
        if self.scheme is AuthScheme.BEARER:
            return f"Bearer {credential}"
        if self.scheme is AuthScheme.BASIC:
            username, password = credential
            token = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
            return f"Basic {token}"
        return f"{self.prefix} {credential}" if self.prefix else str(credential)

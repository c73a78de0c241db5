"""Type definitions for sclient.

This module defines the immutable value types that flow through the request
pipeline, along with the type aliases used for callbacks.

Requests and responses are frozen dataclasses. Interceptors that want to
change a request build a new one with :meth:`Request.with_header`,
:meth:`Request.replace` and friends; the original stays intact.

Classes:
    HTTPMethod: Supported request methods
    Timeouts: Per-request timeout overrides
    FileAttachment: A file attached to an upload request
    Request: An HTTP request
    Response: An HTTP response
    Result: The ``(response, error)`` pair every call returns

Example:
    Building and deriving requests::

        from sclient.types import Request

        request = Request("GET", "https://api.example.com/users", headers={"Accept": "application/json"})
        traced = request.with_header("X-Request-ID", "abc123")

        assert "x-request-id" not in request.headers
        assert traced.headers["x-request-id"] == "abc123"
"""

from __future__ import annotations

import dataclasses
import json as jsonlib
import os
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, NamedTuple, Union

if TYPE_CHECKING:
    from .errors import SClientError


STREAMED_EXTENSION = "sclient.streamed"
"""Request extension marking a transfer whose body is streamed to or from a file."""


class HTTPMethod(str, Enum):
    """HTTP methods supported by the client."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"

    def __str__(self) -> str:
        return self.value


HeaderInput = Union[Mapping[str, str], Iterable[tuple[str, str]], None]


def normalize_headers(*sources: HeaderInput) -> Mapping[str, str]:
    """Merge header sources into a read-only mapping with lower-cased keys.

    Later sources win over earlier ones, and names are compared
    case-insensitively, so ``{"Accept": "a"}`` followed by
    ``{"accept": "b"}`` yields ``{"accept": "b"}``.
    """
    merged: dict[str, str] = {}
    for source in sources:
        if not source:
            continue
        items = source.items() if isinstance(source, Mapping) else source
        for name, value in items:
            merged[str(name).lower()] = str(value)
    return MappingProxyType(merged)


@dataclass(frozen=True)
class Timeouts:
    """Timeout durations in seconds. ``None`` means "use the client default"."""

    connect: float | None = None
    send: float | None = None
    receive: float | None = None

    def merged_over(self, defaults: Timeouts) -> Timeouts:
        """Return these timeouts with unset values filled from ``defaults``."""
        return Timeouts(
            connect=self.connect if self.connect is not None else defaults.connect,
            send=self.send if self.send is not None else defaults.send,
            receive=self.receive if self.receive is not None else defaults.receive,
        )


@dataclass(frozen=True)
class FileAttachment:
    """A file to be sent as one part of a multipart upload."""

    path: str
    field_name: str = "file"
    filename: str | None = None
    content_type: str = "application/octet-stream"

    @property
    def name(self) -> str:
        return self.filename or os.path.basename(self.path)

    @property
    def size(self) -> int:
        return os.path.getsize(self.path)


@dataclass(frozen=True)
class Request:
    """An HTTP request.

    Header names are stored lower-cased in a read-only mapping. At most one
    of ``body``, ``json`` and ``form`` is expected to be set; ``form`` may be
    combined with ``attachment`` for multipart uploads.

    Attributes:
        method: HTTP method
        url: Absolute request URL
        headers: Read-only header mapping (lower-cased names)
        body: Raw request body
        json: Structured payload, encoded as JSON by the transport
        form: Form fields
        params: Query parameters
        timeouts: Per-request timeout overrides
        cancel_key: Key the logical call is registered under
        attachment: File attached to an upload
        extensions: Per-call metadata for interceptors; not sent on the wire
    """

    method: HTTPMethod
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes | None = None
    json: Any = None
    form: Mapping[str, str] | None = None
    params: Mapping[str, Any] | None = None
    timeouts: Timeouts = field(default_factory=Timeouts)
    cancel_key: str | None = None
    attachment: FileAttachment | None = None
    extensions: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "method", HTTPMethod(str(self.method).upper()))
        object.__setattr__(self, "headers", normalize_headers(self.headers))
        if self.form is not None:
            object.__setattr__(self, "form", MappingProxyType(dict(self.form)))
        if self.params is not None:
            object.__setattr__(self, "params", MappingProxyType(dict(self.params)))
        object.__setattr__(self, "extensions", MappingProxyType(dict(self.extensions)))

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)

    def with_header(self, name: str, value: str) -> Request:
        return self.with_headers({name: value})

    def with_headers(self, headers: HeaderInput) -> Request:
        return dataclasses.replace(self, headers=normalize_headers(self.headers, headers))

    def without_header(self, name: str) -> Request:
        remaining = {k: v for k, v in self.headers.items() if k != name.lower()}
        return dataclasses.replace(self, headers=remaining)

    def with_extension(self, name: str, value: Any) -> Request:
        return dataclasses.replace(self, extensions={**self.extensions, name: value})

    def replace(self, **changes: Any) -> Request:
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class Response:
    """An HTTP response.

    Attributes:
        status_code: HTTP status code
        headers: Read-only header mapping (lower-cased names)
        body: Response body; empty for downloads streamed to a file
        request: The request this response answers
        received_at: When the response was received (UTC)
        elapsed: Seconds between dispatch and receipt
        from_cache: Whether the response was served from the response cache
    """

    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    request: Request | None = field(default=None, repr=False, compare=False)
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    elapsed: float = 0.0
    from_cache: bool = False

    def __post_init__(self):
        object.__setattr__(self, "headers", normalize_headers(self.headers))

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)

    @property
    def text(self) -> str:
        charset = "utf-8"
        content_type = self.header("content-type", "")
        for part in content_type.split(";")[1:]:
            key, _, value = part.strip().partition("=")
            if key.lower() == "charset" and value:
                charset = value.strip('"')
        return self.body.decode(charset, errors="replace")

    def json(self, decoder: Callable[[str], Any] | None = None) -> Any:
        """Decode the body as JSON using ``decoder`` (``json.loads`` by default)."""
        return (decoder or jsonlib.loads)(self.text)

    def replace(self, **changes: Any) -> Response:
        return dataclasses.replace(self, **changes)


class Result(NamedTuple):
    """The outcome of a call: exactly one of ``response`` and ``error`` is set.

    Unpacks like a tuple::

        response, error = await client.get("/users")
    """

    response: Response | None
    error: SClientError | None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def status_code(self) -> int | None:
        if self.response is not None:
            return self.response.status_code
        return self.error.status_code if self.error is not None else None


# Callback type aliases. Each may also be a coroutine function.
SuccessCallback = Callable[[Response], Union[None, Awaitable[None]]]
"""Called with the terminal response of a successful call."""

ErrorCallback = Callable[["SClientError"], Union[None, Awaitable[None]]]
"""Called with the terminal error of a failed call."""

StatusHandler = Callable[[int, Union[Response, "SClientError"]], Union[None, Awaitable[None]]]
"""Called with the terminal status code and the response or error carrying it."""

ProgressCallback = Callable[[int, Union[int, None]], Union[None, Awaitable[None]]]
"""Called with ``(bytes_so_far, total_bytes_or_None)`` during a transfer."""

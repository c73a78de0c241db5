"""Transport capability: performs one HTTP exchange.

A transport turns a :class:`~sclient.types.Request` into a
:class:`~sclient.types.Response` and nothing more. It does not retry,
classify status codes or run interceptors. Failures to complete the
exchange are raised as :class:`~sclient.errors.TransportError` with the
matching :class:`~sclient.errors.ErrorKind`.

Two interchangeable implementations ship with sclient:

- :class:`HttpxTransport` (``client_type="httpx"``, the default)
- :class:`AiohttpTransport` (``client_type="aiohttp"``)

Any object satisfying :class:`Transport` can be passed to
:class:`~sclient.client.SClient` directly.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, BinaryIO, Protocol, runtime_checkable

from ..errors import ConfigurationError
from ..types import Request, Response

if TYPE_CHECKING:
    from ..config import ClientConfig
    from ..progress import ProgressNotifier


@runtime_checkable
class Transport(Protocol):
    """Protocol for transport implementations.

    Implementations must be safe to use from concurrent calls and must
    tolerate cancellation of the awaiting task at any point.
    """

    async def send(self, request: Request, notifier: ProgressNotifier | None = None) -> Response:
        """Perform one exchange.

        When ``request.attachment`` is set the request is sent as a multipart
        upload (with ``request.form`` as extra fields) and upload progress is
        reported to ``notifier``.
        """
        ...

    async def download(
        self,
        request: Request,
        sink: BinaryIO,
        should_stream: Callable[[int], bool],
        notifier: ProgressNotifier | None = None,
    ) -> Response:
        """Perform one exchange, streaming the body into ``sink``.

        The body is streamed only when ``should_stream(status_code)`` is
        true; otherwise it is read into the returned response as usual.
        """
        ...

    async def close(self) -> None:
        """Release connections."""
        ...


def create_transport(config: ClientConfig) -> Transport:
    """Create the transport selected by ``config.client_type``."""
    if config.client_type == "httpx":
        from .httpx_transport import HttpxTransport

        return HttpxTransport(config)
    if config.client_type == "aiohttp":
        from .aiohttp_transport import AiohttpTransport

        return AiohttpTransport(config)
    raise ConfigurationError(f"Unknown client_type {config.client_type!r}")


__all__ = ["Transport", "create_transport"]

"""Transport implementation using aiohttp."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from typing import TYPE_CHECKING, Any, BinaryIO

import aiohttp

from ..errors import ErrorKind, TransportError
from ..types import FileAttachment, Request, Response

if TYPE_CHECKING:
    from ..config import ClientConfig
    from ..progress import ProgressNotifier

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


def translate_error(exc: BaseException) -> TransportError:
    """Map an aiohttp (or asyncio timeout) exception to a TransportError."""
    if isinstance(exc, aiohttp.ConnectionTimeoutError):
        kind = ErrorKind.CONNECTION_TIMEOUT
    elif isinstance(exc, (aiohttp.ServerTimeoutError, asyncio.TimeoutError)):
        kind = ErrorKind.RECEIVE_TIMEOUT
    elif isinstance(
        exc,
        (aiohttp.ClientConnectorCertificateError, aiohttp.ClientSSLError, aiohttp.ServerFingerprintMismatch),
    ):
        kind = ErrorKind.BAD_CERTIFICATE
    elif isinstance(exc, aiohttp.ClientConnectionError):
        kind = ErrorKind.CONNECTION_ERROR
    else:
        kind = ErrorKind.UNKNOWN
    return TransportError(kind, f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__)


async def _read_attachment(
    attachment: FileAttachment, notifier: ProgressNotifier | None
) -> AsyncIterator[bytes]:
    with open(attachment.path, "rb") as file:
        while True:
            chunk = file.read(_CHUNK_SIZE)
            if not chunk:
                break
            if notifier is not None:
                notifier.advance(len(chunk))
            yield chunk


class AiohttpTransport:
    """Transport backed by :class:`aiohttp.ClientSession`.

    The session is created lazily on first use, inside the running event
    loop.

    Args:
        config: Client configuration (timeouts, TLS, redirects)
        session: Pre-built session to use instead of creating one
    """

    def __init__(self, config: ClientConfig, session: aiohttp.ClientSession | None = None):
        self.config = config
        self._session = session

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(ssl=True if self.config.verify_ssl else False)
            self._session = aiohttp.ClientSession(connector=connector)
        return self._session

    def _timeout(self, request: Request) -> aiohttp.ClientTimeout:
        timeouts = request.timeouts.merged_over(self.config.timeouts)
        return aiohttp.ClientTimeout(
            total=None, sock_connect=timeouts.connect, sock_read=timeouts.receive
        )

    def _request_kwargs(self, request: Request, notifier: ProgressNotifier | None) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "headers": dict(request.headers),
            "params": dict(request.params) if request.params else None,
            "timeout": self._timeout(request),
            "allow_redirects": self.config.follow_redirects,
        }
        if request.attachment is not None:
            attachment = request.attachment
            form = aiohttp.FormData()
            for name, value in (request.form or {}).items():
                form.add_field(name, value)
            form.add_field(
                attachment.field_name,
                _read_attachment(attachment, notifier),
                filename=attachment.name,
                content_type=attachment.content_type,
            )
            kwargs["data"] = form
        elif request.body is not None:
            kwargs["data"] = request.body
        elif request.json is not None:
            kwargs["json"] = request.json
        elif request.form is not None:
            kwargs["data"] = dict(request.form)
        return kwargs

    def _response(self, request: Request, response: aiohttp.ClientResponse, body: bytes, started: float):
        return Response(
            status_code=response.status,
            headers=response.headers.items(),
            body=body,
            request=request,
            elapsed=time.perf_counter() - started,
        )

    async def send(self, request: Request, notifier: ProgressNotifier | None = None) -> Response:
        started = time.perf_counter()
        if request.attachment is not None and notifier is not None:
            notifier.start(request.attachment.size)
        session = self._get_session()
        try:
            async with session.request(
                request.method.value, request.url, **self._request_kwargs(request, notifier)
            ) as response:
                body = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise translate_error(exc) from exc

        return self._response(request, response, body, started)

    async def download(
        self,
        request: Request,
        sink: BinaryIO,
        should_stream: Callable[[int], bool],
        notifier: ProgressNotifier | None = None,
    ) -> Response:
        started = time.perf_counter()
        session = self._get_session()
        try:
            async with session.request(
                request.method.value, request.url, **self._request_kwargs(request, None)
            ) as response:
                if not should_stream(response.status):
                    body = await response.read()
                    return self._response(request, response, body, started)

                if notifier is not None:
                    notifier.start(response.content_length)
                async for chunk in response.content.iter_chunked(_CHUNK_SIZE):
                    sink.write(chunk)
                    if notifier is not None:
                        notifier.advance(len(chunk))
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise translate_error(exc) from exc

        return self._response(request, response, b"", started)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

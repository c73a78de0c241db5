"""Transport implementation using httpx."""

from __future__ import annotations

import logging
import ssl
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, BinaryIO

import httpx

from ..errors import ErrorKind, TransportError
from ..types import Request, Response

if TYPE_CHECKING:
    from ..config import ClientConfig
    from ..progress import ProgressNotifier

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


def _is_certificate_error(exc: BaseException) -> bool:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, ssl.SSLCertVerificationError):
            return True
        if "CERTIFICATE_VERIFY_FAILED" in str(current):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


def translate_error(exc: httpx.HTTPError) -> TransportError:
    """Map an httpx exception to a TransportError of the matching kind."""
    if isinstance(exc, (httpx.ConnectTimeout, httpx.PoolTimeout)):
        kind = ErrorKind.CONNECTION_TIMEOUT
    elif isinstance(exc, httpx.WriteTimeout):
        kind = ErrorKind.SEND_TIMEOUT
    elif isinstance(exc, (httpx.ReadTimeout, httpx.TimeoutException)):
        kind = ErrorKind.RECEIVE_TIMEOUT
    elif isinstance(exc, httpx.ConnectError) and _is_certificate_error(exc):
        kind = ErrorKind.BAD_CERTIFICATE
    elif isinstance(exc, (httpx.NetworkError, httpx.ProxyError, httpx.RemoteProtocolError)):
        kind = ErrorKind.CONNECTION_ERROR
    else:
        kind = ErrorKind.UNKNOWN
    return TransportError(kind, f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__)


class _ProgressReader:
    """File wrapper that reports every read to a ProgressNotifier."""

    def __init__(self, file: BinaryIO, notifier: ProgressNotifier | None):
        self._file = file
        self._notifier = notifier

    def read(self, size: int = -1) -> bytes:
        chunk = self._file.read(size)
        if self._notifier is not None:
            self._notifier.advance(len(chunk))
        return chunk

    def seek(self, offset: int, whence: int = 0) -> int:
        position = self._file.seek(offset, whence)
        if self._notifier is not None and offset == 0 and whence == 0:
            self._notifier.start(self._notifier.total)
        return position

    def tell(self) -> int:
        return self._file.tell()

    def fileno(self) -> int:
        return self._file.fileno()


class HttpxTransport:
    """Transport backed by :class:`httpx.AsyncClient`.

    Args:
        config: Client configuration (timeouts, TLS, redirects)
        client: Pre-built httpx client to use instead of creating one
        transport: httpx transport for the created client, e.g.
            :class:`httpx.MockTransport` in tests
    """

    def __init__(
        self,
        config: ClientConfig,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._client = client or httpx.AsyncClient(
            verify=config.verify_ssl,
            follow_redirects=config.follow_redirects,
            transport=transport,
        )

    def _timeout(self, request: Request) -> httpx.Timeout:
        timeouts = request.timeouts.merged_over(self.config.timeouts)
        return httpx.Timeout(
            connect=timeouts.connect,
            read=timeouts.receive,
            write=timeouts.send,
            pool=timeouts.connect,
        )

    def _build_request(self, request: Request, upload: Any = None) -> httpx.Request:
        kwargs: dict[str, Any] = {
            "method": request.method.value,
            "url": request.url,
            "headers": dict(request.headers),
            "params": dict(request.params) if request.params else None,
            "timeout": self._timeout(request),
        }
        if request.attachment is not None:
            attachment = request.attachment
            kwargs["files"] = {
                attachment.field_name: (attachment.name, upload, attachment.content_type)
            }
            if request.form:
                kwargs["data"] = dict(request.form)
        elif request.body is not None:
            kwargs["content"] = request.body
        elif request.json is not None:
            kwargs["json"] = request.json
        elif request.form is not None:
            kwargs["data"] = dict(request.form)
        return self._client.build_request(**kwargs)

    def _response(self, request: Request, response: httpx.Response, body: bytes, started: float):
        return Response(
            status_code=response.status_code,
            headers=response.headers.items(),
            body=body,
            request=request,
            elapsed=time.perf_counter() - started,
        )

    async def send(self, request: Request, notifier: ProgressNotifier | None = None) -> Response:
        started = time.perf_counter()
        try:
            if request.attachment is not None:
                if notifier is not None:
                    notifier.start(request.attachment.size)
                with open(request.attachment.path, "rb") as file:
                    reader = _ProgressReader(file, notifier)
                    response = await self._client.send(self._build_request(request, reader))
            else:
                response = await self._client.send(self._build_request(request))
            body = response.content
        except httpx.HTTPError as exc:
            raise translate_error(exc) from exc
        except OSError as exc:
            raise TransportError(ErrorKind.UNKNOWN, f"Cannot read upload: {exc}") from exc

        return self._response(request, response, body, started)

    async def download(
        self,
        request: Request,
        sink: BinaryIO,
        should_stream: Callable[[int], bool],
        notifier: ProgressNotifier | None = None,
    ) -> Response:
        started = time.perf_counter()
        try:
            response = await self._client.send(self._build_request(request), stream=True)
            try:
                if not should_stream(response.status_code):
                    body = await response.aread()
                    return self._response(request, response, body, started)

                length = response.headers.get("content-length")
                if notifier is not None:
                    notifier.start(int(length) if length and length.isdigit() else None)
                async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                    sink.write(chunk)
                    if notifier is not None:
                        notifier.advance(len(chunk))
            finally:
                await response.aclose()
        except httpx.HTTPError as exc:
            raise translate_error(exc) from exc

        return self._response(request, response, b"", started)

    async def close(self) -> None:
        await self._client.aclose()

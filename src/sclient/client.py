"""The sclient client orchestrator."""

from __future__ import annotations

import inspect
import logging
import os
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, BinaryIO, ClassVar, Union

from .cancellation import CancellationRegistry
from .config import ClientConfig
from .errors import SClientError
from .interceptors import InterceptorChain, LoggingInterceptor
from .progress import ProgressNotifier
from .retry import RetryEngine
from .transports import Transport, create_transport
from .types import (
    STREAMED_EXTENSION,
    ErrorCallback,
    FileAttachment,
    HeaderInput,
    HTTPMethod,
    ProgressCallback,
    Request,
    Response,
    Result,
    StatusHandler,
    SuccessCallback,
    Timeouts,
    normalize_headers,
)

logger = logging.getLogger(__name__)

Destination = Union[str, "os.PathLike[str]", BinaryIO]


class SClient:
    """Resilient HTTP client.

    Every call returns a :class:`~sclient.types.Result` and never raises for
    transport, interceptor, classification or callback failures. Each call
    runs the interceptor chain around every attempt, retries according to
    ``config.retry`` and can be cancelled through its cancel key.

    Instances share no mutable state; a process-wide default instance is
    available through :meth:`configure` and :meth:`instance`.

    Args:
        config: Client configuration (defaults to ``ClientConfig()``)
        transport: Transport to use instead of the one selected by
            ``config.client_type``

    Example:
        Fetch a resource, retrying transient failures::

            async with SClient(ClientConfig(base_url="https://api.example.com")) as client:
                response, error = await client.get("/users", params={"page": 1})
                if error is None:
                    users = client.decode_json(response)
    """

    _default: ClassVar[SClient | None] = None

    def __init__(self, config: ClientConfig | None = None, transport: Transport | None = None):
        self.config = config or ClientConfig()
        self.transport = transport or create_transport(self.config)
        self.registry = CancellationRegistry()

        interceptors = list(self.config.interceptors)
        if self.config.enable_logging and not any(
            isinstance(interceptor, LoggingInterceptor) for interceptor in interceptors
        ):
            interceptors.append(LoggingInterceptor(self.config.logging_config))
        for interceptor in interceptors:
            bind = getattr(interceptor, "bind", None)
            if callable(bind):
                bind(self.config)
        self.chain = InterceptorChain(interceptors)
        self.engine = RetryEngine(self.config, self.chain)

    @classmethod
    def configure(cls, config: ClientConfig | None = None, transport: Transport | None = None) -> SClient:
        """Install and return a new process-wide default client.

        A previously installed default is replaced, not closed.
        """
        cls._default = cls(config, transport)
        return cls._default

    @classmethod
    def instance(cls) -> SClient:
        """Return the process-wide default client, creating it on first use."""
        if cls._default is None:
            cls._default = cls()
        return cls._default

    async def __aenter__(self) -> SClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the transport and release its connections."""
        await self.transport.close()

    def cancel(self, key: str) -> None:
        """Cancel every in-flight call registered under ``key``."""
        self.registry.cancel(key)

    def cancel_all(self) -> None:
        """Cancel every in-flight call of this client."""
        self.registry.cancel_all()

    def decode_json(self, response: Response) -> Any:
        """Decode a response body with the configured JSON decoder."""
        return response.json(self.config.json_decoder)

    async def request(
        self,
        method: HTTPMethod | str,
        url: str,
        *,
        body: bytes | str | None = None,
        json: Any = None,
        form: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        headers: HeaderInput = None,
        timeouts: Timeouts | None = None,
        cancel_key: str | None = None,
        on_success: SuccessCallback | None = None,
        on_error: ErrorCallback | None = None,
        on_status: Mapping[int, StatusHandler] | None = None,
    ) -> Result:
        """Execute one logical call.

        Args:
            method: HTTP method
            url: Absolute URL, or a path relative to ``config.base_url``
            body: Raw body; strings are encoded as UTF-8
            json: Payload encoded as JSON
            form: Form fields
            params: Query parameters
            headers: Per-call headers; they win over the default headers
            timeouts: Per-call timeout overrides
            cancel_key: Key to cancel the call with; generated when omitted
            on_success: Called with the response of a successful call
            on_error: Called with the error of a failed call
            on_status: Handlers keyed by the terminal status code

        Returns:
            ``(response, None)`` on success, ``(None, error)`` on failure
        """
        def build() -> Request:
            return self._build_request(
                method, url, body=body, json=json, form=form, params=params,
                headers=headers, timeouts=timeouts, cancel_key=cancel_key,
            )

        return await self._call(
            build, self._send, on_success=on_success, on_error=on_error, on_status=on_status
        )

    async def get(self, url: str, **kwargs: Any) -> Result:
        """Make a GET request."""
        return await self.request(HTTPMethod.GET, url, **kwargs)

    async def head(self, url: str, **kwargs: Any) -> Result:
        """Make a HEAD request."""
        return await self.request(HTTPMethod.HEAD, url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> Result:
        """Make a DELETE request."""
        return await self.request(HTTPMethod.DELETE, url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> Result:
        """Make a POST request."""
        return await self.request(HTTPMethod.POST, url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> Result:
        """Make a PUT request."""
        return await self.request(HTTPMethod.PUT, url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> Result:
        """Make a PATCH request."""
        return await self.request(HTTPMethod.PATCH, url, **kwargs)

    async def download(
        self,
        url: str,
        destination: Destination,
        *,
        on_progress: ProgressCallback | None = None,
        params: Mapping[str, Any] | None = None,
        headers: HeaderInput = None,
        timeouts: Timeouts | None = None,
        cancel_key: str | None = None,
        on_success: SuccessCallback | None = None,
        on_error: ErrorCallback | None = None,
        on_status: Mapping[int, StatusHandler] | None = None,
    ) -> Result:
        """Stream a GET response body into a file.

        ``destination`` is a path or a writable binary file object. Every
        attempt starts the file over. The returned response has an empty
        body; bodies of error responses are not written to the destination
        and stay available on the error's response.

        A path destination is written through a ``<path>.part`` sibling that
        replaces the destination only when the call succeeds, so a failed
        download leaves an existing file untouched.
        """

        def build() -> Request:
            return self._build_request(
                HTTPMethod.GET, url, params=params, headers=headers,
                timeouts=timeouts, cancel_key=cancel_key,
            ).with_extension(STREAMED_EXTENSION, True)

        notifier = ProgressNotifier(on_progress) if on_progress is not None else None

        def should_stream(status_code: int) -> bool:
            return not self.config.is_error_status(status_code)

        if not isinstance(destination, (str, os.PathLike)):
            sink = destination

            async def dispatch(attempt_request: Request) -> Response:
                if sink.seekable():
                    sink.seek(0)
                    sink.truncate()
                return await self.transport.download(attempt_request, sink, should_stream, notifier)

            return await self._call(
                build, dispatch, notifier=notifier,
                on_success=on_success, on_error=on_error, on_status=on_status,
            )

        path = os.fspath(destination)
        partial = f"{path}.part"

        async def dispatch(attempt_request: Request) -> Response:
            with open(partial, "wb") as part:
                return await self.transport.download(attempt_request, part, should_stream, notifier)

        def commit(result: Result) -> Result:
            if result.ok:
                os.replace(partial, path)
            return result

        try:
            return await self._call(
                build, dispatch, notifier=notifier, finalize=commit,
                on_success=on_success, on_error=on_error, on_status=on_status,
            )
        finally:
            self._remove_partial(partial)

    async def upload_file(
        self,
        url: str,
        file_path: str | os.PathLike[str],
        *,
        field_name: str = "file",
        filename: str | None = None,
        content_type: str = "application/octet-stream",
        form: Mapping[str, str] | None = None,
        method: HTTPMethod | str = HTTPMethod.POST,
        on_progress: ProgressCallback | None = None,
        params: Mapping[str, Any] | None = None,
        headers: HeaderInput = None,
        timeouts: Timeouts | None = None,
        cancel_key: str | None = None,
        on_success: SuccessCallback | None = None,
        on_error: ErrorCallback | None = None,
        on_status: Mapping[int, StatusHandler] | None = None,
    ) -> Result:
        """Upload a file as a multipart form, with ``form`` as extra fields."""
        def build() -> Request:
            attachment = FileAttachment(
                path=os.fspath(file_path),
                field_name=field_name,
                filename=filename,
                content_type=content_type,
            )
            return self._build_request(
                method, url, form=form, params=params, headers=headers,
                timeouts=timeouts, cancel_key=cancel_key,
            ).replace(attachment=attachment).with_extension(STREAMED_EXTENSION, True)

        notifier = ProgressNotifier(on_progress) if on_progress is not None else None

        async def dispatch(attempt_request: Request) -> Response:
            return await self.transport.send(attempt_request, notifier)

        return await self._call(
            build, dispatch, notifier=notifier,
            on_success=on_success, on_error=on_error, on_status=on_status,
        )

    def _build_request(
        self,
        method: HTTPMethod | str,
        url: str,
        *,
        body: bytes | str | None = None,
        json: Any = None,
        form: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        headers: HeaderInput = None,
        timeouts: Timeouts | None = None,
        cancel_key: str | None = None,
    ) -> Request:
        if isinstance(body, str):
            body = body.encode("utf-8")
        return Request(
            method=method,
            url=self.config.resolve_url(url),
            headers=normalize_headers(self.config.default_headers, headers),
            body=body,
            json=json,
            form=form,
            params=params,
            timeouts=timeouts or Timeouts(),
            cancel_key=cancel_key,
        )

    async def _send(self, request: Request) -> Response:
        return await self.transport.send(request)

    async def _call(
        self,
        build: Callable[[], Request],
        dispatch: Callable[[Request], Awaitable[Response]],
        *,
        notifier: ProgressNotifier | None = None,
        finalize: Callable[[Result], Result] | None = None,
        on_success: SuccessCallback | None = None,
        on_error: ErrorCallback | None = None,
        on_status: Mapping[int, StatusHandler] | None = None,
    ) -> Result:
        try:
            request = build()
        except Exception as exc:
            logger.exception("Could not build request")
            result = Result(None, SClientError.from_exception(exc))
        else:
            key, handle = self.registry.register(request.cancel_key)
            request = request.replace(cancel_key=key)
            try:
                outcome = await self.engine.run(request, handle, dispatch)
                result = Result(outcome.response, outcome.error)
                if notifier is not None:
                    await notifier.drain()
                if finalize is not None:
                    result = finalize(result)
            except Exception as exc:
                logger.exception(f"Unexpected failure in {request.method.value} {request.url}")
                result = Result(None, SClientError.from_exception(exc, request))
            finally:
                self.registry.remove(key, handle)

        if result.error is None:
            if on_success is not None:
                await self._invoke("on_success", on_success, result.response)
        elif on_error is not None:
            await self._invoke("on_error", on_error, result.error)

        status_code = result.status_code
        if on_status and status_code is not None:
            handler = on_status.get(status_code)
            if handler is not None:
                await self._invoke(
                    f"on_status[{status_code}]", handler, status_code, result.response or result.error
                )
        return result

    @staticmethod
    async def _invoke(label: str, callback: Callable[..., Any], *args: Any) -> None:
        try:
            value = callback(*args)
            if inspect.isawaitable(value):
                await value
        except Exception:
            logger.exception(f"{label} callback failed")

    @staticmethod
    def _remove_partial(path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning(f"Could not remove partial download {path}", exc_info=True)

"""Test configuration and fixtures for sclient."""

import inspect
import time
from typing import Any

import pytest

from sclient import ClientConfig, SClient
from sclient.types import Request, Response


class FakeTransport:
    """Transport that plays back a script of outcomes.

    Each step is an int (status code), a Response, an exception instance to
    raise, or a callable taking the request (sync or async) that returns one
    of those. The last step repeats once the script runs out.
    """

    def __init__(self, *script: Any):
        self.script = list(script) or [200]
        self.requests: list[Request] = []
        self.sent_at: list[float] = []
        self.closed = False

    async def _play(self, request: Request) -> Response:
        self.requests.append(request)
        self.sent_at.append(time.monotonic())
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]

        if callable(step):
            step = step(request)
            if inspect.isawaitable(step):
                step = await step
        if isinstance(step, BaseException):
            raise step
        if isinstance(step, int):
            return Response(step, request=request)
        return step.replace(request=request)

    async def send(self, request, notifier=None):
        response = await self._play(request)
        if request.attachment is not None and notifier is not None:
            size = request.attachment.size
            notifier.start(size)
            notifier.advance(size)
        return response

    async def download(self, request, sink, should_stream, notifier=None):
        response = await self._play(request)
        if not should_stream(response.status_code):
            return response
        if notifier is not None:
            notifier.start(len(response.body))
        for offset in range(0, len(response.body), 100):
            chunk = response.body[offset : offset + 100]
            sink.write(chunk)
            if notifier is not None:
                notifier.advance(len(chunk))
        return response.replace(body=b"")

    async def close(self):
        self.closed = True


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def make_client():
    """Create a client backed by a FakeTransport playing ``script``."""

    def factory(*script: Any, **options: Any) -> tuple[SClient, FakeTransport]:
        transport = FakeTransport(*script)
        options.setdefault("retry", {"retry_delay": 0.01})
        options.setdefault("base_url", "https://api.test")
        return SClient(ClientConfig(**options), transport=transport), transport

    return factory


@pytest.fixture
def clock() -> FakeClock:
    """Create a fake clock for cache expiry tests."""
    return FakeClock()


@pytest.fixture(autouse=True)
def reset_default_client():
    """Forget the process-wide default client between tests."""
    yield
    SClient._default = None

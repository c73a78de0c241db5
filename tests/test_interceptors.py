"""Tests for the interceptor chain and built-in interceptors."""

import base64
import logging

import pytest

from sclient.config import CacheConfig
from sclient.errors import ErrorKind, SClientError
from sclient.interceptors import (
    AuthInterceptor,
    AuthScheme,
    CacheInterceptor,
    Interceptor,
    InterceptorChain,
    LoggingInterceptor,
)
from sclient.interceptors.cache import CACHE_KEY_EXTENSION
from sclient.types import STREAMED_EXTENSION, Request, Response


def make_request(**kwargs):
    kwargs.setdefault("headers", {})
    return Request(kwargs.pop("method", "GET"), kwargs.pop("url", "https://api.test/x"), **kwargs)


@pytest.mark.asyncio
async def test_request_phase_runs_in_order():
    """Test each interceptor sees the previous one's request."""
    seen = []

    def first(request):
        seen.append(("first", dict(request.headers)))
        return request.with_header("X-Step", "1")

    async def second(request):
        seen.append(("second", dict(request.headers)))
        return request.with_header("X-Step", request.header("x-step") + "2")

    chain = InterceptorChain([Interceptor(on_request=first), Interceptor(on_request=second)])
    phase = await chain.run_request(make_request())

    assert seen == [("first", {}), ("second", {"x-step": "1"})]
    assert phase.request.header("x-step") == "12"
    assert phase.response is None
    assert not phase.aborted


@pytest.mark.asyncio
async def test_request_phase_abort_stops_chain():
    """Test returning None aborts and skips later interceptors."""
    later = []
    chain = InterceptorChain(
        [
            Interceptor(on_request=lambda request: None, name="gate"),
            Interceptor(on_request=lambda request: later.append(request) or request),
        ]
    )

    phase = await chain.run_request(make_request())

    assert phase.aborted
    assert phase.aborted_by == "gate"
    assert later == []


@pytest.mark.asyncio
async def test_request_phase_short_circuit():
    """Test returning a Response short-circuits the request phase."""
    canned = Response(200, body=b"canned")
    chain = InterceptorChain([Interceptor(on_request=lambda request: canned)])

    phase = await chain.run_request(make_request())

    assert phase.response is canned


@pytest.mark.asyncio
async def test_request_hook_wrong_type():
    """Test a hook returning something else is a failure."""
    chain = InterceptorChain([Interceptor(on_request=lambda request: "nope")])

    with pytest.raises(TypeError):
        await chain.run_request(make_request())


@pytest.mark.asyncio
async def test_response_phase_runs_in_chain_order():
    """Test the response phase is not reversed."""
    order = []

    def tag(label):
        def hook(request, response):
            order.append(label)
            return response.replace(body=response.body + label.encode())

        return hook

    chain = InterceptorChain([Interceptor(on_response=tag("a")), Interceptor(on_response=tag("b"))])
    response = await chain.run_response(make_request(), Response(200))

    assert order == ["a", "b"]
    assert response.body == b"ab"


@pytest.mark.asyncio
async def test_error_phase_votes_are_combined():
    """Test every error hook runs and any True vote wins."""
    calls = []

    def vote(value):
        def hook(request, error, attempt):
            calls.append((value, attempt))
            return value

        return hook

    def broken(request, error, attempt):
        raise RuntimeError("hook failed")

    chain = InterceptorChain(
        [
            Interceptor(on_error=vote(False)),
            Interceptor(on_error=broken),
            Interceptor(on_error=vote(True)),
        ]
    )
    error = SClientError(ErrorKind.BAD_RESPONSE, "HTTP error: 500", status_code=500)

    assert await chain.run_error(make_request(), error, 2) is True
    assert calls == [(False, 2), (True, 2)]


@pytest.mark.asyncio
async def test_error_phase_raising_hook_is_no_vote():
    """Test a failing error hook counts as a vote against retrying."""

    def broken(request, error, attempt):
        raise RuntimeError("hook failed")

    chain = InterceptorChain([Interceptor(on_error=broken)])
    error = SClientError(ErrorKind.UNKNOWN, "boom")

    assert await chain.run_error(make_request(), error, 1) is False


@pytest.mark.asyncio
async def test_bearer_auth_calls_provider_every_time():
    """Test the credential provider is consulted on each request phase."""
    tokens = iter(["t1", "t2"])
    auth = AuthInterceptor.bearer(lambda: next(tokens))

    first = await auth.on_request(make_request())
    second = await auth.on_request(make_request())

    assert first.header("authorization") == "Bearer t1"
    assert second.header("authorization") == "Bearer t2"


@pytest.mark.asyncio
async def test_async_provider_and_constant_credential():
    """Test providers may be coroutine functions or plain values."""

    async def provider():
        return "async-token"

    assert (await AuthInterceptor.bearer(provider).on_request(make_request())).header(
        "authorization"
    ) == "Bearer async-token"
    assert (await AuthInterceptor.bearer("fixed").on_request(make_request())).header(
        "authorization"
    ) == "Bearer fixed"


@pytest.mark.asyncio
async def test_api_key_and_basic_auth():
    """Test API key and basic schemes produce the right headers."""
    api_key = AuthInterceptor.api_key("secret", prefix="Token")
    basic = AuthInterceptor.basic(("user", "pw"))

    keyed = await api_key.on_request(make_request())
    authed = await basic.on_request(make_request())

    assert api_key.scheme is AuthScheme.API_KEY
    assert keyed.header("x-api-key") == "Token secret"
    assert authed.header("authorization") == "Basic " + base64.b64encode(b"user:pw").decode()


@pytest.mark.asyncio
async def test_auth_without_credential_or_overwrite():
    """Test a None credential and overwrite=False leave the request alone."""
    request = make_request(headers={"Authorization": "Bearer mine"})

    untouched = await AuthInterceptor(lambda: None).on_request(make_request())
    kept = await AuthInterceptor("theirs", overwrite=False).on_request(request)

    assert untouched.header("authorization") is None
    assert kept.header("authorization") == "Bearer mine"


def test_logging_interceptor_logs_request_and_response(caplog):
    """Test requests and responses are logged with redacted credentials."""
    caplog.set_level(logging.DEBUG, logger="sclient.http")
    interceptor = LoggingInterceptor(log_body=True)
    request = make_request(headers={"Authorization": "Bearer secret", "Accept": "text/plain"})

    assert interceptor.on_request(request) is request
    response = Response(200, body=b"hello", elapsed=0.25)
    assert interceptor.on_response(request, response) is response

    text = caplog.text
    assert "--> GET https://api.test/x" in text
    assert "authorization: ***" in text
    assert "secret" not in text
    assert "accept: text/plain" in text
    assert "<-- 200 GET https://api.test/x (0.250s)" in text
    assert "hello" in text


def test_logging_interceptor_truncates_body(caplog):
    """Test long bodies are cut at max_body_length."""
    caplog.set_level(logging.DEBUG, logger="sclient.http")
    interceptor = LoggingInterceptor(log_body=True, max_body_length=5)

    interceptor.on_response(make_request(), Response(200, body=b"abcdefghij"))

    assert "abcde... (5 more chars)" in caplog.text


def test_logging_interceptor_logs_errors_without_voting(caplog):
    """Test failed attempts are logged as warnings and never retried by logging."""
    caplog.set_level(logging.DEBUG, logger="sclient.http")
    interceptor = LoggingInterceptor()
    error = SClientError(ErrorKind.BAD_RESPONSE, "HTTP error: 503", status_code=503)

    assert interceptor.on_error(make_request(), error, 1) is False

    record = caplog.records[-1]
    assert record.levelno == logging.WARNING
    assert "badResponse 503 GET https://api.test/x (attempt 1)" in record.getMessage()


def test_cache_interceptor_miss_then_hit(clock):
    """Test a stored response short-circuits the next identical request."""
    interceptor = CacheInterceptor(clock=clock)
    request = make_request()

    tagged = interceptor.on_request(request)
    assert isinstance(tagged, Request)
    assert CACHE_KEY_EXTENSION in tagged.extensions

    interceptor.on_response(tagged, Response(200, body=b"data"))
    cached = interceptor.on_request(make_request())

    assert isinstance(cached, Response)
    assert cached.from_cache
    assert cached.body == b"data"


def test_cache_interceptor_respects_freshness(clock):
    """Test the default max-age and Cache-Control directives."""
    interceptor = CacheInterceptor(CacheConfig(default_max_age=30), clock=clock)

    short = make_request(url="https://api.test/short")
    interceptor.on_response(short, Response(200, headers={"Cache-Control": "max-age=5"}))
    never = make_request(url="https://api.test/never")
    interceptor.on_response(never, Response(200, headers={"Cache-Control": "no-store"}))
    default = make_request(url="https://api.test/default")
    interceptor.on_response(default, Response(200))

    clock.advance(10)

    assert isinstance(interceptor.on_request(short), Request)
    assert isinstance(interceptor.on_request(never), Request)
    assert isinstance(interceptor.on_request(default), Response)


def test_cache_interceptor_skips_uncacheable(clock):
    """Test other methods, error responses and streamed transfers are not cached."""
    interceptor = CacheInterceptor(clock=clock)

    post = make_request(method="POST")
    interceptor.on_response(post, Response(200))
    failed = make_request(url="https://api.test/failed")
    interceptor.on_response(failed, Response(404))
    streamed = make_request(url="https://api.test/file").with_extension(STREAMED_EXTENSION, True)
    interceptor.on_response(streamed, Response(200))

    assert len(interceptor.cache) == 0
    assert interceptor.on_request(post) is post

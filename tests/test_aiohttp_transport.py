"""Tests for the aiohttp transport adapter."""

import asyncio
import contextlib
import io

import aiohttp
import pytest
from aiohttp import web
from aiohttp import test_utils

from sclient import ClientConfig, SClient
from sclient.errors import ErrorKind, TransportError
from sclient.transports import create_transport
from sclient.transports.aiohttp_transport import AiohttpTransport, translate_error
from sclient.types import Request, Timeouts


@contextlib.asynccontextmanager
async def serve(*routes):
    app = web.Application()
    app.add_routes(list(routes))
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        yield server
    finally:
        await server.close()


def test_create_transport_selects_aiohttp():
    """Test client_type="aiohttp" builds the aiohttp adapter."""
    assert isinstance(create_transport(ClientConfig(client_type="aiohttp")), AiohttpTransport)


@pytest.mark.parametrize(
    "exc,kind",
    [
        (aiohttp.ConnectionTimeoutError(), ErrorKind.CONNECTION_TIMEOUT),
        (aiohttp.ServerTimeoutError(), ErrorKind.RECEIVE_TIMEOUT),
        (asyncio.TimeoutError(), ErrorKind.RECEIVE_TIMEOUT),
        (aiohttp.ServerDisconnectedError(), ErrorKind.CONNECTION_ERROR),
        (aiohttp.ClientConnectionError("refused"), ErrorKind.CONNECTION_ERROR),
        (aiohttp.ClientPayloadError("truncated"), ErrorKind.UNKNOWN),
    ],
)
def test_translate_error(exc, kind):
    """Test aiohttp exceptions map to error kinds."""
    error = translate_error(exc)

    assert isinstance(error, TransportError)
    assert error.kind is kind


def test_timeouts_merge_per_request():
    """Test per-request timeouts override the client defaults."""
    transport = AiohttpTransport(ClientConfig(connect_timeout=2))

    timeout = transport._timeout(Request("GET", "http://x.test", timeouts=Timeouts(receive=7)))

    assert timeout.total is None
    assert timeout.sock_connect == 2
    assert timeout.sock_read == 7


@pytest.mark.asyncio
async def test_send_round_trip():
    """Test a JSON request and its response through a local server."""

    async def echo(request):
        payload = await request.json()
        return web.json_response(
            {"got": payload, "q": request.query.get("q"), "trace": request.headers.get("X-Trace")},
            status=201,
        )

    async with serve(web.post("/echo", echo)) as server:
        transport = AiohttpTransport(ClientConfig())
        request = Request(
            "POST",
            str(server.make_url("/echo")),
            headers={"X-Trace": "t-1"},
            json={"a": 1},
            params={"q": "search"},
        )
        try:
            response = await transport.send(request)
        finally:
            await transport.close()

    assert response.status_code == 201
    assert response.json() == {"got": {"a": 1}, "q": "search", "trace": "t-1"}
    assert response.header("content-type").startswith("application/json")


@pytest.mark.asyncio
async def test_receive_timeout():
    """Test a slow server surfaces as a receive timeout."""

    async def slow(request):
        await asyncio.sleep(1)
        return web.Response(text="late")

    async with serve(web.get("/slow", slow)) as server:
        transport = AiohttpTransport(ClientConfig(receive_timeout=0.1))
        try:
            with pytest.raises(TransportError) as info:
                await transport.send(Request("GET", str(server.make_url("/slow"))))
        finally:
            await transport.close()

    assert info.value.kind is ErrorKind.RECEIVE_TIMEOUT


@pytest.mark.asyncio
async def test_client_download_and_upload(tmp_path):
    """Test the client drives the aiohttp adapter for file transfers."""
    payload = b"0123456789" * 20_000
    uploaded = {}

    async def download(request):
        return web.Response(body=payload)

    async def upload(request):
        form = await request.post()
        field = form["file"]
        uploaded["name"] = field.filename
        uploaded["data"] = field.file.read()
        uploaded["owner"] = form["owner"]
        return web.json_response({"size": len(uploaded["data"])})

    async with serve(web.get("/blob", download), web.post("/blob", upload)) as server:
        config = ClientConfig(base_url=str(server.make_url("/")), client_type="aiohttp")
        progress = []
        async with SClient(config) as client:
            sink = io.BytesIO()
            _, download_error = await client.download(
                "/blob", sink, on_progress=lambda sent, total: progress.append((sent, total))
            )
            source = tmp_path / "blob.bin"
            source.write_bytes(sink.getvalue())
            response, upload_error = await client.upload_file(
                "/blob", source, form={"owner": "ops"}
            )

    assert download_error is None
    assert sink.getvalue() == payload
    assert progress[-1] == (len(payload), len(payload))
    assert upload_error is None
    assert client.decode_json(response) == {"size": len(payload)}
    assert uploaded == {"name": "blob.bin", "data": payload, "owner": "ops"}

"""Tests for request, response and result types."""

import dataclasses

import pytest

from sclient.errors import ErrorKind, SClientError, TransportError
from sclient.types import HTTPMethod, Request, Response, Result, Timeouts


def test_request_normalizes_method_and_headers():
    """Test method strings are upper-cased and header names lower-cased."""
    request = Request("get", "https://api.test/users", headers={"Accept": "application/json"})

    assert request.method is HTTPMethod.GET
    assert request.headers == {"accept": "application/json"}
    assert request.header("ACCEPT") == "application/json"


def test_request_is_immutable():
    """Test requests cannot be mutated in place."""
    request = Request("GET", "https://api.test")

    with pytest.raises(dataclasses.FrozenInstanceError):
        request.url = "https://other.test"
    with pytest.raises(TypeError):
        request.headers["x-test"] = "value"


def test_with_header_returns_new_request():
    """Test header helpers leave the original request untouched."""
    request = Request("GET", "https://api.test", headers={"X-Keep": "1"})
    tagged = request.with_header("X-Request-ID", "abc")
    stripped = tagged.without_header("x-keep")

    assert "x-request-id" not in request.headers
    assert tagged.headers == {"x-keep": "1", "x-request-id": "abc"}
    assert stripped.headers == {"x-request-id": "abc"}


def test_extensions_do_not_affect_equality():
    """Test extensions are per-call metadata outside request identity."""
    request = Request("GET", "https://api.test")
    tagged = request.with_extension("trace", "t-1")

    assert tagged.extensions == {"trace": "t-1"}
    assert request.extensions == {}
    assert tagged == request


def test_timeouts_merge_over_defaults():
    """Test unset per-call timeouts fall back to the defaults."""
    merged = Timeouts(receive=5).merged_over(Timeouts(connect=1, send=2, receive=3))
    assert merged == Timeouts(connect=1, send=2, receive=5)


def test_response_text_and_json():
    """Test body decoding honors the declared charset."""
    response = Response(
        200,
        headers={"Content-Type": "application/json; charset=latin-1"},
        body='{"name": "Zoë"}'.encode("latin-1"),
    )

    assert response.text == '{"name": "Zoë"}'
    assert response.json() == {"name": "Zoë"}
    assert response.json(lambda text: "custom") == "custom"


def test_result_unpacks_like_a_tuple():
    """Test Result is a (response, error) pair."""
    response = Response(201)
    result = Result(response, None)

    got, error = result
    assert got is response
    assert error is None
    assert result.ok
    assert result.status_code == 201


def test_result_status_code_from_error():
    """Test a failed result reports the status code carried by its error."""
    error = SClientError.bad_response(Response(503))
    result = Result(None, error)

    assert not result.ok
    assert result.status_code == 503


def test_error_from_transport_exception():
    """Test transport exceptions keep their kind and cause."""
    cause = OSError("reset")
    try:
        raise TransportError(ErrorKind.CONNECTION_ERROR, "connection reset") from cause
    except TransportError as exc:
        error = SClientError.from_exception(exc)

    assert error.kind is ErrorKind.CONNECTION_ERROR
    assert error.is_connection_error
    assert error.cause is cause


def test_error_from_unexpected_exception():
    """Test any other exception becomes an unknown error."""
    error = SClientError.from_exception(RuntimeError("boom"))

    assert error.kind is ErrorKind.UNKNOWN
    assert "boom" in error.message
    assert str(error).startswith("unknown:")


@pytest.mark.parametrize(
    "kind,timeout,transient",
    [
        (ErrorKind.CONNECTION_TIMEOUT, True, True),
        (ErrorKind.SEND_TIMEOUT, True, True),
        (ErrorKind.RECEIVE_TIMEOUT, True, True),
        (ErrorKind.CONNECTION_ERROR, False, True),
        (ErrorKind.BAD_CERTIFICATE, False, False),
        (ErrorKind.BAD_RESPONSE, False, False),
        (ErrorKind.CANCELLED, False, False),
        (ErrorKind.UNKNOWN, False, False),
    ],
)
def test_error_kind_classification(kind, timeout, transient):
    """Test which kinds count as timeouts and transient failures."""
    assert kind.is_timeout is timeout
    assert kind.is_transient is transient

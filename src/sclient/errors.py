"""Error values and exception hierarchy for sclient.

Calls made through :class:`~sclient.client.SClient` never raise. Every
failure is described by an :class:`SClientError` value returned in the
second slot of a :class:`~sclient.types.Result`.

A small exception hierarchy is still used internally, at the boundaries
where failures originate:

Exception Hierarchy:
    SClientException: Base exception for all sclient errors
    ├── TransportError: A transport adapter failed to complete an exchange
    └── ConfigurationError: Invalid client configuration

TransportError is raised by transport adapters and caught by the retry
engine, which converts it into an SClientError. ConfigurationError is the
only exception that reaches callers, and only when a configuration object
is constructed.

Example:
    >>> response, error = await client.get("/users")
    >>> if error is not None:
    ...     if error.is_timeout:
    ...         print("timed out")
    ...     elif error.kind is ErrorKind.BAD_RESPONSE:
    ...         print(f"server said {error.status_code}")
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .types import Request, Response


class ErrorKind(Enum):
    """Classify why a call did not produce a successful response."""

    CONNECTION_TIMEOUT = "connectionTimeout"
    SEND_TIMEOUT = "sendTimeout"
    RECEIVE_TIMEOUT = "receiveTimeout"
    CANCELLED = "cancelled"
    BAD_RESPONSE = "badResponse"
    CONNECTION_ERROR = "connectionError"
    BAD_CERTIFICATE = "badCertificate"
    UNKNOWN = "unknown"

    @property
    def is_timeout(self) -> bool:
        return self in _TIMEOUT_KINDS

    @property
    def is_transient(self) -> bool:
        """Whether a failure of this kind is worth retrying by default."""
        return self in _TIMEOUT_KINDS or self is ErrorKind.CONNECTION_ERROR


_TIMEOUT_KINDS = frozenset(
    {ErrorKind.CONNECTION_TIMEOUT, ErrorKind.SEND_TIMEOUT, ErrorKind.RECEIVE_TIMEOUT}
)


@dataclass(frozen=True)
class SClientError:
    """Describe a failed call.

    SClientError is a value, not a raised exception. It carries the
    classified kind plus whatever context was available when the failure
    was observed.

    Attributes:
        kind: Classified failure kind
        message: Human-readable description
        status_code: HTTP status code, when a response was received
        request: The request that was being executed
        response: The response that was classified as an error, if any
        cause: The underlying Python exception, if any
    """

    kind: ErrorKind
    message: str
    status_code: int | None = None
    request: Request | None = None
    response: Response | None = None
    cause: BaseException | None = None

    @property
    def is_timeout(self) -> bool:
        return self.kind.is_timeout

    @property
    def is_connection_error(self) -> bool:
        return self.kind is ErrorKind.CONNECTION_ERROR

    @property
    def is_cancelled(self) -> bool:
        return self.kind is ErrorKind.CANCELLED

    @classmethod
    def cancelled(cls, message: str = "Request cancelled", request: Request | None = None):
        return cls(ErrorKind.CANCELLED, message, request=request)

    @classmethod
    def bad_response(cls, response: Response) -> SClientError:
        return cls(
            ErrorKind.BAD_RESPONSE,
            f"HTTP error: {response.status_code}",
            status_code=response.status_code,
            request=response.request,
            response=response,
        )

    @classmethod
    def from_exception(cls, exc: BaseException, request: Request | None = None) -> SClientError:
        """Convert an exception caught at a boundary into an error value."""
        if isinstance(exc, TransportError):
            return cls(exc.kind, str(exc), request=request, cause=exc.__cause__ or exc)
        return cls(
            ErrorKind.UNKNOWN,
            f"{type(exc).__name__}: {exc}",
            request=request,
            cause=exc,
        )

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class SClientException(Exception):
    """Base exception for all sclient exceptions."""

    pass


class TransportError(SClientException):
    """Raised by a transport adapter when an exchange cannot be completed.

    Adapters translate their library's exceptions into a TransportError
    carrying the matching ErrorKind. Chain the original exception with
    ``raise ... from exc`` so it is preserved as the error's cause.
    """

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class ConfigurationError(SClientException, ValueError):
    """Raised when a client configuration is invalid."""

    pass

"""Interceptor record and chain execution."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any, Union

from ..errors import SClientError
from ..types import Request, Response

logger = logging.getLogger(__name__)

RequestHook = Callable[[Request], Union[Request, Response, None, Awaitable[Union[Request, Response, None]]]]
ResponseHook = Callable[[Request, Response], Union[Response, Awaitable[Response]]]
ErrorHook = Callable[[Request, SClientError, int], Union[bool, Awaitable[bool]]]


@dataclass(frozen=True)
class Interceptor:
    """An interceptor assembled from plain functions.

    Any object with ``on_request``, ``on_response`` and/or ``on_error``
    methods can sit in a chain; this record is the shortest way to build one
    from functions. Each hook may be sync or async.

    Example:
        Tag every request with a header::

            tagger = Interceptor(on_request=lambda request: request.with_header("X-Client", "sclient"))
    """

    on_request: RequestHook | None = None
    on_response: ResponseHook | None = None
    on_error: ErrorHook | None = None
    name: str = "interceptor"


@dataclass(frozen=True)
class RequestPhase:
    """Result of running the request phase.

    Exactly one of these applies: ``aborted_by`` is set when an interceptor
    returned None, ``response`` is set when an interceptor short-circuited
    the call, otherwise ``request`` is the request to dispatch.
    """

    request: Request
    response: Response | None = None
    aborted_by: str | None = None

    @property
    def aborted(self) -> bool:
        return self.aborted_by is not None


def interceptor_name(interceptor: Any) -> str:
    name = getattr(interceptor, "name", None)
    return name if isinstance(name, str) else type(interceptor).__name__


async def _call(hook: Callable[..., Any], *args: Any) -> Any:
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class InterceptorChain:
    """Run an ordered sequence of interceptors.

    Request and response phases run in chain order; the response phase is
    not reversed. A failure raised by a request or response hook propagates
    to the caller of the phase (the retry engine converts it into an error
    value). A failure raised by an error hook counts as a "do not retry"
    vote.
    """

    def __init__(self, interceptors: Iterable[Any] = ()):
        self.interceptors = tuple(interceptors)

    async def run_request(self, request: Request) -> RequestPhase:
        for interceptor in self.interceptors:
            hook = getattr(interceptor, "on_request", None)
            if hook is None:
                continue
            try:
                result = await _call(hook, request)
            except Exception:
                logger.warning(f"Request hook of {interceptor_name(interceptor)} failed")
                raise

            if result is None:
                return RequestPhase(request, aborted_by=interceptor_name(interceptor))
            if isinstance(result, Response):
                return RequestPhase(request, response=result)
            if not isinstance(result, Request):
                raise TypeError(
                    f"{interceptor_name(interceptor)}.on_request returned "
                    f"{type(result).__name__}, expected Request, Response or None"
                )
            request = result
        return RequestPhase(request)

    async def run_response(self, request: Request, response: Response) -> Response:
        for interceptor in self.interceptors:
            hook = getattr(interceptor, "on_response", None)
            if hook is None:
                continue
            try:
                result = await _call(hook, request, response)
            except Exception:
                logger.warning(f"Response hook of {interceptor_name(interceptor)} failed")
                raise
            if not isinstance(result, Response):
                raise TypeError(
                    f"{interceptor_name(interceptor)}.on_response returned "
                    f"{type(result).__name__}, expected Response"
                )
            response = result
        return response

    async def run_error(self, request: Request, error: SClientError, attempt: int) -> bool:
        """Report a failed attempt to every interceptor.

        Returns:
            True if any interceptor voted to retry
        """
        retry = False
        for interceptor in self.interceptors:
            hook = getattr(interceptor, "on_error", None)
            if hook is None:
                continue
            try:
                vote = await _call(hook, request, error, attempt)
            except Exception:
                logger.warning(
                    f"Error hook of {interceptor_name(interceptor)} failed; treating as no retry",
                    exc_info=True,
                )
                continue
            retry = retry or bool(vote)
        return retry

    def __iter__(self):
        return iter(self.interceptors)

    def __len__(self) -> int:
        return len(self.interceptors)

"""Retry engine: runs one logical call through its attempts.

For every attempt the engine runs the interceptor request phase,
dispatches through the transport, classifies the outcome once, and on
failure decides whether to wait and try again. It stops at the first
terminal outcome: a success, a failure that is not retried, or a
cancellation.

A failed attempt is retried when it is eligible (its status code is in
``retry_status_codes``, its kind is a timeout or connection error, or an
interceptor voted for it) and fewer than ``max_retries`` retries have been
made. ``max_retries`` is never exceeded, whatever the interceptors vote.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .cancellation import CancellationHandle
from .config import ClientConfig, RetryConfig
from .errors import SClientError
from .interceptors.chain import InterceptorChain
from .types import Request, Response

logger = logging.getLogger(__name__)

Dispatch = Callable[[Request], Awaitable[Response]]


class _DispatchCancelled(Exception):
    """The handle was signalled while a dispatch was in flight."""


@dataclass(frozen=True)
class Outcome:
    """Terminal outcome of a logical call.

    Attributes:
        request: The last request dispatched (or that would have been)
        response: Terminal response of a successful call
        error: Terminal error of a failed call
        attempts: Number of attempts started
    """

    request: Request
    response: Response | None = None
    error: SClientError | None = None
    attempts: int = 0


class RetryPolicy:
    """Decide whether and when a failed attempt is retried."""

    def __init__(self, config: RetryConfig):
        self.config = config

    def is_retryable(self, error: SClientError) -> bool:
        if error.status_code is not None and error.status_code in self.config.retry_status_codes:
            return True
        return error.kind.is_transient

    def can_retry(self, attempt: int) -> bool:
        """Whether another attempt may follow attempt number ``attempt``."""
        return attempt <= self.config.max_retries

    def delay_for(self, attempt: int, error: SClientError | None = None) -> float:
        """Calculate the wait before the attempt following ``attempt``.

        The first retry waits ``retry_delay``; with exponential backoff
        every further retry doubles it.
        """
        retry_after = self._retry_after(error) if self.config.respect_retry_after else None
        if retry_after is not None:
            delay = retry_after
        elif self.config.exponential_backoff:
            delay = self.config.retry_delay * (2 ** (attempt - 1))
        else:
            delay = self.config.retry_delay

        if self.config.max_delay is not None:
            delay = min(delay, self.config.max_delay)
        return delay

    @staticmethod
    def _retry_after(error: SClientError | None) -> float | None:
        if error is None or error.response is None:
            return None
        value = error.response.header("retry-after")
        if not value:
            return None
        try:
            return max(float(value), 0.0)
        except ValueError:
            return None


class RetryEngine:
    """Execute logical calls with retries.

    Args:
        config: Client configuration (status classification and retry options)
        chain: Interceptor chain to run around every attempt
        policy: Retry policy; built from ``config.retry`` when omitted
    """

    def __init__(
        self,
        config: ClientConfig,
        chain: InterceptorChain,
        policy: RetryPolicy | None = None,
    ):
        self.config = config
        self.chain = chain
        self.policy = policy or RetryPolicy(config.retry)

    async def run(self, request: Request, handle: CancellationHandle, dispatch: Dispatch) -> Outcome:
        """Run one logical call to its terminal outcome. Never raises."""
        attempt = 1
        current = request

        while True:
            if handle.cancelled:
                return await self._cancelled(current, attempt - 1)

            error: SClientError | None = None
            short_circuit = False
            try:
                phase = await self.chain.run_request(current)
            except Exception as exc:
                error = SClientError.from_exception(exc, current)
            else:
                current = phase.request
                if phase.aborted:
                    return await self._cancelled(
                        current, attempt, f"Request aborted by {phase.aborted_by} interceptor"
                    )
                if phase.response is not None:
                    short_circuit = True
                    response = phase.response
                else:
                    if handle.cancelled:
                        return await self._cancelled(current, attempt - 1)
                    try:
                        response = await self._dispatch(current, handle, dispatch)
                    except _DispatchCancelled:
                        return await self._cancelled(current, attempt)
                    except Exception as exc:
                        error = SClientError.from_exception(exc, current)

                if error is None:
                    # Classified once for this attempt
                    if not self.config.is_error_status(response.status_code):
                        return await self._success(current, response, attempt)
                    error = SClientError.bad_response(response)

            vote = await self.chain.run_error(current, error, attempt)
            if short_circuit:
                return Outcome(current, error=error, attempts=attempt)

            if (self.policy.is_retryable(error) or vote) and self.policy.can_retry(attempt):
                delay = self.policy.delay_for(attempt, error)
                logger.warning(
                    f"{current.method.value} {current.url} failed ({error}); "
                    f"retrying in {delay:.2f}s (attempt {attempt + 1}/"
                    f"{self.policy.config.max_retries + 1})"
                )
                if await handle.sleep(delay):
                    return await self._cancelled(current, attempt)
                attempt += 1
                continue

            logger.debug(f"{current.method.value} {current.url} failed after {attempt} attempt(s): {error}")
            return Outcome(current, error=error, attempts=attempt)

    async def _dispatch(self, request: Request, handle: CancellationHandle, dispatch: Dispatch) -> Response:
        """Dispatch, racing the transport against the cancellation handle."""
        send = asyncio.ensure_future(dispatch(request))
        waiter = asyncio.ensure_future(handle.wait())
        try:
            await asyncio.wait({send, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            send.cancel()
            waiter.cancel()
            raise
        waiter.cancel()

        if send.done():
            return send.result()

        send.cancel()
        try:
            await send
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            logger.debug(f"Transport failed while being cancelled: {exc}")
        raise _DispatchCancelled()

    async def _success(self, request: Request, response: Response, attempt: int) -> Outcome:
        try:
            response = await self.chain.run_response(request, response)
        except Exception as exc:
            return Outcome(request, error=SClientError.from_exception(exc, request), attempts=attempt)
        return Outcome(request, response=response, attempts=attempt)

    async def _cancelled(self, request: Request, attempt: int, message: str = "Request cancelled") -> Outcome:
        error = SClientError.cancelled(message, request)
        await self.chain.run_error(request, error, attempt)
        logger.debug(f"{request.method.value} {request.url}: {message}")
        return Outcome(request, error=error, attempts=attempt)

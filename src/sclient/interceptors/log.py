"""Logging interceptor."""

from __future__ import annotations

import json as jsonlib
import logging
from typing import Any

from ..config import LoggingConfig
from ..errors import SClientError
from ..types import Request, Response


class LoggingInterceptor:
    """Log requests, responses and failed attempts.

    A read-only observer: it never changes the request or response, and a
    failure while formatting or emitting a log record never fails the call.

    Args:
        config: Verbosity options; keyword options build one when omitted
        logger: Logger to use instead of ``logging.getLogger(config.logger_name)``

    Example:
        Log headers and the first 200 bytes of every body::

            LoggingInterceptor(log_body=True, max_body_length=200, pretty=True)
    """

    name = "logging"

    def __init__(
        self,
        config: LoggingConfig | None = None,
        logger: logging.Logger | None = None,
        **options: Any,
    ):
        self.config = config or LoggingConfig(**options)
        self.logger = logger or logging.getLogger(self.config.logger_name)

    def on_request(self, request: Request) -> Request:
        try:
            if self.logger.isEnabledFor(self.config.level):
                lines = [f"--> {request.method.value} {request.url}"]
                lines.extend(self._header_lines(request.headers))
                if self.config.log_body:
                    body = self._request_body(request)
                    if body:
                        lines.append(body)
                self.logger.log(self.config.level, "\n".join(lines))
        except Exception:
            pass
        return request

    def on_response(self, request: Request, response: Response) -> Response:
        try:
            if self.logger.isEnabledFor(self.config.level):
                source = " (cache)" if response.from_cache else f" ({response.elapsed:.3f}s)"
                lines = [f"<-- {response.status_code} {request.method.value} {request.url}{source}"]
                lines.extend(self._header_lines(response.headers))
                if self.config.log_body and response.body:
                    lines.append(self._format_body(response.body))
                self.logger.log(self.config.level, "\n".join(lines))
        except Exception:
            pass
        return response

    def on_error(self, request: Request, error: SClientError, attempt: int) -> bool:
        try:
            status = f" {error.status_code}" if error.status_code is not None else ""
            lines = [
                f"<-- {error.kind.value}{status} {request.method.value} {request.url} "
                f"(attempt {attempt}): {error.message}"
            ]
            if self.config.log_body and error.response is not None and error.response.body:
                lines.append(self._format_body(error.response.body))
            self.logger.log(max(self.config.level, logging.WARNING), "\n".join(lines))
        except Exception:
            pass
        return False

    def _header_lines(self, headers) -> list[str]:
        if not self.config.log_headers:
            return []
        return [
            f"    {name}: {'***' if name in self.config.redact_headers else value}"
            for name, value in headers.items()
        ]

    def _request_body(self, request: Request) -> str:
        if request.attachment is not None:
            return f"    <file {request.attachment.name}>"
        if request.body is not None:
            return self._format_body(request.body)
        if request.json is not None:
            return self._format_body(jsonlib.dumps(request.json, default=str).encode())
        if request.form is not None:
            return self._format_body(jsonlib.dumps(dict(request.form)).encode())
        return ""

    def _format_body(self, body: bytes) -> str:
        text = body.decode("utf-8", errors="replace")
        if self.config.pretty:
            try:
                text = jsonlib.dumps(jsonlib.loads(text), indent=2, ensure_ascii=False)
            except ValueError:
                pass
        limit = self.config.max_body_length
        if len(text) > limit:
            text = f"{text[:limit]}... ({len(text) - limit} more chars)"
        return text

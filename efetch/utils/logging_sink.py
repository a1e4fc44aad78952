"""
efetch/utils/logging_sink.py

WHAT THIS FILE IS FOR
---------------------
Defines the logging sink capability injected into HttpFetchClient and
its two stock implementations.

A sink exposes three hooks:
- log_request(request):   outgoing httpx.Request, called before sending
- log_response(response): httpx.Response that passed the 2xx check
- log_error(exc):         final failure of a call, called exactly once

IMPLEMENTATIONS
---------------
- StructlogLoggingSink (default):
    Emits structured events `http_request`, `http_response` and
    `http_error` through structlog. Rendering (console vs JSON) is
    decided by structlog configuration, see logging_config.py.
- NullLoggingSink:
    Does nothing. Useful in tests and for callers doing their own tracing.

Sensitive header values (Authorization, Cookie, ...) are masked before
they reach the log.

WHAT THIS FILE IS NOT FOR
-------------------------
Sinks never raise, retry, or alter requests/responses. They observe only.
"""

from __future__ import annotations

import traceback
from typing import Any, Dict, Iterable, Protocol, runtime_checkable

import httpx
import structlog

MASKED_HEADERS = frozenset({"authorization", "proxy-authorization", "cookie", "set-cookie", "x-api-key"})


@runtime_checkable
class LoggingSink(Protocol):
    def log_request(self, request: httpx.Request) -> None: ...

    def log_response(self, response: httpx.Response) -> None: ...

    def log_error(self, exc: BaseException) -> None: ...


def _header_dict(headers: Iterable[tuple[str, str]]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for key, value in headers:
        out[key] = "***" if key.lower() in MASKED_HEADERS else value
    return out


class StructlogLoggingSink:
    """Default sink: one structured log event per hook."""

    def __init__(self, logger: Any = None) -> None:
        self._logger = logger if logger is not None else structlog.get_logger("efetch.http")

    def log_request(self, request: httpx.Request) -> None:
        self._logger.info(
            "http_request",
            method=request.method,
            url=str(request.url),
            headers=_header_dict(request.headers.items()),
        )

    def log_response(self, response: httpx.Response) -> None:
        try:
            url = str(response.request.url)
        except RuntimeError:  # response built without a request
            url = None
        self._logger.info(
            "http_response",
            status_code=response.status_code,
            url=url,
            headers=_header_dict(response.headers.items()),
        )

    def log_error(self, exc: BaseException) -> None:
        self._logger.error(
            "http_error",
            error_type=type(exc).__name__,
            error=str(exc),
            stack_trace="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        )


class NullLoggingSink:
    def log_request(self, request: httpx.Request) -> None:
        return None

    def log_response(self, response: httpx.Response) -> None:
        return None

    def log_error(self, exc: BaseException) -> None:
        return None


__all__ = ["LoggingSink", "MASKED_HEADERS", "NullLoggingSink", "StructlogLoggingSink"]

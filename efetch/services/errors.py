"""
efetch/services/errors.py

Error taxonomy raised by HttpFetchClient.

Every failure a caller can observe from a request method derives from
FetchError, so a single `except FetchError` catches all of them:

- FetchConnectionError   : transport never produced a response (retried)
- NotFoundRetryableError : HTTP 404 (retried, then surfaced)
- HttpStatusError        : any other non-2xx status (not retried)
- DeserializationError   : body is not JSON or does not fit the target type
- RequestCancelledError  : the caller's cancel signal fired

ClientConfigurationError is raised at construction time only.
"""

from __future__ import annotations

from typing import Optional


class FetchError(Exception):
    """Base class for all efetch request failures."""

    def __init__(self, message: str, *, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class ClientConfigurationError(FetchError, ValueError):
    """Client could not be constructed (missing base URL, bad transport factory)."""


class FetchConnectionError(FetchError):
    """Transport-level failure (DNS, TCP, TLS, timeout) after all retries."""

    def __init__(self, message: str, *, url: Optional[str] = None, attempts: int = 1) -> None:
        super().__init__(message, url=url)
        self.attempts = attempts


class HttpStatusError(FetchError):
    """Non-2xx response. Carries the status code and whatever body was read."""

    def __init__(
        self,
        status_code: int,
        body: str,
        *,
        url: Optional[str] = None,
        attempts: int = 1,
    ) -> None:
        snippet = (body or "")[:500]
        super().__init__(f"HTTP {status_code} for {url}: {snippet}", url=url)
        self.status_code = status_code
        self.body = body
        self.attempts = attempts


class NotFoundRetryableError(HttpStatusError):
    """HTTP 404. Treated as transient and retried before being raised."""


class DeserializationError(FetchError):
    """Response body could not be parsed or validated into the requested type."""

    def __init__(self, message: str, *, url: Optional[str] = None, body: str = "") -> None:
        super().__init__(message, url=url)
        self.body = body


class RequestCancelledError(FetchError):
    """The cancel signal passed to a request fired before it completed."""

"""
efetch/services/retry_policy.py

WHAT THIS FILE IS FOR
---------------------
Pluggable retry strategy used by HttpFetchClient.

A policy answers three questions for the client's attempt loop:
- should_retry_exception(exc):  retry after a transport exception?
- should_retry_response(resp):  retry after receiving this response?
- delay(attempt):               seconds to wait before retry `attempt`
                                (zero-based: the first retry is attempt 0)

DEFAULT BEHAVIOR
----------------
- httpx.TransportError (connect/read/write errors, timeouts, TLS) -> retry
- HTTP 404 Not Found                                          -> retry
- anything else                                               -> no retry

404 being retryable is intentional and must be preserved: existing
callers rely on it to ride out eventually-consistent resources.

To substitute a policy, subclass RetryPolicy (or pass any object with
the same attributes) to HttpFetchClient(retry_policy=...). Call sites
do not change.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, FrozenSet

import httpx

from efetch.utils.client_config import RetryInterval, default_retry_interval

if TYPE_CHECKING:
    from efetch.utils.client_config import ClientConfig

RETRYABLE_STATUS_CODES: FrozenSet[int] = frozenset({404})


class RetryPolicy:
    def __init__(
        self,
        retry_count: int = 3,
        interval: RetryInterval = default_retry_interval,
        retryable_status_codes: FrozenSet[int] = RETRYABLE_STATUS_CODES,
    ) -> None:
        if retry_count < 0:
            raise ValueError("retry_count must be >= 0")
        self.retry_count = retry_count
        self._interval = interval
        self.retryable_status_codes = frozenset(retryable_status_codes)

    @classmethod
    def from_config(cls, config: "ClientConfig") -> "RetryPolicy":
        return cls(retry_count=config.retry_count, interval=config.retry_interval)

    def should_retry_exception(self, exc: BaseException) -> bool:
        return isinstance(exc, httpx.TransportError)

    def should_retry_response(self, response: httpx.Response) -> bool:
        return response.status_code in self.retryable_status_codes

    def delay(self, attempt: int) -> float:
        return max(0.0, float(self._interval(attempt)))


__all__ = ["RETRYABLE_STATUS_CODES", "RetryPolicy"]

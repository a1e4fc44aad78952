"""
efetch/services/fetch_client.py

WHAT THIS FILE IS FOR
---------------------
This module provides HttpFetchClient, a thin, typed, asynchronous HTTP
client for JSON services.

It exists to:
- Compose request URLs from a base URL, endpoint, identifier and query
- Merge default headers with per-call overrides
- Serialize request bodies to JSON (lower-cased property names)
- Send through httpx.AsyncClient with a pluggable retry policy
- Deserialize JSON responses into the caller's type (case-insensitive)
- Report requests, responses and final errors to a logging sink

CALL FLOW
---------
client.post("/todos", body, response_type=Todo)
  -> combine_url()                      (url_builder.py)
  -> to_json_bytes()                    (json_naming_converter.py)
  -> sink.log_request()
  -> attempt loop (RetryPolicy)         (retry_policy.py)
       - httpx.TransportError -> retry
       - HTTP 404             -> retry
  -> 2xx check  -> HttpStatusError / NotFoundRetryableError
  -> sink.log_response()
  -> parse_json_as()                    -> DeserializationError

RETRY & CANCELLATION
--------------------
- retry_count=3 => up to 4 attempts
- The wait before retry n (zero-based) is retry_policy.delay(n)
- Per-attempt failures are logged as warnings only; the sink's
  log_error fires exactly once, at final failure
- `cancel` (asyncio.Event) aborts the in-flight attempt or backoff
  wait and raises RequestCancelledError. A cancelled asyncio task
  raises asyncio.CancelledError as usual.

CONNECTIONS & CONCURRENCY
-------------------------
One httpx.AsyncClient is opened lazily on the first call and shared by
every later call, so connections are pooled across requests. Redirects
are followed. Close it with `await client.aclose()` or use the client
as an async context manager:

    async with HttpFetchClient(config) as client:
        todo = await client.get("/todos", identifier=1, response_type=Todo)

The client holds no per-call state and takes no locks; concurrent calls
on one instance are safe.

WHAT THIS FILE IS NOT FOR
-------------------------
- Response caching
- Business-specific payload normalization
- Configuration loading (see utils/settings.py)
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Mapping, Optional, Tuple

import httpx
import structlog

from efetch.services.errors import (
    ClientConfigurationError,
    DeserializationError,
    FetchConnectionError,
    HttpStatusError,
    NotFoundRetryableError,
    RequestCancelledError,
)
from efetch.services.retry_policy import RetryPolicy
from efetch.services.url_builder import Identifier, combine_url
from efetch.utils.client_config import ClientConfig
from efetch.utils.json_naming_converter import parse_json_as, to_json_bytes
from efetch.utils.logging_config import configure_logging
from efetch.utils.logging_sink import LoggingSink, StructlogLoggingSink
from efetch.utils.settings import Settings, get_settings

logger = structlog.get_logger(__name__)

JSON_CONTENT_TYPE = "application/json; charset=utf-8"

ClientFactory = Callable[..., httpx.AsyncClient]


class HttpFetchClient:
    """
    Typed async HTTP client over httpx.

    - base URL, default headers and retry settings come from ClientConfig
    - the logging sink defaults to StructlogLoggingSink
    - the retry policy defaults to RetryPolicy.from_config(config)
    """

    def __init__(
        self,
        config: ClientConfig,
        logging_sink: Optional[LoggingSink] = None,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        client_factory: ClientFactory = httpx.AsyncClient,
    ) -> None:
        if not callable(client_factory):
            raise ClientConfigurationError("HTTP transport factory is unavailable")
        if not config.base_url:
            raise ClientConfigurationError("base_url is required")

        self.config = config
        self.logging_sink: LoggingSink = logging_sink if logging_sink is not None else StructlogLoggingSink()
        self.retry_policy = retry_policy if retry_policy is not None else RetryPolicy.from_config(config)
        self._transport = transport
        self._client_factory = client_factory
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        logging_sink: Optional[LoggingSink] = None,
        *,
        configure_logs: bool = False,
        **kwargs: Any,
    ) -> "HttpFetchClient":
        """
        Build a client from environment/YAML settings (get_settings() by default).

        With configure_logs=True, structlog is also set up at settings.log_level.
        """
        settings = settings or get_settings()
        if configure_logs:
            configure_logging(settings.log_level)
        return cls(ClientConfig.from_settings(settings), logging_sink, **kwargs)

    async def __aenter__(self) -> "HttpFetchClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the pooled httpx client. A later call opens a new one."""
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    # ------------------------------------------------------------------ #
    # Public verbs
    # ------------------------------------------------------------------ #
    async def get(
        self,
        endpoint: str,
        *,
        identifier: Optional[Identifier] = None,
        query_params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        response_type: Any = Any,
        cancel: Optional[asyncio.Event] = None,
    ) -> Any:
        return await self.request(
            "GET",
            endpoint,
            identifier=identifier,
            query_params=query_params,
            headers=headers,
            response_type=response_type,
            cancel=cancel,
        )

    async def post(
        self,
        endpoint: str,
        body: Any = None,
        *,
        identifier: Optional[Identifier] = None,
        query_params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        response_type: Any = Any,
        cancel: Optional[asyncio.Event] = None,
    ) -> Any:
        return await self.request(
            "POST",
            endpoint,
            body=body,
            identifier=identifier,
            query_params=query_params,
            headers=headers,
            response_type=response_type,
            cancel=cancel,
        )

    async def put(
        self,
        endpoint: str,
        body: Any = None,
        *,
        identifier: Optional[Identifier] = None,
        query_params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        response_type: Any = Any,
        cancel: Optional[asyncio.Event] = None,
    ) -> Any:
        return await self.request(
            "PUT",
            endpoint,
            body=body,
            identifier=identifier,
            query_params=query_params,
            headers=headers,
            response_type=response_type,
            cancel=cancel,
        )

    async def patch(
        self,
        endpoint: str,
        body: Any = None,
        *,
        identifier: Optional[Identifier] = None,
        query_params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        response_type: Any = Any,
        cancel: Optional[asyncio.Event] = None,
    ) -> Any:
        return await self.request(
            "PATCH",
            endpoint,
            body=body,
            identifier=identifier,
            query_params=query_params,
            headers=headers,
            response_type=response_type,
            cancel=cancel,
        )

    async def delete(
        self,
        endpoint: str,
        *,
        identifier: Optional[Identifier] = None,
        query_params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        response_type: Any = Any,
        cancel: Optional[asyncio.Event] = None,
    ) -> Any:
        return await self.request(
            "DELETE",
            endpoint,
            identifier=identifier,
            query_params=query_params,
            headers=headers,
            response_type=response_type,
            cancel=cancel,
        )

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        body: Any = None,
        identifier: Optional[Identifier] = None,
        query_params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        response_type: Any = Any,
        cancel: Optional[asyncio.Event] = None,
    ) -> Any:
        """
        Send one request through the retry policy and return the typed result.

        `body=None` sends no content. Any other body is serialized to JSON
        with lower-cased property names.
        """
        try:
            url = combine_url(self.config.base_url, endpoint, identifier, query_params)
            content = to_json_bytes(body) if body is not None else None
            request = self._prepare_request(method, url, content, headers)
        except Exception as exc:
            logger.warning("fetch_request_invalid", method=method, endpoint=endpoint, error=str(exc))
            self.logging_sink.log_error(exc)
            raise
        return await self._send(request, response_type, cancel)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _get_client(self) -> httpx.AsyncClient:
        # no await between check and assignment, so concurrent callers share one client
        if self._client is None or self._client.is_closed:
            self._client = self._client_factory(
                timeout=self.config.timeout_seconds,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    def _prepare_request(
        self,
        method: str,
        url: str,
        content: Optional[bytes],
        headers: Optional[Mapping[str, str]],
    ) -> httpx.Request:
        # httpx.Headers is case-insensitive, so per-call keys replace defaults
        merged = httpx.Headers(
            {
                key: value
                for key, value in self.config.default_headers.items()
                if key.strip() and value.strip()
            }
        )
        if content is not None:
            merged["Content-Type"] = JSON_CONTENT_TYPE
        for key, value in (headers or {}).items():
            merged[key] = value

        request = httpx.Request(method.upper(), url, content=content, headers=merged)
        self.logging_sink.log_request(request)
        return request

    async def _send(
        self,
        request: httpx.Request,
        response_type: Any,
        cancel: Optional[asyncio.Event],
    ) -> Any:
        url = str(request.url)
        try:
            response, attempts = await self._send_with_retries(self._get_client(), request, cancel)

            body = response.text
            if not response.is_success:
                logger.warning(
                    "fetch_http_error",
                    url=url,
                    attempts=attempts,
                    status_code=response.status_code,
                    response_snippet=body[:500],
                )
                error_cls = NotFoundRetryableError if response.status_code == 404 else HttpStatusError
                raise error_cls(response.status_code, body, url=url, attempts=attempts)

            self.logging_sink.log_response(response)

            try:
                result = parse_json_as(body, response_type)
            except ValueError as exc:
                raise DeserializationError(
                    f"Could not deserialize response from {url} into {_type_name(response_type)}: {exc}",
                    url=url,
                    body=body,
                ) from exc

            logger.info("fetch_success", method=request.method, url=url, attempts=attempts)
            return result

        except (Exception, asyncio.CancelledError) as exc:
            self.logging_sink.log_error(exc)
            raise

    async def _send_with_retries(
        self,
        client: httpx.AsyncClient,
        request: httpx.Request,
        cancel: Optional[asyncio.Event],
    ) -> Tuple[httpx.Response, int]:
        """
        Run the attempt loop.

        - retry_count=3 => attempts=4
        - Returns the last response (which may be non-2xx)
        - Raises FetchConnectionError when transport errors are exhausted
        """
        policy = self.retry_policy
        max_attempts = policy.retry_count + 1
        url = str(request.url)

        for attempt in range(1, max_attempts + 1):
            try:
                response = await self._until_cancelled(client.send(request), cancel, url)
            except httpx.RequestError as exc:
                retryable = policy.should_retry_exception(exc)
                logger.warning(
                    "fetch_attempt_failed",
                    url=url,
                    attempt=attempt,
                    max_retries=policy.retry_count,
                    retryable=retryable,
                    error=str(exc),
                )
                if attempt >= max_attempts or not retryable:
                    logger.error("fetch_exhausted_retries", url=url, attempts=attempt, error=str(exc))
                    raise FetchConnectionError(
                        f"Request to {url} failed after {attempt} attempt(s): {exc}",
                        url=url,
                        attempts=attempt,
                    ) from exc
            else:
                if attempt >= max_attempts or not policy.should_retry_response(response):
                    return response, attempt
                logger.warning(
                    "fetch_attempt_failed",
                    url=url,
                    attempt=attempt,
                    max_retries=policy.retry_count,
                    retryable=True,
                    status_code=response.status_code,
                )
                await response.aclose()

            delay = policy.delay(attempt - 1)
            logger.debug("fetch_retry_wait", url=url, attempt=attempt, delay_seconds=delay)
            await self._until_cancelled(asyncio.sleep(delay), cancel, url)

        raise AssertionError("retry loop exited without a result")

    @staticmethod
    async def _until_cancelled(
        awaitable: Awaitable[Any],
        cancel: Optional[asyncio.Event],
        url: str,
    ) -> Any:
        """Await `awaitable`, aborting it with RequestCancelledError once `cancel` is set."""
        if cancel is None:
            return await awaitable

        if cancel.is_set():
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise RequestCancelledError(f"Request to {url} was cancelled", url=url)

        work = asyncio.ensure_future(awaitable)
        watcher = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (work, watcher):
                if not task.done():
                    task.cancel()
            await asyncio.gather(work, watcher, return_exceptions=True)

        if cancel.is_set():
            raise RequestCancelledError(f"Request to {url} was cancelled", url=url)
        return work.result()


def _type_name(tp: Any) -> str:
    return getattr(tp, "__name__", None) or repr(tp)


__all__ = ["HttpFetchClient", "JSON_CONTENT_TYPE"]

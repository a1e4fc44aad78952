# tests/test_logging_sink.py
from __future__ import annotations

import logging
from typing import Iterator

import httpx
import pytest
import structlog
from structlog.testing import capture_logs

from efetch.utils.logging_config import configure_logging
from efetch.utils.logging_sink import LoggingSink, NullLoggingSink, StructlogLoggingSink


def test_request_event_masks_sensitive_headers() -> None:
    request = httpx.Request(
        "POST",
        "http://h/api/todos",
        headers={"Authorization": "Bearer secret", "X-Tenant": "acme"},
    )

    with capture_logs() as logs:
        StructlogLoggingSink().log_request(request)

    assert len(logs) == 1
    event = logs[0]
    assert event["event"] == "http_request"
    assert event["log_level"] == "info"
    assert event["method"] == "POST"
    assert event["url"] == "http://h/api/todos"
    assert event["headers"]["authorization"] == "***"
    assert event["headers"]["x-tenant"] == "acme"


def test_response_event_includes_status_and_url() -> None:
    response = httpx.Response(
        200,
        headers={"Set-Cookie": "a=b", "Content-Type": "application/json"},
        request=httpx.Request("GET", "http://h/api/todos/1"),
    )

    with capture_logs() as logs:
        StructlogLoggingSink().log_response(response)

    assert logs[0]["event"] == "http_response"
    assert logs[0]["status_code"] == 200
    assert logs[0]["url"] == "http://h/api/todos/1"
    assert logs[0]["headers"]["set-cookie"] == "***"


def test_response_without_request_logs_no_url() -> None:
    with capture_logs() as logs:
        StructlogLoggingSink().log_response(httpx.Response(204))

    assert logs[0]["url"] is None


def test_error_event_carries_type_message_and_trace() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError as exc:
        error = exc

    with capture_logs() as logs:
        StructlogLoggingSink().log_error(error)

    assert logs[0]["event"] == "http_error"
    assert logs[0]["log_level"] == "error"
    assert logs[0]["error_type"] == "RuntimeError"
    assert logs[0]["error"] == "boom"
    assert "RuntimeError: boom" in logs[0]["stack_trace"]


def test_null_sink_emits_nothing() -> None:
    sink = NullLoggingSink()
    with capture_logs() as logs:
        sink.log_request(httpx.Request("GET", "http://h"))
        sink.log_response(httpx.Response(200))
        sink.log_error(RuntimeError("x"))

    assert logs == []


def test_stock_sinks_satisfy_protocol() -> None:
    assert isinstance(StructlogLoggingSink(), LoggingSink)
    assert isinstance(NullLoggingSink(), LoggingSink)


@pytest.fixture
def _restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    level = root.level
    yield
    root.setLevel(level)
    structlog.reset_defaults()


@pytest.mark.usefixtures("_restore_logging")
def test_configure_logging_sets_levels_and_configures_structlog() -> None:
    configure_logging("debug", json_logs=True)

    assert structlog.is_configured()
    assert logging.getLogger().level == logging.DEBUG


@pytest.mark.usefixtures("_restore_logging")
def test_configure_logging_rejects_unknown_level() -> None:
    with pytest.raises(ValueError):
        configure_logging("chatty")

"""Tests for structured logging helpers."""

from __future__ import annotations

import json
import logging
import sys
from unittest.mock import MagicMock

import pytest

from notify_service.infra.logging import (
    ContextInjectingFilter,
    JSONFormatter,
    LazyLoggerAdapter,
    get_log_context,
    log_context,
)


def make_record(msg: str = "Delivery attempt recorded", **extra) -> logging.LogRecord:
    record = logging.LogRecord("queue", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestLogContext:
    def test_nested_scopes_restore_previous_context(self):
        with log_context(tenant_id="store-1"):
            with log_context(notification_id="n-1", channel="line"):
                assert get_log_context() == {
                    "tenant_id": "store-1",
                    "notification_id": "n-1",
                    "channel": "line",
                }
            assert get_log_context() == {"tenant_id": "store-1"}
        assert get_log_context() == {}

    def test_scope_is_restored_after_error(self):
        with pytest.raises(RuntimeError), log_context(channel="sms"):
            raise RuntimeError("boom")
        assert "channel" not in get_log_context()

    def test_filter_injects_without_overwriting(self):
        record = make_record(channel="email")
        with log_context(channel="line", tenant_id="store-1"):
            assert ContextInjectingFilter().filter(record)
        assert record.channel == "email"
        assert record.tenant_id == "store-1"


class TestJSONFormatter:
    def test_single_line_json_with_extras(self):
        formatter = JSONFormatter(static={"service": "notify-service"})
        record = make_record(operation="queue.record", attempt=2)

        data = json.loads(formatter.format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "queue"
        assert data["message"] == "Delivery attempt recorded"
        assert data["service"] == "notify-service"
        assert data["operation"] == "queue.record"
        assert data["attempt"] == 2
        assert data["timestamp"].endswith("Z")
        assert "trace_id" not in data

    def test_exception_stays_on_one_line(self):
        try:
            raise ValueError("bad payload")
        except ValueError:
            record = logging.LogRecord("queue", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

        output = JSONFormatter().format(record)

        assert "\n" not in output
        assert "ValueError: bad payload" in json.loads(output)["exception"]


class TestLazyLogger:
    def test_callables_only_run_when_enabled(self):
        base = logging.getLogger("tests.lazy")
        base.setLevel(logging.INFO)
        adapter = LazyLoggerAdapter(base, {})
        expensive = MagicMock(return_value="dump")

        adapter.debug(expensive)
        expensive.assert_not_called()

        adapter.info(expensive)
        expensive.assert_called_once()

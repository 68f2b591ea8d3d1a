"""JSON Lines formatter with OpenTelemetry trace correlation."""
from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

from opentelemetry import trace

# Attributes every LogRecord carries; anything else arrived via extra= or a filter
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

_BASE_FIELDS = {
    "level": "levelname",
    "logger": "name",
    "message": "message",
}


def _utc_timestamp(created: float) -> str:
    stamp = datetime.fromtimestamp(created, tz=UTC).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


class JSONFormatter(logging.Formatter):
    """Render each record as one JSON object per line.

    The payload holds the level, logger name, message and a UTC timestamp,
    then the active span's ``trace_id``/``span_id``, the ``static`` fields,
    and finally every extra attribute (``operation``, ``channel``,
    ``tenant_id`` and so on). Exceptions are serialized into the
    ``exception`` field; ``json.dumps`` escapes their newlines, so a
    traceback never splits a line.
    """

    def __init__(
        self,
        fmt_keys: dict[str, str] | None = None,
        static: dict[str, Any] | None = None,
    ) -> None:
        super().__init__()
        self.fmt_keys = fmt_keys or dict(_BASE_FIELDS)
        self.static = static or {}

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        payload: dict[str, Any] = {key: getattr(record, attr, None) for key, attr in self.fmt_keys.items()}
        payload["timestamp"] = _utc_timestamp(record.created)

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            payload["trace_id"] = format(span_context.trace_id, "032x")
            payload["span_id"] = format(span_context.span_id, "016x")

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack_trace"] = record.stack_info

        payload.update(self.static)
        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and key not in payload
        )
        return json.dumps(payload, ensure_ascii=False, default=str)

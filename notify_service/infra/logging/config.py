"""Process-wide logging setup.

The root logger gets a single ``QueueHandler``; the console and optional
rotating-file handlers run behind a ``QueueListener`` thread so a slow sink
never stalls the event loop while adapters are waiting on providers.
"""

from __future__ import annotations

import atexit
import logging
import logging.config
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import Queue
from typing import TYPE_CHECKING, Any

from notify_service.infra.logging.formatters import JSONFormatter

if TYPE_CHECKING:
    from notify_service.core.settings.logs import LoggingSettings

logger = logging.getLogger(__name__)

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_listener: QueueListener | None = None
_queue_handler: QueueHandler | None = None
_configured = False


def shutdown() -> None:
    """Flush queued records and detach the queue handler.

    Safe to call more than once; the API lifespan, the worker shutdown hook
    and ``atexit`` all call it.
    """
    global _listener, _queue_handler

    if _listener is not None:
        _listener.stop()
        _listener = None
    if _queue_handler is not None:
        logging.getLogger().removeHandler(_queue_handler)
        _queue_handler = None


def setup_logging(log_settings: LoggingSettings | None = None, *, force: bool = False) -> None:
    """Configure logging from ``LOG_*`` settings once per process."""
    global _configured

    if _configured and not force:
        return
    if log_settings is None:
        from notify_service.core.settings import get_logging_settings

        log_settings = get_logging_settings()

    configure_logging(**log_settings.to_logging_kwargs())
    _configured = True


def configure_logging(
    log_level: str = "INFO",
    console_level: str | None = None,
    file_path: str | Path | None = None,
    json_logs: bool = True,
    console_enabled: bool = True,
    include_context: bool = True,
    capture_warnings: bool = True,
    file_max_bytes: int = 10 * 1024 * 1024,
    file_backup_count: int = 5,
    service_name: str = "notify-service",
    logger_levels: dict[str, str] | None = None,
) -> None:
    """Install the root configuration and (re)start the queue listener.

    Args:
        log_level: Root level.
        console_level: Console handler level; defaults to ``log_level``.
        file_path: Rotating JSONL file; ``None`` disables file output.
        json_logs: JSON Lines output instead of the plain text format.
        console_enabled: Write to stderr.
        include_context: Attach ``ContextInjectingFilter`` to the root logger.
        capture_warnings: Route ``warnings`` through logging.
        file_max_bytes: Rotation size for the file handler.
        file_backup_count: Rotated files to keep.
        service_name: ``service`` field stamped on every JSON record.
        logger_levels: Levels for individual loggers such as ``httpx``.
    """
    global _listener, _queue_handler

    shutdown()
    logging.captureWarnings(capture_warnings)

    filters: dict[str, Any] = {}
    if include_context:
        filters["context"] = {"()": "notify_service.infra.logging.context.ContextInjectingFilter"}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": filters,
            "root": {"level": log_level.upper(), "handlers": [], "filters": list(filters)},
            "loggers": {
                name: {"level": level.upper()} for name, level in (logger_levels or {}).items()
            },
        }
    )

    formatter = _build_formatter(json_logs, service_name)
    sinks: list[logging.Handler] = []
    if console_enabled:
        console = logging.StreamHandler()
        console.setLevel((console_level or log_level).upper())
        sinks.append(console)
    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        rotating = RotatingFileHandler(
            path, maxBytes=file_max_bytes, backupCount=file_backup_count, encoding="utf-8"
        )
        rotating.setLevel(log_level.upper())
        sinks.append(rotating)
    for sink in sinks:
        sink.setFormatter(formatter)

    queue: Queue[logging.LogRecord] = Queue()
    if sinks:
        _listener = QueueListener(queue, *sinks, respect_handler_level=True)
        _listener.start()
        atexit.register(shutdown)
    _queue_handler = QueueHandler(queue)
    logging.getLogger().addHandler(_queue_handler)

    logger.debug(
        "Logging configured",
        extra={"json_logs": json_logs, "sinks": len(sinks), "operation": "logging.configure"},
    )


def _build_formatter(json_logs: bool, service_name: str) -> logging.Formatter:
    if json_logs:
        return JSONFormatter(static={"service": service_name})
    return logging.Formatter(fmt=_TEXT_FORMAT)

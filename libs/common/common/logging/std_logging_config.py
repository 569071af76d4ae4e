from __future__ import annotations

import atexit
import os
import re
import sys
from enum import Enum
from logging import Filter, Handler, LogRecord
from logging.handlers import QueueHandler, QueueListener
from queue import Queue
from typing import Any

import structlog
from pydantic import BaseModel
from structlog.typing import EventDict, Processor, WrappedLogger

from common.utils.utils import is_dict

QUEUE_HANDLER = "standard"

# user:password@ inside connection URLs
_URL_CREDENTIALS = re.compile(r"(?P<scheme>[a-z][a-z0-9+.\-]*://[^:/@\s]+):[^@\s]+@", re.IGNORECASE)
_MULTILINE_KEYS = {"exc_info", "stack", "traceback", "exception", "detail", "error"}


def use_json_logging() -> bool:
    """JSON outside local/development/test, or when ``LOG_JSON_FORMAT`` is truthy."""
    app_env = os.getenv("APP_ENV", "local").lower()
    if app_env not in ("development", "local", "test"):
        return True
    return os.getenv("LOG_JSON_FORMAT", "false").lower() in {"true", "1", "t", "yes"}


class LoggingQueueListener(QueueListener):
    """``QueueListener`` that starts on creation and stops at interpreter exit."""

    def __init__(self, queue: Queue[LogRecord], *handlers: Handler, respect_handler_level: bool = False) -> None:
        super().__init__(queue, *handlers, respect_handler_level=respect_handler_level)
        self.start()
        _ = atexit.register(self.stop)


def mask_credentials(text: str) -> str:
    """Replace the password of every ``scheme://user:password@`` URL in ``text``."""
    return _URL_CREDENTIALS.sub(r"\g<scheme>:***@", text)


def _process_values(
    _logger: WrappedLogger,
    _name: str,
    event_dict: EventDict,
) -> EventDict:
    """Make event values log-friendly.

    Pydantic models are dumped, enums replaced by their value, ``None`` values
    dropped, credentials in URLs masked and multi-line error texts split into lines.
    """
    for key, value in list(event_dict.items()):
        if value is None:
            del event_dict[key]
        else:
            event_dict[key] = _process_value(key, value)
    return event_dict


def _process_value(key: str, value: Any) -> Any:
    if isinstance(value, BaseModel):
        value = value.model_dump(exclude_none=True, by_alias=True, mode="json")
    elif isinstance(value, Enum):
        value = value.value

    if isinstance(value, str):
        value = mask_credentials(value)
        if key in _MULTILINE_KEYS and "\n" in value.strip():
            return [line.rstrip() for line in value.strip().splitlines() if line]
        return value

    if is_dict(value):
        return {k: _process_value(k, v) for k, v in value.items() if v is not None}
    return value


class NoMetricsScrapeFilter(Filter):
    """Drop access log lines of Prometheus scraping ``/metrics``."""

    def filter(self, record: LogRecord) -> bool:
        return "GET /metrics" not in record.getMessage()


def _drop_console_noise(_logger: WrappedLogger, _name: str, event_dict: EventDict) -> EventDict:
    for field in ("color_message", "message", "stack_info", "process", "thread", "thread_name"):
        event_dict.pop(field, None)
    return event_dict


class SafeProcessorFormatter(structlog.stdlib.ProcessorFormatter):
    """ProcessorFormatter that ensures structlog records always carry a dict message."""

    def format(self, record: LogRecord) -> str:
        # Records from plain stdlib loggers go through foreign_pre_chain untouched
        if getattr(record, "_logger", None) is not None and not isinstance(record.msg, dict):
            record.msg = {"event": str(record.msg)}
        return super().format(record)


class StdLoggingConfig:
    foreign_pre_chain_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _process_values,
    ]

    structlog_processors = [*foreign_pre_chain_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter]

    # One JSON object per line
    json_renderer: list[Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
        structlog.processors.dict_tracebacks,
        structlog.processors.JSONRenderer(sort_keys=True, default=str),
    ]

    console_renderer: list[Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
        _drop_console_noise,
        structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty(), sort_keys=False),
    ]

    logger_factory = structlog.stdlib.LoggerFactory()


def build_logging_config(json_format: bool | None = None) -> dict[str, Any]:
    """``dictConfig`` mapping routing every record through a queue to stdout.

    Args:
        json_format: Render JSON lines instead of the console format. Defaults to
            :func:`use_json_logging`.
    """
    if json_format is None:
        json_format = use_json_logging()

    def formatter(processors: list[Processor]) -> dict[str, Any]:
        return {
            "()": SafeProcessorFormatter,
            "processors": processors,
            "foreign_pre_chain": StdLoggingConfig.foreign_pre_chain_processors,
        }

    def library_logger(level: str) -> dict[str, Any]:
        return {"handlers": [QUEUE_HANDLER], "level": level, "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": formatter(StdLoggingConfig.json_renderer),
            "console": formatter(StdLoggingConfig.console_renderer),
        },
        "filters": {"no_metrics_scrape": {"()": NoMetricsScrapeFilter}},
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "level": "DEBUG",
                "stream": "ext://sys.stdout",
                "formatter": "json" if json_format else "console",
                "filters": ["no_metrics_scrape"],
            },
            QUEUE_HANDLER: {
                "class": QueueHandler,
                "level": "DEBUG",
                "listener": LoggingQueueListener,
                "handlers": ["stdout"],
            },
        },
        "root": {"handlers": [QUEUE_HANDLER], "level": "INFO"},
        "loggers": {
            "sqlalchemy.engine": library_logger("WARNING"),
            "alembic": library_logger("INFO"),
            "uvicorn": library_logger("INFO"),
            "uvicorn.error": library_logger("INFO"),
            "uvicorn.access": library_logger("WARNING"),
        },
    }

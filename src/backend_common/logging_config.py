"""Logging configuration for structured single-line (key=value or JSON) logging."""
from __future__ import annotations

import logging
import sys
from typing import Literal

import structlog

LogFormat = Literal["kv", "json"]


def _sanitize_string(value: str) -> str:
    """Escape control characters so the log entry stays on a single line."""
    return (
        value.replace("\\", "\\\\")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )


def replace_newlines_processor(logger, method_name, event_dict):
    """
    Replace newlines in string values with \\n.

    Runs after format_exc_info so formatted tracebacks are flattened too.
    """
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = _sanitize_string(value)
        elif isinstance(value, (list, tuple)):
            event_dict[key] = [
                _sanitize_string(item) if isinstance(item, str) else item
                for item in value
            ]
        elif isinstance(value, dict):
            event_dict[key] = {
                k: _sanitize_string(v) if isinstance(v, str) else v
                for k, v in value.items()
            }
    return event_dict


class SingleLineFormatter(logging.Formatter):
    """Formatter that ensures output is always on a single line."""

    def format(self, record):
        message = super().format(record)
        return message.replace("\n", "\\n").replace("\r", "\\r")


def _renderer(fmt: LogFormat):
    if fmt == "json":
        return structlog.processors.JSONRenderer(sort_keys=False)
    # key=value output is what Alloy/Loki parse without extra pipeline stages
    return structlog.processors.KeyValueRenderer(
        key_order=["timestamp", "level", "logger", "event", "message"],
        drop_missing=True,
    )


def configure_logging(level: str = "INFO", fmt: LogFormat = "kv") -> None:
    """Configure structlog and route stdlib logging (aiohttp included) through it."""
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(SingleLineFormatter("%(message)s"))

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(numeric_level)
    root_logger.propagate = False

    aiohttp_logger = logging.getLogger("aiohttp.access")
    aiohttp_logger.setLevel(numeric_level)
    aiohttp_logger.propagate = True
    aiohttp_logger.handlers = []

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if fmt == "kv":
        # must sit between format_exc_info and the renderer
        processors.append(replace_newlines_processor)
    processors.append(_renderer(fmt))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

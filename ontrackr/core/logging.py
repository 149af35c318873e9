"""Structured logging configuration — structlog + stdlib logging.

Webhook payloads carry free text (commit messages, PR bodies) of any
length and a signature header. Two processors keep log lines bounded and
free of signatures and secrets before anything is rendered.
"""

from __future__ import annotations

import logging.config
import os
from typing import Any

import structlog

MAX_VALUE_LENGTH = 300

_REDACTED_KEYS = frozenset({"signature", "webhook_secret", "secret", "authorization"})


def redact_secrets(_logger: Any, _method: str, event_dict: dict) -> dict:
    for key in _REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def truncate_long_values(_logger: Any, _method: str, event_dict: dict) -> dict:
    for key, value in event_dict.items():
        if key != "exception" and isinstance(value, str) and len(value) > MAX_VALUE_LENGTH:
            event_dict[key] = f"{value[:MAX_VALUE_LENGTH]}… (+{len(value) - MAX_VALUE_LENGTH} chars)"
    return event_dict


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure structlog and stdlib logging.

    Arguments win over the environment:
        ONTRACKR_LOG_LEVEL  — level for ``ontrackr.*`` loggers (default: INFO)
        ONTRACKR_LOG_FORMAT — console | json (default: console)
    """
    log_level = (level or os.environ.get("ONTRACKR_LOG_LEVEL", "INFO")).upper()
    log_format = (fmt or os.environ.get("ONTRACKR_LOG_FORMAT", "console")).lower()

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
        truncate_long_values,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    quiet = {name: {"level": "WARNING"} for name in ("uvicorn.access", "sqlalchemy.engine", "asyncpg", "httpx")}
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": pre_chain,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        renderer,
                    ],
                },
            },
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                    "formatter": "structlog",
                },
            },
            "root": {"handlers": ["stdout"], "level": "INFO"},
            "loggers": {"ontrackr": {"level": log_level}, **quiet},
        }
    )

# src/llmagent/logging.py
"""Application logging: plain or structured JSON, with redaction.

The running CLI command is tracked in a context variable and added to every
JSON record so log lines from one invocation can be grouped.
"""

import contextvars
import logging
from logging.config import dictConfig
from typing import Any, Dict

from pythonjsonlogger.json import JsonFormatter as BaseJsonFormatter

from .config import LoggingConfig

command_context = contextvars.ContextVar("command_context", default=None)

# Keys whose values must never reach a log sink.
REDACTED_KEYS = {"api_key", "authorization", "token"}

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


class RedactingFilter(logging.Filter):
    """A logging filter that redacts sensitive values passed as dict args."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, dict):
            record.args = self._redact_dict(record.args)
        return True

    def _redact_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        redacted_data = {}
        for key, value in data.items():
            if key.lower() in REDACTED_KEYS:
                redacted_data[key] = "[REDACTED]"
            elif isinstance(value, dict):
                redacted_data[key] = self._redact_dict(value)
            else:
                redacted_data[key] = value
        return redacted_data


class JsonFormatter(BaseJsonFormatter):
    """JSON log lines tagged with the CLI command that produced them."""

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("rename_fields", {
            "asctime": "timestamp",
            "levelname": "level",
            "name": "logger",
        })
        super().__init__(*args, **kwargs)

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["command"] = command_context.get()


def setup_logging(config: LoggingConfig) -> logging.Logger:
    """Configure the package logger from the 'logging' config section."""
    formatter = "json" if config.json_format else "plain"
    dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "redacting": {
                "()": RedactingFilter,
            },
        },
        "formatters": {
            "plain": {
                "format": PLAIN_FORMAT,
            },
            "json": {
                "()": JsonFormatter,
                "fmt": JSON_FORMAT,
            },
        },
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
                "formatter": formatter,
                "filters": ["redacting"],
            },
        },
        "loggers": {
            "llmagent": {
                "handlers": ["stderr"],
                "level": config.level.upper(),
                "propagate": False,
            },
        },
    })
    return logging.getLogger("llmagent")

from __future__ import annotations

import logging
import time
from logging.config import dictConfig
from typing import Iterable, Sequence

from settings import get_settings

RELAY_CONTEXT_KEYS = (
    "remote_addr",
    "bytes",
    "report_type",
    "measurement",
    "bucket",
    "timestamp",
    "url",
    "status_code",
    "reason",
    "error",
)

# httpx logs every request at INFO; one line per delivered point is noise.
_CHATTY_LOGGERS = ("httpx", "httpcore")

_configured = False


class ContextualFormatter(logging.Formatter):
    """Appends ``key=value`` pairs for relay context passed through ``extra``.

    Timestamps are rendered in UTC so the trailing ``Z`` is truthful.
    """

    converter = time.gmtime

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        context_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._context_keys: Sequence[str] = tuple(context_keys or RELAY_CONTEXT_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context: list[str] = []
        for key in self._context_keys:
            value = getattr(record, key, None)
            if value is not None:
                context.append(f"{key}={_render(value)}")
        if not context:
            return message
        return f"{message} | {' '.join(context)}"


def _render(value: object) -> str:
    text = str(value)
    return repr(text) if any(char.isspace() for char in text) else text


def library_level(level: str | int) -> str | int:
    """Level for HTTP client loggers: quiet unless the relay itself is at DEBUG."""
    numeric = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if isinstance(numeric, int) and numeric <= logging.DEBUG:
        return level
    return "WARNING"


def configure_logging(level: str | int | None = None) -> None:
    """Install the relay's log format once per process."""
    global _configured
    if _configured:
        return

    log_level = level if level is not None else get_settings().effective_log_level

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "contextual": {
                    "()": "logging_config.ContextualFormatter",
                    "fmt": "%(asctime)sZ | %(levelname)s | %(threadName)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": "contextual",
                }
            },
            "loggers": {
                name: {"level": library_level(log_level)} for name in _CHATTY_LOGGERS
            },
            "root": {"handlers": ["default"], "level": log_level},
        }
    )

    _configured = True

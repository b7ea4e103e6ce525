"""Structured logging configuration for the Rigger orchestration engine.

Log lines are key=value pairs. The context fields (task_id, slot, provider)
come first when present, followed by anything passed as ``extra_data``:

    timestamp=... level=WARNING logger=rigger.providers.registry task_id=... slot=main message="..."
"""

import logging
import sys
from typing import Any

CONTEXT_FIELDS = ("task_id", "slot", "provider")


def _render(value: Any) -> str:
    text = str(value)
    if not text or any(c.isspace() or c == "=" for c in text):
        return '"' + text.replace('"', '\\"') + '"'
    return text


class StructuredFormatter(logging.Formatter):
    """key=value structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = value

        log_data["message"] = record.getMessage()

        extra_data = getattr(record, "extra_data", None)
        if isinstance(extra_data, dict):
            for key, value in extra_data.items():
                log_data.setdefault(key, value)

        line = " ".join(f"{k}={_render(v)}" for k, v in log_data.items())
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _resolve_level() -> int:
    try:
        from rigger.core.config import get_settings

        settings = get_settings()
    except Exception:
        return logging.INFO

    if settings.LOG_LEVEL:
        level = logging.getLevelName(settings.LOG_LEVEL.upper())
        # getLevelName returns a string for unknown names
        return level if isinstance(level, int) else logging.INFO
    return logging.DEBUG if settings.RIGGER_ENV == "dev" else logging.INFO


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger writing structured lines to stdout. The level is LOG_LEVEL when
        set, otherwise DEBUG in dev and INFO elsewhere.
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.setLevel(_resolve_level())

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with context fields.

    task_id, slot and provider become top-level record attributes; any other
    keyword lands in extra_data.

    Example:
        log_with_context(logger, logging.WARNING, "dispatch failed", slot="main", provider="ollama", timed_out=True)
    """
    extra: dict[str, Any] = {field: kwargs.pop(field) for field in CONTEXT_FIELDS if field in kwargs}
    extra["extra_data"] = kwargs
    logger.log(level, msg, extra=extra)

"""Structured key=value logging for the document refinement engine.

Command-scoped records carry a ``command_id`` so every line of one analyze,
refine, question or diff run can be grepped together.
"""

import logging
import sys
from typing import Any

# Context fields promoted to the front of each line, in this order
CONTEXT_FIELDS = ("command_id", "generation")


class StructuredFormatter(logging.Formatter):
    """Render records as ``key=value`` pairs."""

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
        if extra_data:
            log_data.update(extra_data)

        line = " ".join(f"{k}={v}" for k, v in log_data.items())
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _level_for_env(env: str) -> int:
    return logging.DEBUG if env == "dev" else logging.INFO


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger writing structured lines to stdout.

    The level follows ``DOCREFINE_ENV``: DEBUG in dev, INFO otherwise.
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.propagate = False

        try:
            from docrefine.core.config import get_settings

            logger.setLevel(_level_for_env(get_settings().DOCREFINE_ENV))
        except Exception:
            # Settings may be unreadable during early import
            logger.setLevel(logging.INFO)

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log ``msg`` with context fields.

    ``command_id`` and ``generation`` are promoted to record attributes; any
    other keyword becomes a trailing ``key=value`` pair.
    """
    extra: dict[str, Any] = {
        field: kwargs.pop(field) for field in CONTEXT_FIELDS if field in kwargs
    }
    extra["extra_data"] = kwargs
    logger.log(level, msg, extra=extra)

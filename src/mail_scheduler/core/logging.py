"""Logging configuration helpers."""

from __future__ import annotations

import logging
import logging.config
from typing import Any

from .config import LoggingSettings

# Third-party loggers that are chatty at INFO.
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "apscheduler")


def _formatter(structured: bool) -> dict[str, Any]:
    """Return a dictConfig formatter fragment.

    Structured output adds the thread name so scheduler workers can be told
    apart.
    """
    if structured:
        return {
            "format": "{asctime} {levelname} {name} [{threadName}] {message}",
            "style": "{",
        }
    return {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"}


def configure_logging(settings: LoggingSettings) -> None:
    """Install the console handler and levels described by ``settings``."""
    level = settings.level.upper()
    dict_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": _formatter(settings.structured)},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "level": level,
            },
        },
        "loggers": {
            name: {"level": "WARNING"} for name in _QUIET_LOGGERS
        },
        "root": {"handlers": ["console"], "level": level},
    }
    logging.config.dictConfig(dict_config)
    logging.getLogger(__name__).debug("Logging configured at %s", level)


__all__ = ["configure_logging"]

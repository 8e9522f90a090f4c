"""Logging configuration for the command line program."""

from __future__ import annotations

import logging
import logging.config
from typing import Any

from .config import Settings

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def configure_logging(settings: Settings) -> None:
    """Send every record to stderr at ``settings.log_level``.

    pymongo is capped at INFO so that DEBUG does not dump every command.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": _LOG_FORMAT,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "level": level,
                "stream": "ext://sys.stderr",
            }
        },
        "loggers": {
            "": {"handlers": ["default"], "level": level},
            "pymongo": {"level": max(level, logging.INFO)},
        },
    }
    logging.config.dictConfig(config)

"""Central logging configuration for acceptance runs.

A single stdout handler on the root logger; httpx/httpcore chatter is kept at
WARNING so request logging comes from the probe layer only.
"""
from __future__ import annotations

import logging
import os
from logging.config import dictConfig

LOG_LEVEL_ENV = "ACCEPTANCE_LOG_LEVEL"


def _dict_config(level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)s:%(name)s:%(message)s",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
                "stream": "ext://sys.stdout",
            }
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": {
            "httpx": {"level": "WARNING"},
            "httpcore": {"level": "WARNING"},
        },
    }


def configure_logging(level: str = None) -> None:
    """Configure logging once; a root logger that already has handlers is left alone."""
    root = logging.getLogger()
    if root.handlers:
        return
    level = (level or os.getenv(LOG_LEVEL_ENV, "INFO")).upper()
    dictConfig(_dict_config(level))

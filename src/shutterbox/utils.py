"""General utilities for the shutterbox package."""

from __future__ import annotations

import os
import sys

from loguru import logger

_LOGGER_CONFIGURED = False


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def configure_logging(*, force: bool = False) -> None:
    """Set up the global Loguru logger with application defaults."""
    global _LOGGER_CONFIGURED
    if _LOGGER_CONFIGURED and not force:
        return

    log_level = os.getenv("SHUTTERBOX_LOG_LEVEL", "INFO")
    diagnose = _parse_bool(os.getenv("SHUTTERBOX_LOG_DIAGNOSE", "false"))

    logger.remove()
    logger.add(
        sys.stderr,
        level=log_level,
        backtrace=False,
        diagnose=diagnose,
        enqueue=False,
        colorize=True,
    )

    _LOGGER_CONFIGURED = True


configure_logging()

__all__ = ["configure_logging", "logger"]

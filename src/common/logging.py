"""Logging setup shared by the CLI and the cron server."""

from __future__ import annotations

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"

# Chatty HTTP libraries that log every request at INFO/DEBUG
NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "hpack")


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        return resolved if isinstance(resolved, int) else logging.INFO
    return level


def setup_logging(
    level: int | str | None = None,
    module_name: str = "src",
) -> logging.Logger:
    """Attach a stdout handler to the package logger once.

    Args:
        level: Level number or name. Defaults to $LOG_LEVEL, then INFO.
        module_name: Logger to configure; "src" covers every module logger.

    Returns:
        The configured logger. Calling again returns it unchanged.
    """
    logger = logging.getLogger(module_name)
    if logger.handlers:
        return logger

    resolved = _resolve_level(level)
    logger.setLevel(resolved)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger

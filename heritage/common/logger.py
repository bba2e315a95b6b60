"""Logging setup for the heritage workflow.

Every module logs through ``logging.getLogger(__name__)``, so configuring
the ``heritage`` package logger once covers the gate, the workflow service
and the notification relay. Timestamps are ISO 8601.
"""

import logging
import logging.handlers
import os

from heritage.core.config import Settings


LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Per-request chatter from the webhook client
QUIET_LOGGERS = ("httpx", "httpcore")


def configure_logging(
    settings: Settings,
    *,
    name: str = "heritage",
    console: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Configure the package logger from settings.

    ``log_level`` sets the level; with ``file_logging`` on, a rotating
    ``<name>.log`` is written under ``log_dir``. Calling it again replaces
    the handlers installed by the previous call.

    Returns:
        The configured logger

    Raises:
        ValueError: If ``log_level`` is not a known level name
    """
    level = settings.log_level.upper()
    if level not in LEVELS:
        raise ValueError(f"Invalid log level: {settings.log_level}. Must be one of: {', '.join(LEVELS)}")

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level))

    for handler in [h for h in logger.handlers if getattr(h, "_heritage", False)]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = []

    if settings.file_logging:
        os.makedirs(settings.log_dir, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            os.path.join(settings.log_dir, f"{name}.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
        ))

    if console:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
        handler._heritage = True
        logger.addHandler(handler)

    if level != "DEBUG":
        for quiet in QUIET_LOGGERS:
            logging.getLogger(quiet).setLevel(logging.WARNING)

    return logger

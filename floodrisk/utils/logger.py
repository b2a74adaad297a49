"""Logging configuration for the flood risk engine."""

import logging
import os
from typing import Optional

PACKAGE_LOGGER = "floodrisk"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s] - %(message)s"
# HTTP client libraries that log every pooled connection at DEBUG
NOISY_LOGGERS = ("urllib3", "requests")


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Configure logging for the engine.

    Args:
        level: Optional log level name; defaults to env LOGLEVEL or INFO.

    Returns:
        The ``floodrisk`` package logger, set to the requested level.
    """
    log_level = (level or os.getenv("LOGLEVEL", "INFO")).upper()
    logging.basicConfig(level=log_level, format=LOG_FORMAT)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(log_level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(package_logger.level, logging.INFO))
    return package_logger

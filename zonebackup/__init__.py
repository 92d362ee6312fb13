import os
import sys
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional


__version__ = '0.3.0'

LOGGER_NAME = 'zonebackup'


def configure_logging(level: str = 'INFO', log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure logging for a backup run.

    Console output always goes to stdout so cron mail and service logs pick it
    up. A rotating log file is added when log_file is set.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ...)
        log_file: Optional path of a rotating log file

    Returns:
        The configured package logger
    """
    log_level = getattr(logging, str(level).upper(), logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)

    # Reconfiguring replaces previous handlers instead of stacking them
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    # File handler
    if log_file:
        log_dir = os.path.dirname(os.path.abspath(log_file))
        os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_handler.setLevel(log_level)
        file_formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    logger.debug(f"Logging configured (level: {logging.getLevelName(log_level)})")
    return logger

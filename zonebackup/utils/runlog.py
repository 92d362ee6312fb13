"""
Per-run log context.

A RunLog is created for each backup run and handed to every component. It
forwards messages to the standard logging module and keeps the run's own
timestamped entries so the caller can report them afterwards.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional


class RunLog:
    """Collects the log entries of a single backup run."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('zonebackup.run')
        self.entries: List[str] = []

    def debug(self, message: str):
        self.logger.debug(message)

    def info(self, message: str):
        self._log(logging.INFO, message)

    def warning(self, message: str):
        self._log(logging.WARNING, message)

    def error(self, message: str):
        self._log(logging.ERROR, message)

    def _log(self, level: int, message: str):
        """
        Add a log message with timestamp.

        Args:
            level: logging level
            message: Log message
        """
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        self.entries.append(f"[{timestamp}] {logging.getLevelName(level)}: {message}")
        self.logger.log(level, message)

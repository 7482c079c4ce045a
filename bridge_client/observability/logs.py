"""
Logging setup for the sync client.
Console output plus optional daily-rotated log file.
"""

import os
import logging
from logging.handlers import TimedRotatingFileHandler
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)

def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure the root logger; add rotation when log_file is given."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)

    if log_file:
        setup_log_rotation(log_file)

def setup_log_rotation(log_file: str) -> None:
    """Setup daily log rotation, keeping 7 days."""
    try:
        # Ensure log directory exists
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        handler = TimedRotatingFileHandler(
            filename=log_file,
            when="midnight",
            interval=1,
            backupCount=7,
            encoding="utf-8"
        )
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

        root_logger = logging.getLogger()
        root_logger.addHandler(handler)

        logger.info(f"Log rotation configured for {log_file} (daily, keep 7 days)")

    except OSError as e:
        logger.error(f"Failed to setup log rotation: {e}")

"""
Logging configuration for Autovagas.
Provides structured logging with proper formatting.
"""

import sys
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from autovagas.core.config import config


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for console output."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        original = record.levelname
        color = self.COLORS.get(original, self.RESET)
        record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def setup_logging(name: str = "autovagas", log_dir: Optional[str] = None,
                  level: Optional[str] = None) -> logging.Logger:
    """
    Setup and return a configured logger.

    Module loggers (``logging.getLogger(__name__)``) inside the package are
    children of the ``autovagas`` logger and share its handlers.

    Args:
        name: Logger name (default: autovagas)
        log_dir: Directory for rotating log files (default: config.LOG_DIR)
        level: Log level name (default: config.LOG_LEVEL)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, (level or config.LOG_LEVEL).upper(), logging.INFO))

    log_path = Path(log_dir or config.LOG_DIR)
    log_path.mkdir(parents=True, exist_ok=True)

    # Console handler with colors
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(ColoredFormatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    logger.addHandler(console_handler)

    # File handler with rotation
    file_format = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(funcName)s:%(lineno)d | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    file_handler = RotatingFileHandler(
        log_path / f"{name}.log",
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(file_format)
    logger.addHandler(file_handler)

    # Error file handler (errors and above)
    error_handler = RotatingFileHandler(
        log_path / f"{name}_errors.log",
        maxBytes=10 * 1024 * 1024,
        backupCount=5
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(file_format)
    logger.addHandler(error_handler)

    return logger


def log_job_transition(job_id: str, status: str, detail: Optional[str] = None):
    """Log a scraper job state transition."""
    logger = logging.getLogger("autovagas.jobs")
    if detail:
        logger.info(f"Job {job_id} -> {status}: {detail}")
    else:
        logger.info(f"Job {job_id} -> {status}")


def log_session_event(session_id: str, event: str, details: Optional[str] = None):
    """Log a scraper session lifecycle event."""
    logger = logging.getLogger("autovagas.sessions")
    logger.info(f"Session [{session_id}] {event}: {details}" if details else f"Session [{session_id}] {event}")

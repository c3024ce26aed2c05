"""Logging utilities for the ompler instrument."""
import logging
import sys
import os
import threading
from typing import Optional


# Thread-safe lock for logger initialization
_logger_init_lock = threading.Lock()


class OmplerFormatter(logging.Formatter):
    """Compact formatter for ompler logs.

    Format: [{level[0]} {time} {module_basename[:9]}] {message}
    Example: [I 14:23:45.123 loom     ] Pitch table built: 91 pitches
    """

    def format(self, record):
        level_char = record.levelname[0]

        # Module basename, truncated to 9 chars and right-padded
        module_name = record.name.split('.')[-1]
        module_padded = module_name[:9].ljust(9)

        timestamp = self.formatTime(record, "%H:%M:%S")
        msecs = f"{int(record.msecs):03d}"

        prefix = f"[{level_char} {timestamp}.{msecs} {module_padded}]"
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        return f"{prefix} {message}"


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get logger for an ompler component.

    Args:
        name: Component name (usually the module basename)
        level: Optional level (DEBUG/INFO/WARNING/ERROR)
               Falls back to OMPLER_LOG_LEVEL env var, then INFO

    Returns:
        Configured logger instance

    Example:
        >>> from ompler.log import get_logger
        >>> logger = get_logger("family")
        >>> logger.info("Voices ready for pitches 36..62")
        [I 14:23:45.123 family   ] Voices ready for pitches 36..62
    """
    logger = logging.getLogger(f"ompler.{name}" if not name.startswith("ompler") else name)

    # Set level from: parameter > env var > INFO default
    if level is None:
        level = os.getenv("OMPLER_LOG_LEVEL", "INFO")

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Add handler if not already configured (thread-safe)
    with _logger_init_lock:
        if not logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(OmplerFormatter())
            logger.addHandler(handler)

    return logger


def set_level(level: str) -> None:
    """Set the level of every ompler logger created so far.

    Args:
        level: DEBUG/INFO/WARNING/ERROR
    """
    resolved = getattr(logging, level.upper(), logging.INFO)
    for name, logger in logging.Logger.manager.loggerDict.items():
        if name.startswith("ompler") and isinstance(logger, logging.Logger):
            logger.setLevel(resolved)

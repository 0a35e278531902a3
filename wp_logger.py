"""Logging configuration for wp-export-json."""

import logging
import sys


def setup_logger(name: str = "wp_export", level: str = "INFO") -> logging.Logger:
    """Set up and return a configured logger.

    Args:
        name: Logger name (default: wp_export)
        level: Logging level (default: INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Avoid adding duplicate handlers
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    )
    logger.addHandler(handler)

    return logger

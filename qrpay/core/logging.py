"""Centralized logging configuration for the application."""

import logging
import sys


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure and return the application logger.

    Sets up a consistent log format across the entire application
    with timestamps, log level, module name, and the message.

    Args:
        level: The log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).

    Returns:
        The configured root application logger.
    """
    log_format = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logger = logging.getLogger("qrpay")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Prevent duplicate handlers when the app module is imported twice
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(log_format, datefmt=date_format))
        logger.addHandler(handler)

    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger under the qrpay namespace.

    Usage:
        from qrpay.core.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Bill issued")

    Args:
        name: Usually __name__ of the calling module.

    Returns:
        A child logger with the given name.
    """
    if name == "qrpay" or name.startswith("qrpay."):
        return logging.getLogger(name)
    return logging.getLogger(f"qrpay.{name}")

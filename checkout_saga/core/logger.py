"""
Centralized logger configuration for checkout_saga.

By default every component logs through Python's standard logging under the
'checkout_saga' namespace. A custom logger (structlog, loguru, ...) can be
installed with set_logger().

Usage:
    from checkout_saga.core.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Message")
"""

import logging
from typing import Any

_custom_logger: Any = None


class NullLogger:  # pragma: no cover
    """A logger that does nothing (for when logging is disabled)."""

    def debug(self, *args, **kwargs): pass
    def info(self, *args, **kwargs): pass
    def warning(self, *args, **kwargs): pass
    def error(self, *args, **kwargs): pass
    def exception(self, *args, **kwargs): pass
    def critical(self, *args, **kwargs): pass


def set_logger(logger: Any) -> None:
    """
    Set a custom logger for all checkout_saga components.

    Args:
        logger: A logger instance supporting debug/info/warning/error/exception.
                Pass None to restore standard logging.
    """
    global _custom_logger
    _custom_logger = logger


def get_logger(name: str = "checkout_saga") -> Any:
    """
    Get a logger instance.

    Returns the custom logger when one was installed with set_logger(),
    otherwise a standard logger with the given name.
    """
    if _custom_logger is not None:
        return _custom_logger

    logger = logging.getLogger(name)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger

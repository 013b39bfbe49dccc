"""
Structured logging for checkout sagas

Stamps every log record with the saga id, customer id and current step taken
from a ContextVar, so logs from concurrent checkouts can be told apart.
"""

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

checkout_context: ContextVar[dict[str, Any]] = ContextVar("checkout_context", default={})


class CheckoutJsonFormatter(logging.Formatter):
    """JSON formatter with checkout correlation fields"""

    _EXTRA_FIELDS = (
        "saga_id",
        "customer_id",
        "step",
        "order_id",
        "duration_ms",
        "attempt",
        "error_code",
    )

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        context = checkout_context.get({})
        if context:
            log_entry.update({key: value for key, value in context.items() if value is not None})

        for field in self._EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None and value != "":
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class CheckoutContextFilter(logging.Filter):
    """Adds checkout context to log records"""

    def filter(self, record: logging.LogRecord) -> bool:
        context = checkout_context.get({})

        if not hasattr(record, "saga_id"):
            record.saga_id = context.get("saga_id", "-")
        if not hasattr(record, "customer_id"):
            record.customer_id = context.get("customer_id", "")
        if not hasattr(record, "step"):
            record.step = context.get("step", "")

        return True


def set_checkout_context(saga_id: str, customer_id: str | None = None, step: str | None = None):
    """Set checkout context for the current task. Returns a token for reset."""
    return checkout_context.set({"saga_id": saga_id, "customer_id": customer_id, "step": step})


def update_checkout_step(step: str) -> None:
    context = dict(checkout_context.get({}))
    if context:
        context["step"] = step
        checkout_context.set(context)


def clear_checkout_context() -> None:
    checkout_context.set({})


@contextmanager
def checkout_log_context(saga_id: str, customer_id: str | None = None) -> Iterator[None]:
    """Scope the checkout context to a block; restores the previous context."""
    token = set_checkout_context(saga_id, customer_id)
    try:
        yield
    finally:
        checkout_context.reset(token)


def configure_logging(
    level: str = "INFO", json_format: bool = True, include_console: bool = True
) -> logging.Logger:
    """
    Set up logging for the checkout_saga namespace.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON formatting for structured logs
        include_console: Attach a console handler

    Returns:
        The configured 'checkout_saga' logger
    """
    root_logger = logging.getLogger("checkout_saga")
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if include_console:
        console_handler = logging.StreamHandler()
        console_handler.addFilter(CheckoutContextFilter())

        if json_format:
            console_handler.setFormatter(CheckoutJsonFormatter())
        else:
            console_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s - %(name)s - %(levelname)s - [%(saga_id)s:%(step)s] - %(message)s"
                )
            )

        root_logger.addHandler(console_handler)

    return root_logger

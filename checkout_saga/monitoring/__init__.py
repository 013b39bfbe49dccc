"""
Monitoring for checkout sagas: structured logging, in-process metrics and
Prometheus export.
"""

from checkout_saga.monitoring.logging import (
    CheckoutContextFilter,
    CheckoutJsonFormatter,
    checkout_context,
    checkout_log_context,
    configure_logging,
)
from checkout_saga.monitoring.metrics import CheckoutMetrics

__all__ = [
    "CheckoutContextFilter",
    "CheckoutJsonFormatter",
    "CheckoutMetrics",
    "checkout_context",
    "checkout_log_context",
    "configure_logging",
]

"""
Checkout lifecycle listeners.

A listener receives hooks as a checkout saga moves through its steps. Hooks
may be plain methods or coroutines. Errors raised by a listener are logged by
the saga and never affect the checkout itself.

Example:
    >>> from checkout_saga import CheckoutSaga
    >>> from checkout_saga.core.listeners import LoggingCheckoutListener
    >>>
    >>> saga = CheckoutSaga(ledger, payments, journal,
    ...                     listeners=[LoggingCheckoutListener()])
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from checkout_saga.core.logger import get_logger

if TYPE_CHECKING:
    from checkout_saga.core.types import SagaState, SagaStep


class CheckoutListener:
    """Base listener. Override the hooks you need."""

    def on_checkout_start(self, state: SagaState) -> Any:
        pass

    def on_step_complete(self, state: SagaState, step: SagaStep, duration: float) -> Any:
        pass

    def on_compensation(self, state: SagaState, action: str, error: Exception | None) -> Any:
        pass

    def on_checkout_complete(self, state: SagaState, duration: float) -> Any:
        pass

    def on_checkout_failed(self, state: SagaState, reason: str, duration: float) -> Any:
        pass


class LoggingCheckoutListener(CheckoutListener):
    """Logs every lifecycle event with the saga id."""

    def __init__(self, logger: Any = None, level: int = logging.INFO):
        self.logger = logger or get_logger("checkout_saga.checkout")
        self.level = level

    def on_checkout_start(self, state):
        self.logger.log(
            self.level,
            f"[{state.saga_id}] Checkout started for customer {state.customer_id} "
            f"(total {state.total} {state.currency})",
        )

    def on_step_complete(self, state, step, duration):
        self.logger.log(self.level, f"[{state.saga_id}] {step.value} in {duration * 1000:.1f}ms")

    def on_compensation(self, state, action, error):
        if error is None:
            self.logger.log(self.level, f"[{state.saga_id}] Compensated: {action}")
        else:
            self.logger.error(f"[{state.saga_id}] Compensation {action} failed: {error}")

    def on_checkout_complete(self, state, duration):
        self.logger.log(
            self.level,
            f"[{state.saga_id}] Checkout completed: order {state.order_id} "
            f"in {duration * 1000:.1f}ms",
        )
        for warning in state.warnings:
            self.logger.warning(f"[{state.saga_id}] {warning}")

    def on_checkout_failed(self, state, reason, duration):
        self.logger.warning(
            f"[{state.saga_id}] Checkout failed after {duration * 1000:.1f}ms: {reason}"
        )


class MetricsCheckoutListener(CheckoutListener):
    """
    Feeds checkout outcomes into a metrics collector.

    The collector defaults to the in-process CheckoutMetrics. Any object with
    the same recording methods (for instance PrometheusMetrics) can be passed.
    """

    def __init__(self, metrics: Any = None):
        if metrics is None:
            from checkout_saga.monitoring.metrics import CheckoutMetrics

            metrics = CheckoutMetrics()
        self.metrics = metrics

    def on_checkout_start(self, state):
        self.metrics.checkout_started()

    def on_step_complete(self, state, step, duration):
        self.metrics.record_step(step.value, duration)

    def on_compensation(self, state, action, error):
        self.metrics.record_compensation(action, succeeded=error is None)

    def on_checkout_complete(self, state, duration):
        self.metrics.record_checkout("completed", duration)

    def on_checkout_failed(self, state, reason, duration):
        outcome = "reconciliation" if state.requires_reconciliation else "failed"
        self.metrics.record_checkout(outcome, duration, failure_code=state.failure_code)

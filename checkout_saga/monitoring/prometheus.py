"""
Prometheus metrics integration for checkout sagas.

Quick Start:
    >>> from checkout_saga.monitoring.prometheus import (
    ...     PrometheusCheckoutListener,
    ...     start_metrics_server,
    ... )
    >>>
    >>> start_metrics_server(port=8000)
    >>> saga = CheckoutSaga(ledger, payments, journal,
    ...                     listeners=[PrometheusCheckoutListener()])
"""

import logging

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, start_http_server

from checkout_saga.core.listeners import MetricsCheckoutListener

logger = logging.getLogger(__name__)


class PrometheusMetrics:
    """
    Prometheus collector for checkout outcomes.

    Exposes:
        - {prefix}_total: Counter of finished checkouts by outcome
        - {prefix}_failures_total: Counter of failures by error code
        - {prefix}_compensations_total: Counter of compensation actions by result
        - {prefix}_duration_seconds: Histogram of checkout durations
        - {prefix}_step_duration_seconds: Histogram of step durations
        - {prefix}_active: Gauge of checkouts in flight

    Pass a dedicated CollectorRegistry in tests to avoid duplicate registration
    on the global registry.
    """

    def __init__(self, prefix: str = "checkout", registry: CollectorRegistry | None = None):
        self._prefix = prefix
        self.registry = registry if registry is not None else REGISTRY

        self._total = Counter(
            f"{prefix}_total",
            "Finished checkouts",
            ["outcome"],
            registry=self.registry,
        )
        self._failures = Counter(
            f"{prefix}_failures_total",
            "Failed checkouts by error code",
            ["code"],
            registry=self.registry,
        )
        self._compensations = Counter(
            f"{prefix}_compensations_total",
            "Compensation actions",
            ["action", "result"],
            registry=self.registry,
        )
        self._duration = Histogram(
            f"{prefix}_duration_seconds",
            "Checkout duration in seconds",
            buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=self.registry,
        )
        self._step_duration = Histogram(
            f"{prefix}_step_duration_seconds",
            "Checkout step duration in seconds",
            ["step"],
            buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0],
            registry=self.registry,
        )
        self._active = Gauge(
            f"{prefix}_active",
            "Checkouts currently running",
            registry=self.registry,
        )

    def checkout_started(self) -> None:
        self._active.inc()

    def record_checkout(
        self, outcome: str, duration: float, failure_code: str | None = None
    ) -> None:
        self._active.dec()
        self._total.labels(outcome=outcome).inc()
        self._duration.observe(duration)
        if failure_code:
            self._failures.labels(code=failure_code).inc()

    def record_step(self, step: str, duration: float) -> None:
        self._step_duration.labels(step=step).observe(duration)

    def record_compensation(self, action: str, succeeded: bool = True) -> None:
        result = "success" if succeeded else "failed"
        self._compensations.labels(action=action, result=result).inc()


class PrometheusCheckoutListener(MetricsCheckoutListener):
    """MetricsCheckoutListener backed by PrometheusMetrics."""

    def __init__(
        self,
        metrics: PrometheusMetrics | None = None,
        registry: CollectorRegistry | None = None,
        prefix: str = "checkout",
    ):
        super().__init__(metrics or PrometheusMetrics(prefix=prefix, registry=registry))


def start_metrics_server(port: int = 8000, addr: str = "0.0.0.0") -> None:
    """
    Start a Prometheus HTTP metrics server.

    Metrics are then served at http://<addr>:<port>/metrics.
    """
    start_http_server(port, addr)
    logger.info(f"Prometheus metrics server started on {addr}:{port}")

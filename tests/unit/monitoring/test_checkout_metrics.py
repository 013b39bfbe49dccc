"""
Tests for in-process and Prometheus checkout metrics.
"""

import pytest
from prometheus_client import CollectorRegistry

from checkout_saga.core.listeners import MetricsCheckoutListener
from checkout_saga.core.types import SagaState, SagaStep
from checkout_saga.monitoring.metrics import CheckoutMetrics
from checkout_saga.monitoring.prometheus import PrometheusCheckoutListener, PrometheusMetrics
from tests.conftest import make_snapshot


def _state(**changes) -> SagaState:
    state = SagaState(
        saga_id="saga-1", customer_id="customer-1", snapshot=make_snapshot(), payment_token="tok"
    )
    for name, value in changes.items():
        setattr(state, name, value)
    return state


class TestCheckoutMetrics:
    """Tests for CheckoutMetrics."""

    def test_initial_metrics(self):
        metrics = CheckoutMetrics().get_metrics()

        assert metrics["total_executed"] == 0
        assert metrics["success_rate"] == "0.00%"

    def test_success_rate(self):
        metrics = CheckoutMetrics()
        metrics.record_checkout("completed", 1.0)
        metrics.record_checkout("completed", 3.0)
        metrics.record_checkout("failed", 2.0, failure_code="PAYMENT_DECLINED")

        result = metrics.get_metrics()

        assert result["total_executed"] == 3
        assert result["total_completed"] == 2
        assert result["total_failed"] == 1
        assert result["by_failure_code"] == {"PAYMENT_DECLINED": 1}
        assert result["average_execution_time"] == pytest.approx(2.0)
        assert result["success_rate"] == "66.67%"

    def test_reconciliation_counts_as_failure(self):
        metrics = CheckoutMetrics()
        metrics.record_checkout("reconciliation", 1.0, failure_code="COMPENSATION_FAILED")

        result = metrics.get_metrics()

        assert result["total_reconciliation"] == 1
        assert result["total_failed"] == 1

    def test_steps_and_compensations(self):
        metrics = CheckoutMetrics()
        metrics.record_step("InventoryReserved", 0.1)
        metrics.record_step("InventoryReserved", 0.3)
        metrics.record_compensation("refund")
        metrics.record_compensation("refund", succeeded=False)

        result = metrics.get_metrics()

        assert result["steps"]["InventoryReserved"]["count"] == 2
        assert result["steps"]["InventoryReserved"]["total_time"] == pytest.approx(0.4)
        assert result["compensations"]["refund"] == {"success": 1, "failed": 1}


class TestMetricsCheckoutListener:
    """Tests for MetricsCheckoutListener."""

    def test_feeds_collector(self):
        listener = MetricsCheckoutListener()
        state = _state()

        listener.on_checkout_start(state)
        listener.on_step_complete(state, SagaStep.INVENTORY_RESERVED, 0.01)
        listener.on_compensation(state, "release", None)
        listener.on_checkout_complete(state, 0.05)

        result = listener.metrics.get_metrics()
        assert result["total_started"] == 1
        assert result["total_completed"] == 1
        assert result["compensations"]["release"]["success"] == 1

    def test_flagged_failure_recorded_as_reconciliation(self):
        listener = MetricsCheckoutListener()
        state = _state(requires_reconciliation=True, failure_code="COMPENSATION_FAILED")

        listener.on_checkout_failed(state, "refund failed", 0.2)

        result = listener.metrics.get_metrics()
        assert result["total_reconciliation"] == 1
        assert result["by_failure_code"] == {"COMPENSATION_FAILED": 1}


class TestPrometheusMetrics:
    """Tests for PrometheusMetrics on a dedicated registry."""

    @pytest.fixture
    def registry(self):
        return CollectorRegistry()

    def test_records_outcomes(self, registry):
        metrics = PrometheusMetrics(registry=registry)

        metrics.checkout_started()
        metrics.record_checkout("failed", 0.5, failure_code="PAYMENT_DECLINED")

        assert registry.get_sample_value("checkout_total", {"outcome": "failed"}) == 1.0
        assert (
            registry.get_sample_value("checkout_failures_total", {"code": "PAYMENT_DECLINED"})
            == 1.0
        )
        assert registry.get_sample_value("checkout_active") == 0.0
        assert registry.get_sample_value("checkout_duration_seconds_count") == 1.0

    def test_records_steps_and_compensations(self, registry):
        metrics = PrometheusMetrics(prefix="shop", registry=registry)

        metrics.record_step("PaymentAttempted", 0.02)
        metrics.record_compensation("refund", succeeded=False)

        assert (
            registry.get_sample_value(
                "shop_step_duration_seconds_count", {"step": "PaymentAttempted"}
            )
            == 1.0
        )
        assert (
            registry.get_sample_value(
                "shop_compensations_total", {"action": "refund", "result": "failed"}
            )
            == 1.0
        )

    def test_listener_uses_registry(self, registry):
        listener = PrometheusCheckoutListener(registry=registry)
        state = _state()

        listener.on_checkout_start(state)
        listener.on_checkout_complete(state, 0.1)

        assert registry.get_sample_value("checkout_total", {"outcome": "completed"}) == 1.0

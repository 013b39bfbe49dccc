"""
In-process metrics for checkouts
"""

from typing import Any


class CheckoutMetrics:
    """Collect and expose checkout metrics"""

    def __init__(self):
        self.metrics = {
            "total_started": 0,
            "total_executed": 0,
            "total_completed": 0,
            "total_failed": 0,
            "total_reconciliation": 0,
            "average_execution_time": 0.0,
            "by_failure_code": {},
            "compensations": {},
            "steps": {},
        }

    def checkout_started(self) -> None:
        self.metrics["total_started"] += 1

    def record_checkout(
        self, outcome: str, duration: float, failure_code: str | None = None
    ) -> None:
        """Record a finished checkout (completed, failed or reconciliation)."""
        self.metrics["total_executed"] += 1
        counter = f"total_{outcome}"
        if counter in self.metrics:
            self.metrics[counter] += 1
        if outcome == "reconciliation":
            self.metrics["total_failed"] += 1
        if failure_code:
            by_code = self.metrics["by_failure_code"]
            by_code[failure_code] = by_code.get(failure_code, 0) + 1
        self._update_average_time(duration)

    def record_step(self, step: str, duration: float) -> None:
        stats = self.metrics["steps"].setdefault(step, {"count": 0, "total_time": 0.0})
        stats["count"] += 1
        stats["total_time"] += duration

    def record_compensation(self, action: str, succeeded: bool = True) -> None:
        stats = self.metrics["compensations"].setdefault(action, {"success": 0, "failed": 0})
        stats["success" if succeeded else "failed"] += 1

    def _update_average_time(self, duration: float) -> None:
        total_time = self.metrics["average_execution_time"] * (
            self.metrics["total_executed"] - 1
        )
        self.metrics["average_execution_time"] = (
            total_time + duration
        ) / self.metrics["total_executed"]

    def get_metrics(self) -> dict[str, Any]:
        """Get all metrics"""
        success_rate = (
            self.metrics["total_completed"] / self.metrics["total_executed"] * 100
            if self.metrics["total_executed"] > 0
            else 0
        )

        return {
            **self.metrics,
            "success_rate": f"{success_rate:.2f}%",
        }

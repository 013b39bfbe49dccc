"""Configurable mock payment gateway for development and testing.

Succeeds by default and never contacts a real provider. It can be told to
decline, to fail refunds, to raise transient failures or to respond slowly,
which is enough to drive every checkout failure path in tests and in the
CLI demo.
"""

import asyncio
from decimal import Decimal
from typing import Any
from uuid import uuid4

from checkout_saga.core.exceptions import TransientIOError
from checkout_saga.core.logger import get_logger
from checkout_saga.payments.port import PaymentPort, PaymentRequest, PaymentResult, RefundResult

logger = get_logger(__name__)


class MockPaymentGateway(PaymentPort):
    """
    Configurable mock payment gateway.

    Provider references look like ``MOCK-<hex>`` and are distinct per charge.
    Charges and refunds are idempotent on their key: a replay returns the
    original result and is not billed again.

    Example:
        >>> gateway = MockPaymentGateway()
        >>> gateway.decline("Insufficient funds")
        >>> result = await gateway.charge(PaymentRequest(Decimal("10"), "tok", "saga-1"))
        >>> result.succeeded
        False
    """

    def __init__(self, latency: float = 0.0) -> None:
        self.latency = latency
        self.decline_reason: str | None = None
        self.refund_failure: str | None = None
        self.calls: list[dict[str, Any]] = []

        self._transient_charge_failures = 0
        self._lost_charge_responses = 0
        self._transient_refund_failures = 0
        self._charges: dict[str, PaymentResult] = {}
        self._charged_amounts: dict[str, Decimal] = {}
        self._refunds: dict[str, RefundResult] = {}
        self._refunded_amounts: dict[str, Decimal] = {}

    # ------------------------------------------------------------------
    # Behaviour switches
    # ------------------------------------------------------------------

    def decline(self, reason: str = "Card declined") -> None:
        """Decline every new charge with ``reason``."""
        self.decline_reason = reason

    def approve(self) -> None:
        """Restore default behaviour: charges and refunds succeed."""
        self.decline_reason = None
        self.refund_failure = None
        self._transient_charge_failures = 0
        self._lost_charge_responses = 0
        self._transient_refund_failures = 0

    def fail_refunds(self, reason: str = "Refund rejected") -> None:
        self.refund_failure = reason

    def fail_next_charges(self, count: int) -> None:
        """The next ``count`` charge calls raise TransientIOError before billing."""
        self._transient_charge_failures = count

    def lose_next_charge_responses(self, count: int) -> None:
        """The next ``count`` charges bill the customer, then raise TransientIOError."""
        self._lost_charge_responses = count

    def fail_next_refunds(self, count: int) -> None:
        self._transient_refund_failures = count

    # ------------------------------------------------------------------
    # PaymentPort
    # ------------------------------------------------------------------

    async def charge(self, request: PaymentRequest) -> PaymentResult:
        self.calls.append(
            {
                "method": "charge",
                "amount": request.amount,
                "currency": request.currency,
                "token": request.token,
                "idempotency_key": request.idempotency_key,
            }
        )

        if self.latency:
            await asyncio.sleep(self.latency)

        if self._transient_charge_failures > 0:
            self._transient_charge_failures -= 1
            msg = "Payment provider unavailable"
            raise TransientIOError(msg, operation="charge")

        existing = self._charges.get(request.idempotency_key)
        if existing is not None:
            logger.debug(f"Replayed charge for key {request.idempotency_key}")
            return existing

        if self.decline_reason is not None:
            result = PaymentResult(succeeded=False, error=self.decline_reason)
        else:
            provider_ref = f"MOCK-{uuid4().hex[:12].upper()}"
            result = PaymentResult(succeeded=True, provider_ref=provider_ref)
            self._charged_amounts[provider_ref] = request.amount

        self._charges[request.idempotency_key] = result

        if self._lost_charge_responses > 0:
            self._lost_charge_responses -= 1
            msg = "Payment provider connection reset"
            raise TransientIOError(msg, operation="charge")

        return result

    async def refund(self, provider_ref, amount, idempotency_key):
        self.calls.append(
            {
                "method": "refund",
                "provider_ref": provider_ref,
                "amount": amount,
                "idempotency_key": idempotency_key,
            }
        )

        if self.latency:
            await asyncio.sleep(self.latency)

        if self._transient_refund_failures > 0:
            self._transient_refund_failures -= 1
            msg = "Payment provider unavailable"
            raise TransientIOError(msg, operation="refund")

        existing = self._refunds.get(idempotency_key)
        if existing is not None:
            return existing

        if self.refund_failure is not None:
            return RefundResult(succeeded=False, error=self.refund_failure)

        charged = self._charged_amounts.get(provider_ref)
        if charged is None:
            return RefundResult(succeeded=False, error=f"Unknown charge {provider_ref}")

        already_refunded = self._refunded_amounts.get(provider_ref, Decimal("0"))
        if already_refunded + amount > charged:
            return RefundResult(succeeded=False, error="Refund exceeds charged amount")

        self._refunded_amounts[provider_ref] = already_refunded + amount
        result = RefundResult(succeeded=True, refund_ref=f"MOCK-RF-{uuid4().hex[:12].upper()}")
        self._refunds[idempotency_key] = result
        return result

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def calls_for(self, method: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["method"] == method]

    @property
    def billed_charges(self) -> int:
        """Number of charges that actually billed a customer."""
        return len(self._charged_amounts)

    def net_charged(self) -> Decimal:
        """Total billed minus total refunded."""
        return sum(self._charged_amounts.values(), Decimal("0")) - sum(
            self._refunded_amounts.values(), Decimal("0")
        )

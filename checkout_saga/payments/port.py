"""
Payment port (abstract interface).

Defines the contract every payment adapter implements, so the checkout saga
can run against the mock gateway in tests and a real provider in production.

A decline is a normal result (``succeeded=False``). Network failures and
timeouts are raised as TransientIOError, never reported as declines.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

from checkout_saga.core.types import DEFAULT_CURRENCY


@dataclass(frozen=True)
class PaymentRequest:
    """A charge request. ``idempotency_key`` is the saga id."""

    amount: Decimal
    token: str
    idempotency_key: str
    currency: str = DEFAULT_CURRENCY


@dataclass(frozen=True)
class PaymentResult:
    """Result of a charge attempt."""

    succeeded: bool
    provider_ref: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    succeeded: bool
    refund_ref: str | None = None
    error: str | None = None


class PaymentPort(ABC):
    """Abstract payment provider."""

    @abstractmethod
    async def charge(self, request: PaymentRequest) -> PaymentResult:
        """
        Charge the customer.

        Replaying a request with the same idempotency key must return the
        original result and never bill twice.

        Raises:
            TransientIOError: Network failure or provider timeout
        """
        ...

    @abstractmethod
    async def refund(
        self, provider_ref: str, amount: Decimal, idempotency_key: str
    ) -> RefundResult:
        """
        Refund a previous charge.

        Raises:
            TransientIOError: Network failure or provider timeout
        """
        ...

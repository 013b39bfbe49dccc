"""
Checkout saga orchestration and crash recovery.
"""

from checkout_saga.saga.checkout import CheckoutSaga
from checkout_saga.saga.recovery import SagaRecovery

__all__ = ["CheckoutSaga", "SagaRecovery"]

"""
Payment port and the mock gateway.
"""

from checkout_saga.payments.mock import MockPaymentGateway
from checkout_saga.payments.port import PaymentPort, PaymentRequest, PaymentResult, RefundResult

__all__ = [
    "MockPaymentGateway",
    "PaymentPort",
    "PaymentRequest",
    "PaymentResult",
    "RefundResult",
]

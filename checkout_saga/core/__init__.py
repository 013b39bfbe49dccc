"""
Core module for checkout_saga - data model, errors, configuration, retry and
lifecycle listeners.
"""

from checkout_saga.core.config import CheckoutConfig, configure, get_config
from checkout_saga.core.exceptions import (
    CartNotFoundError,
    CheckoutError,
    CheckoutInProgressError,
    CompensationFailureError,
    ConfigurationError,
    InvalidTransitionError,
    NotFoundError,
    OutOfStockError,
    PaymentDeclinedError,
    SagaAlreadyExistsError,
    TransientIOError,
    ValidationError,
)
from checkout_saga.core.listeners import (
    CheckoutListener,
    LoggingCheckoutListener,
    MetricsCheckoutListener,
)
from checkout_saga.core.logger import NullLogger, get_logger, set_logger
from checkout_saga.core.retry import RetryPolicy, call_with_retry
from checkout_saga.core.types import (
    CartLine,
    CartSnapshot,
    CheckoutRequest,
    CheckoutResponse,
    JournalEntry,
    JournalEntryKind,
    Order,
    OrderLine,
    OrderStatus,
    Reservation,
    ReservationLine,
    ReservationStatus,
    SagaState,
    SagaStep,
    StockLevel,
)

__all__ = [
    # Config
    "CheckoutConfig",
    "configure",
    "get_config",
    # Exceptions
    "CartNotFoundError",
    "CheckoutError",
    "CheckoutInProgressError",
    "CompensationFailureError",
    "ConfigurationError",
    "InvalidTransitionError",
    "NotFoundError",
    "OutOfStockError",
    "PaymentDeclinedError",
    "SagaAlreadyExistsError",
    "TransientIOError",
    "ValidationError",
    # Listeners
    "CheckoutListener",
    "LoggingCheckoutListener",
    "MetricsCheckoutListener",
    # Logger
    "NullLogger",
    "get_logger",
    "set_logger",
    # Retry
    "RetryPolicy",
    "call_with_retry",
    # Types
    "CartLine",
    "CartSnapshot",
    "CheckoutRequest",
    "CheckoutResponse",
    "JournalEntry",
    "JournalEntryKind",
    "Order",
    "OrderLine",
    "OrderStatus",
    "Reservation",
    "ReservationLine",
    "ReservationStatus",
    "SagaState",
    "SagaStep",
    "StockLevel",
]

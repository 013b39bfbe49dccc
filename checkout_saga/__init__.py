"""
checkout-saga - Checkout orchestration with compensation

Turns a customer's cart into a paid order with the saga pattern:
- Reserve stock in the inventory ledger (all-or-nothing, no overselling)
- Charge the payment provider with an idempotency key
- Create the Paid order in the order journal
- Undo completed steps in reverse order when a later one fails
- Persist every step so crashed checkouts can be resumed
- Publish OrderCreated / OrderFailed / StockReleased through an outbox

Usage:
    >>> from checkout_saga import (
    ...     CheckoutSaga, InMemoryInventoryLedger, InMemoryOrderJournal, MockPaymentGateway,
    ... )
    >>>
    >>> saga = CheckoutSaga(
    ...     InMemoryInventoryLedger(initial_stock={"SKU-1": 10}),
    ...     MockPaymentGateway(),
    ...     InMemoryOrderJournal(),
    ... )
    >>> response = await saga.checkout(request)
    >>> response.status
    <OrderStatus.PAID: 'Paid'>

With persistent state and crash recovery:
    >>> from checkout_saga import CheckoutConfig, SagaRecovery, configure
    >>>
    >>> configure(CheckoutConfig(storage_url="sqlite:///./data/sagas.db"))
    >>> await SagaRecovery(saga).recover_pending()
"""

__version__ = "0.1.0"

from checkout_saga.cart import CartClearer, CartSnapshotProvider, InMemoryCartStore

# Configuration
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
from checkout_saga.core.types import (
    CartLine,
    CartSnapshot,
    CheckoutRequest,
    CheckoutResponse,
    Order,
    OrderStatus,
    ReservationLine,
    SagaState,
    SagaStep,
)
from checkout_saga.events import (
    EventPublisher,
    InMemoryEventPublisher,
    InMemoryOutbox,
    OrderCreated,
    OrderFailed,
    OutboxEventPublisher,
    OutboxRelay,
    StockReleased,
)
from checkout_saga.inventory import InMemoryInventoryLedger, InventoryLedger, ReservationSweeper
from checkout_saga.orders import InMemoryOrderJournal, OrderJournal
from checkout_saga.payments import MockPaymentGateway, PaymentPort
from checkout_saga.saga import CheckoutSaga, SagaRecovery
from checkout_saga.storage import SagaStateStore, create_state_store

__all__ = [
    "CartClearer",
    "CartLine",
    "CartNotFoundError",
    "CartSnapshot",
    "CartSnapshotProvider",
    "CheckoutConfig",
    "CheckoutError",
    "CheckoutInProgressError",
    "CheckoutListener",
    "CheckoutRequest",
    "CheckoutResponse",
    "CheckoutSaga",
    "CompensationFailureError",
    "ConfigurationError",
    "EventPublisher",
    "InMemoryCartStore",
    "InMemoryEventPublisher",
    "InMemoryInventoryLedger",
    "InMemoryOrderJournal",
    "InMemoryOutbox",
    "InvalidTransitionError",
    "InventoryLedger",
    "LoggingCheckoutListener",
    "MetricsCheckoutListener",
    "MockPaymentGateway",
    "NotFoundError",
    "Order",
    "OrderCreated",
    "OrderFailed",
    "OrderJournal",
    "OrderStatus",
    "OutOfStockError",
    "OutboxEventPublisher",
    "OutboxRelay",
    "PaymentDeclinedError",
    "PaymentPort",
    "ReservationLine",
    "SagaAlreadyExistsError",
    "SagaRecovery",
    "SagaState",
    "SagaStateStore",
    "SagaStep",
    "StockReleased",
    "TransientIOError",
    "ValidationError",
    "__version__",
    "configure",
    "create_state_store",
    "get_config",
]

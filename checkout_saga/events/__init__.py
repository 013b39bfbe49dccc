"""
Checkout events and outbox delivery.

Quick Start:
    >>> from checkout_saga.events import InMemoryOutbox, OutboxEventPublisher
    >>>
    >>> outbox = InMemoryOutbox()
    >>> saga = CheckoutSaga(ledger, payments, journal,
    ...                     publisher=OutboxEventPublisher(outbox))
"""

from checkout_saga.events.broker import (
    BrokerConnectionError,
    BrokerError,
    InMemoryBroker,
    MessageBroker,
)
from checkout_saga.events.outbox import InMemoryOutbox, OutboxRelay
from checkout_saga.events.publisher import (
    EventPublisher,
    InMemoryEventPublisher,
    OutboxEventPublisher,
)
from checkout_saga.events.state_machine import OutboxStateMachine
from checkout_saga.events.types import (
    CheckoutEvent,
    OrderCreated,
    OrderFailed,
    OutboxEvent,
    OutboxStatus,
    StockReleased,
    make_event_id,
)

__all__ = [
    "BrokerConnectionError",
    "BrokerError",
    "CheckoutEvent",
    "EventPublisher",
    "InMemoryBroker",
    "InMemoryEventPublisher",
    "InMemoryOutbox",
    "MessageBroker",
    "OrderCreated",
    "OrderFailed",
    "OutboxEvent",
    "OutboxEventPublisher",
    "OutboxRelay",
    "OutboxStateMachine",
    "OutboxStatus",
    "StockReleased",
    "make_event_id",
]

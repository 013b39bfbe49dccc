"""
Pytest configuration and shared fixtures for checkout saga tests.

Every fixture builds fresh in-memory collaborators, so tests never share
stock, orders or saga state.
"""

from decimal import Decimal

import pytest

from checkout_saga.cart.provider import InMemoryCartStore
from checkout_saga.core.config import CheckoutConfig
from checkout_saga.core.types import CartLine, CartSnapshot, CheckoutRequest
from checkout_saga.events.publisher import InMemoryEventPublisher
from checkout_saga.inventory.ledger import InMemoryInventoryLedger
from checkout_saga.orders.journal import InMemoryOrderJournal
from checkout_saga.payments.mock import MockPaymentGateway
from checkout_saga.saga.checkout import CheckoutSaga
from checkout_saga.storage.memory import InMemorySagaStateStore

# ============================================
# HELPERS
# ============================================


def make_snapshot(customer_id: str = "customer-1", *lines: tuple) -> CartSnapshot:
    """Build a snapshot from (sku, unit_price, quantity) tuples."""
    if not lines:
        lines = (("SKU-1", "10.00", 2),)
    return CartSnapshot(
        customer_id=customer_id,
        lines=tuple(
            CartLine(sku=sku, name=f"Product {sku}", unit_price=Decimal(price), quantity=qty)
            for sku, price, qty in lines
        ),
    )


def make_request(
    *lines: tuple, customer_id: str = "customer-1", idempotency_key: str | None = None
) -> CheckoutRequest:
    return CheckoutRequest(
        customer_id=customer_id,
        cart_snapshot=make_snapshot(customer_id, *lines),
        payment_token="tok_visa",
        idempotency_key=idempotency_key,
    )


# ============================================
# COLLABORATORS
# ============================================


@pytest.fixture
def config():
    """Fast timeouts and retries, no default listeners."""
    return CheckoutConfig(
        inventory_timeout=1.0,
        payment_timeout=1.0,
        journal_timeout=1.0,
        saga_timeout=5.0,
        max_retries=2,
        retry_backoff_base=0.001,
        retry_backoff_max=0.01,
        in_progress_wait=1.0,
        logging=False,
        metrics=False,
    )


@pytest.fixture
def ledger():
    return InMemoryInventoryLedger(initial_stock={"SKU-1": 10, "SKU-2": 2, "SKU-3": 50})


@pytest.fixture
def gateway():
    return MockPaymentGateway()


@pytest.fixture
def journal():
    return InMemoryOrderJournal()


@pytest.fixture
def store():
    return InMemorySagaStateStore()


@pytest.fixture
def publisher():
    return InMemoryEventPublisher()


@pytest.fixture
def carts():
    return InMemoryCartStore()


@pytest.fixture
def saga(ledger, gateway, journal, store, publisher, carts, config):
    return CheckoutSaga(
        ledger,
        gateway,
        journal,
        store=store,
        cart_clearer=carts,
        cart_provider=carts,
        publisher=publisher,
        config=config,
    )

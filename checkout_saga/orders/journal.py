"""
Order journal: the durable record of orders and their status history.

Orders leave Pending exactly once (to Paid or Failed). Later corrections are
appended to the journal as compensation entries; a terminal order is never
edited.
"""

import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import datetime
from decimal import Decimal

from checkout_saga.core.exceptions import InvalidTransitionError, NotFoundError
from checkout_saga.core.logger import get_logger
from checkout_saga.core.types import (
    DEFAULT_CURRENCY,
    CartLine,
    JournalEntry,
    JournalEntryKind,
    Order,
    OrderLine,
    OrderStatus,
    utcnow,
)

logger = get_logger(__name__)

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: (OrderStatus.PAID, OrderStatus.FAILED),
    OrderStatus.PAID: (),
    OrderStatus.FAILED: (),
}


class OrderJournal(ABC):
    """Abstract order journal."""

    @abstractmethod
    async def create_order(
        self,
        saga_id: str,
        customer_id: str,
        lines: Sequence[OrderLine | CartLine],
        total: Decimal,
        status: OrderStatus = OrderStatus.PENDING,
        currency: str = DEFAULT_CURRENCY,
    ) -> Order:
        """Create the saga's order. Idempotent on saga_id."""
        ...

    @abstractmethod
    async def mark_status(self, order_id: str, status: OrderStatus) -> Order:
        """
        Move an order out of Pending.

        Raises:
            InvalidTransitionError: Anything other than Pending -> Paid/Failed
            NotFoundError: Unknown order
        """
        ...

    @abstractmethod
    async def record_compensation(self, order_id: str, note: str) -> JournalEntry:
        """Append a correction to the order's history."""
        ...

    @abstractmethod
    async def get_order(self, order_id: str) -> Order:
        ...

    @abstractmethod
    async def find_by_saga(self, saga_id: str) -> Order | None:
        ...

    @abstractmethod
    async def list_orders(self, customer_id: str | None = None) -> list[Order]:
        ...

    @abstractmethod
    async def history(self, order_id: str) -> list[JournalEntry]:
        ...


class InMemoryOrderJournal(OrderJournal):
    """In-memory order journal."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._orders: dict[str, Order] = {}
        self._by_saga: dict[str, str] = {}
        self._entries: dict[str, list[JournalEntry]] = {}

    def _append(
        self, order_id: str, kind: JournalEntryKind, status: OrderStatus, note: str | None
    ) -> JournalEntry:
        entry = JournalEntry(
            entry_id=uuid.uuid4().hex,
            order_id=order_id,
            kind=kind,
            status=status,
            note=note,
            recorded_at=self._clock(),
        )
        self._entries.setdefault(order_id, []).append(entry)
        return entry

    def _get(self, order_id: str) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            msg = f"Order {order_id} not found"
            raise NotFoundError(msg, item_type="order", item_id=order_id)
        return order

    async def create_order(
        self,
        saga_id,
        customer_id,
        lines,
        total,
        status=OrderStatus.PENDING,
        currency=DEFAULT_CURRENCY,
    ):
        existing_id = self._by_saga.get(saga_id)
        if existing_id is not None:
            logger.debug(f"Order for saga {saga_id} already exists: {existing_id}")
            return self._orders[existing_id]

        order = Order(
            order_id=f"ORD-{uuid.uuid4().hex[:12].upper()}",
            saga_id=saga_id,
            customer_id=customer_id,
            status=status,
            total=total,
            lines=tuple(
                line if isinstance(line, OrderLine) else OrderLine.from_cart_line(line)
                for line in lines
            ),
            created_at=self._clock(),
            currency=currency,
        )
        self._orders[order.order_id] = order
        self._by_saga[saga_id] = order.order_id
        self._append(order.order_id, JournalEntryKind.CREATED, status, None)

        logger.info(f"Order {order.order_id} created for saga {saga_id} ({status.value})")
        return order

    async def mark_status(self, order_id, status):
        order = self._get(order_id)

        if status not in ALLOWED_TRANSITIONS[order.status]:
            raise InvalidTransitionError("order", order_id, order.status.value, status.value)

        updated = replace(order, status=status)
        self._orders[order_id] = updated
        self._append(order_id, JournalEntryKind.STATUS_CHANGED, status, None)
        return updated

    async def record_compensation(self, order_id, note):
        order = self._get(order_id)
        entry = self._append(order_id, JournalEntryKind.COMPENSATION, order.status, note)
        logger.info(f"Compensation recorded for order {order_id}: {note}")
        return entry

    async def get_order(self, order_id):
        return self._get(order_id)

    async def find_by_saga(self, saga_id):
        order_id = self._by_saga.get(saga_id)
        return self._orders[order_id] if order_id else None

    async def list_orders(self, customer_id=None):
        orders = [
            o for o in self._orders.values() if customer_id is None or o.customer_id == customer_id
        ]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    async def history(self, order_id):
        self._get(order_id)
        return list(self._entries.get(order_id, []))

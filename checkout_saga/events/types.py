"""
Checkout domain events and their outbox envelope.

Events are delivered at least once. Every envelope carries a deterministic
``event_id`` derived from the saga id, event type and event key, so a consumer
can drop duplicates, and the same logical event emitted twice (for instance
after a crash and resume) gets the same id.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar

from checkout_saga.core.types import format_datetime, parse_datetime, utcnow

EVENT_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "checkout-saga/events")


def make_event_id(saga_id: str, event_type: str, key: str) -> str:
    """Deterministic event id for (saga, type, key)."""
    return str(uuid.uuid5(EVENT_NAMESPACE, f"{saga_id}:{event_type}:{key}"))


@dataclass(frozen=True)
class CheckoutEvent:
    """Base class for checkout events."""

    event_type: ClassVar[str] = "CheckoutEvent"

    @property
    def key(self) -> str:
        """Distinguishes events of the same type within one saga."""
        return ""

    def to_payload(self) -> dict[str, Any]:
        raise NotImplementedError


@dataclass(frozen=True)
class OrderCreated(CheckoutEvent):
    event_type: ClassVar[str] = "OrderCreated"

    order_id: str
    customer_id: str
    total: Decimal

    @property
    def key(self) -> str:
        return self.order_id

    def to_payload(self) -> dict[str, Any]:
        return {"order_id": self.order_id, "customer_id": self.customer_id, "total": str(self.total)}


@dataclass(frozen=True)
class OrderFailed(CheckoutEvent):
    event_type: ClassVar[str] = "OrderFailed"

    order_id: str | None
    reason: str

    @property
    def key(self) -> str:
        return self.order_id or ""

    def to_payload(self) -> dict[str, Any]:
        return {"order_id": self.order_id, "reason": self.reason}


@dataclass(frozen=True)
class StockReleased(CheckoutEvent):
    event_type: ClassVar[str] = "StockReleased"

    sku: str
    quantity: int

    @property
    def key(self) -> str:
        return self.sku

    def to_payload(self) -> dict[str, Any]:
        return {"sku": self.sku, "quantity": self.quantity}


class OutboxStatus(Enum):
    """
    Status of an outbox event.

    State transitions:
        PENDING -> CLAIMED -> SENT
                           -> FAILED -> PENDING (retry)
                                     -> DEAD_LETTER
    """

    PENDING = "pending"
    CLAIMED = "claimed"
    SENT = "sent"
    FAILED = "failed"
    DEAD_LETTER = "dead_letter"


@dataclass
class OutboxEvent:
    """
    A checkout event waiting in the outbox for delivery.

    Attributes:
        saga_id: Saga that produced the event
        event_type: OrderCreated, OrderFailed or StockReleased
        payload: JSON-safe event data
        event_id: Deterministic id used for consumer de-duplication
        aggregate_type: "order" or "inventory"
        aggregate_id: Order id or SKU
    """

    saga_id: str
    event_type: str
    payload: dict[str, Any]
    event_id: str = ""
    aggregate_type: str = "checkout"
    aggregate_id: str | None = None
    status: OutboxStatus = OutboxStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    claimed_at: datetime | None = None
    sent_at: datetime | None = None
    retry_count: int = 0
    last_error: str | None = None
    worker_id: str | None = None

    def __post_init__(self):
        if self.aggregate_id is None:
            self.aggregate_id = self.saga_id
        if not self.event_id:
            self.event_id = make_event_id(self.saga_id, self.event_type, self.aggregate_id or "")

    @classmethod
    def from_checkout_event(cls, saga_id: str, event: CheckoutEvent) -> "OutboxEvent":
        aggregate_type = "inventory" if isinstance(event, StockReleased) else "order"
        return cls(
            saga_id=saga_id,
            event_type=event.event_type,
            payload=event.to_payload(),
            event_id=make_event_id(saga_id, event.event_type, event.key),
            aggregate_type=aggregate_type,
            aggregate_id=event.key or saga_id,
        )

    @property
    def topic(self) -> str:
        return f"checkout.{self.aggregate_type}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "saga_id": self.saga_id,
            "aggregate_type": self.aggregate_type,
            "aggregate_id": self.aggregate_id,
            "event_type": self.event_type,
            "payload": self.payload,
            "status": self.status.value,
            "created_at": format_datetime(self.created_at),
            "claimed_at": format_datetime(self.claimed_at),
            "sent_at": format_datetime(self.sent_at),
            "retry_count": self.retry_count,
            "last_error": self.last_error,
            "worker_id": self.worker_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OutboxEvent":
        return cls(
            event_id=data.get("event_id", ""),
            saga_id=data["saga_id"],
            aggregate_type=data.get("aggregate_type", "checkout"),
            aggregate_id=data.get("aggregate_id"),
            event_type=data["event_type"],
            payload=data["payload"],
            status=OutboxStatus(data.get("status", "pending")),
            created_at=parse_datetime(data.get("created_at")) or utcnow(),
            claimed_at=parse_datetime(data.get("claimed_at")),
            sent_at=parse_datetime(data.get("sent_at")),
            retry_count=data.get("retry_count", 0),
            last_error=data.get("last_error"),
            worker_id=data.get("worker_id"),
        )

"""
All type definitions, enums, and dataclasses for checkout orchestration.

Money is always Decimal. Timestamps are timezone-aware UTC.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from checkout_saga.core.exceptions import ValidationError

DEFAULT_CURRENCY = "GBP"


def utcnow() -> datetime:
    return datetime.now(UTC)


def to_decimal(value: Any, field_name: str = "amount") -> Decimal:
    """Convert a monetary value to Decimal without float rounding artifacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        msg = f"{field_name} must be numeric, got bool"
        raise ValidationError(msg, details={"field": field_name})
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        msg = f"{field_name} is not a valid decimal: {value!r}"
        raise ValidationError(msg, details={"field": field_name}) from e


def parse_datetime(value: str | datetime | None) -> datetime | None:
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


def format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ReservationStatus(Enum):
    """Lifecycle of a stock hold"""

    HELD = "Held"
    CONFIRMED = "Confirmed"
    RELEASED = "Released"


class OrderStatus(Enum):
    """
    Order status.

    PAID and FAILED are terminal: corrections are appended to the journal,
    the order itself is never edited again.
    """

    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.PAID, OrderStatus.FAILED)


class SagaStep(Enum):
    """Current position of a checkout saga in its state machine."""

    STARTED = "Started"
    INVENTORY_RESERVED = "InventoryReserved"
    PAYMENT_ATTEMPTED = "PaymentAttempted"
    ORDER_CREATED = "OrderCreated"
    COMPLETED = "Completed"
    COMPENSATING = "Compensating"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SagaStep.COMPLETED, SagaStep.FAILED)


class JournalEntryKind(Enum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    COMPENSATION = "compensation"


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CartLine:
    """One line of a cart snapshot."""

    sku: str
    name: str
    unit_price: Decimal
    quantity: int

    def __post_init__(self):
        object.__setattr__(self, "unit_price", to_decimal(self.unit_price, "unit_price"))

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "sku": self.sku,
            "name": self.name,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartLine":
        return cls(
            sku=data["sku"],
            name=data.get("name", data["sku"]),
            unit_price=to_decimal(data["unit_price"], "unit_price"),
            quantity=int(data["quantity"]),
        )


@dataclass(frozen=True)
class CartSnapshot:
    """
    Immutable copy of a customer's cart taken when checkout starts.

    Validated on construction: a snapshot that exists is always checkout-able
    as far as its shape goes (non-empty, positive quantities, non-negative
    prices).
    """

    customer_id: str
    lines: tuple[CartLine, ...]
    captured_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        object.__setattr__(self, "lines", tuple(self.lines))
        self.validate()

    def validate(self) -> None:
        if not self.customer_id:
            msg = "Cart snapshot requires a customer id"
            raise ValidationError(msg, details={"field": "customer_id"})
        if not self.lines:
            msg = f"Cart for customer {self.customer_id} is empty"
            raise ValidationError(msg, details={"field": "lines"})

        for index, line in enumerate(self.lines):
            if not line.sku:
                msg = f"Cart line {index} has no SKU"
                raise ValidationError(msg, details={"line": index, "field": "sku"})
            if isinstance(line.quantity, bool) or not isinstance(line.quantity, int):
                msg = f"Cart line {index} ({line.sku}) quantity must be a whole number"
                raise ValidationError(
                    msg, details={"line": index, "sku": line.sku, "field": "quantity"}
                )
            if line.quantity <= 0:
                msg = f"Cart line {index} ({line.sku}) has non-positive quantity {line.quantity}"
                raise ValidationError(
                    msg, details={"line": index, "sku": line.sku, "field": "quantity"}
                )
            if line.unit_price < 0:
                msg = f"Cart line {index} ({line.sku}) has negative unit price"
                raise ValidationError(
                    msg, details={"line": index, "sku": line.sku, "field": "unit_price"}
                )

    @property
    def total(self) -> Decimal:
        """Exact sum of unit_price x quantity, summed in line order."""
        total = Decimal("0")
        for line in self.lines:
            total += line.line_total
        return total

    def quantities_by_sku(self) -> dict[str, int]:
        """Requested quantity per SKU, merging repeated SKUs."""
        quantities: dict[str, int] = {}
        for line in self.lines:
            quantities[line.sku] = quantities.get(line.sku, 0) + line.quantity
        return quantities

    def to_dict(self) -> dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "lines": [line.to_dict() for line in self.lines],
            "captured_at": format_datetime(self.captured_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartSnapshot":
        return cls(
            customer_id=data["customer_id"],
            lines=tuple(CartLine.from_dict(line) for line in data["lines"]),
            captured_at=parse_datetime(data.get("captured_at")) or utcnow(),
        )


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReservationLine:
    """A reserve request for one SKU."""

    sku: str
    quantity: int


@dataclass
class Reservation:
    """A temporary hold against available stock."""

    reservation_id: str
    saga_id: str
    sku: str
    quantity: int
    status: ReservationStatus
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.status == ReservationStatus.HELD and self.expires_at <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "reservation_id": self.reservation_id,
            "saga_id": self.saga_id,
            "sku": self.sku,
            "quantity": self.quantity,
            "status": self.status.value,
            "created_at": format_datetime(self.created_at),
            "expires_at": format_datetime(self.expires_at),
        }


@dataclass
class StockLevel:
    """Per-SKU stock. Available is always on_hand - held."""

    sku: str
    on_hand: int = 0
    held: int = 0

    @property
    def available(self) -> int:
        return self.on_hand - self.held


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrderLine:
    """Order line, decoupled from live product data."""

    sku: str
    name: str
    unit_price: Decimal
    quantity: int

    @classmethod
    def from_cart_line(cls, line: CartLine) -> "OrderLine":
        return cls(sku=line.sku, name=line.name, unit_price=line.unit_price, quantity=line.quantity)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sku": self.sku,
            "name": self.name,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
        }


@dataclass(frozen=True)
class Order:
    order_id: str
    saga_id: str
    customer_id: str
    status: OrderStatus
    total: Decimal
    lines: tuple[OrderLine, ...]
    created_at: datetime
    currency: str = DEFAULT_CURRENCY

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "saga_id": self.saga_id,
            "customer_id": self.customer_id,
            "status": self.status.value,
            "total": str(self.total),
            "currency": self.currency,
            "lines": [line.to_dict() for line in self.lines],
            "created_at": format_datetime(self.created_at),
        }


@dataclass(frozen=True)
class JournalEntry:
    """One append-only record in the order journal."""

    entry_id: str
    order_id: str
    kind: JournalEntryKind
    status: OrderStatus
    note: str | None
    recorded_at: datetime


# ---------------------------------------------------------------------------
# Saga state
# ---------------------------------------------------------------------------


@dataclass
class SagaState:
    """
    Persisted state of one checkout attempt.

    The *_requested flags are written before the corresponding collaborator
    call so that compensation after a crash or timeout knows which outcomes
    are unknown.
    """

    saga_id: str
    customer_id: str
    snapshot: CartSnapshot
    payment_token: str
    currency: str = DEFAULT_CURRENCY
    total: Decimal = Decimal("0")
    current_step: SagaStep = SagaStep.STARTED
    inventory_requested: bool = False
    reservation_ids: list[str] = field(default_factory=list)
    inventory_confirmed: bool = False
    payment_requested: bool = False
    payment_declined: bool = False
    payment_ref: str | None = None
    refund_ref: str | None = None
    order_id: str | None = None
    last_error: str | None = None
    failure_code: str | None = None
    failure_details: dict[str, Any] = field(default_factory=dict)
    requires_reconciliation: bool = False
    warnings: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.current_step.is_terminal

    def advance(self, step: SagaStep) -> None:
        self.current_step = step
        self.updated_at = utcnow()

    def to_dict(self) -> dict[str, Any]:
        return {
            "saga_id": self.saga_id,
            "customer_id": self.customer_id,
            "snapshot": self.snapshot.to_dict(),
            "payment_token": self.payment_token,
            "currency": self.currency,
            "total": str(self.total),
            "current_step": self.current_step.value,
            "inventory_requested": self.inventory_requested,
            "reservation_ids": list(self.reservation_ids),
            "inventory_confirmed": self.inventory_confirmed,
            "payment_requested": self.payment_requested,
            "payment_declined": self.payment_declined,
            "payment_ref": self.payment_ref,
            "refund_ref": self.refund_ref,
            "order_id": self.order_id,
            "last_error": self.last_error,
            "failure_code": self.failure_code,
            "failure_details": dict(self.failure_details),
            "requires_reconciliation": self.requires_reconciliation,
            "warnings": list(self.warnings),
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SagaState":
        return cls(
            saga_id=data["saga_id"],
            customer_id=data["customer_id"],
            snapshot=CartSnapshot.from_dict(data["snapshot"]),
            payment_token=data.get("payment_token", ""),
            currency=data.get("currency", DEFAULT_CURRENCY),
            total=to_decimal(data.get("total", "0"), "total"),
            current_step=SagaStep(data.get("current_step", SagaStep.STARTED.value)),
            inventory_requested=data.get("inventory_requested", False),
            reservation_ids=list(data.get("reservation_ids", [])),
            inventory_confirmed=data.get("inventory_confirmed", False),
            payment_requested=data.get("payment_requested", False),
            payment_declined=data.get("payment_declined", False),
            payment_ref=data.get("payment_ref"),
            refund_ref=data.get("refund_ref"),
            order_id=data.get("order_id"),
            last_error=data.get("last_error"),
            failure_code=data.get("failure_code"),
            failure_details=dict(data.get("failure_details", {})),
            requires_reconciliation=data.get("requires_reconciliation", False),
            warnings=list(data.get("warnings", [])),
            created_at=parse_datetime(data.get("created_at")) or utcnow(),
            updated_at=parse_datetime(data.get("updated_at")) or utcnow(),
        )


# ---------------------------------------------------------------------------
# External interface
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CheckoutRequest:
    """Checkout request as received from the HTTP layer."""

    customer_id: str
    cart_snapshot: CartSnapshot
    payment_token: str
    idempotency_key: str | None = None

    def __post_init__(self):
        if not self.customer_id:
            msg = "Checkout requires a customer id"
            raise ValidationError(msg, details={"field": "customer_id"})
        if not self.payment_token:
            msg = "Checkout requires a payment token"
            raise ValidationError(msg, details={"field": "payment_token"})
        if self.cart_snapshot.customer_id != self.customer_id:
            msg = "Cart snapshot belongs to a different customer"
            raise ValidationError(
                msg,
                details={
                    "customer_id": self.customer_id,
                    "snapshot_customer_id": self.cart_snapshot.customer_id,
                },
            )
        if self.idempotency_key is not None and not self.idempotency_key.strip():
            msg = "Idempotency key must not be blank"
            raise ValidationError(msg, details={"field": "idempotency_key"})


@dataclass(frozen=True)
class CheckoutResponse:
    """Terminal outcome of a synchronous checkout."""

    saga_id: str
    order_id: str | None
    status: OrderStatus
    total: Decimal
    reason: str | None = None
    warnings: tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status == OrderStatus.PAID

    def to_dict(self) -> dict[str, Any]:
        return {
            "saga_id": self.saga_id,
            "order_id": self.order_id,
            "status": self.status.value,
            "total": str(self.total),
            "reason": self.reason,
            "warnings": list(self.warnings),
        }

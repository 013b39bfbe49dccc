"""
Cart snapshot provider and cart clearing.

Checkout works on an immutable snapshot of the cart taken when it starts;
later cart edits never affect a running checkout.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

from checkout_saga.core.exceptions import CartNotFoundError, ValidationError
from checkout_saga.core.logger import get_logger
from checkout_saga.core.types import CartLine, CartSnapshot, to_decimal, utcnow

logger = get_logger(__name__)


class CartSnapshotProvider(ABC):
    @abstractmethod
    async def get_snapshot(self, customer_id: str) -> CartSnapshot:
        """
        Capture the customer's cart.

        Raises:
            CartNotFoundError: The customer has no cart
        """
        ...


class CartClearer(ABC):
    @abstractmethod
    async def clear(self, customer_id: str) -> None:
        """Empty the customer's cart. Clearing a missing cart is a no-op."""
        ...


class InMemoryCartStore(CartSnapshotProvider, CartClearer):
    """
    Carts kept in memory, keyed by customer id.

    Adding a SKU that is already in the cart increments its quantity.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._carts: dict[str, list[CartLine]] = {}

    def add_line(
        self,
        customer_id: str,
        sku: str,
        name: str,
        unit_price: Decimal | str | int | float,
        quantity: int = 1,
    ) -> CartLine:
        if not customer_id:
            msg = "Cart requires a customer id"
            raise ValidationError(msg, details={"field": "customer_id"})
        if quantity <= 0:
            msg = f"Quantity for {sku} must be positive"
            raise ValidationError(msg, details={"sku": sku, "quantity": quantity})

        price = to_decimal(unit_price, "unit_price")
        lines = self._carts.setdefault(customer_id, [])
        for index, line in enumerate(lines):
            if line.sku == sku:
                lines[index] = CartLine(
                    sku=sku, name=line.name, unit_price=line.unit_price, quantity=line.quantity + quantity
                )
                return lines[index]

        line = CartLine(sku=sku, name=name, unit_price=price, quantity=quantity)
        lines.append(line)
        return line

    def lines(self, customer_id: str) -> list[CartLine]:
        return list(self._carts.get(customer_id, []))

    async def get_snapshot(self, customer_id):
        lines = self._carts.get(customer_id)
        if not lines:
            raise CartNotFoundError(customer_id)
        return CartSnapshot(customer_id=customer_id, lines=tuple(lines), captured_at=self._clock())

    async def clear(self, customer_id):
        if self._carts.pop(customer_id, None) is not None:
            logger.debug(f"Cleared cart for customer {customer_id}")

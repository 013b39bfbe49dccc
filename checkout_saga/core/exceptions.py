"""
Checkout error taxonomy.

Every error carries a stable ``code`` so the caller-facing layer can report a
structured error instead of a generic failure.
"""

from typing import Any


class CheckoutError(Exception):
    """Base checkout error"""

    code = "CHECKOUT_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Caller-facing error payload."""
        return {"code": self.code, "message": self.message, "details": dict(self.details)}


class ValidationError(CheckoutError):
    """Bad input. Never retried."""

    code = "VALIDATION_ERROR"


class ConfigurationError(CheckoutError):
    """Invalid checkout configuration"""

    code = "CONFIGURATION_ERROR"


class OutOfStockError(CheckoutError):
    """
    Not enough available stock for a SKU.

    Terminal for the checkout attempt; the client may retry later.
    """

    code = "OUT_OF_STOCK"

    def __init__(self, sku: str, requested: int, available: int):
        self.sku = sku
        self.requested = requested
        self.available = available
        super().__init__(
            f"Out of stock for {sku}: requested {requested}, available {available}",
            details={"sku": sku, "requested": requested, "available": available},
        )


class PaymentDeclinedError(CheckoutError):
    """The payment provider declined the charge."""

    code = "PAYMENT_DECLINED"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Payment declined: {reason}", details={"reason": reason})


class TransientIOError(CheckoutError):
    """Network or timeout failure talking to a collaborator."""

    code = "TRANSIENT_IO"

    def __init__(self, message: str, operation: str | None = None, **details):
        self.operation = operation
        super().__init__(message, details={"operation": operation, **details})


class InvalidTransitionError(CheckoutError):
    """A record was asked to move to a state it cannot reach."""

    code = "INVALID_TRANSITION"

    def __init__(self, entity: str, entity_id: str, from_state: str, to_state: str):
        self.entity = entity
        self.entity_id = entity_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid transition for {entity} {entity_id}: {from_state} -> {to_state}",
            details={
                "entity": entity,
                "entity_id": entity_id,
                "from": from_state,
                "to": to_state,
            },
        )


class CompensationFailureError(CheckoutError):
    """
    A compensation step failed.

    The saga is left Failed and flagged for manual reconciliation.
    """

    code = "COMPENSATION_FAILED"

    def __init__(self, saga_id: str, failures: list[str]):
        self.saga_id = saga_id
        self.failures = list(failures)
        super().__init__(
            f"Compensation failed for saga {saga_id}; manual reconciliation required",
            details={"saga_id": saga_id, "failures": self.failures},
        )


class NotFoundError(CheckoutError):
    """Requested record does not exist."""

    code = "NOT_FOUND"

    def __init__(
        self,
        message: str = "Item not found",
        item_type: str | None = None,
        item_id: str | None = None,
    ):
        self.item_type = item_type
        self.item_id = item_id
        super().__init__(message, details={"item_type": item_type, "item_id": item_id})


class CartNotFoundError(NotFoundError):
    """No cart exists for the customer."""

    def __init__(self, customer_id: str):
        super().__init__(
            f"No cart found for customer {customer_id}",
            item_type="cart",
            item_id=customer_id,
        )


class CheckoutInProgressError(CheckoutError):
    """Another caller is executing the same saga; poll or retry later."""

    code = "CHECKOUT_IN_PROGRESS"

    def __init__(self, saga_id: str):
        self.saga_id = saga_id
        super().__init__(f"Checkout {saga_id} is already in progress", details={"saga_id": saga_id})


class SagaAlreadyExistsError(CheckoutError):
    """Saga state with this id is already stored."""

    code = "SAGA_EXISTS"

    def __init__(self, saga_id: str):
        self.saga_id = saga_id
        super().__init__(f"Saga {saga_id} already exists", details={"saga_id": saga_id})

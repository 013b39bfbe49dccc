"""
Checkout saga: reserve stock, charge payment, create the order.

State machine:

    Started --reserve ok--> InventoryReserved --charge ok--> PaymentAttempted
        --order created--> OrderCreated --confirm + clear cart--> Completed

    out of stock            -> Failed (nothing to undo)
    decline / transient / timeout after reserve or charge
                            -> Compensating -> Failed (order recorded Failed)
    compensation step fails -> Failed, flagged for manual reconciliation

Creating the Paid order is the point of no return: once a Paid order exists
for the saga, any later failure rolls the saga forward to Completed instead
of compensating. Inventory confirmation and cart clearing after that point
are best effort and only add warnings. A failed confirmation also flags the
saga for manual reconciliation, since the ledger still shows the stock.

Every state change is persisted before the next collaborator call, so a
crashed checkout can be resumed from the store.

Example:
    >>> saga = CheckoutSaga(ledger, payments, journal, store=store, publisher=publisher)
    >>> response = await saga.checkout(
    ...     CheckoutRequest(customer_id="c-1", cart_snapshot=snapshot, payment_token="tok")
    ... )
    >>> response.status
    <OrderStatus.PAID: 'Paid'>
"""

from __future__ import annotations

import asyncio
import inspect
import time
import uuid
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

from checkout_saga.core.config import CheckoutConfig, get_config
from checkout_saga.core.exceptions import (
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
from checkout_saga.core.logger import get_logger
from checkout_saga.core.retry import retry_with_policy
from checkout_saga.core.types import (
    CheckoutRequest,
    CheckoutResponse,
    Order,
    OrderStatus,
    ReservationLine,
    SagaState,
    SagaStep,
    utcnow,
)
from checkout_saga.events.types import CheckoutEvent, OrderCreated, OrderFailed, StockReleased
from checkout_saga.monitoring.logging import checkout_log_context, update_checkout_step
from checkout_saga.payments.port import PaymentPort, PaymentRequest

if TYPE_CHECKING:
    from checkout_saga.cart.provider import CartClearer, CartSnapshotProvider
    from checkout_saga.core.listeners import CheckoutListener
    from checkout_saga.events.publisher import EventPublisher
    from checkout_saga.inventory.ledger import InventoryLedger
    from checkout_saga.orders.journal import OrderJournal
    from checkout_saga.storage.base import SagaStateStore

logger = get_logger(__name__)

T = TypeVar("T")

INTERNAL_ERROR = "INTERNAL_ERROR"
_REPLAY_POLL_INTERVAL = 0.05


class CheckoutSaga:
    """
    Orchestrates one checkout across the inventory ledger, payment port and
    order journal.

    Args:
        ledger: Inventory ledger holding stock reservations
        payments: Payment port
        journal: Order journal
        store: Saga state store (default: built from config.storage_url)
        cart_clearer: Clears the cart after a successful checkout
        cart_provider: Supplies cart snapshots for start_checkout()
        publisher: Receives OrderCreated, OrderFailed and StockReleased
        config: Timeouts and retry policy (default: global config)
        listeners: Lifecycle listeners (default: config.listeners)
    """

    def __init__(
        self,
        ledger: InventoryLedger,
        payments: PaymentPort,
        journal: OrderJournal,
        store: SagaStateStore | None = None,
        cart_clearer: CartClearer | None = None,
        cart_provider: CartSnapshotProvider | None = None,
        publisher: EventPublisher | None = None,
        config: CheckoutConfig | None = None,
        listeners: list[CheckoutListener] | None = None,
    ):
        self.config = config or get_config()
        self.ledger = ledger
        self.payments = payments
        self.journal = journal
        self.store = store if store is not None else self.config.build_store()
        self.cart_clearer = cart_clearer
        self.cart_provider = cart_provider
        self.publisher = publisher
        self.listeners = listeners if listeners is not None else list(self.config.listeners)

    # ==========================================================================
    # Public API
    # ==========================================================================

    async def checkout(self, request: CheckoutRequest) -> CheckoutResponse:
        """
        Run a checkout to a terminal outcome.

        Returns:
            A Paid or Failed response

        Raises:
            OutOfStockError: Not enough stock; nothing was charged
            CompensationFailureError: Undo failed; flagged for reconciliation
            InvalidTransitionError: Integrity bug; compensated and flagged
            CheckoutInProgressError: Same saga id still running elsewhere
        """
        saga_id = request.idempotency_key or str(uuid.uuid4())
        snapshot = request.cart_snapshot
        state = SagaState(
            saga_id=saga_id,
            customer_id=request.customer_id,
            snapshot=snapshot,
            payment_token=request.payment_token,
            currency=self.config.currency,
            total=snapshot.total,
        )

        try:
            await self.store.create(state)
        except SagaAlreadyExistsError:
            logger.info(f"Checkout {saga_id} already recorded, returning its outcome")
            return await self._replay(saga_id, request.customer_id)

        with checkout_log_context(saga_id, request.customer_id):
            return await self._run(state)

    async def start_checkout(
        self, customer_id: str, payment_token: str, idempotency_key: str | None = None
    ) -> CheckoutResponse:
        """
        Snapshot the customer's cart and check it out.

        Raises:
            CartNotFoundError: The customer has no cart
        """
        if self.cart_provider is None:
            msg = "start_checkout requires a cart provider"
            raise ConfigurationError(msg)

        if idempotency_key and await self.store.load(idempotency_key) is not None:
            return await self._replay(idempotency_key, customer_id)

        snapshot = await self._call(
            self.cart_provider.get_snapshot,
            customer_id,
            timeout=self.config.journal_timeout,
            operation="cart.snapshot",
        )
        return await self.checkout(
            CheckoutRequest(
                customer_id=customer_id,
                cart_snapshot=snapshot,
                payment_token=payment_token,
                idempotency_key=idempotency_key,
            )
        )

    async def resume(self, state: SagaState) -> CheckoutResponse | None:
        """
        Finish an interrupted checkout.

        Rolls forward when the order was created, otherwise compensates.
        Returns None for an already-terminal saga.
        """
        if state.is_terminal:
            return None

        started = time.monotonic()
        with checkout_log_context(state.saga_id, state.customer_id):
            logger.warning(f"Resuming checkout {state.saga_id} from {state.current_step.value}")
            await self._notify("on_checkout_start", state)

            if state.current_step == SagaStep.ORDER_CREATED or await self._paid_order(state):
                return await self._complete(state, started)

            return await self._fail(
                state,
                reason="Checkout interrupted before completion",
                code=TransientIOError.code,
                started=started,
            )

    # ==========================================================================
    # Forward path
    # ==========================================================================

    async def _run(self, state: SagaState) -> CheckoutResponse:
        started = time.monotonic()
        await self._notify("on_checkout_start", state)

        try:
            await asyncio.wait_for(self._forward(state), timeout=self.config.saga_timeout)
        except OutOfStockError as e:
            await self._fail_out_of_stock(state, e, started)
            raise
        except InvalidTransitionError as e:
            await self._fail_integrity(state, e, started)
            raise
        except PaymentDeclinedError as e:
            return await self._fail(state, e.message, e.code, started)
        except TransientIOError as e:
            return await self._fail(state, e.message, e.code, started)
        except TimeoutError:
            reason = f"Checkout timed out after {self.config.saga_timeout}s"
            return await self._fail(state, reason, TransientIOError.code, started)
        except Exception as e:
            logger.exception(f"Unexpected error in checkout {state.saga_id}: {e}")
            return await self._fail(state, f"Unexpected error: {e}", INTERNAL_ERROR, started)

        return await self._complete(state, started)

    async def _forward(self, state: SagaState) -> None:
        if state.current_step == SagaStep.STARTED:
            await self._reserve(state)
        if state.current_step == SagaStep.INVENTORY_RESERVED:
            await self._charge(state)
        if state.current_step == SagaStep.PAYMENT_ATTEMPTED:
            await self._create_order(state)

    async def _reserve(self, state: SagaState) -> None:
        step_started = time.monotonic()
        state.inventory_requested = True
        await self._save(state)

        lines = [
            ReservationLine(sku=sku, quantity=quantity)
            for sku, quantity in state.snapshot.quantities_by_sku().items()
        ]
        reservations = await self._call(
            self.ledger.reserve,
            state.saga_id,
            lines,
            self.config.reservation_ttl,
            timeout=self.config.inventory_timeout,
            operation="inventory.reserve",
        )

        state.reservation_ids = [r.reservation_id for r in reservations]
        await self._advance(state, SagaStep.INVENTORY_RESERVED, step_started)

    async def _charge(self, state: SagaState) -> None:
        step_started = time.monotonic()
        state.payment_requested = True
        await self._save(state)

        result = await self._call(
            self.payments.charge,
            self._payment_request(state),
            timeout=self.config.payment_timeout,
            operation="payment.charge",
        )

        if not result.succeeded:
            state.payment_declined = True
            await self._save(state)
            raise PaymentDeclinedError(result.error or "Payment declined")

        state.payment_ref = result.provider_ref
        await self._advance(state, SagaStep.PAYMENT_ATTEMPTED, step_started)

    async def _create_order(self, state: SagaState) -> None:
        step_started = time.monotonic()
        order = await self._call(
            self.journal.create_order,
            state.saga_id,
            state.customer_id,
            state.snapshot.lines,
            state.total,
            OrderStatus.PAID,
            state.currency,
            timeout=self.config.journal_timeout,
            operation="journal.create_order",
        )

        state.order_id = order.order_id
        await self._advance(state, SagaStep.ORDER_CREATED, step_started)

    async def _complete(self, state: SagaState, started: float) -> CheckoutResponse:
        """Post-order cleanup. Failures here are warnings; the order stays Paid."""
        await self._publish(
            state, OrderCreated(order_id=state.order_id, customer_id=state.customer_id, total=state.total)
        )

        if not state.inventory_confirmed:
            try:
                await self._call(
                    self.ledger.confirm,
                    state.saga_id,
                    timeout=self.config.inventory_timeout,
                    operation="inventory.confirm",
                )
                state.inventory_confirmed = True
            except Exception as e:
                # Stock was sold but not decremented; the ledger needs fixing by hand
                warning = f"Inventory confirmation failed: {e}"
                state.requires_reconciliation = True
                state.failure_details = {"reconciliation": warning}
                await self._warn(state, warning)

        if self.cart_clearer is not None:
            try:
                await self._call(
                    self.cart_clearer.clear,
                    state.customer_id,
                    timeout=self.config.journal_timeout,
                    operation="cart.clear",
                )
            except Exception as e:
                await self._warn(state, f"Cart clear failed: {e}")

        state.advance(SagaStep.COMPLETED)
        await self._save(state)
        await self._notify("on_checkout_complete", state, time.monotonic() - started)

        return self._response(state)

    # ==========================================================================
    # Failure handling
    # ==========================================================================

    async def _fail_out_of_stock(
        self, state: SagaState, error: OutOfStockError, started: float
    ) -> None:
        state.last_error = error.message
        state.failure_code = error.code
        state.failure_details = dict(error.details)
        state.advance(SagaStep.FAILED)
        await self._save(state)
        await self._notify("on_checkout_failed", state, error.message, time.monotonic() - started)

    async def _fail_integrity(
        self, state: SagaState, error: InvalidTransitionError, started: float
    ) -> None:
        logger.error(f"Integrity error in checkout {state.saga_id}: {error}")

        failures = await self._compensate(state)
        for failure in failures:
            logger.error(f"[{state.saga_id}] {failure}")

        state.last_error = error.message
        state.failure_code = error.code
        state.failure_details = dict(error.details)
        state.requires_reconciliation = True
        state.advance(SagaStep.FAILED)
        await self._save(state)
        await self._notify("on_checkout_failed", state, error.message, time.monotonic() - started)

    async def _fail(
        self, state: SagaState, reason: str, code: str, started: float
    ) -> CheckoutResponse:
        """Compensate and record a Failed order, unless a Paid order already exists."""
        if await self._paid_order(state):
            logger.warning(
                f"Checkout {state.saga_id} failed after its order was created "
                f"({reason}); rolling forward"
            )
            state.advance(SagaStep.ORDER_CREATED)
            await self._save(state)
            return await self._complete(state, started)

        state.last_error = reason
        state.failure_code = code

        failures = await self._compensate(state)

        await self._record_failed_order(state, reason)

        if failures:
            state.requires_reconciliation = True
            state.failure_code = CompensationFailureError.code
            state.failure_details = {"failures": failures, "reason": reason}
            state.last_error = "; ".join(failures)
            state.advance(SagaStep.FAILED)
            await self._save(state)
            if state.order_id:
                await self._journal_note(state, f"Manual reconciliation required: {state.last_error}")
            await self._notify("on_checkout_failed", state, reason, time.monotonic() - started)
            raise CompensationFailureError(state.saga_id, failures)

        state.advance(SagaStep.FAILED)
        await self._save(state)
        await self._publish(state, OrderFailed(order_id=state.order_id, reason=reason))
        await self._notify("on_checkout_failed", state, reason, time.monotonic() - started)

        return self._response(state)

    async def _compensate(self, state: SagaState) -> list[str]:
        """Undo completed or outcome-unknown steps in reverse order. Returns failures."""
        state.advance(SagaStep.COMPENSATING)
        update_checkout_step(SagaStep.COMPENSATING.value)
        await self._save(state)

        failures: list[str] = []

        failure = await self._refund(state)
        if failure:
            failures.append(failure)

        failure = await self._release(state)
        if failure:
            failures.append(failure)

        await self._save(state)
        return failures

    async def _refund(self, state: SagaState) -> str | None:
        if state.refund_ref or state.payment_declined or not state.payment_requested:
            return None

        if state.payment_ref is None:
            # Outcome unknown: replaying the same key returns what the provider did
            try:
                result = await self._call(
                    self.payments.charge,
                    self._payment_request(state),
                    timeout=self.config.payment_timeout,
                    operation="payment.charge",
                )
            except Exception as e:
                await self._notify("on_compensation", state, "refund", e)
                return f"Payment outcome unknown: {e}"

            if not result.succeeded:
                state.payment_declined = True
                return None
            state.payment_ref = result.provider_ref

        try:
            result = await self._call(
                self.payments.refund,
                state.payment_ref,
                state.total,
                f"{state.saga_id}:refund",
                timeout=self.config.payment_timeout,
                operation="payment.refund",
            )
        except Exception as e:
            await self._notify("on_compensation", state, "refund", e)
            return f"Refund of {state.payment_ref} failed: {e}"

        if not result.succeeded:
            error = RuntimeError(result.error or "refund rejected")
            await self._notify("on_compensation", state, "refund", error)
            return f"Refund of {state.payment_ref} failed: {result.error}"

        state.refund_ref = result.refund_ref
        await self._notify("on_compensation", state, "refund", None)
        return None

    async def _release(self, state: SagaState) -> str | None:
        if not state.inventory_requested or state.inventory_confirmed:
            return None

        try:
            released = await self._call(
                self.ledger.release,
                state.saga_id,
                timeout=self.config.inventory_timeout,
                operation="inventory.release",
            )
        except NotFoundError:
            # Reserve never took effect
            released = []
        except Exception as e:
            await self._notify("on_compensation", state, "release", e)
            return f"Inventory release failed: {e}"

        await self._notify("on_compensation", state, "release", None)
        for reservation in released:
            await self._publish(
                state, StockReleased(sku=reservation.sku, quantity=reservation.quantity)
            )
        return None

    async def _record_failed_order(self, state: SagaState, reason: str) -> Order | None:
        try:
            order = await self._call(
                self.journal.create_order,
                state.saga_id,
                state.customer_id,
                state.snapshot.lines,
                state.total,
                OrderStatus.FAILED,
                state.currency,
                timeout=self.config.journal_timeout,
                operation="journal.create_order",
            )
        except Exception as e:
            logger.error(f"Could not record failed order for checkout {state.saga_id}: {e}")
            state.warnings.append(f"Failed order not recorded: {e}")
            return None

        state.order_id = order.order_id
        if order.status == OrderStatus.FAILED:
            await self._journal_note(state, f"Checkout failed: {reason}")
        return order

    async def _paid_order(self, state: SagaState) -> bool:
        """True if the journal already holds a Paid order for this saga."""
        try:
            order = await self._call(
                self.journal.find_by_saga,
                state.saga_id,
                timeout=self.config.journal_timeout,
                operation="journal.find_by_saga",
            )
        except Exception as e:
            logger.warning(f"Order lookup for checkout {state.saga_id} failed: {e}")
            return state.order_id is not None

        if order is not None and order.status == OrderStatus.PAID:
            state.order_id = order.order_id
            return True
        return False

    # ==========================================================================
    # Duplicate requests
    # ==========================================================================

    async def _replay(self, saga_id: str, customer_id: str) -> CheckoutResponse:
        """Wait briefly for a running saga, then report its stored outcome."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.in_progress_wait

        while True:
            state = await self.store.load(saga_id)

            if state is not None:
                if state.customer_id != customer_id:
                    msg = f"Idempotency key {saga_id} belongs to a different customer"
                    raise ValidationError(msg, details={"saga_id": saga_id})
                if state.is_terminal:
                    return self._stored_outcome(state)

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise CheckoutInProgressError(saga_id)
            await asyncio.sleep(min(_REPLAY_POLL_INTERVAL, remaining))

    def _stored_outcome(self, state: SagaState) -> CheckoutResponse:
        details = state.failure_details
        if state.current_step == SagaStep.FAILED:
            if state.failure_code == OutOfStockError.code:
                raise OutOfStockError(details["sku"], details["requested"], details["available"])
            if state.failure_code == CompensationFailureError.code:
                raise CompensationFailureError(state.saga_id, details.get("failures", []))
            if state.failure_code == InvalidTransitionError.code:
                raise InvalidTransitionError(
                    details["entity"], details["entity_id"], details["from"], details["to"]
                )
        return self._response(state)

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _payment_request(self, state: SagaState) -> PaymentRequest:
        return PaymentRequest(
            amount=state.total,
            token=state.payment_token,
            idempotency_key=state.saga_id,
            currency=state.currency,
        )

    def _response(self, state: SagaState) -> CheckoutResponse:
        completed = state.current_step == SagaStep.COMPLETED
        return CheckoutResponse(
            saga_id=state.saga_id,
            order_id=state.order_id,
            status=OrderStatus.PAID if completed else OrderStatus.FAILED,
            total=state.total,
            reason=None if completed else state.last_error,
            warnings=tuple(state.warnings),
        )

    async def _call(
        self, fn: Callable[..., Awaitable[T]], *args: Any, timeout: float, operation: str
    ) -> T:
        return await retry_with_policy(
            self.config.retry_policy(timeout), fn, *args, operation=operation
        )

    async def _advance(self, state: SagaState, step: SagaStep, step_started: float) -> None:
        state.advance(step)
        update_checkout_step(step.value)
        await self._save(state)
        await self._notify("on_step_complete", state, step, time.monotonic() - step_started)

    async def _save(self, state: SagaState) -> None:
        state.updated_at = utcnow()
        await self.store.save(state)

    async def _warn(self, state: SagaState, warning: str) -> None:
        logger.warning(f"[{state.saga_id}] {warning}")
        state.warnings.append(warning)
        await self._journal_note(state, warning)

    async def _journal_note(self, state: SagaState, note: str) -> None:
        if state.order_id is None:
            return
        try:
            await self._call(
                self.journal.record_compensation,
                state.order_id,
                note,
                timeout=self.config.journal_timeout,
                operation="journal.record_compensation",
            )
        except Exception as e:
            logger.error(f"Could not journal note for order {state.order_id}: {e}")

    async def _publish(self, state: SagaState, event: CheckoutEvent) -> None:
        if self.publisher is None:
            return
        try:
            await self.publisher.publish(state.saga_id, event)
        except Exception as e:
            logger.error(f"Publishing {event.event_type} for {state.saga_id} failed: {e}")

    async def _notify(self, event_name: str, *args) -> None:
        """Notify all listeners of an event."""
        for listener in self.listeners:
            try:
                handler = getattr(listener, event_name, None)
                if handler:
                    result = handler(*args)
                    if inspect.iscoroutine(result):
                        await result
            except Exception as e:
                logger.warning(f"Listener {type(listener).__name__}.{event_name} error: {e}")

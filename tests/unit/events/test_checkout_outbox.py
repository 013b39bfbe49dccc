"""
Tests for checkout events, the outbox state machine and the outbox relay.
"""

from decimal import Decimal

import pytest

from checkout_saga.core.exceptions import InvalidTransitionError
from checkout_saga.events.broker import BrokerConnectionError, InMemoryBroker
from checkout_saga.events.outbox import InMemoryOutbox, OutboxRelay
from checkout_saga.events.publisher import InMemoryEventPublisher, OutboxEventPublisher
from checkout_saga.events.state_machine import OutboxStateMachine
from checkout_saga.events.types import (
    OrderCreated,
    OrderFailed,
    OutboxEvent,
    OutboxStatus,
    StockReleased,
    make_event_id,
)


class FlakyBroker(InMemoryBroker):
    """Fails the first ``failures`` publishes."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures

    async def publish(self, topic, message, headers=None, key=None):
        if self.failures > 0:
            self.failures -= 1
            msg = "broker unavailable"
            raise BrokerConnectionError(msg)
        await super().publish(topic, message, headers=headers, key=key)


@pytest.fixture
async def broker():
    broker = InMemoryBroker()
    await broker.connect()
    yield broker
    await broker.close()


class TestCheckoutEvents:
    """Tests for event envelopes and deterministic ids."""

    def test_order_created_envelope(self):
        event = OrderCreated(order_id="ORD-1", customer_id="customer-1", total=Decimal("20.00"))

        envelope = OutboxEvent.from_checkout_event("saga-1", event)

        assert envelope.event_type == "OrderCreated"
        assert envelope.aggregate_type == "order"
        assert envelope.aggregate_id == "ORD-1"
        assert envelope.topic == "checkout.order"
        assert envelope.payload == {
            "order_id": "ORD-1",
            "customer_id": "customer-1",
            "total": "20.00",
        }

    def test_stock_released_goes_to_inventory_topic(self):
        envelope = OutboxEvent.from_checkout_event("saga-1", StockReleased(sku="SKU-1", quantity=2))

        assert envelope.topic == "checkout.inventory"
        assert envelope.aggregate_id == "SKU-1"

    def test_same_logical_event_same_id(self):
        event = OrderFailed(order_id="ORD-1", reason="Payment declined")

        first = OutboxEvent.from_checkout_event("saga-1", event)
        second = OutboxEvent.from_checkout_event("saga-1", event)

        assert first.event_id == second.event_id
        assert first.event_id == make_event_id("saga-1", "OrderFailed", "ORD-1")

    def test_different_sagas_different_ids(self):
        event = StockReleased(sku="SKU-1", quantity=2)

        assert (
            OutboxEvent.from_checkout_event("saga-1", event).event_id
            != OutboxEvent.from_checkout_event("saga-2", event).event_id
        )

    def test_dict_round_trip(self):
        envelope = OutboxEvent.from_checkout_event("saga-1", StockReleased(sku="SKU-1", quantity=2))

        assert OutboxEvent.from_dict(envelope.to_dict()) == envelope


class TestOutboxStateMachine:
    """Tests for OutboxStateMachine transitions."""

    def _event(self):
        return OutboxEvent(saga_id="saga-1", event_type="OrderCreated", payload={})

    def test_happy_path(self):
        machine = OutboxStateMachine()
        event = self._event()

        machine.claim(event, "worker-1")
        assert event.status == OutboxStatus.CLAIMED
        assert event.worker_id == "worker-1"

        machine.mark_sent(event)
        assert event.status == OutboxStatus.SENT
        assert event.sent_at is not None

    def test_invalid_transition(self):
        machine = OutboxStateMachine()

        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.mark_sent(self._event())

        assert exc_info.value.details["from"] == "pending"
        assert exc_info.value.details["to"] == "sent"

    def test_retry_until_exhausted(self):
        machine = OutboxStateMachine(max_retries=1)
        event = self._event()

        machine.claim(event, "worker-1")
        machine.mark_failed(event, "down")

        assert event.retry_count == 1
        assert not machine.can_retry(event)
        assert machine.should_dead_letter(event)
        with pytest.raises(InvalidTransitionError):
            machine.retry(event)

        machine.move_to_dead_letter(event)
        assert event.status == OutboxStatus.DEAD_LETTER

    def test_transition_callback(self):
        seen = []
        machine = OutboxStateMachine(on_transition=lambda e, old, new: seen.append((old, new)))

        machine.claim(self._event(), "worker-1")

        assert seen == [(OutboxStatus.PENDING, OutboxStatus.CLAIMED)]


class TestPublishers:
    """Tests for InMemoryEventPublisher and OutboxEventPublisher."""

    @pytest.mark.asyncio
    async def test_in_memory_publisher_records(self):
        publisher = InMemoryEventPublisher()

        await publisher.publish("saga-1", StockReleased(sku="SKU-1", quantity=1))
        await publisher.publish("saga-2", OrderFailed(order_id=None, reason="x"))

        assert len(publisher.of_type("StockReleased")) == 1
        assert [e.event_type for e in publisher.for_saga("saga-2")] == ["OrderFailed"]

        publisher.clear()
        assert publisher.events == []

    @pytest.mark.asyncio
    async def test_outbox_publisher_deduplicates(self):
        outbox = InMemoryOutbox()
        publisher = OutboxEventPublisher(outbox)
        event = OrderCreated(order_id="ORD-1", customer_id="customer-1", total=Decimal("1"))

        await publisher.publish("saga-1", event)
        await publisher.publish("saga-1", event)

        assert len(outbox.all_events()) == 1
        assert await outbox.get_pending_count() == 1


class TestOutboxRelay:
    """Tests for OutboxRelay delivery."""

    @pytest.mark.asyncio
    async def test_relay_delivers_pending_events(self, broker):
        outbox = InMemoryOutbox()
        publisher = OutboxEventPublisher(outbox)
        await publisher.publish(
            "saga-1", OrderCreated(order_id="ORD-1", customer_id="c", total=Decimal("20.00"))
        )
        await publisher.publish("saga-1", StockReleased(sku="SKU-1", quantity=2))
        relay = OutboxRelay(outbox, broker, worker_id="relay-test")

        assert await relay.process_batch() == 2
        assert await relay.process_batch() == 0

        orders = broker.decoded("checkout.order")
        assert orders[0]["event_type"] == "OrderCreated"
        assert orders[0]["payload"]["total"] == "20.00"
        message = broker.get_messages("checkout.inventory")[0]
        assert message["key"] == "SKU-1"
        assert message["headers"]["saga_id"] == "saga-1"
        assert relay.get_stats()["events_sent"] == 2

    @pytest.mark.asyncio
    async def test_failed_publish_is_retried(self):
        outbox = InMemoryOutbox()
        await OutboxEventPublisher(outbox).publish("saga-1", StockReleased(sku="SKU-1", quantity=1))
        broker = FlakyBroker(failures=1)
        await broker.connect()
        relay = OutboxRelay(outbox, broker, max_retries=3)

        assert await relay.process_batch() == 0
        event = outbox.all_events()[0]
        assert event.status == OutboxStatus.PENDING
        assert event.retry_count == 1

        assert await relay.process_batch() == 1
        assert event.status == OutboxStatus.SENT

    @pytest.mark.asyncio
    async def test_exhausted_event_dead_lettered(self):
        outbox = InMemoryOutbox()
        await OutboxEventPublisher(outbox).publish("saga-1", StockReleased(sku="SKU-1", quantity=1))
        broker = InMemoryBroker()
        relay = OutboxRelay(outbox, broker, max_retries=2)

        await relay.process_batch()
        await relay.process_batch()

        dead = await outbox.get_dead_letter_events()
        assert len(dead) == 1
        assert "not connected" in dead[0].last_error
        assert relay.get_stats()["events_dead_lettered"] == 1
        assert await relay.process_batch() == 0

    @pytest.mark.asyncio
    async def test_batch_size_respected(self, broker):
        outbox = InMemoryOutbox()
        publisher = OutboxEventPublisher(outbox)
        for i in range(5):
            await publisher.publish(f"saga-{i}", StockReleased(sku="SKU-1", quantity=1))

        relay = OutboxRelay(outbox, broker, batch_size=2)

        assert await relay.process_batch() == 2
        assert await outbox.get_pending_count() == 3

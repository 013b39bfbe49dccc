"""
Event publishers used by the checkout saga and the reservation sweeper.
"""

from abc import ABC, abstractmethod

from checkout_saga.core.logger import get_logger
from checkout_saga.events.outbox import InMemoryOutbox
from checkout_saga.events.types import CheckoutEvent, OutboxEvent

logger = get_logger(__name__)


class EventPublisher(ABC):
    """Publishes checkout events, at least once."""

    @abstractmethod
    async def publish(self, saga_id: str, event: CheckoutEvent) -> OutboxEvent:
        ...


class InMemoryEventPublisher(EventPublisher):
    """Records every published event. Used in tests and the demo."""

    def __init__(self):
        self.events: list[OutboxEvent] = []

    async def publish(self, saga_id, event):
        envelope = OutboxEvent.from_checkout_event(saga_id, event)
        self.events.append(envelope)
        logger.debug(f"Published {envelope.event_type} for saga {saga_id}")
        return envelope

    def of_type(self, event_type: str) -> list[OutboxEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def for_saga(self, saga_id: str) -> list[OutboxEvent]:
        return [e for e in self.events if e.saga_id == saga_id]

    def clear(self) -> None:
        self.events.clear()


class OutboxEventPublisher(EventPublisher):
    """Appends events to an outbox for delivery by an OutboxRelay."""

    def __init__(self, outbox: InMemoryOutbox):
        self.outbox = outbox

    async def publish(self, saga_id, event):
        envelope = OutboxEvent.from_checkout_event(saga_id, event)
        if await self.outbox.insert(envelope):
            logger.debug(f"Queued {envelope.event_type} {envelope.event_id} for saga {saga_id}")
        return envelope

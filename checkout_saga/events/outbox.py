"""
In-memory transactional outbox and the relay that drains it to a broker.

Usage:
    >>> outbox = InMemoryOutbox()
    >>> broker = InMemoryBroker()
    >>> await broker.connect()
    >>> relay = OutboxRelay(outbox, broker, max_retries=5)
    >>> sent = await relay.process_batch()
"""

import uuid

from checkout_saga.core.logger import get_logger
from checkout_saga.events.broker import MessageBroker
from checkout_saga.events.state_machine import OutboxStateMachine
from checkout_saga.events.types import OutboxEvent, OutboxStatus

logger = get_logger(__name__)


class InMemoryOutbox:
    """
    Outbox event storage kept in memory.

    Inserting an event whose id is already stored is a no-op, so re-emitting
    the same logical event never queues a second delivery.
    """

    def __init__(self, max_retries: int = 10):
        self._events: dict[str, OutboxEvent] = {}
        self.state_machine = OutboxStateMachine(max_retries=max_retries)

    async def insert(self, event: OutboxEvent) -> bool:
        """Queue an event. Returns False if it was already queued."""
        if event.event_id in self._events:
            logger.debug(f"Outbox event {event.event_id} already queued")
            return False
        self._events[event.event_id] = event
        return True

    async def claim_batch(self, worker_id: str, batch_size: int = 100) -> list[OutboxEvent]:
        claimed: list[OutboxEvent] = []
        for event in list(self._events.values()):
            if len(claimed) >= batch_size:
                break
            if event.status == OutboxStatus.PENDING:
                claimed.append(self.state_machine.claim(event, worker_id))
        return claimed

    async def get_by_id(self, event_id: str) -> OutboxEvent | None:
        return self._events.get(event_id)

    async def get_events_by_saga(self, saga_id: str) -> list[OutboxEvent]:
        return [e for e in self._events.values() if e.saga_id == saga_id]

    async def get_pending_count(self) -> int:
        return sum(1 for e in self._events.values() if e.status == OutboxStatus.PENDING)

    async def get_dead_letter_events(self, limit: int = 100) -> list[OutboxEvent]:
        return [e for e in self._events.values() if e.status == OutboxStatus.DEAD_LETTER][:limit]

    def all_events(self) -> list[OutboxEvent]:
        return list(self._events.values())

    def clear(self) -> None:
        self._events.clear()


class OutboxRelay:
    """
    Publishes pending outbox events to a message broker.

    Lifecycle of one batch:
        1. Claim PENDING events
        2. Publish each to the broker
        3. Mark successes SENT
        4. Mark failures FAILED and return them to PENDING while retries remain
        5. Move events out of retries to DEAD_LETTER
    """

    def __init__(
        self,
        outbox: InMemoryOutbox,
        broker: MessageBroker,
        max_retries: int | None = None,
        batch_size: int = 100,
        worker_id: str | None = None,
    ):
        self.outbox = outbox
        self.broker = broker
        self.batch_size = batch_size
        self.worker_id = worker_id or f"relay-{uuid.uuid4().hex[:8]}"
        self._state_machine = (
            OutboxStateMachine(max_retries=max_retries)
            if max_retries is not None
            else outbox.state_machine
        )

        self._events_sent = 0
        self._events_failed = 0
        self._events_dead_lettered = 0

    async def process_batch(self) -> int:
        """
        Process one batch of pending events.

        Returns:
            Number of events sent
        """
        events = await self.outbox.claim_batch(self.worker_id, self.batch_size)
        if not events:
            return 0

        logger.debug(f"Relay {self.worker_id} claimed {len(events)} events")

        sent = 0
        for event in events:
            try:
                await self.broker.publish_event(event)
            except Exception as e:
                self._handle_publish_failure(event, e)
            else:
                self._state_machine.mark_sent(event)
                self._events_sent += 1
                sent += 1

        return sent

    def _handle_publish_failure(self, event: OutboxEvent, error: Exception) -> None:
        self._state_machine.mark_failed(event, str(error))
        self._events_failed += 1

        logger.warning(
            f"Event {event.event_id} failed to publish: {error} "
            f"(attempt {event.retry_count}/{self._state_machine.max_retries})"
        )

        if self._state_machine.can_retry(event):
            self._state_machine.retry(event)
            return

        self._state_machine.move_to_dead_letter(event)
        self._events_dead_lettered += 1
        logger.error(
            f"Event {event.event_id} moved to dead letter queue "
            f"after {event.retry_count} attempts. Last error: {event.last_error}"
        )

    def get_stats(self) -> dict:
        return {
            "worker_id": self.worker_id,
            "events_sent": self._events_sent,
            "events_failed": self._events_failed,
            "events_dead_lettered": self._events_dead_lettered,
        }

"""
Outbox state machine.

Valid transitions:
    PENDING -> CLAIMED (claim)
    CLAIMED -> SENT (mark_sent)
    CLAIMED -> FAILED (mark_failed)
    FAILED -> PENDING (retry, while retries remain)
    FAILED -> DEAD_LETTER (move_to_dead_letter)
"""

from collections.abc import Callable
from typing import Any

from checkout_saga.core.exceptions import InvalidTransitionError
from checkout_saga.core.types import utcnow
from checkout_saga.events.types import OutboxEvent, OutboxStatus


class OutboxStateMachine:
    """Enforces the outbox event lifecycle."""

    VALID_TRANSITIONS = {
        OutboxStatus.PENDING: [OutboxStatus.CLAIMED],
        OutboxStatus.CLAIMED: [OutboxStatus.SENT, OutboxStatus.FAILED],
        OutboxStatus.FAILED: [OutboxStatus.PENDING, OutboxStatus.DEAD_LETTER],
        OutboxStatus.SENT: [],
        OutboxStatus.DEAD_LETTER: [],
    }

    def __init__(
        self,
        max_retries: int = 10,
        on_transition: Callable[[OutboxEvent, OutboxStatus, OutboxStatus], Any] | None = None,
    ):
        self.max_retries = max_retries
        self._on_transition = on_transition

    def _transition(self, event: OutboxEvent, target_status: OutboxStatus) -> OutboxEvent:
        old_status = event.status
        if target_status not in self.VALID_TRANSITIONS.get(old_status, []):
            raise InvalidTransitionError(
                "outbox_event", event.event_id, old_status.value, target_status.value
            )

        event.status = target_status

        if self._on_transition:
            self._on_transition(event, old_status, target_status)

        return event

    def claim(self, event: OutboxEvent, worker_id: str) -> OutboxEvent:
        event = self._transition(event, OutboxStatus.CLAIMED)
        event.worker_id = worker_id
        event.claimed_at = utcnow()
        return event

    def mark_sent(self, event: OutboxEvent) -> OutboxEvent:
        event = self._transition(event, OutboxStatus.SENT)
        event.sent_at = utcnow()
        return event

    def mark_failed(self, event: OutboxEvent, error_message: str) -> OutboxEvent:
        event = self._transition(event, OutboxStatus.FAILED)
        event.retry_count += 1
        event.last_error = error_message
        return event

    def retry(self, event: OutboxEvent) -> OutboxEvent:
        """
        Move a failed event back to PENDING.

        Raises:
            InvalidTransitionError: If the event is not FAILED or has no retries left
        """
        if event.retry_count >= self.max_retries:
            raise InvalidTransitionError(
                "outbox_event", event.event_id, event.status.value, OutboxStatus.PENDING.value
            )

        event = self._transition(event, OutboxStatus.PENDING)
        event.worker_id = None
        event.claimed_at = None
        return event

    def move_to_dead_letter(self, event: OutboxEvent) -> OutboxEvent:
        return self._transition(event, OutboxStatus.DEAD_LETTER)

    def can_retry(self, event: OutboxEvent) -> bool:
        return event.status == OutboxStatus.FAILED and event.retry_count < self.max_retries

    def should_dead_letter(self, event: OutboxEvent) -> bool:
        return event.status == OutboxStatus.FAILED and event.retry_count >= self.max_retries

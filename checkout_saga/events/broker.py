"""
Message broker contract for outbox delivery, plus an in-memory broker for
tests and the demo.
"""

import json
from abc import ABC, abstractmethod
from typing import Any

from checkout_saga.events.types import OutboxEvent


class BrokerError(Exception):
    """Base broker error"""


class BrokerConnectionError(BrokerError):
    """Broker is not reachable or not connected"""


class MessageBroker(ABC):
    """Abstract message broker."""

    def __init__(self):
        self._connected = False

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def publish(
        self,
        topic: str,
        message: bytes,
        headers: dict[str, str] | None = None,
        key: str | None = None,
    ) -> None:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def publish_event(self, event: OutboxEvent) -> None:
        """Serialize an outbox event and publish it to its topic."""
        message = json.dumps(
            {
                "event_id": event.event_id,
                "event_type": event.event_type,
                "saga_id": event.saga_id,
                "payload": event.payload,
            }
        ).encode()
        headers = {
            "event_id": event.event_id,
            "event_type": event.event_type,
            "saga_id": event.saga_id,
        }
        await self.publish(event.topic, message, headers=headers, key=event.aggregate_id)


class InMemoryBroker(MessageBroker):
    """
    In-memory message broker.

    Usage:
        >>> broker = InMemoryBroker()
        >>> await broker.connect()
        >>> await broker.publish("checkout.order", b'{"id": 1}')
        >>> broker.get_messages("checkout.order")
    """

    def __init__(self):
        super().__init__()
        self._messages: dict[str, list[dict[str, Any]]] = {}

    async def connect(self) -> None:
        self._connected = True

    async def publish(self, topic, message, headers=None, key=None):
        if not self._connected:
            msg = "Broker not connected"
            raise BrokerConnectionError(msg)

        self._messages.setdefault(topic, []).append(
            {"message": message, "headers": headers or {}, "key": key}
        )

    async def close(self) -> None:
        self._connected = False

    async def health_check(self) -> bool:
        return self._connected

    def get_messages(self, topic: str) -> list[dict[str, Any]]:
        return self._messages.get(topic, [])

    def decoded(self, topic: str) -> list[dict[str, Any]]:
        """Published messages on a topic, JSON-decoded."""
        return [json.loads(m["message"]) for m in self.get_messages(topic)]

    def clear(self) -> None:
        self._messages.clear()

"""
Saga state storage backends.

Quick Start:
    >>> from checkout_saga.storage import create_state_store
    >>>
    >>> store = create_state_store("memory://")
    >>> store = create_state_store("sqlite:///./data/sagas.db")
"""

from checkout_saga.storage.base import SagaStateStore
from checkout_saga.storage.factory import create_state_store
from checkout_saga.storage.memory import InMemorySagaStateStore
from checkout_saga.storage.sqlite import SQLiteSagaStateStore

__all__ = [
    "InMemorySagaStateStore",
    "SQLiteSagaStateStore",
    "SagaStateStore",
    "create_state_store",
]

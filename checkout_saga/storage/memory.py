"""
In-memory saga state store, for tests and single-process development.
"""

import copy
from datetime import datetime
from typing import Any

from checkout_saga.core.exceptions import NotFoundError, SagaAlreadyExistsError
from checkout_saga.core.types import SagaState
from checkout_saga.storage.base import SagaStateStore


class InMemorySagaStateStore(SagaStateStore):
    """
    Saga states kept in a dict.

    States are deep-copied in and out, so callers never share a mutable
    SagaState with the store.
    """

    def __init__(self):
        self._states: dict[str, SagaState] = {}

    async def create(self, state):
        if state.saga_id in self._states:
            raise SagaAlreadyExistsError(state.saga_id)
        self._states[state.saga_id] = copy.deepcopy(state)

    async def save(self, state):
        if state.saga_id not in self._states:
            msg = f"Saga {state.saga_id} not found"
            raise NotFoundError(msg, item_type="saga", item_id=state.saga_id)
        self._states[state.saga_id] = copy.deepcopy(state)

    async def load(self, saga_id):
        state = self._states.get(saga_id)
        return copy.deepcopy(state) if state else None

    async def delete(self, saga_id):
        return self._states.pop(saga_id, None) is not None

    async def list_unfinished(self, updated_before=None):
        return [
            copy.deepcopy(s)
            for s in self._states.values()
            if not s.is_terminal and (updated_before is None or s.updated_at < updated_before)
        ]

    async def list_requiring_reconciliation(self):
        return [copy.deepcopy(s) for s in self._states.values() if s.requires_reconciliation]

    async def list_states(self, limit=100):
        states = sorted(self._states.values(), key=lambda s: s.updated_at, reverse=True)
        return [copy.deepcopy(s) for s in states[:limit]]

    async def cleanup_terminal(self, older_than: datetime) -> int:
        doomed = [
            saga_id
            for saga_id, s in self._states.items()
            if s.is_terminal and not s.requires_reconciliation and s.updated_at < older_than
        ]
        for saga_id in doomed:
            del self._states[saga_id]
        return len(doomed)

    async def health_check(self) -> dict[str, Any]:
        return {"status": "healthy", "backend": "memory", "sagas": len(self._states)}

    def clear(self) -> None:
        self._states.clear()

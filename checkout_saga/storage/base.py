"""
Saga state storage interface.

Every checkout persists its SagaState after each step so that an interrupted
checkout can be resumed or compensated, and so that concurrent requests with
the same idempotency key are resolved by a unique constraint on saga_id.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from checkout_saga.core.types import SagaState


class SagaStateStore(ABC):
    """Abstract base class for SagaState persistence."""

    # ==========================================================================
    # Core CRUD Operations
    # ==========================================================================

    @abstractmethod
    async def create(self, state: SagaState) -> None:
        """
        Insert a new saga state.

        Raises:
            SagaAlreadyExistsError: If a state with this saga_id is stored
        """
        ...

    @abstractmethod
    async def save(self, state: SagaState) -> None:
        """
        Update a stored saga state.

        Raises:
            NotFoundError: If the saga was never created
        """
        ...

    @abstractmethod
    async def load(self, saga_id: str) -> SagaState | None:
        ...

    @abstractmethod
    async def delete(self, saga_id: str) -> bool:
        """Returns True if deleted, False if not found."""
        ...

    # ==========================================================================
    # Query Operations
    # ==========================================================================

    @abstractmethod
    async def list_unfinished(self, updated_before: datetime | None = None) -> list[SagaState]:
        """Non-terminal sagas, optionally only those untouched since ``updated_before``."""
        ...

    @abstractmethod
    async def list_requiring_reconciliation(self) -> list[SagaState]:
        """Sagas flagged for manual reconciliation."""
        ...

    @abstractmethod
    async def list_states(self, limit: int = 100) -> list[SagaState]:
        """Most recently updated sagas first."""
        ...

    # ==========================================================================
    # Maintenance
    # ==========================================================================

    @abstractmethod
    async def cleanup_terminal(self, older_than: datetime) -> int:
        """
        Delete terminal sagas last updated before ``older_than``.

        Sagas requiring reconciliation are kept.

        Returns:
            Number of sagas deleted
        """
        ...

    @abstractmethod
    async def health_check(self) -> dict[str, Any]:
        ...

    async def close(self) -> None:  # noqa: B027
        """Release resources. No-op by default."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

"""
SQLite saga state store.

Lightweight embedded storage using SQLite with async support via aiosqlite.
Suitable for local development, the CLI demo and single-process deployments.

Usage:
    >>> store = SQLiteSagaStateStore("./data/sagas.db")
    >>> async with store:
    ...     await store.create(state)
    >>>
    >>> # In-memory database (for testing)
    >>> store = SQLiteSagaStateStore(":memory:")
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from checkout_saga.core.exceptions import NotFoundError, SagaAlreadyExistsError
from checkout_saga.core.types import SagaState, SagaStep
from checkout_saga.storage.base import SagaStateStore

logger = logging.getLogger(__name__)

_TERMINAL_STEPS = (SagaStep.COMPLETED.value, SagaStep.FAILED.value)


class SQLiteSagaStateStore(SagaStateStore):
    """
    SQLite-based saga state store.

    The saga_id primary key is the unique constraint that decides which of
    two concurrent checkouts with the same idempotency key runs.

    Attributes:
        db_path: Path to SQLite database file (or ":memory:" for in-memory)
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self._initialized = False

    async def initialize(self) -> None:
        await self._get_connection()

    async def _get_connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = await aiosqlite.connect(self.db_path)
            self._conn.row_factory = aiosqlite.Row

        if not self._initialized:
            await self._init_schema()
            self._initialized = True

        return self._conn

    async def _init_schema(self) -> None:
        conn = self._conn
        await conn.executescript("""
            CREATE TABLE IF NOT EXISTS checkout_sagas (
                saga_id TEXT PRIMARY KEY,
                customer_id TEXT NOT NULL,
                current_step TEXT NOT NULL,
                requires_reconciliation INTEGER NOT NULL DEFAULT 0,
                state TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_checkout_sagas_step ON checkout_sagas(current_step);
            CREATE INDEX IF NOT EXISTS idx_checkout_sagas_updated_at ON checkout_sagas(updated_at);
            CREATE INDEX IF NOT EXISTS idx_checkout_sagas_reconciliation
                ON checkout_sagas(requires_reconciliation);
        """)
        await conn.commit()

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None
            self._initialized = False

    @staticmethod
    def _row_values(state: SagaState) -> tuple:
        return (
            state.customer_id,
            state.current_step.value,
            int(state.requires_reconciliation),
            json.dumps(state.to_dict()),
            state.created_at.isoformat(),
            state.updated_at.isoformat(),
        )

    @staticmethod
    def _row_to_state(row: aiosqlite.Row) -> SagaState:
        return SagaState.from_dict(json.loads(row["state"]))

    async def create(self, state):
        conn = await self._get_connection()
        try:
            await conn.execute(
                """
                INSERT INTO checkout_sagas (
                    saga_id, customer_id, current_step, requires_reconciliation,
                    state, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (state.saga_id, *self._row_values(state)),
            )
        except aiosqlite.IntegrityError as e:
            await conn.rollback()
            raise SagaAlreadyExistsError(state.saga_id) from e
        await conn.commit()

    async def save(self, state):
        conn = await self._get_connection()
        customer_id, step, reconciliation, payload, _, updated_at = self._row_values(state)
        cursor = await conn.execute(
            """
            UPDATE checkout_sagas
            SET customer_id = ?, current_step = ?, requires_reconciliation = ?,
                state = ?, updated_at = ?
            WHERE saga_id = ?
            """,
            (customer_id, step, reconciliation, payload, updated_at, state.saga_id),
        )
        await conn.commit()

        if cursor.rowcount == 0:
            msg = f"Saga {state.saga_id} not found"
            raise NotFoundError(msg, item_type="saga", item_id=state.saga_id)

    async def load(self, saga_id):
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT state FROM checkout_sagas WHERE saga_id = ?", (saga_id,))
        row = await cursor.fetchone()
        return self._row_to_state(row) if row else None

    async def delete(self, saga_id):
        conn = await self._get_connection()
        cursor = await conn.execute("DELETE FROM checkout_sagas WHERE saga_id = ?", (saga_id,))
        await conn.commit()
        return cursor.rowcount > 0

    async def list_unfinished(self, updated_before=None):
        conn = await self._get_connection()
        query = "SELECT state FROM checkout_sagas WHERE current_step NOT IN (?, ?)"
        params: list[Any] = list(_TERMINAL_STEPS)

        if updated_before is not None:
            query += " AND updated_at < ?"
            params.append(updated_before.isoformat())

        query += " ORDER BY updated_at"
        cursor = await conn.execute(query, params)
        return [self._row_to_state(row) for row in await cursor.fetchall()]

    async def list_requiring_reconciliation(self):
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT state FROM checkout_sagas WHERE requires_reconciliation = 1 ORDER BY updated_at"
        )
        return [self._row_to_state(row) for row in await cursor.fetchall()]

    async def list_states(self, limit=100):
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT state FROM checkout_sagas ORDER BY updated_at DESC LIMIT ?", (limit,)
        )
        return [self._row_to_state(row) for row in await cursor.fetchall()]

    async def cleanup_terminal(self, older_than: datetime) -> int:
        conn = await self._get_connection()
        cursor = await conn.execute(
            """
            DELETE FROM checkout_sagas
            WHERE current_step IN (?, ?)
            AND requires_reconciliation = 0
            AND updated_at < ?
            """,
            (*_TERMINAL_STEPS, older_than.isoformat()),
        )
        await conn.commit()
        return cursor.rowcount

    async def health_check(self) -> dict[str, Any]:
        try:
            conn = await self._get_connection()
            cursor = await conn.execute("SELECT COUNT(*) FROM checkout_sagas")
            row = await cursor.fetchone()
            return {
                "status": "healthy",
                "backend": "sqlite",
                "db_path": self.db_path,
                "sagas": row[0] if row else 0,
            }
        except aiosqlite.Error as e:
            logger.warning(f"SQLite health check failed: {e}")
            return {"status": "unhealthy", "error": str(e), "backend": "sqlite"}

    async def __aenter__(self):
        await self._get_connection()
        return self

"""
Crash recovery for checkouts left unfinished in the saga state store.

Run at startup (or periodically) to roll forward checkouts whose order was
created, and to compensate the rest.
"""

from datetime import timedelta
from typing import Any

from checkout_saga.core.exceptions import CheckoutError
from checkout_saga.core.logger import get_logger
from checkout_saga.core.types import OrderStatus, utcnow
from checkout_saga.saga.checkout import CheckoutSaga
from checkout_saga.storage.base import SagaStateStore

logger = get_logger(__name__)


class SagaRecovery:
    """
    Resumes stale unfinished checkouts.

    Args:
        saga: CheckoutSaga wired to the same collaborators as the live service
        store: Store to scan (default: the saga's store)
        stale_after: Only recover sagas untouched for this long
            (default: the saga timeout)
    """

    def __init__(
        self,
        saga: CheckoutSaga,
        store: SagaStateStore | None = None,
        stale_after: timedelta | None = None,
    ):
        self.saga = saga
        self.store = store or saga.store
        self.stale_after = stale_after or timedelta(seconds=saga.config.saga_timeout)

    async def recover_pending(self) -> dict[str, Any]:
        """
        Resume every stale unfinished saga.

        One saga failing to recover does not stop the others.

        Returns:
            {"recovered": n, "completed": [...], "failed": [...], "errors": {saga_id: msg}}
        """
        cutoff = utcnow() - self.stale_after
        pending = await self.store.list_unfinished(updated_before=cutoff)

        summary: dict[str, Any] = {"recovered": 0, "completed": [], "failed": [], "errors": {}}
        if not pending:
            return summary

        logger.info(f"Recovering {len(pending)} unfinished checkout(s)")

        for state in pending:
            try:
                response = await self.saga.resume(state)
            except CheckoutError as e:
                logger.error(f"Recovery of checkout {state.saga_id} failed: {e}")
                summary["errors"][state.saga_id] = str(e)
                continue
            except Exception as e:
                logger.exception(f"Unexpected error recovering checkout {state.saga_id}: {e}")
                summary["errors"][state.saga_id] = str(e)
                continue

            if response is None:
                continue

            summary["recovered"] += 1
            if response.status == OrderStatus.PAID:
                summary["completed"].append(state.saga_id)
            else:
                summary["failed"].append(state.saga_id)

        logger.info(
            f"Recovery finished: {summary['recovered']} recovered, "
            f"{len(summary['errors'])} error(s)"
        )
        return summary

"""
Background sweep that releases expired stock reservations.

The sweep runs as one asyncio task on a fixed interval, independent of any
checkout request.
"""

import asyncio

from checkout_saga.core.logger import get_logger
from checkout_saga.core.types import Reservation
from checkout_saga.events.publisher import EventPublisher
from checkout_saga.events.types import StockReleased
from checkout_saga.inventory.ledger import InventoryLedger

logger = get_logger(__name__)


class ReservationSweeper:
    """
    Periodically releases Held reservations past their expiry.

    Usage:
        >>> sweeper = ReservationSweeper(ledger, publisher, interval=60.0)
        >>> sweeper.start()
        >>> ...
        >>> await sweeper.stop()
    """

    def __init__(
        self,
        ledger: InventoryLedger,
        publisher: EventPublisher | None = None,
        interval: float = 60.0,
    ):
        self.ledger = ledger
        self.publisher = publisher
        self.interval = interval

        self._task: asyncio.Task | None = None
        self._shutdown_event = asyncio.Event()
        self._sweeps = 0
        self._released_total = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> list[Reservation]:
        """Release expired reservations and publish StockReleased for each."""
        released = await self.ledger.release_expired()
        self._sweeps += 1
        self._released_total += len(released)

        if self.publisher is not None:
            for reservation in released:
                await self.publisher.publish(
                    reservation.saga_id,
                    StockReleased(sku=reservation.sku, quantity=reservation.quantity),
                )

        if released:
            logger.info(f"Sweep released {len(released)} expired reservation(s)")
        return released

    def start(self) -> asyncio.Task:
        """Start the sweep loop. Calling start twice returns the running task."""
        if self.running:
            return self._task

        self._shutdown_event.clear()
        self._task = asyncio.create_task(self._run(), name="reservation-sweeper")
        logger.info(f"Reservation sweeper started (interval {self.interval}s)")
        return self._task

    async def stop(self) -> None:
        """Stop the sweep loop and wait for it to finish."""
        if self._task is None:
            return

        self._shutdown_event.set()
        task, self._task = self._task, None
        try:
            await asyncio.wait_for(task, timeout=self.interval + 1.0)
        except TimeoutError:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Reservation sweeper stopped")

    async def _run(self) -> None:
        while not self._shutdown_event.is_set():
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error(f"Reservation sweep failed: {e}")

            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.interval)
            except TimeoutError:
                continue

    def get_stats(self) -> dict:
        return {
            "running": self.running,
            "sweeps": self._sweeps,
            "released_total": self._released_total,
        }

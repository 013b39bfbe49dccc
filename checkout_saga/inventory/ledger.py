"""
Inventory ledger: stock levels and time-limited reservations.

For every SKU the ledger keeps ``on_hand`` and ``held`` quantities; the
quantity available to new reservations is ``on_hand - held`` and may never go
negative.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import replace
from datetime import datetime, timedelta

from checkout_saga.core.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    OutOfStockError,
    ValidationError,
)
from checkout_saga.core.logger import get_logger
from checkout_saga.core.types import (
    Reservation,
    ReservationLine,
    ReservationStatus,
    StockLevel,
    utcnow,
)

logger = get_logger(__name__)

DEFAULT_RESERVATION_TTL = timedelta(minutes=15)


class InventoryLedger(ABC):
    """
    Abstract inventory ledger.

    Implementations must make ``reserve`` all-or-nothing across its lines and
    serialize concurrent reservations for the same SKU.
    """

    @abstractmethod
    async def reserve(
        self,
        saga_id: str,
        lines: Sequence[ReservationLine],
        ttl: timedelta | None = None,
    ) -> list[Reservation]:
        """
        Hold stock for every line, or for none.

        Idempotent per saga id: a repeated call returns the reservations from
        the first call.

        Raises:
            OutOfStockError: If any SKU lacks available stock
            ValidationError: If a line has a non-positive quantity
        """
        ...

    @abstractmethod
    async def confirm(self, saga_id: str) -> list[Reservation]:
        """Convert the saga's holds into permanent stock decrements."""
        ...

    @abstractmethod
    async def release(self, saga_id: str) -> list[Reservation]:
        """Return the saga's holds to available stock. Returns what this call released."""
        ...

    @abstractmethod
    async def release_expired(self, now: datetime | None = None) -> list[Reservation]:
        """Release every held reservation past its expiry."""
        ...

    @abstractmethod
    async def receive_stock(self, sku: str, quantity: int) -> StockLevel:
        """Add units to on-hand stock."""
        ...

    @abstractmethod
    async def stock_level(self, sku: str) -> StockLevel:
        ...

    @abstractmethod
    async def reservations_for(self, saga_id: str) -> list[Reservation]:
        ...


class InMemoryInventoryLedger(InventoryLedger):
    """
    In-memory inventory ledger.

    Reservation ids are deterministic (``"{saga_id}:{sku}"``). Per-SKU locks
    are always taken in sorted SKU order so two multi-line reservations can
    never deadlock.

    Example:
        >>> ledger = InMemoryInventoryLedger(initial_stock={"SKU-1": 5})
        >>> await ledger.reserve("saga-1", [ReservationLine("SKU-1", 2)])
        >>> (await ledger.stock_level("SKU-1")).available
        3
    """

    def __init__(
        self,
        initial_stock: dict[str, int] | None = None,
        default_ttl: timedelta = DEFAULT_RESERVATION_TTL,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.default_ttl = default_ttl
        self._clock = clock
        self._stock: dict[str, StockLevel] = {}
        self._reservations: dict[str, Reservation] = {}
        self._by_saga: dict[str, list[str]] = {}
        self._sku_locks: dict[str, asyncio.Lock] = {}
        self._saga_locks: dict[str, asyncio.Lock] = {}
        self._saga_lock_users: dict[str, int] = {}

        for sku, quantity in (initial_stock or {}).items():
            self._stock[sku] = StockLevel(sku=sku, on_hand=quantity)

    def _sku_lock(self, sku: str) -> asyncio.Lock:
        return self._sku_locks.setdefault(sku, asyncio.Lock())

    @asynccontextmanager
    async def _saga_lock(self, saga_id: str):
        """Per-saga lock, dropped once no caller holds or awaits it."""
        lock = self._saga_locks.setdefault(saga_id, asyncio.Lock())
        self._saga_lock_users[saga_id] = self._saga_lock_users.get(saga_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._saga_lock_users[saga_id] -= 1
            if not self._saga_lock_users[saga_id]:
                del self._saga_lock_users[saga_id]
                del self._saga_locks[saga_id]

    async def _lock_skus(self, stack: AsyncExitStack, skus: Sequence[str]) -> None:
        for sku in sorted(set(skus)):
            await stack.enter_async_context(self._sku_lock(sku))

    def _level(self, sku: str) -> StockLevel:
        return self._stock.setdefault(sku, StockLevel(sku=sku))

    def _saga_reservations(self, saga_id: str) -> list[Reservation]:
        ids = self._by_saga.get(saga_id)
        if not ids:
            msg = f"No reservations for saga {saga_id}"
            raise NotFoundError(msg, item_type="reservation", item_id=saga_id)
        return [self._reservations[reservation_id] for reservation_id in ids]

    async def reserve(self, saga_id, lines, ttl=None):
        if not lines:
            msg = "Reservation requires at least one line"
            raise ValidationError(msg, details={"saga_id": saga_id})

        requested: dict[str, int] = {}
        for line in lines:
            if line.quantity <= 0:
                msg = f"Reservation quantity for {line.sku} must be positive"
                raise ValidationError(msg, details={"sku": line.sku, "quantity": line.quantity})
            requested[line.sku] = requested.get(line.sku, 0) + line.quantity

        async with self._saga_lock(saga_id):
            if saga_id in self._by_saga:
                logger.debug(f"Reservation for saga {saga_id} already exists, returning it")
                return [replace(r) for r in self._saga_reservations(saga_id)]

            async with AsyncExitStack() as stack:
                await self._lock_skus(stack, list(requested))

                for sku in sorted(requested):
                    available = self._stock[sku].available if sku in self._stock else 0
                    if available < requested[sku]:
                        raise OutOfStockError(sku, requested[sku], available)

                now = self._clock()
                expires_at = now + (ttl or self.default_ttl)
                created: list[Reservation] = []
                for sku, quantity in requested.items():
                    reservation = Reservation(
                        reservation_id=f"{saga_id}:{sku}",
                        saga_id=saga_id,
                        sku=sku,
                        quantity=quantity,
                        status=ReservationStatus.HELD,
                        created_at=now,
                        expires_at=expires_at,
                    )
                    self._level(sku).held += quantity
                    self._reservations[reservation.reservation_id] = reservation
                    created.append(reservation)

                self._by_saga[saga_id] = [r.reservation_id for r in created]

        logger.info(
            f"Reserved {', '.join(f'{r.sku}x{r.quantity}' for r in created)} for saga {saga_id}"
        )
        return [replace(r) for r in created]

    async def confirm(self, saga_id):
        async with self._saga_lock(saga_id):
            reservations = self._saga_reservations(saga_id)

            for reservation in reservations:
                if reservation.status == ReservationStatus.RELEASED:
                    raise InvalidTransitionError(
                        "reservation",
                        reservation.reservation_id,
                        reservation.status.value,
                        ReservationStatus.CONFIRMED.value,
                    )

            async with AsyncExitStack() as stack:
                await self._lock_skus(stack, [r.sku for r in reservations])
                for reservation in reservations:
                    if reservation.status == ReservationStatus.HELD:
                        level = self._level(reservation.sku)
                        level.on_hand -= reservation.quantity
                        level.held -= reservation.quantity
                        reservation.status = ReservationStatus.CONFIRMED

        logger.info(f"Confirmed reservations for saga {saga_id}")
        return [replace(r) for r in reservations]

    async def release(self, saga_id):
        async with self._saga_lock(saga_id):
            reservations = self._saga_reservations(saga_id)
            return await self._release(reservations)

    async def _release(self, reservations: list[Reservation]) -> list[Reservation]:
        released: list[Reservation] = []

        async with AsyncExitStack() as stack:
            await self._lock_skus(stack, [r.sku for r in reservations])
            for reservation in reservations:
                if reservation.status == ReservationStatus.HELD:
                    self._level(reservation.sku).held -= reservation.quantity
                    reservation.status = ReservationStatus.RELEASED
                    released.append(replace(reservation))
                elif reservation.status == ReservationStatus.CONFIRMED:
                    logger.warning(
                        f"Reservation {reservation.reservation_id} is already confirmed; "
                        f"not releasing"
                    )

        if released:
            logger.info(
                f"Released {', '.join(f'{r.sku}x{r.quantity}' for r in released)} "
                f"for saga {released[0].saga_id}"
            )
        return released

    async def release_expired(self, now=None):
        now = now or self._clock()
        expired_by_saga: dict[str, list[Reservation]] = {}
        for reservation in self._reservations.values():
            if reservation.is_expired(now):
                expired_by_saga.setdefault(reservation.saga_id, []).append(reservation)

        released: list[Reservation] = []
        for saga_id, reservations in expired_by_saga.items():
            async with self._saga_lock(saga_id):
                # Re-check under the lock; the saga may have confirmed meanwhile
                still_expired = [r for r in reservations if r.is_expired(now)]
                released.extend(await self._release(still_expired))

        if released:
            logger.info(f"Released {len(released)} expired reservation(s)")
        return released

    async def receive_stock(self, sku, quantity):
        if quantity <= 0:
            msg = f"Received quantity for {sku} must be positive"
            raise ValidationError(msg, details={"sku": sku, "quantity": quantity})

        async with self._sku_lock(sku):
            level = self._level(sku)
            level.on_hand += quantity
            return replace(level)

    async def stock_level(self, sku):
        level = self._stock.get(sku)
        return replace(level) if level else StockLevel(sku=sku)

    async def reservations_for(self, saga_id):
        return [replace(self._reservations[rid]) for rid in self._by_saga.get(saga_id, [])]

    def snapshot(self) -> dict[str, StockLevel]:
        """Copy of every known stock level, keyed by SKU."""
        return {sku: replace(level) for sku, level in self._stock.items()}

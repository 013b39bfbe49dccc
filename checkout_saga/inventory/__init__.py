"""
Inventory ledger and reservation expiry sweep.
"""

from checkout_saga.inventory.ledger import (
    DEFAULT_RESERVATION_TTL,
    InMemoryInventoryLedger,
    InventoryLedger,
)
from checkout_saga.inventory.sweeper import ReservationSweeper

__all__ = [
    "DEFAULT_RESERVATION_TTL",
    "InMemoryInventoryLedger",
    "InventoryLedger",
    "ReservationSweeper",
]

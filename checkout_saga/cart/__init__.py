"""
Cart snapshots and cart clearing.
"""

from checkout_saga.cart.provider import CartClearer, CartSnapshotProvider, InMemoryCartStore

__all__ = ["CartClearer", "CartSnapshotProvider", "InMemoryCartStore"]

"""
Order journal.
"""

from checkout_saga.orders.journal import ALLOWED_TRANSITIONS, InMemoryOrderJournal, OrderJournal

__all__ = ["ALLOWED_TRANSITIONS", "InMemoryOrderJournal", "OrderJournal"]

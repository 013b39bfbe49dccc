"""
Tests for the in-memory cart store.
"""

from decimal import Decimal

import pytest

from checkout_saga.core.exceptions import CartNotFoundError, ValidationError


class TestInMemoryCartStore:
    """Tests for InMemoryCartStore."""

    def test_add_line(self, carts):
        line = carts.add_line("customer-1", "SKU-1", "Notebook", "10.00", 2)

        assert line.unit_price == Decimal("10.00")
        assert carts.lines("customer-1") == [line]

    def test_adding_same_sku_increments(self, carts):
        carts.add_line("customer-1", "SKU-1", "Notebook", "10.00", 2)
        carts.add_line("customer-1", "SKU-1", "Notebook", "10.00", 3)

        lines = carts.lines("customer-1")
        assert len(lines) == 1
        assert lines[0].quantity == 5

    def test_invalid_quantity(self, carts):
        with pytest.raises(ValidationError):
            carts.add_line("customer-1", "SKU-1", "Notebook", "10.00", 0)

    @pytest.mark.asyncio
    async def test_snapshot_is_immutable_copy(self, carts):
        carts.add_line("customer-1", "SKU-1", "Notebook", "10.00", 2)

        snapshot = await carts.get_snapshot("customer-1")
        carts.add_line("customer-1", "SKU-2", "Lamp", "5.00", 1)

        assert len(snapshot.lines) == 1
        assert snapshot.total == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_missing_cart(self, carts):
        with pytest.raises(CartNotFoundError):
            await carts.get_snapshot("nobody")

    @pytest.mark.asyncio
    async def test_clear_is_idempotent(self, carts):
        carts.add_line("customer-1", "SKU-1", "Notebook", "10.00", 2)

        await carts.clear("customer-1")
        await carts.clear("customer-1")

        assert carts.lines("customer-1") == []
        with pytest.raises(CartNotFoundError):
            await carts.get_snapshot("customer-1")

"""Tests for the server-side Cart Service"""
from decimal import Decimal

import pytest

from teashop.errors import (
    CartItemNotFound,
    Forbidden,
    InvalidQuantity,
    InvalidRequest,
    ProductNotFound,
    ProductOutOfStock,
    QuantityOutOfBounds,
    QuantityStepViolation,
)
from teashop.services.models import Unit


class TestAddItem:
    @pytest.mark.asyncio
    async def test_prices_line_from_stored_product(self, cart_service, cart_repo):
        record = await cart_service.add_item("u1", "p1", 0.5, "kg")

        assert record.server_id == "c1"
        assert record.user_id == "u1"
        assert record.unit_price_at_time == Decimal("200")
        assert record.total_price_at_time == Decimal("100.00")
        assert len(cart_repo.rows) == 1

    @pytest.mark.asyncio
    async def test_same_key_grows_existing_line(self, cart_service, cart_repo):
        first = await cart_service.add_item("u1", "p1", 0.5)
        second = await cart_service.add_item("u1", "p1", 0.5)

        assert second.server_id == first.server_id
        assert second.quantity == 1.0
        assert second.total_price_at_time == Decimal("200.00")
        assert [(r.server_id, r.quantity) for r in cart_repo.rows] == [("c1", 1.0)]

    @pytest.mark.asyncio
    async def test_other_unit_or_user_gets_own_line(self, cart_service, cart_repo):
        await cart_service.add_item("u1", "p1", 0.5, "kg")
        await cart_service.add_item("u1", "p1", 1, "piece")
        await cart_service.add_item("u2", "p1", 0.5, "kg")
        assert len(cart_repo.rows) == 3

    @pytest.mark.asyncio
    async def test_grown_quantity_must_stay_within_bounds(self, cart_service, cart_repo):
        await cart_service.add_item("u1", "p1", 4.5)

        with pytest.raises(QuantityOutOfBounds):
            await cart_service.add_item("u1", "p1", 1)
        assert [r.quantity for r in cart_repo.rows] == [4.5]

    @pytest.mark.asyncio
    async def test_grown_line_keeps_unit_price_snapshot(self, cart_service, cart_repo):
        await cart_service.add_item("u1", "p1", 0.5)
        cart_repo.rows[0].unit_price_at_time = Decimal("180")

        record = await cart_service.add_item("u1", "p1", 0.5)

        assert record.total_price_at_time == Decimal("180.00")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "quantity,error",
        [
            (0, InvalidQuantity),
            ("abc", InvalidQuantity),
            (0.25, QuantityOutOfBounds),
            (6, QuantityOutOfBounds),
            (0.7, QuantityStepViolation),
        ],
    )
    async def test_rejects_bad_quantities(self, cart_service, cart_repo, quantity, error):
        with pytest.raises(error):
            await cart_service.add_item("u1", "p1", quantity, "kg")
        assert cart_repo.rows == []

    @pytest.mark.asyncio
    async def test_unknown_product(self, cart_service):
        with pytest.raises(ProductNotFound):
            await cart_service.add_item("u1", "nope", 1)

    @pytest.mark.asyncio
    async def test_out_of_stock(self, cart_service):
        with pytest.raises(ProductOutOfStock):
            await cart_service.add_item("u1", "p3", 1)

    @pytest.mark.asyncio
    async def test_missing_product_id(self, cart_service):
        with pytest.raises(InvalidRequest):
            await cart_service.add_item("u1", None, 1)


class TestMergeItems:
    @pytest.mark.asyncio
    async def test_new_line_is_clamped_and_snapped(self, cart_service):
        merged = await cart_service.merge_items("u1", [{"productId": "p1", "quantity": 0.7, "unit": "kg"}])

        assert len(merged) == 1
        assert merged[0].quantity == 0.5
        assert merged[0].total_price_at_time == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_sums_into_existing_line_and_clamps_to_max(self, cart_service):
        await cart_service.add_item("u1", "p1", 4.5, "kg")

        merged = await cart_service.merge_items("u1", [{"productId": "p1", "quantity": 1.5, "unit": "kg"}])

        assert [(line.quantity, line.total_price_at_time) for line in merged] == [(5.0, Decimal("1000.00"))]

    @pytest.mark.asyncio
    async def test_invalid_entries_and_unknown_products_are_skipped(self, cart_service):
        merged = await cart_service.merge_items("u1", [
            {"productId": "p1", "quantity": -1},
            {"productId": "", "quantity": 1},
            {"quantity": 1},
            "junk",
            {"productId": "ghost", "quantity": 1},
            {"productId": "p2", "quantity": 2, "unit": "piece"},
        ])

        assert [(line.product_id, line.unit) for line in merged] == [("p2", Unit.PIECE)]
        assert merged[0].total_price_at_time == Decimal("71.00")

    @pytest.mark.asyncio
    async def test_lines_of_other_users_are_untouched(self, cart_service):
        await cart_service.add_item("u2", "p1", 1, "kg")

        merged = await cart_service.merge_items("u1", [{"productId": "p1", "quantity": 1, "unit": "kg"}])

        assert [line.user_id for line in merged] == ["u1"]
        assert [line.quantity for line in await cart_service.list_items("u2")] == [1.0]


class TestDeleteItem:
    @pytest.mark.asyncio
    async def test_delete_own_line(self, cart_service, cart_repo):
        record = await cart_service.add_item("u1", "p1", 1)
        await cart_service.delete_item("u1", record.server_id)
        assert cart_repo.rows == []

    @pytest.mark.asyncio
    async def test_missing_line(self, cart_service):
        with pytest.raises(CartItemNotFound):
            await cart_service.delete_item("u1", "c404")

    @pytest.mark.asyncio
    async def test_other_users_line(self, cart_service, cart_repo):
        record = await cart_service.add_item("u2", "p1", 1)
        with pytest.raises(Forbidden):
            await cart_service.delete_item("u1", record.server_id)
        assert len(cart_repo.rows) == 1


class TestCreateOrder:
    @pytest.mark.asyncio
    async def test_recomputes_prices(self, cart_service, order_repo):
        order = await cart_service.create_order(
            "u1",
            [
                {"productId": "p1", "quantity": 0.5, "unit": "kg", "totalPriceAtTime": 1},
                {"productId": "p2", "quantity": 3, "unit": "piece"},
            ],
            payment_method="cash",
        )

        assert [line.total_price for line in order.items] == [Decimal("100.00"), Decimal("106.50")]
        assert order.total == Decimal("206.50")
        assert order.payment_method == "cash"
        assert order_repo.orders == [order]

    @pytest.mark.asyncio
    async def test_empty_order(self, cart_service):
        with pytest.raises(InvalidRequest):
            await cart_service.create_order("u1", [])

    @pytest.mark.asyncio
    async def test_unknown_product(self, cart_service):
        with pytest.raises(ProductNotFound):
            await cart_service.create_order("u1", [{"productId": "ghost", "quantity": 1}])

    @pytest.mark.asyncio
    async def test_invalid_quantity(self, cart_service):
        with pytest.raises(InvalidQuantity):
            await cart_service.create_order("u1", [{"productId": "p1", "quantity": -2}])

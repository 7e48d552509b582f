"""Tests for the order placement pipeline."""

import threading

import pytest

from marketcore.errors import (
    InsufficientStockError,
    InvalidInputError,
    ProductNotFoundError,
    UserNotFoundError,
)
from marketcore.events import OrderPlaced
from marketcore.models import GuestBuyer, RegisteredBuyer

from .conftest import stock_of


class TestPlaceOrder:
    def test_single_line_order(self, market, seed):
        result = market.placement.place_order(
            RegisteredBuyer(seed.buyer), [{"product_id": seed.tomatoes, "quantity": 3}]
        )
        order = result.order

        assert order.total_amount == 4500
        assert order.status == "pending"
        assert order.payment_status == "pending"
        assert order.buyer_id == seed.buyer
        assert [(i.product_id, i.quantity, i.unit_price) for i in order.items] == [
            (seed.tomatoes, 3, 1500)
        ]
        assert stock_of(market, seed.tomatoes) == 2

        inbox = market.channel.list_for(seed.seller)
        assert len(inbox) == 1
        assert inbox[0].order_id == order.id
        assert inbox[0].sender_id == seed.buyer

    def test_order_is_persisted(self, market, seed):
        order = market.placement.place_order(
            RegisteredBuyer(seed.buyer), [{"product_id": seed.avocados, "quantity": 2}]
        ).order

        stored = market.ledger.get_order(order.id)
        assert stored.total_amount == 600
        assert stored.items == order.items

    def test_total_matches_line_items(self, market, seed):
        order = market.placement.place_order(
            RegisteredBuyer(seed.buyer),
            [
                {"product_id": seed.tomatoes, "quantity": 2},
                {"product_id": seed.avocados, "quantity": 4},
                {"product_id": seed.potatoes, "quantity": 5},
            ],
        ).order

        assert order.total_amount == sum(i.quantity * i.unit_price for i in order.items)
        assert order.total_amount == 2 * 1500 + 4 * 300 + 5 * 600

    def test_total_frozen_after_price_change(self, market, seed):
        order = market.placement.place_order(
            RegisteredBuyer(seed.buyer), [{"product_id": seed.tomatoes, "quantity": 3}]
        ).order

        market.catalog.update_product(seed.tomatoes, price=9999)

        stored = market.ledger.get_order(order.id)
        assert stored.total_amount == 4500
        assert stored.items[0].unit_price == 1500

    def test_stock_delta_equals_ordered_quantity(self, market, seed):
        ids = [seed.tomatoes, seed.avocados, seed.potatoes]
        before = sum(stock_of(market, pid) for pid in ids)

        market.placement.place_order(
            RegisteredBuyer(seed.buyer),
            [
                {"product_id": seed.tomatoes, "quantity": 1},
                {"product_id": seed.avocados, "quantity": 3},
                {"product_id": seed.potatoes, "quantity": 7},
            ],
        )

        after = sum(stock_of(market, pid) for pid in ids)
        assert before - after == 11

    def test_guest_order(self, market, seed):
        contact = {"name": "Walk-in", "phone": "0788123456"}
        order = market.placement.place_order(
            GuestBuyer(contact=contact), [{"product_id": seed.potatoes, "quantity": 1}]
        ).order

        assert order.buyer_id is None
        assert order.buyer.contact == contact
        notice = market.channel.list_for(seed.other_seller)[0]
        assert notice.sender_id is None
        assert notice.order_id == order.id


class TestPlaceOrderFailures:
    def test_insufficient_stock_leaves_no_trace(self, market, seed):
        with pytest.raises(InsufficientStockError) as exc_info:
            market.placement.place_order(
                RegisteredBuyer(seed.buyer), [{"product_id": seed.tomatoes, "quantity": 10}]
            )

        assert exc_info.value.available == 5
        assert exc_info.value.product_name == "Tomatoes"
        assert stock_of(market, seed.tomatoes) == 5
        assert market.ledger.list_orders(seed.buyer).total == 0
        assert market.channel.list_for(seed.seller) == []

    def test_failure_on_later_line_rolls_back_earlier_lines(self, market, seed):
        with pytest.raises(InsufficientStockError):
            market.placement.place_order(
                RegisteredBuyer(seed.buyer),
                [
                    {"product_id": seed.avocados, "quantity": 2},
                    {"product_id": seed.potatoes, "quantity": 21},
                ],
            )

        assert stock_of(market, seed.avocados) == 10
        assert stock_of(market, seed.potatoes) == 20

    def test_unknown_product_is_named(self, market, seed):
        with pytest.raises(ProductNotFoundError) as exc_info:
            market.placement.place_order(
                RegisteredBuyer(seed.buyer),
                [
                    {"product_id": seed.tomatoes, "quantity": 1},
                    {"product_id": 404, "quantity": 1},
                ],
            )

        assert exc_info.value.product_id == 404
        assert stock_of(market, seed.tomatoes) == 5

    def test_repeated_product_counts_cumulatively(self, market, seed):
        with pytest.raises(InsufficientStockError):
            market.placement.place_order(
                RegisteredBuyer(seed.buyer),
                [
                    {"product_id": seed.tomatoes, "quantity": 3},
                    {"product_id": seed.tomatoes, "quantity": 3},
                ],
            )

        assert stock_of(market, seed.tomatoes) == 5

    def test_empty_cart(self, market, seed):
        with pytest.raises(InvalidInputError) as exc_info:
            market.placement.place_order(RegisteredBuyer(seed.buyer), [])
        assert exc_info.value.kind == "invalid_input"

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "2", None])
    def test_bad_quantity(self, market, seed, quantity):
        with pytest.raises(InvalidInputError):
            market.placement.place_order(
                RegisteredBuyer(seed.buyer), [{"product_id": seed.tomatoes, "quantity": quantity}]
            )

    @pytest.mark.parametrize(
        "items",
        [
            [None],
            [("x", 1)],
            [[1, 2]],
            {"product_id": 1, "quantity": 1},
            "1:3",
        ],
    )
    def test_malformed_cart_shape(self, market, seed, items):
        with pytest.raises(InvalidInputError) as exc_info:
            market.placement.place_order(RegisteredBuyer(seed.buyer), items)

        assert exc_info.value.kind == "invalid_input"
        assert stock_of(market, seed.tomatoes) == 5

    def test_unknown_buyer(self, market, seed):
        with pytest.raises(UserNotFoundError):
            market.placement.place_order(
                RegisteredBuyer(999), [{"product_id": seed.tomatoes, "quantity": 1}]
            )
        assert stock_of(market, seed.tomatoes) == 5


class TestFanOut:
    def test_one_notice_per_seller(self, market, seed):
        order = market.placement.place_order(
            RegisteredBuyer(seed.buyer),
            [
                {"product_id": seed.tomatoes, "quantity": 2},
                {"product_id": seed.avocados, "quantity": 1},
                {"product_id": seed.potatoes, "quantity": 4},
            ],
        ).order

        seller_inbox = market.channel.list_for(seed.seller)
        other_inbox = market.channel.list_for(seed.other_seller)
        assert len(seller_inbox) == 1
        assert len(other_inbox) == 1

        content = seller_inbox[0].content
        assert content.startswith(f"New order #{order.id} received!")
        assert "Tomatoes (2 x 1500 RWF)" in content
        assert "Avocados (1 x 300 RWF)" in content
        assert "Total: 3,300 RWF" in content
        assert "Irish Potatoes" not in content

        assert "Total: 2,400 RWF" in other_inbox[0].content

    def test_fan_out_failure_keeps_order(self, market, seed):
        def broken(event):
            raise RuntimeError("mail relay down")

        market.bus.subscribe(OrderPlaced, broken)

        result = market.placement.place_order(
            RegisteredBuyer(seed.buyer), [{"product_id": seed.tomatoes, "quantity": 1}]
        )

        assert not result.fan_out.ok
        assert result.fan_out.failures[0].handler.endswith("broken")
        assert market.ledger.get_order(result.order.id).status == "pending"
        assert stock_of(market, seed.tomatoes) == 4
        # the built-in notifier still ran
        assert result.fan_out.delivered == 1


class TestConcurrentPlacement:
    def _race(self, market, buyer_id, product_id, quantities):
        barrier = threading.Barrier(len(quantities))
        outcomes = []
        lock = threading.Lock()

        def place(quantity):
            barrier.wait()
            try:
                market.placement.place_order(
                    RegisteredBuyer(buyer_id), [{"product_id": product_id, "quantity": quantity}]
                )
                outcome = "ok"
            except InsufficientStockError:
                outcome = "short"
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=place, args=(q,)) for q in quantities]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return sorted(outcomes)

    def test_last_unit_sold_once(self, market, seed):
        with market.store.transaction() as state:
            state.products[seed.tomatoes].stock = 1

        outcomes = self._race(market, seed.buyer, seed.tomatoes, [1, 1])

        assert outcomes == ["ok", "short"]
        assert stock_of(market, seed.tomatoes) == 0
        assert market.ledger.list_orders(seed.buyer).total == 1

    def test_combined_demand_within_stock_all_succeed(self, market, seed):
        outcomes = self._race(market, seed.buyer, seed.potatoes, [5, 5, 5, 5])

        assert outcomes == ["ok"] * 4
        assert stock_of(market, seed.potatoes) == 0

    def test_stock_never_negative_under_contention(self, market, seed):
        outcomes = self._race(market, seed.buyer, seed.avocados, [3] * 6)

        assert outcomes.count("ok") == 3
        assert stock_of(market, seed.avocados) == 1

"""Tests for model serialization at the storage boundary."""

import pytest

from marketcore.errors import CorruptRecordError
from marketcore.models import (
    GuestBuyer,
    LineItem,
    Order,
    RegisteredBuyer,
    paginate,
)


class TestLineItem:
    def test_subtotal(self):
        assert LineItem(product_id=1, quantity=3, unit_price=1500).subtotal == 4500

    @pytest.mark.parametrize(
        "data",
        [
            {"product_id": "1", "quantity": 1, "unit_price": 10},
            {"product_id": 1, "quantity": 0, "unit_price": 10},
            {"product_id": 1, "quantity": 2.5, "unit_price": 10},
            {"product_id": 1, "quantity": 1, "unit_price": -1},
            {"product_id": 1, "quantity": True, "unit_price": 10},
            {"product_id": 1, "quantity": 1},
            ["not", "a", "dict"],
        ],
    )
    def test_from_dict_rejects_malformed(self, data):
        with pytest.raises(CorruptRecordError):
            LineItem.from_dict(data)


class TestOrder:
    def test_total_is_sum_of_line_items(self):
        items = [
            LineItem(product_id=1, quantity=3, unit_price=1500),
            LineItem(product_id=2, quantity=2, unit_price=300),
        ]
        order = Order.create(1, RegisteredBuyer(buyer_id=4), items)

        assert order.total_amount == 5100
        assert order.status == "pending"
        assert order.payment_status == "pending"

    def test_registered_buyer_serialization(self):
        order = Order.create(1, RegisteredBuyer(buyer_id=4), [LineItem(1, 1, 10)])
        data = order.to_dict()

        assert data["buyer_id"] == 4
        assert data["buyer_info"] is None
        assert Order.from_dict(data).buyer == RegisteredBuyer(buyer_id=4)

    def test_guest_buyer_serialization(self):
        contact = {"name": "Guest", "phone": "0788000000"}
        order = Order.create(1, GuestBuyer(contact=contact), [LineItem(1, 1, 10)])
        data = order.to_dict()

        assert data["buyer_id"] is None
        assert data["buyer_info"] == contact
        restored = Order.from_dict(data)
        assert restored.is_guest
        assert restored.buyer_id is None
        assert restored.buyer.contact == contact

    def test_order_without_items_is_corrupt(self):
        data = Order.create(1, RegisteredBuyer(buyer_id=4), [LineItem(1, 1, 10)]).to_dict()
        data["items"] = []

        with pytest.raises(CorruptRecordError):
            Order.from_dict(data)

    def test_unknown_status_is_corrupt(self):
        data = Order.create(1, RegisteredBuyer(buyer_id=4), [LineItem(1, 1, 10)]).to_dict()
        data["status"] = "lost"

        with pytest.raises(CorruptRecordError):
            Order.from_dict(data)

    @pytest.mark.parametrize("total", [11, 0, None, "10"])
    def test_total_not_matching_items_is_corrupt(self, total):
        data = Order.create(1, RegisteredBuyer(buyer_id=4), [LineItem(1, 1, 10)]).to_dict()
        data["total_amount"] = total

        with pytest.raises(CorruptRecordError):
            Order.from_dict(data)

    def test_fractional_total_loads(self):
        items = [LineItem(1, 3, 0.1), LineItem(2, 1, 0.2)]
        data = Order.create(1, RegisteredBuyer(buyer_id=4), items).to_dict()

        assert Order.from_dict(data).total_amount == pytest.approx(0.5)


class TestPaginate:
    def test_second_page(self):
        page = paginate(list(range(25)), page=2, limit=10)

        assert page.items == list(range(10, 20))
        assert page.pagination() == {"total": 25, "page": 2, "pages": 3, "limit": 10}

    def test_page_past_end_is_empty(self):
        page = paginate([1, 2, 3], page=5, limit=10)

        assert page.items == []
        assert page.pages == 1

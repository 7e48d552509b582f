"""Tests for the mock payment service."""

import re

import pytest

from marketcore.errors import InvalidInputError, OrderNotFoundError, UnauthorizedError
from marketcore.models import RegisteredBuyer


@pytest.fixture
def order(market, seed):
    return market.placement.place_order(
        RegisteredBuyer(seed.buyer), [{"product_id": seed.tomatoes, "quantity": 2}]
    ).order


class TestPay:
    def test_pay_settles_order(self, market, seed, order):
        payment = market.payments.pay(order.id, seed.buyer, "mtn_momo")

        assert payment.amount == 3000
        assert payment.status == "completed"
        assert re.fullmatch(r"mock_txn_\d+_[a-z0-9]{9}", payment.transaction_id)
        assert market.ledger.get_order(order.id).payment_status == "paid"

    def test_second_payment_refused(self, market, seed, order):
        market.payments.pay(order.id, seed.buyer, "mtn_momo")

        with pytest.raises(InvalidInputError, match="already paid"):
            market.payments.pay(order.id, seed.buyer, "airtel_money")

    def test_other_buyer_cannot_pay(self, market, seed, order):
        with pytest.raises(UnauthorizedError):
            market.payments.pay(order.id, seed.stranger, "mtn_momo")
        assert market.ledger.get_order(order.id).payment_status == "pending"

    def test_unknown_method(self, market, seed, order):
        with pytest.raises(InvalidInputError):
            market.payments.pay(order.id, seed.buyer, "cash")

    def test_unknown_order(self, market, seed):
        with pytest.raises(OrderNotFoundError):
            market.payments.pay(999, seed.buyer, "mtn_momo")

    def test_payment_leaves_order_status_alone(self, market, seed, order):
        market.payments.pay(order.id, seed.buyer, "credit_card")

        assert market.ledger.get_order(order.id).status == "pending"


class TestListPayments:
    def test_newest_first_with_pagination(self, market, seed):
        ids = []
        for _ in range(3):
            placed = market.placement.place_order(
                RegisteredBuyer(seed.buyer), [{"product_id": seed.potatoes, "quantity": 1}]
            ).order
            ids.append(market.payments.pay(placed.id, seed.buyer, "mtn_momo").id)

        page = market.payments.list_payments(seed.buyer, page=1, limit=2)

        assert [p.id for p in page.items] == [ids[2], ids[1]]
        assert page.pagination() == {"total": 3, "page": 1, "pages": 2, "limit": 2}
        assert market.payments.list_payments(seed.stranger).total == 0

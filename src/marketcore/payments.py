"""Mock payment collaborator. Settles instantly; no gateway is called."""

import logging
import secrets
import string
import time

from .errors import InvalidInputError, UnauthorizedError
from .ledger import get_order
from .market_store import MarketStore
from .models import PAYMENT_METHODS, PAYMENT_PAID, Page, Payment, _utc_now, paginate

logger = logging.getLogger(__name__)

_TXN_ALPHABET = string.ascii_lowercase + string.digits


def _mock_transaction_id() -> str:
    suffix = "".join(secrets.choice(_TXN_ALPHABET) for _ in range(9))
    return f"mock_txn_{int(time.time() * 1000)}_{suffix}"


class PaymentService:
    """Records settlements and owns the order's payment status."""

    def __init__(self, store: MarketStore):
        self.store = store

    def pay(self, order_id: int, buyer_id: int, method: str) -> Payment:
        """
        Settle an order in full.

        Raises:
            InvalidInputError: If the method is unknown or the order is already paid.
            OrderNotFoundError: If the order doesn't exist.
            UnauthorizedError: If the order isn't the buyer's.
        """
        if method not in PAYMENT_METHODS:
            raise InvalidInputError("Valid payment method is required", field="method")

        with self.store.transaction() as state:
            order = get_order(state, order_id)
            if order.buyer_id != buyer_id:
                raise UnauthorizedError("Access denied")
            if order.payment_status == PAYMENT_PAID:
                raise InvalidInputError("Order already paid", field="order_id")

            payment = Payment(
                id=state.next_id("payments"),
                order_id=order.id,
                amount=order.total_amount,
                method=method,
                status="completed",
                transaction_id=_mock_transaction_id(),
                created_at=_utc_now(),
            )
            state.payments[payment.id] = payment
            order.payment_status = PAYMENT_PAID
            order.updated_at = _utc_now()

        logger.info("Order %s paid via %s (%s)", order_id, method, payment.transaction_id)
        return payment

    def list_payments(self, buyer_id: int, page: int = 1, limit: int = 10) -> Page:
        """Payments against the buyer's orders, newest first."""
        state = self.store.snapshot()
        order_ids = {o.id for o in state.orders.values() if o.buyer_id == buyer_id}
        payments = sorted(
            (p for p in state.payments.values() if p.order_id in order_ids),
            key=lambda p: p.id,
            reverse=True,
        )
        return paginate(payments, page=page, limit=limit)

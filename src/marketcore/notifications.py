"""Notification channel: messages between parties, plus seller order notices."""

import logging
from collections import OrderedDict

from .accounts import get_user
from .catalog import get_product
from .errors import InvalidInputError, MessageNotFoundError
from .events import OrderPlaced
from .ledger import get_order
from .market_store import MarketState, MarketStore
from .models import Message, _utc_now

logger = logging.getLogger(__name__)


def format_amount(amount: float) -> str:
    """Render an amount with thousands separators, dropping a zero fraction."""
    if float(amount).is_integer():
        return f"{int(amount):,}"
    return f"{amount:,.2f}"


def format_price(amount: float) -> str:
    """Render a unit price as entered, without separators."""
    if float(amount).is_integer():
        return str(int(amount))
    return f"{amount:g}"


def get_message(state: MarketState, message_id: int) -> Message:
    message = state.messages.get(message_id)
    if message is None:
        raise MessageNotFoundError(message_id)
    return message


def record_message(
    state: MarketState,
    sender_id: int | None,
    receiver_id: int,
    content: str,
    product_id: int | None = None,
    order_id: int | None = None,
) -> Message:
    """Append a message inside a transaction."""
    message = Message(
        id=state.next_id("messages"),
        sender_id=sender_id,
        receiver_id=receiver_id,
        content=content,
        product_id=product_id,
        order_id=order_id,
        is_read=False,
        created_at=_utc_now(),
    )
    state.messages[message.id] = message
    return message


class NotificationChannel:
    """Append-only message log with read tracking."""

    def __init__(self, store: MarketStore):
        self.store = store

    def send(
        self,
        sender_id: int | None,
        receiver_id: int,
        content: str,
        product_id: int | None = None,
        order_id: int | None = None,
    ) -> Message:
        """
        Send a message.

        Raises:
            InvalidInputError: If content is blank.
            UserNotFoundError: If the receiver doesn't exist.
            ProductNotFoundError / OrderNotFoundError: If a tag points nowhere.
        """
        content = (content or "").strip()
        if not content:
            raise InvalidInputError("Message content is required", field="content")

        with self.store.transaction() as state:
            get_user(state, receiver_id)
            if sender_id is not None:
                get_user(state, sender_id)
            if product_id is not None:
                get_product(state, product_id)
            if order_id is not None:
                get_order(state, order_id)
            message = record_message(state, sender_id, receiver_id, content, product_id, order_id)
        return message

    def get(self, message_id: int) -> Message:
        return get_message(self.store.snapshot(), message_id)

    def list_for(self, user_id: int) -> list[Message]:
        """Messages sent or received by the user, newest first."""
        state = self.store.snapshot()
        messages = [
            m for m in state.messages.values() if user_id in (m.sender_id, m.receiver_id)
        ]
        return sorted(messages, key=lambda m: m.id, reverse=True)

    def conversation(self, user_a: int, user_b: int, product_id: int | None = None) -> list[Message]:
        """Messages between two users in both directions, oldest first."""
        state = self.store.snapshot()
        pair = {(user_a, user_b), (user_b, user_a)}
        messages = [
            m
            for m in state.messages.values()
            if (m.sender_id, m.receiver_id) in pair
            and (product_id is None or m.product_id == product_id)
        ]
        return sorted(messages, key=lambda m: m.id)

    def mark_read(self, from_user_id: int, to_user_id: int) -> int:
        """Flip every unread message from one user to another. Returns the count."""
        count = 0
        with self.store.transaction() as state:
            for m in state.messages.values():
                if m.sender_id == from_user_id and m.receiver_id == to_user_id and not m.is_read:
                    m.is_read = True
                    count += 1
        return count

    def unread_count(self, user_id: int) -> int:
        state = self.store.snapshot()
        return sum(1 for m in state.messages.values() if m.receiver_id == user_id and not m.is_read)


class OrderNotifier:
    """
    Consumes OrderPlaced and sends one summary per seller in the order.

    Subscribed to the event bus, so it runs after the order has committed.
    """

    def __init__(self, store: MarketStore, currency: str = "RWF"):
        self.store = store
        self.currency = currency

    def __call__(self, event: OrderPlaced) -> list[Message]:
        return self.notify_sellers(event.order_id)

    def notify_sellers(self, order_id: int) -> list[Message]:
        sent = []
        with self.store.transaction() as state:
            order = get_order(state, order_id)

            # seller_id -> [(name, quantity, unit_price)], in line-item order
            by_seller: OrderedDict[int, list[tuple[str, int, float]]] = OrderedDict()
            for item in order.items:
                product = state.products.get(item.product_id)
                if product is None:
                    logger.warning("Order %s: product %s vanished before fan-out", order.id, item.product_id)
                    continue
                by_seller.setdefault(product.seller_id, []).append(
                    (product.name, item.quantity, item.unit_price)
                )

            for seller_id, lines in by_seller.items():
                content = self._summary(order.id, lines)
                sent.append(
                    record_message(state, order.buyer_id, seller_id, content, order_id=order.id)
                )

        logger.info("Order %s: notified %d seller(s)", order_id, len(sent))
        return sent

    def _summary(self, order_id: int, lines: list[tuple[str, int, float]]) -> str:
        product_list = ", ".join(
            f"{name} ({quantity} x {format_price(price)} {self.currency})"
            for name, quantity, price in lines
        )
        subtotal = sum(quantity * price for _, quantity, price in lines)
        return (
            f"New order #{order_id} received!\n"
            f"Products: {product_list}\n"
            f"Total: {format_amount(subtotal)} {self.currency}\n"
            "Please approve or reject this order."
        )

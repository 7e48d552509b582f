"""Order placement pipeline: validate a cart, commit stock and order together, notify."""

import logging
from dataclasses import dataclass
from typing import Any, Sequence

from .accounts import get_user
from .catalog import adjust_stock, get_product
from .errors import InvalidInputError
from .events import EventBus, OrderPlaced, PublishResult
from .ledger import insert_order
from .market_store import MarketStore
from .models import Buyer, GuestBuyer, LineItem, Order, RegisteredBuyer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartLine:
    """One requested product and quantity."""

    product_id: int
    quantity: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartLine":
        if not isinstance(data, dict):
            raise InvalidInputError("Invalid product data", field="items")
        product_id = data.get("product_id")
        quantity = data.get("quantity")
        if isinstance(product_id, bool) or not isinstance(product_id, int) or product_id <= 0:
            raise InvalidInputError("Invalid product data", field="product_id")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidInputError("Invalid product data", field="quantity")
        return cls(product_id=product_id, quantity=quantity)


@dataclass
class PlacementResult:
    """The committed order and the outcome of the post-commit fan-out."""

    order: Order
    fan_out: PublishResult


def parse_cart(items: Sequence[CartLine | dict[str, Any]] | None) -> list[CartLine]:
    """
    Normalize and validate a cart before anything is touched.

    Raises:
        InvalidInputError: If the cart is empty or any line is malformed.
    """
    if items is not None and not isinstance(items, (list, tuple)):
        raise InvalidInputError("Products must be a list", field="items")
    lines = [i if isinstance(i, CartLine) else CartLine.from_dict(i) for i in (items or [])]
    if not lines:
        raise InvalidInputError("At least one product is required", field="items")
    return lines


class OrderPlacement:
    """Places orders atomically against the catalog."""

    def __init__(self, store: MarketStore, bus: EventBus):
        self.store = store
        self.bus = bus

    def place_order(self, buyer: Buyer, items: Sequence[CartLine | dict[str, Any]]) -> PlacementResult:
        """
        Place an order for a registered buyer or a guest.

        Stock checks, price capture, decrements and the order insert all run
        in one store transaction, so a failure on any line leaves every
        product's stock as it was. Seller notification happens after commit
        and cannot undo the order.

        Raises:
            InvalidInputError: If the cart is empty or malformed.
            UserNotFoundError: If a registered buyer doesn't exist.
            ProductNotFoundError: If a product id doesn't resolve.
            InsufficientStockError: If a line asks for more than is in stock.
        """
        lines = parse_cart(items)
        if isinstance(buyer, GuestBuyer) and not isinstance(buyer.contact, dict):
            raise InvalidInputError("Guest contact details must be an object", field="buyer_info")

        with self.store.transaction() as state:
            if isinstance(buyer, RegisteredBuyer):
                get_user(state, buyer.buyer_id)

            line_items = []
            for line in lines:
                product = get_product(state, line.product_id)
                # price is frozen before the decrement so the order keeps it
                unit_price = product.price
                adjust_stock(state, product.id, -line.quantity)
                line_items.append(
                    LineItem(product_id=product.id, quantity=line.quantity, unit_price=unit_price)
                )

            order = insert_order(state, buyer, line_items)

        logger.info(
            "Order %s placed by %s: %d line(s), total %s",
            order.id,
            f"buyer {order.buyer_id}" if order.buyer_id is not None else "guest",
            len(order.items),
            order.total_amount,
        )

        fan_out = self.bus.publish(OrderPlaced(order_id=order.id, buyer_id=order.buyer_id))
        if not fan_out.ok:
            logger.error("Order %s committed but seller notification failed", order.id)
        return PlacementResult(order=order, fan_out=fan_out)

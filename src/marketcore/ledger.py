"""Order ledger: order records and the views over them."""

from typing import Any

from .errors import OrderNotFoundError, UnauthorizedError
from .market_store import MarketState, MarketStore
from .models import Buyer, Caller, LineItem, Order, Page, paginate


def get_order(state: MarketState, order_id: int) -> Order:
    """
    Look up an order inside a transaction or snapshot.

    Raises:
        OrderNotFoundError: If the order doesn't exist.
    """
    order = state.orders.get(order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


def insert_order(state: MarketState, buyer: Buyer, items: list[LineItem]) -> Order:
    """Create and store a pending order inside a transaction."""
    order = Order.create(state.next_id("orders"), buyer, items)
    state.orders[order.id] = order
    return order


def seller_product_ids(state: MarketState, seller_id: int) -> set[int]:
    return {p.id for p in state.products.values() if p.seller_id == seller_id}


def seller_owns_items(state: MarketState, order: Order, seller_id: int) -> bool:
    """True if at least one line item's product belongs to the seller."""
    owned = seller_product_ids(state, seller_id)
    return any(pid in owned for pid in order.product_ids())


def describe_order(state: MarketState, order: Order) -> dict[str, Any]:
    """
    Order as a dict with live product summaries next to each frozen line item.

    A product deleted since the order was placed shows as None.
    """
    data = order.to_dict()
    items = []
    for item in order.items:
        entry = item.to_dict()
        product = state.products.get(item.product_id)
        entry["product"] = (
            {"id": product.id, "name": product.name, "price": product.price} if product else None
        )
        items.append(entry)
    data["items"] = items
    return data


def _newest_first(orders) -> list[Order]:
    return sorted(orders, key=lambda o: o.id, reverse=True)


class OrderLedger:
    """Read side of the order records."""

    def __init__(self, store: MarketStore):
        self.store = store

    def get_order(self, order_id: int) -> Order:
        return get_order(self.store.snapshot(), order_id)

    def list_orders(self, buyer_id: int, page: int = 1, limit: int = 10) -> Page:
        """A buyer's orders, newest first, one page at a time."""
        state = self.store.snapshot()
        orders = _newest_first(o for o in state.orders.values() if o.buyer_id == buyer_id)
        return paginate(orders, page=page, limit=limit)

    def list_seller_orders(self, caller: Caller) -> list[Order]:
        """
        Orders containing at least one of the seller's products, newest first.

        Raises:
            UnauthorizedError: If the caller isn't a seller.
        """
        if not caller.is_seller:
            raise UnauthorizedError("Access denied")

        state = self.store.snapshot()
        owned = seller_product_ids(state, caller.user_id)
        if not owned:
            return []
        return _newest_first(
            o for o in state.orders.values() if any(pid in owned for pid in o.product_ids())
        )

    def describe(self, orders: list[Order]) -> list[dict[str, Any]]:
        state = self.store.snapshot()
        return [describe_order(state, o) for o in orders]

"""Catalog store: products and their stock counters."""

import logging

from .accounts import get_user
from .errors import InsufficientStockError, InvalidInputError, ProductNotFoundError, UnauthorizedError
from .market_store import MarketState, MarketStore
from .models import PRODUCT_UNITS, ROLE_ADMIN, ROLE_SELLER, Product, _utc_now

logger = logging.getLogger(__name__)


def get_product(state: MarketState, product_id: int) -> Product:
    """
    Look up a product inside a transaction or snapshot.

    Raises:
        ProductNotFoundError: If the product doesn't exist.
    """
    product = state.products.get(product_id)
    if product is None:
        raise ProductNotFoundError(product_id)
    return product


def adjust_stock(state: MarketState, product_id: int, delta: int) -> Product:
    """
    Apply a stock delta to a product within a transaction.

    This is the only place stock is written. A delta that would take
    the counter below zero fails and leaves the product untouched.

    Raises:
        ProductNotFoundError: If the product doesn't exist.
        InsufficientStockError: If stock + delta < 0.
    """
    product = get_product(state, product_id)
    new_stock = product.stock + delta
    if new_stock < 0:
        raise InsufficientStockError(product.id, product.name, product.stock, -delta)
    product.stock = new_stock
    product.updated_at = _utc_now()
    return product


def _validate_product_fields(name: str | None, price: float | None, unit: str | None) -> None:
    if name is not None and len(name.strip()) < 2:
        raise InvalidInputError("Product name must be at least 2 characters", field="name")
    if price is not None and (isinstance(price, bool) or not isinstance(price, (int, float)) or price <= 0):
        raise InvalidInputError("Valid price is required", field="price")
    if unit is not None and unit not in PRODUCT_UNITS:
        raise InvalidInputError(f"Unit must be one of: {', '.join(PRODUCT_UNITS)}", field="unit")


class Catalog:
    """Product registration and lookup."""

    def __init__(self, store: MarketStore):
        self.store = store

    def add_product(
        self,
        seller_id: int,
        name: str,
        price: float,
        stock: int = 0,
        unit: str = "kg",
        description: str | None = None,
    ) -> Product:
        """
        Register a product for a seller.

        Raises:
            InvalidInputError: If name/price/stock/unit is invalid.
            UserNotFoundError: If the seller doesn't exist.
            UnauthorizedError: If the owner isn't a seller or admin.
        """
        _validate_product_fields(name, price, unit)
        if isinstance(stock, bool) or not isinstance(stock, int) or stock < 0:
            raise InvalidInputError("Stock must be a non-negative integer", field="stock")

        with self.store.transaction() as state:
            seller = get_user(state, seller_id)
            if seller.role not in (ROLE_SELLER, ROLE_ADMIN):
                raise UnauthorizedError("Only sellers can list products")

            now = _utc_now()
            product = Product(
                id=state.next_id("products"),
                name=name.strip(),
                price=price,
                stock=stock,
                seller_id=seller_id,
                unit=unit,
                description=description,
                created_at=now,
                updated_at=now,
            )
            state.products[product.id] = product

        logger.info("Product %s listed by seller %s with stock %s", product.id, seller_id, stock)
        return product

    def get_product(self, product_id: int) -> Product:
        return get_product(self.store.snapshot(), product_id)

    def list_products(self, seller_id: int | None = None) -> list[Product]:
        products = self.store.snapshot().products.values()
        if seller_id is not None:
            products = [p for p in products if p.seller_id == seller_id]
        return sorted(products, key=lambda p: p.id)

    def update_product(
        self,
        product_id: int,
        name: str | None = None,
        price: float | None = None,
        description: str | None = None,
    ) -> Product:
        """
        Update display fields. Stock is not editable here; see adjust_stock.

        Orders keep the price they were placed at.
        """
        _validate_product_fields(name, price, None)
        with self.store.transaction() as state:
            product = get_product(state, product_id)
            if name is not None:
                product.name = name.strip()
            if price is not None:
                product.price = price
            if description is not None:
                product.description = description
            product.updated_at = _utc_now()
        return product

    def restock(self, product_id: int, quantity: int) -> Product:
        """Add units to a product's stock."""
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidInputError("Quantity must be a positive integer", field="quantity")
        with self.store.transaction() as state:
            product = adjust_stock(state, product_id, quantity)
        return product

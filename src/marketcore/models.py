"""Data models for marketcore."""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .errors import CorruptRecordError


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# Roles, as issued by the auth layer
ROLE_USER = "user"
ROLE_SELLER = "seller"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_SELLER, ROLE_ADMIN)

PRODUCT_UNITS = ("kg", "piece")

# Order status
PENDING = "pending"
CONFIRMED = "confirmed"
SHIPPED = "shipped"
DELIVERED = "delivered"
CANCELLED = "cancelled"
ORDER_STATUSES = (PENDING, CONFIRMED, SHIPPED, DELIVERED, CANCELLED)

# Legal direct status moves; cancelled and delivered are terminal
ORDER_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {CONFIRMED, CANCELLED},
    CONFIRMED: {SHIPPED},
    SHIPPED: {DELIVERED},
    DELIVERED: set(),
    CANCELLED: set(),
}

# Semantic actions
APPROVE = "approve"
REJECT = "reject"
CANCEL = "cancel"
ORDER_ACTIONS = {APPROVE: CONFIRMED, REJECT: CANCELLED, CANCEL: CANCELLED}

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_FAILED = "failed"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_PAID, PAYMENT_FAILED)

PAYMENT_METHODS = ("mtn_momo", "airtel_money", "credit_card")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class User:
    """A marketplace account as seen by the core (auth lives elsewhere)."""

    id: int
    name: str
    role: str = ROLE_USER
    phone: str | None = None
    created_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "created_at": self.created_at,
        }
        if self.phone is not None:
            result["phone"] = self.phone
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "User":
        return cls(
            id=data["id"],
            name=data["name"],
            role=data.get("role", ROLE_USER),
            phone=data.get("phone"),
            created_at=data.get("created_at", ""),
        )


@dataclass
class Product:
    """A listed product with its single authoritative stock counter."""

    id: int
    name: str
    price: float
    stock: int
    seller_id: int
    unit: str = "kg"
    description: str | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "stock": self.stock,
            "seller_id": self.seller_id,
            "unit": self.unit,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.description is not None:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        stock = data.get("stock", 0)
        if not _is_int(stock) or stock < 0:
            raise CorruptRecordError("product", f"stock must be a non-negative integer, got {stock!r}")
        return cls(
            id=data["id"],
            name=data["name"],
            price=data["price"],
            stock=stock,
            seller_id=data["seller_id"],
            unit=data.get("unit", "kg"),
            description=data.get("description"),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


@dataclass(frozen=True)
class LineItem:
    """One product/quantity/price tuple within an order."""

    product_id: int
    quantity: int
    unit_price: float  # frozen at purchase time

    @property
    def subtotal(self) -> float:
        return self.quantity * self.unit_price

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LineItem":
        if not isinstance(data, dict):
            raise CorruptRecordError("line item", f"expected an object, got {type(data).__name__}")
        product_id = data.get("product_id")
        quantity = data.get("quantity")
        unit_price = data.get("unit_price")
        if not _is_int(product_id):
            raise CorruptRecordError("line item", f"product_id must be an integer, got {product_id!r}")
        if not _is_int(quantity) or quantity <= 0:
            raise CorruptRecordError("line item", f"quantity must be a positive integer, got {quantity!r}")
        if not _is_number(unit_price) or unit_price < 0:
            raise CorruptRecordError("line item", f"unit_price must be a non-negative number, got {unit_price!r}")
        return cls(product_id=product_id, quantity=quantity, unit_price=unit_price)


@dataclass(frozen=True)
class RegisteredBuyer:
    """An order placed by a known account."""

    buyer_id: int


@dataclass(frozen=True)
class GuestBuyer:
    """An order placed without an account; contact details stored inline."""

    contact: dict[str, Any] = field(default_factory=dict)


Buyer = RegisteredBuyer | GuestBuyer


def buyer_to_fields(buyer: Buyer) -> dict[str, Any]:
    """Flatten a buyer into the stored `buyer_id` / `buyer_info` pair."""
    if isinstance(buyer, RegisteredBuyer):
        return {"buyer_id": buyer.buyer_id, "buyer_info": None}
    return {"buyer_id": None, "buyer_info": dict(buyer.contact)}


def buyer_from_fields(data: dict[str, Any]) -> Buyer:
    if data.get("buyer_id") is not None:
        return RegisteredBuyer(buyer_id=data["buyer_id"])
    return GuestBuyer(contact=data.get("buyer_info") or {})


@dataclass
class Order:
    """An order record. The total is frozen at creation."""

    id: int
    buyer: Buyer
    items: list[LineItem]
    total_amount: float
    status: str = PENDING
    payment_status: str = PAYMENT_PENDING
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    @property
    def buyer_id(self) -> int | None:
        if isinstance(self.buyer, RegisteredBuyer):
            return self.buyer.buyer_id
        return None

    @property
    def is_guest(self) -> bool:
        return isinstance(self.buyer, GuestBuyer)

    def product_ids(self) -> list[int]:
        return [item.product_id for item in self.items]

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id}
        result.update(buyer_to_fields(self.buyer))
        result.update(
            {
                "items": [item.to_dict() for item in self.items],
                "total_amount": self.total_amount,
                "status": self.status,
                "payment_status": self.payment_status,
                "created_at": self.created_at,
                "updated_at": self.updated_at,
            }
        )
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        raw_items = data.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise CorruptRecordError("order", f"order {data.get('id')} has no line items")
        status = data.get("status", PENDING)
        if status not in ORDER_STATUSES:
            raise CorruptRecordError("order", f"unknown status {status!r}")
        payment_status = data.get("payment_status", PAYMENT_PENDING)
        if payment_status not in PAYMENT_STATUSES:
            raise CorruptRecordError("order", f"unknown payment status {payment_status!r}")
        items = [LineItem.from_dict(i) for i in raw_items]
        total_amount = data.get("total_amount")
        if not _is_number(total_amount) or not math.isclose(
            total_amount, sum(item.subtotal for item in items), abs_tol=1e-6
        ):
            raise CorruptRecordError(
                "order", f"order {data.get('id')} total {total_amount!r} does not match its line items"
            )
        return cls(
            id=data["id"],
            buyer=buyer_from_fields(data),
            items=items,
            total_amount=total_amount,
            status=status,
            payment_status=payment_status,
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )

    @classmethod
    def create(cls, order_id: int, buyer: Buyer, items: list[LineItem]) -> "Order":
        """Create a pending order whose total is the sum of its line items."""
        now = _utc_now()
        return cls(
            id=order_id,
            buyer=buyer,
            items=list(items),
            total_amount=sum(item.subtotal for item in items),
            status=PENDING,
            payment_status=PAYMENT_PENDING,
            created_at=now,
            updated_at=now,
        )


@dataclass
class Message:
    """A notification/message between two parties."""

    id: int
    sender_id: int | None  # None for guest-originated order notifications
    receiver_id: int
    content: str
    product_id: int | None = None
    order_id: int | None = None
    is_read: bool = False
    created_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sender_id": self.sender_id,
            "receiver_id": self.receiver_id,
            "content": self.content,
            "product_id": self.product_id,
            "order_id": self.order_id,
            "is_read": self.is_read,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(
            id=data["id"],
            sender_id=data.get("sender_id"),
            receiver_id=data["receiver_id"],
            content=data["content"],
            product_id=data.get("product_id"),
            order_id=data.get("order_id"),
            is_read=data.get("is_read", False),
            created_at=data.get("created_at", ""),
        )


@dataclass
class Payment:
    """A (mock) settlement recorded against an order."""

    id: int
    order_id: int
    amount: float
    method: str
    status: str
    transaction_id: str
    created_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount": self.amount,
            "method": self.method,
            "status": self.status,
            "transaction_id": self.transaction_id,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Payment":
        return cls(
            id=data["id"],
            order_id=data["order_id"],
            amount=data["amount"],
            method=data["method"],
            status=data["status"],
            transaction_id=data.get("transaction_id", ""),
            created_at=data.get("created_at", ""),
        )


@dataclass
class Page:
    """A page of results with pagination metadata."""

    items: list[Any]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0

    def pagination(self) -> dict[str, int]:
        return {"total": self.total, "page": self.page, "pages": self.pages, "limit": self.limit}


def paginate(items: list[Any], page: int = 1, limit: int = 10) -> Page:
    """Slice an already-ordered list into a Page."""
    page = max(page, 1)
    limit = max(limit, 1)
    start = (page - 1) * limit
    return Page(items=items[start : start + limit], total=len(items), page=page, limit=limit)


@dataclass(frozen=True)
class Caller:
    """An authenticated caller identity handed over by the auth layer."""

    user_id: int
    role: str = ROLE_USER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_seller(self) -> bool:
        return self.role == ROLE_SELLER

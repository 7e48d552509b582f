"""FastAPI REST API for the marketplace order core."""

from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .errors import (
    INSUFFICIENT_STOCK,
    INTERNAL,
    INVALID_INPUT,
    INVALID_TRANSITION,
    NOT_FOUND,
    UNAUTHORIZED,
    MarketError,
)
from .ledger import describe_order, seller_owns_items
from .market import Market
from .models import PRODUCT_UNITS, ROLES, ROLE_USER, Caller, GuestBuyer, Message, Payment, Product, RegisteredBuyer


# --- Pydantic Schemas ---


class ProductSchema(BaseModel):
    id: int
    name: str
    price: float
    stock: int
    seller_id: int
    unit: str
    description: Optional[str] = None
    created_at: str
    updated_at: str


class ProductCreateRequest(BaseModel):
    name: str
    price: float
    stock: int = Field(default=0, ge=0)
    unit: str = Field(default="kg", description=f"One of: {', '.join(PRODUCT_UNITS)}")
    description: Optional[str] = None


class ProductSummarySchema(BaseModel):
    """Live product fields shown next to a frozen line item."""

    id: int
    name: str
    price: float


class LineItemSchema(BaseModel):
    product_id: int
    quantity: int
    unit_price: float  # price at time of purchase
    product: Optional[ProductSummarySchema] = None


class OrderSchema(BaseModel):
    id: int
    buyer_id: Optional[int] = None
    buyer_info: Optional[dict[str, Any]] = None  # guest contact details
    items: list[LineItemSchema]
    total_amount: float
    status: str
    payment_status: str
    created_at: str
    updated_at: str


class CartLineRequest(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)


class OrderCreateRequest(BaseModel):
    """Request body for placing an order. buyer_info is used for guest checkout."""

    items: list[CartLineRequest]
    buyer_info: Optional[dict[str, Any]] = None


class PaginationSchema(BaseModel):
    total: int
    page: int
    pages: int
    limit: int


class OrderListResponse(BaseModel):
    orders: list[OrderSchema]
    pagination: Optional[PaginationSchema] = None


class TransitionRequest(BaseModel):
    action: Optional[str] = Field(None, description="approve | reject | cancel")
    status: Optional[str] = Field(None, description="pending | confirmed | shipped | delivered | cancelled")


class OrderReplyRequest(BaseModel):
    action: str = Field(..., description="approve | reject")


class TransitionResponse(BaseModel):
    message: str
    order: OrderSchema


class MessageSchema(BaseModel):
    id: int
    sender_id: Optional[int] = None
    receiver_id: int
    content: str
    product_id: Optional[int] = None
    order_id: Optional[int] = None
    is_read: bool
    created_at: str


class MessageCreateRequest(BaseModel):
    receiver_id: int
    content: str
    product_id: Optional[int] = None
    order_id: Optional[int] = None


class MarkReadResponse(BaseModel):
    updated: int


class PaymentCreateRequest(BaseModel):
    order_id: int
    method: str = Field(..., description="mtn_momo | airtel_money | credit_card")


class PaymentSchema(BaseModel):
    id: int
    order_id: int
    amount: float
    method: str
    status: str
    transaction_id: str
    created_at: str


class PaymentListResponse(BaseModel):
    payments: list[PaymentSchema]
    pagination: PaginationSchema


class ErrorResponse(BaseModel):
    detail: str
    error_type: str
    kind: str
    retryable: bool


# --- Helper Functions ---


def get_market() -> Market:
    """Build the services from the current environment."""
    return Market()


def get_caller(
    x_user_id: Optional[int] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Optional[Caller]:
    """
    Caller identity as forwarded by the auth layer.

    No X-User-Id header means an anonymous (guest) caller.
    """
    if x_user_id is None:
        return None
    role = x_user_role or ROLE_USER
    if role not in ROLES:
        raise HTTPException(status_code=400, detail=f"Unknown role: {role}")
    return Caller(user_id=x_user_id, role=role)


def require_caller(caller: Optional[Caller] = Depends(get_caller)) -> Caller:
    if caller is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return caller


def product_to_schema(product: Product) -> ProductSchema:
    return ProductSchema(**product.to_dict())


def message_to_schema(message: Message) -> MessageSchema:
    return MessageSchema(**message.to_dict())


def payment_to_schema(payment: Payment) -> PaymentSchema:
    return PaymentSchema(**payment.to_dict())


def orders_to_schema(market: Market, orders) -> list[OrderSchema]:
    return [OrderSchema(**data) for data in market.ledger.describe(list(orders))]


def order_to_schema(market: Market, order) -> OrderSchema:
    return OrderSchema(**describe_order(market.store.snapshot(), order))


# --- FastAPI App ---


app = FastAPI(
    title="marketcore API",
    description="Order lifecycle and inventory core for the marketplace",
    version=__version__,
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Global Exception Handler ---


# Map error kinds to HTTP status codes
ERROR_STATUS_CODES: dict[str, int] = {
    NOT_FOUND: 404,
    INVALID_INPUT: 400,
    INSUFFICIENT_STOCK: 409,
    UNAUTHORIZED: 403,
    INVALID_TRANSITION: 409,
    INTERNAL: 500,
}


@app.exception_handler(MarketError)
async def market_error_handler(request: Request, exc: MarketError) -> JSONResponse:
    """Map MarketError subclasses to appropriate HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(exc.kind, 500)
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": str(exc),
            "error_type": type(exc).__name__,
            "kind": exc.kind,
            "retryable": exc.retryable,
        },
    )


# --- Endpoints ---


@app.get("/api/health")
def health_check(market: Market = Depends(get_market)):
    """Health check endpoint."""
    try:
        state = market.store.snapshot()
        return {
            "status": "ok",
            "store_initialized": market.store.exists(),
            "product_count": len(state.products),
            "order_count": len(state.orders),
        }
    except MarketError as e:
        return {
            "status": "error",
            "detail": str(e),
        }


# --- Product Endpoints ---


@app.post("/api/products", response_model=ProductSchema, status_code=201)
def create_product(
    request: ProductCreateRequest,
    caller: Caller = Depends(require_caller),
    market: Market = Depends(get_market),
):
    """List a product for the calling seller."""
    product = market.catalog.add_product(
        seller_id=caller.user_id,
        name=request.name,
        price=request.price,
        stock=request.stock,
        unit=request.unit,
        description=request.description,
    )
    return product_to_schema(product)


@app.get("/api/products/{product_id}", response_model=ProductSchema)
def get_product(product_id: int, market: Market = Depends(get_market)):
    """Get a single product."""
    return product_to_schema(market.catalog.get_product(product_id))


# --- Order Endpoints ---


@app.post("/api/orders", response_model=OrderSchema, status_code=201)
def place_order(
    request: OrderCreateRequest,
    caller: Optional[Caller] = Depends(get_caller),
    market: Market = Depends(get_market),
):
    """
    Place an order.

    Authenticated callers order as themselves; anonymous callers order as
    guests and should pass buyer_info.
    """
    if caller is not None:
        buyer = RegisteredBuyer(buyer_id=caller.user_id)
    else:
        buyer = GuestBuyer(contact=request.buyer_info or {})

    result = market.placement.place_order(buyer, [line.model_dump() for line in request.items])
    return order_to_schema(market, result.order)


@app.get("/api/orders", response_model=OrderListResponse)
def list_orders(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    caller: Caller = Depends(require_caller),
    market: Market = Depends(get_market),
):
    """List the caller's own orders, newest first."""
    result = market.ledger.list_orders(caller.user_id, page=page, limit=limit)
    return OrderListResponse(
        orders=orders_to_schema(market, result.items),
        pagination=PaginationSchema(**result.pagination()),
    )


@app.get("/api/orders/seller", response_model=OrderListResponse)
def list_seller_orders(
    caller: Caller = Depends(require_caller),
    market: Market = Depends(get_market),
):
    """List orders that contain at least one of the calling seller's products."""
    orders = market.ledger.list_seller_orders(caller)
    return OrderListResponse(orders=orders_to_schema(market, orders))


@app.get("/api/orders/{order_id}", response_model=OrderSchema)
def get_order(
    order_id: int,
    caller: Caller = Depends(require_caller),
    market: Market = Depends(get_market),
):
    """Get one order. Visible to its buyer, sellers in it, and admins."""
    state = market.store.snapshot()
    order = market.ledger.get_order(order_id)
    owns = seller_owns_items(state, order, caller.user_id)
    if not (caller.is_admin or order.buyer_id == caller.user_id or owns):
        raise HTTPException(status_code=403, detail="Access denied")
    return OrderSchema(**describe_order(state, order))


@app.put("/api/orders/{order_id}", response_model=TransitionResponse)
def transition_order(
    order_id: int,
    request: TransitionRequest,
    caller: Caller = Depends(require_caller),
    market: Market = Depends(get_market),
):
    """Approve, reject or cancel an order, or set its status directly."""
    result = market.transitions.transition(
        order_id, caller, action=request.action, status=request.status
    )
    return TransitionResponse(message=result.message, order=order_to_schema(market, result.order))


# --- Message Endpoints ---


@app.post("/api/messages", response_model=MessageSchema, status_code=201)
def send_message(
    request: MessageCreateRequest,
    caller: Caller = Depends(require_caller),
    market: Market = Depends(get_market),
):
    """Send a message to another user, optionally about a product or order."""
    message = market.channel.send(
        caller.user_id,
        request.receiver_id,
        request.content,
        product_id=request.product_id,
        order_id=request.order_id,
    )
    return message_to_schema(message)


@app.get("/api/messages", response_model=list[MessageSchema])
def list_messages(
    caller: Caller = Depends(require_caller),
    market: Market = Depends(get_market),
):
    """Messages sent or received by the caller, newest first."""
    return [message_to_schema(m) for m in market.channel.list_for(caller.user_id)]


@app.get("/api/messages/conversation/{other_user_id}", response_model=list[MessageSchema])
def get_conversation(
    other_user_id: int,
    product_id: Optional[int] = Query(default=None),
    caller: Caller = Depends(require_caller),
    market: Market = Depends(get_market),
):
    """Conversation with another user, oldest first."""
    messages = market.channel.conversation(caller.user_id, other_user_id, product_id=product_id)
    return [message_to_schema(m) for m in messages]


@app.put("/api/messages/read/{other_user_id}", response_model=MarkReadResponse)
def mark_read(
    other_user_id: int,
    caller: Caller = Depends(require_caller),
    market: Market = Depends(get_market),
):
    """Mark every unread message from another user as read."""
    return MarkReadResponse(updated=market.channel.mark_read(other_user_id, caller.user_id))


@app.put("/api/messages/order/{message_id}", response_model=TransitionResponse)
def reply_to_order(
    message_id: int,
    request: OrderReplyRequest,
    caller: Caller = Depends(require_caller),
    market: Market = Depends(get_market),
):
    """Approve or reject the order behind an order notification."""
    result = market.transitions.handle_order_reply(message_id, caller.user_id, request.action)
    return TransitionResponse(message=result.message, order=order_to_schema(market, result.order))


# --- Payment Endpoints ---


@app.post("/api/payments", response_model=PaymentSchema, status_code=201)
def create_payment(
    request: PaymentCreateRequest,
    caller: Caller = Depends(require_caller),
    market: Market = Depends(get_market),
):
    """Settle one of the caller's orders (mock settlement)."""
    payment = market.payments.pay(request.order_id, caller.user_id, request.method)
    return payment_to_schema(payment)


@app.get("/api/payments", response_model=PaymentListResponse)
def list_payments(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    caller: Caller = Depends(require_caller),
    market: Market = Depends(get_market),
):
    """The caller's payment history, newest first."""
    result = market.payments.list_payments(caller.user_id, page=page, limit=limit)
    return PaymentListResponse(
        payments=[payment_to_schema(p) for p in result.items],
        pagination=PaginationSchema(**result.pagination()),
    )

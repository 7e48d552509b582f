"""Custom exceptions for marketcore."""

NOT_FOUND = "not_found"
INVALID_INPUT = "invalid_input"
INSUFFICIENT_STOCK = "insufficient_stock"
UNAUTHORIZED = "unauthorized"
INVALID_TRANSITION = "invalid_transition"
INTERNAL = "internal"


class MarketError(Exception):
    """Base exception for all marketcore errors."""

    kind = INTERNAL

    @property
    def retryable(self) -> bool:
        """Only storage/transaction failures are worth retrying."""
        return self.kind == INTERNAL

    @property
    def reason(self) -> str:
        return str(self)


# --- NotFound ---


class NotFoundError(MarketError):
    """A referenced record does not exist."""

    kind = NOT_FOUND


class ProductNotFoundError(NotFoundError):
    """Raised when a product ID doesn't exist."""

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found")


class OrderNotFoundError(NotFoundError):
    """Raised when an order ID doesn't exist."""

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class MessageNotFoundError(NotFoundError):
    """Raised when a message ID doesn't exist."""

    def __init__(self, message_id: int):
        self.message_id = message_id
        super().__init__(f"Message {message_id} not found")


class UserNotFoundError(NotFoundError):
    """Raised when a user ID doesn't exist."""

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


# --- InvalidInput ---


class InvalidInputError(MarketError):
    """Raised when a request is malformed (empty cart, bad quantity, ...)."""

    kind = INVALID_INPUT

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


# --- InsufficientStock ---


class InsufficientStockError(MarketError):
    """Raised when a stock decrement would take a product below zero."""

    kind = INSUFFICIENT_STOCK

    def __init__(self, product_id: int, product_name: str, available: int, requested: int):
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient stock for {product_name}. Available: {available}")


# --- Unauthorized ---


class UnauthorizedError(MarketError):
    """Raised when the caller's role or ownership doesn't permit the operation."""

    kind = UNAUTHORIZED

    def __init__(self, reason: str = "Access denied"):
        super().__init__(reason)


# --- InvalidTransition ---


class InvalidTransitionError(MarketError):
    """Raised when an action or status is illegal for the order's current status."""

    kind = INVALID_TRANSITION

    def __init__(self, order_id: int, current: str, requested: str | None):
        self.order_id = order_id
        self.current = current
        self.requested = requested
        if requested:
            msg = f"Cannot apply '{requested}' to order {order_id} in status '{current}'"
        else:
            msg = f"Invalid action or status for order {order_id}"
        super().__init__(msg)


# --- Internal ---


class StoreError(MarketError):
    """Raised when reading or writing the market store fails."""

    kind = INTERNAL

    def __init__(self, path: str, detail: str):
        self.path = path
        self.detail = detail
        super().__init__(f"Market store failure at {path}: {detail}")


class StoreExistsError(MarketError):
    """Raised when trying to init but the store already exists."""

    kind = INVALID_INPUT

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Market store already exists at {path}. Use --force to overwrite.")


class InvalidSchemaVersionError(MarketError):
    """Raised when the store has an unsupported schema version."""

    kind = INTERNAL

    def __init__(self, found: int, supported: int):
        self.found = found
        self.supported = supported
        super().__init__(
            f"Unsupported schema version {found}. This tool supports version {supported}."
        )


class CorruptRecordError(MarketError):
    """Raised when a stored record fails schema checks on load."""

    kind = INTERNAL

    def __init__(self, record: str, reason: str):
        self.record = record
        super().__init__(f"Corrupt {record} record: {reason}")

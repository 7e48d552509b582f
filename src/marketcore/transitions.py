"""Order transition engine: authorized status changes with stock restoration."""

import logging
from dataclasses import dataclass

from .catalog import adjust_stock
from .errors import InvalidInputError, InvalidTransitionError, UnauthorizedError
from .events import EventBus, OrderStatusChanged
from .ledger import get_order, seller_owns_items
from .market_store import MarketState, MarketStore
from .models import (
    APPROVE,
    CANCEL,
    CANCELLED,
    ORDER_ACTIONS,
    ORDER_STATUSES,
    ORDER_TRANSITIONS,
    PENDING,
    REJECT,
    Caller,
    Order,
    _utc_now,
)
from .notifications import get_message

logger = logging.getLogger(__name__)

ACTION_MESSAGES = {
    APPROVE: "Order approved successfully",
    REJECT: "Order rejected and stock restored",
    CANCEL: "Order cancelled successfully",
}
STATUS_MESSAGE = "Order status updated successfully"

# Actions a seller may take by replying to an order notification
REPLY_ACTIONS = (APPROVE, REJECT)


@dataclass
class TransitionResult:
    order: Order
    message: str
    old_status: str
    stock_restored: bool = False


def restore_stock(state: MarketState, order: Order) -> int:
    """
    Put every line item's quantity back on its product.

    Products deleted since the order was placed are skipped.
    Returns the number of line items restored.
    """
    restored = 0
    for item in order.items:
        if item.product_id not in state.products:
            logger.warning(
                "Order %s: product %s no longer exists, skipping stock restore",
                order.id,
                item.product_id,
            )
            continue
        adjust_stock(state, item.product_id, item.quantity)
        restored += 1
    return restored


class TransitionEngine:
    """Applies approve/reject/cancel actions and direct status writes."""

    def __init__(self, store: MarketStore, bus: EventBus, strict: bool = True):
        self.store = store
        self.bus = bus
        # strict: direct status writes must follow ORDER_TRANSITIONS
        self.strict = strict

    def transition(
        self,
        order_id: int,
        caller: Caller,
        action: str | None = None,
        status: str | None = None,
    ) -> TransitionResult:
        """
        Change an order's status by action or by explicit status.

        An action, when given, takes precedence over status. The status write
        and any stock restoration commit together.

        Raises:
            OrderNotFoundError: If the order doesn't exist.
            UnauthorizedError: If the caller may not touch this order.
            InvalidTransitionError: If the action/status is illegal now.
        """
        with self.store.transaction() as state:
            order = get_order(state, order_id)
            self._authorize(state, order, caller, action)
            if action is not None:
                result = self._apply_action(state, order, action)
            elif status is not None:
                result = self._apply_status(state, order, status)
            else:
                raise InvalidTransitionError(order.id, order.status, None)

        self._announce(result, caller.user_id)
        return result

    def handle_order_reply(self, message_id: int, caller_id: int, action: str) -> TransitionResult:
        """
        Approve or reject an order by replying to its notification.

        The notification is marked read in the same transaction.

        Raises:
            MessageNotFoundError: If the message doesn't exist.
            InvalidInputError: If the message isn't tied to an order.
            UnauthorizedError: If the caller didn't receive the message or
                has no products in the order.
            InvalidTransitionError: If the action is not approve/reject or
                the order is no longer pending.
        """
        with self.store.transaction() as state:
            message = get_message(state, message_id)
            if message.order_id is None:
                raise InvalidInputError("This message is not related to an order", field="message_id")
            if message.receiver_id != caller_id:
                raise UnauthorizedError("Access denied")

            order = get_order(state, message.order_id)
            if not seller_owns_items(state, order, caller_id):
                raise UnauthorizedError("You do not have products in this order")
            if action not in REPLY_ACTIONS:
                raise InvalidTransitionError(order.id, order.status, action)

            result = self._apply_action(state, order, action)
            message.is_read = True

        self._announce(result, caller_id)
        return result

    def _authorize(self, state: MarketState, order: Order, caller: Caller, action: str | None) -> None:
        if caller.is_admin:
            return
        if caller.is_seller and seller_owns_items(state, order, caller.user_id):
            return
        if action == CANCEL and order.status == PENDING and caller.user_id == order.buyer_id:
            return
        raise UnauthorizedError("Access denied")

    def _apply_action(self, state: MarketState, order: Order, action: str) -> TransitionResult:
        target = ORDER_ACTIONS.get(action)
        if target is None or order.status != PENDING:
            raise InvalidTransitionError(order.id, order.status, action)

        old_status = order.status
        restored = False
        if target == CANCELLED:
            restore_stock(state, order)
            restored = True
        self._set_status(order, target)
        return TransitionResult(order, ACTION_MESSAGES[action], old_status, restored)

    def _apply_status(self, state: MarketState, order: Order, status: str) -> TransitionResult:
        if status not in ORDER_STATUSES:
            raise InvalidTransitionError(order.id, order.status, status)

        old_status = order.status
        restored = False
        if self.strict:
            if status not in ORDER_TRANSITIONS[old_status]:
                raise InvalidTransitionError(order.id, old_status, status)
            if status == CANCELLED:
                restore_stock(state, order)
                restored = True
        self._set_status(order, status)
        return TransitionResult(order, STATUS_MESSAGE, old_status, restored)

    def _set_status(self, order: Order, status: str) -> None:
        order.status = status
        order.updated_at = _utc_now()

    def _announce(self, result: TransitionResult, actor_id: int) -> None:
        logger.info(
            "Order %s: %s -> %s by user %s%s",
            result.order.id,
            result.old_status,
            result.order.status,
            actor_id,
            " (stock restored)" if result.stock_restored else "",
        )
        self.bus.publish(
            OrderStatusChanged(
                order_id=result.order.id,
                old_status=result.old_status,
                new_status=result.order.status,
                actor_id=actor_id,
                stock_restored=result.stock_restored,
            )
        )

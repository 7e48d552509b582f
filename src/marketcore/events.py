"""Domain events published after a transaction commits."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable

from .models import _utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderPlaced:
    """An order was committed together with its stock decrements."""

    order_id: int
    buyer_id: int | None
    occurred_at: str = field(default_factory=_utc_now)


@dataclass(frozen=True)
class OrderStatusChanged:
    """An order moved from one status to another."""

    order_id: int
    old_status: str
    new_status: str
    actor_id: int
    stock_restored: bool = False
    occurred_at: str = field(default_factory=_utc_now)


Handler = Callable[[Any], None]


@dataclass
class DeliveryFailure:
    handler: str
    error: Exception


@dataclass
class PublishResult:
    """Outcome of one publish: how many handlers ran and which ones failed."""

    event: Any
    delivered: int = 0
    failures: list[DeliveryFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class EventBus:
    """
    Synchronous in-process dispatcher.

    Publishing happens after commit, so a failing handler is logged and
    reported on the PublishResult but never propagates to the publisher.
    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def publish(self, event: Any) -> PublishResult:
        result = PublishResult(event=event)
        for handler in self._handlers.get(type(event), []):
            name = getattr(handler, "__qualname__", repr(handler))
            try:
                handler(event)
                result.delivered += 1
            except Exception as e:
                logger.exception("Handler %s failed for %s", name, type(event).__name__)
                result.failures.append(DeliveryFailure(handler=name, error=e))
        return result

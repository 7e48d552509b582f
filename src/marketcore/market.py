"""Wiring: one store, one event bus, and the services built on them."""

from pathlib import Path

from .accounts import UserDirectory
from .catalog import Catalog
from .events import EventBus, OrderPlaced
from .ledger import OrderLedger
from .market_store import MarketStore
from .notifications import NotificationChannel, OrderNotifier
from .payments import PaymentService
from .placement import OrderPlacement
from .settings import Settings
from .transitions import TransitionEngine


class Market:
    """All order-core services sharing a store."""

    def __init__(self, settings: Settings | None = None, data_dir: Path | None = None):
        self.settings = settings or Settings.from_env()
        self.store = MarketStore(data_dir or self.settings.data_dir)
        self.bus = EventBus()

        self.users = UserDirectory(self.store)
        self.catalog = Catalog(self.store)
        self.ledger = OrderLedger(self.store)
        self.channel = NotificationChannel(self.store)
        self.placement = OrderPlacement(self.store, self.bus)
        self.transitions = TransitionEngine(
            self.store, self.bus, strict=self.settings.strict_transitions
        )
        self.payments = PaymentService(self.store)

        self.notifier = OrderNotifier(self.store, currency=self.settings.currency)
        self.bus.subscribe(OrderPlaced, self.notifier)

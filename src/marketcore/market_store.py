"""Durable storage for marketcore: one JSON document, file-locked transactions."""

import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

from .errors import InvalidSchemaVersionError, StoreError, StoreExistsError
from .models import Message, Order, Payment, Product, User
from .settings import Settings

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
STORE_FILE = "market.json"
LOCK_FILE = ".market.lock"

COLLECTIONS = ("users", "products", "orders", "messages", "payments")


@dataclass
class MarketState:
    """In-memory view of the whole store, mutated inside a transaction."""

    users: dict[int, User] = field(default_factory=dict)
    products: dict[int, Product] = field(default_factory=dict)
    orders: dict[int, Order] = field(default_factory=dict)
    messages: dict[int, Message] = field(default_factory=dict)
    payments: dict[int, Payment] = field(default_factory=dict)
    counters: dict[str, int] = field(default_factory=lambda: {name: 0 for name in COLLECTIONS})

    def next_id(self, collection: str) -> int:
        """Allocate the next id for a collection. Ids are never reused."""
        self.counters[collection] = self.counters.get(collection, 0) + 1
        return self.counters[collection]

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "counters": dict(self.counters),
            "users": [u.to_dict() for u in self.users.values()],
            "products": [p.to_dict() for p in self.products.values()],
            "orders": [o.to_dict() for o in self.orders.values()],
            "messages": [m.to_dict() for m in self.messages.values()],
            "payments": [p.to_dict() for p in self.payments.values()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MarketState":
        version = data.get("schema_version", 0)
        if version != SCHEMA_VERSION:
            raise InvalidSchemaVersionError(version, SCHEMA_VERSION)

        counters = {name: 0 for name in COLLECTIONS}
        counters.update(data.get("counters", {}))
        return cls(
            users={u["id"]: User.from_dict(u) for u in data.get("users", [])},
            products={p["id"]: Product.from_dict(p) for p in data.get("products", [])},
            orders={o["id"]: Order.from_dict(o) for o in data.get("orders", [])},
            messages={m["id"]: Message.from_dict(m) for m in data.get("messages", [])},
            payments={p["id"]: Payment.from_dict(p) for p in data.get("payments", [])},
            counters=counters,
        )


class MarketStore:
    """Manages reading and writing the market document."""

    def __init__(self, data_dir: Path | None = None):
        """
        Initialize MarketStore.

        Args:
            data_dir: Override data directory (for testing).
        """
        self.data_dir = Path(data_dir) if data_dir is not None else Settings.from_env().data_dir
        self.store_path = self.data_dir / STORE_FILE
        self.lock_path = self.data_dir / LOCK_FILE

    def _ensure_dir(self) -> None:
        """Ensure data directory exists."""
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(str(self.data_dir), str(e)) from e

    @contextmanager
    def _lock(self) -> Iterator[None]:
        """Acquire exclusive lock on the store for read-modify-write operations."""
        self._ensure_dir()
        with open(self.lock_path, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _load_data(self) -> dict[str, Any]:
        """Load the raw document from disk."""
        if not self.store_path.exists():
            return MarketState().to_dict()

        try:
            with open(self.store_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(str(self.store_path), str(e)) from e

    def _save_data(self, data: dict[str, Any]) -> None:
        """
        Save the document to disk atomically.

        Uses write-to-temp-then-rename for atomicity.
        """
        self._ensure_dir()

        fd, temp_path = tempfile.mkstemp(dir=self.data_dir, prefix=".market_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.store_path)
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise StoreError(str(self.store_path), str(e)) from e

    def exists(self) -> bool:
        """Check if the store document exists."""
        return self.store_path.exists()

    def init(self, force: bool = False) -> MarketState:
        """
        Create an empty store.

        Raises:
            StoreExistsError: If the store exists and force=False.
        """
        with self._lock():
            if self.exists() and not force:
                raise StoreExistsError(str(self.store_path))
            state = MarketState()
            self._save_data(state.to_dict())
        logger.info("Initialized market store at %s", self.store_path)
        return state

    def snapshot(self) -> MarketState:
        """
        Return a consistent read-only view of the store.

        Writes replace the file atomically, so a plain read never observes
        a half-applied transaction.
        """
        return MarketState.from_dict(self._load_data())

    @contextmanager
    def transaction(self) -> Iterator[MarketState]:
        """
        Run a read-modify-write unit under the store lock.

        The state is written back only if the block exits cleanly; any
        exception leaves the document exactly as it was.
        """
        with self._lock():
            state = MarketState.from_dict(self._load_data())
            yield state
            self._save_data(state.to_dict())

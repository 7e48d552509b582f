"""User directory: the account lookups the order core depends on."""

from .errors import InvalidInputError, UserNotFoundError
from .market_store import MarketState, MarketStore
from .models import ROLES, ROLE_USER, User, _utc_now


def get_user(state: MarketState, user_id: int) -> User:
    """
    Look up a user inside a transaction or snapshot.

    Raises:
        UserNotFoundError: If the user doesn't exist.
    """
    user = state.users.get(user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


class UserDirectory:
    """Registers and looks up accounts."""

    def __init__(self, store: MarketStore):
        self.store = store

    def add_user(self, name: str, role: str = ROLE_USER, phone: str | None = None) -> User:
        name = (name or "").strip()
        if not name:
            raise InvalidInputError("Name is required", field="name")
        if role not in ROLES:
            raise InvalidInputError(f"Unknown role: {role}", field="role")

        with self.store.transaction() as state:
            user = User(
                id=state.next_id("users"),
                name=name,
                role=role,
                phone=phone,
                created_at=_utc_now(),
            )
            state.users[user.id] = user
        return user

    def get_user(self, user_id: int) -> User:
        return get_user(self.store.snapshot(), user_id)

    def list_users(self) -> list[User]:
        return sorted(self.store.snapshot().users.values(), key=lambda u: u.id)

"""Pytest fixtures for marketcore tests."""

import tempfile
from dataclasses import dataclass
from pathlib import Path

import pytest

from marketcore.market import Market
from marketcore.models import ROLE_ADMIN, ROLE_SELLER, ROLE_USER, Caller
from marketcore.settings import Settings


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def market(temp_dir):
    """Services over an empty store in a temporary directory."""
    return Market(Settings(data_dir=temp_dir))


@dataclass
class Seed:
    admin: int
    seller: int
    other_seller: int
    buyer: int
    stranger: int
    tomatoes: int  # seller's, price 1500, stock 5
    avocados: int  # seller's, price 300, stock 10
    potatoes: int  # other_seller's, price 600, stock 20

    def caller(self, user_id: int, role: str = ROLE_USER) -> Caller:
        return Caller(user_id=user_id, role=role)


@pytest.fixture
def seed(market):
    """Two sellers, a buyer, a bystander, an admin and three products."""
    admin = market.users.add_user("Admin", role=ROLE_ADMIN)
    seller = market.users.add_user("Kigali Farm", role=ROLE_SELLER)
    other_seller = market.users.add_user("Musanze Produce", role=ROLE_SELLER)
    buyer = market.users.add_user("Aline", role=ROLE_USER)
    stranger = market.users.add_user("Eric", role=ROLE_USER)

    tomatoes = market.catalog.add_product(seller.id, "Tomatoes", price=1500, stock=5)
    avocados = market.catalog.add_product(seller.id, "Avocados", price=300, stock=10, unit="piece")
    potatoes = market.catalog.add_product(other_seller.id, "Irish Potatoes", price=600, stock=20)

    return Seed(
        admin=admin.id,
        seller=seller.id,
        other_seller=other_seller.id,
        buyer=buyer.id,
        stranger=stranger.id,
        tomatoes=tomatoes.id,
        avocados=avocados.id,
        potatoes=potatoes.id,
    )


def stock_of(market: Market, product_id: int) -> int:
    return market.catalog.get_product(product_id).stock

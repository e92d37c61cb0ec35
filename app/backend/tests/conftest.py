"""
Shared fixtures: an in-memory SQLite database per test and model factories.
"""

from decimal import Decimal
from typing import Iterable, List

import pytest
import pytest_asyncio

from rewards.core import database
from rewards.core.database import init_database, close_database, DatabaseManager
from rewards.models.user import User
from rewards.models.product import Product
from rewards.services.user_locks import user_locks


TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture(autouse=True)
def reset_user_locks():
    """Locks bind to the running loop; every test gets fresh ones."""
    user_locks.clear()
    yield
    user_locks.clear()


@pytest_asyncio.fixture
async def db_session():
    """Session on a fresh in-memory database with all tables."""
    await init_database(TEST_DATABASE_URL)
    await DatabaseManager.create_tables()

    async with database.async_session_maker() as session:
        yield session

    await close_database()


@pytest.fixture
def user_factory(db_session):
    """Create and commit a user."""
    counter = {"n": 0}

    async def _create(**overrides) -> User:
        counter["n"] += 1
        values = {
            "name": f"member{counter['n']}",
            "daily_available_orders": 40,
        }
        values.update(overrides)
        user = User(**values)
        db_session.add(user)
        await db_session.commit()
        return user

    return _create


@pytest.fixture
def product_factory(db_session):
    """Create and commit one product per price."""
    counter = {"n": 0}

    async def _create(prices: Iterable, is_task: bool = True, status: bool = True) -> List[Product]:
        products = []
        for price in prices:
            counter["n"] += 1
            products.append(Product(
                name=f"product{counter['n']}",
                price=Decimal(str(price)),
                is_task=is_task,
                status=status
            ))
        db_session.add_all(products)
        await db_session.commit()
        return products

    return _create

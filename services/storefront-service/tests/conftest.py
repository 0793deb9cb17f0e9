"""
Pytest fixtures for storefront tests.
"""
import os

# Keep tests offline and fast; must run before any service module is imported
os.environ.setdefault("TELEMETRY_ENABLED", "false")
os.environ.setdefault("PROFILING_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "storefront-test-secret-0123456789abcdef")

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from domain import Product, User
from models import Base
from repositories import MemoryStore, SqlStore
from security import create_access_token, hash_password


class FakeClock:
    """Controllable replacement for utcnow()."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    """Clock frozen at a fixed instant."""
    return FakeClock(datetime(2024, 6, 1, 12, 0, 0))


@pytest.fixture
def memory_store():
    """Empty in-memory store."""
    return MemoryStore()


@pytest.fixture
def sql_store():
    """SqlStore over a private in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield SqlStore(session)
    finally:
        session.close()
        engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Each engine test runs once against every store backend."""
    fixture_name = "memory_store" if request.param == "memory" else "sql_store"
    return request.getfixturevalue(fixture_name)


def add_user(store, email, first_name="Test", last_name="User", role="user", password="secret123"):
    with store.transaction():
        return store.users.insert(User(
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            role=role,
        ))


def add_product(store, name, price, stock=10, category="Electronics", disabled=False):
    with store.transaction():
        return store.products.insert(Product(
            name=name,
            price=Decimal(price),
            category=category,
            stock=stock,
            disabled=disabled,
        ))


def auth_header(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def shopper(store):
    return add_user(store, "john@example.com", "John", "Doe")


@pytest.fixture
def other_shopper(store):
    return add_user(store, "jane@example.com", "Jane", "Smith")


@pytest.fixture
def admin(store):
    return add_user(store, "admin@example.com", "Admin", "User", role="admin")

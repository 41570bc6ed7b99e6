import os

# Settings are read at import time; point them at throwaway backends first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PLACEMENT_RETRY_DELAY"] = "0"

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fulfillment.main import app
from fulfillment.database import Base, get_db
from fulfillment.models.catalog import Author, Category, Product
from fulfillment.models.customer import Customer
from fulfillment.utils.cache import cache_service


# Create test database (SQLite in-memory for testing)
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """Override database dependency for testing."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


# Override the dependency
app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def fake_cache(monkeypatch):
    """Keep tests off a real Redis: every read misses, writes are recorded."""
    client = MagicMock()
    client.get.return_value = None
    monkeypatch.setattr(cache_service, "client", client)
    return client


@pytest.fixture(scope="function")
def client():
    """Create test client with fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Create database session for direct database access in tests."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(tmp_path):
    """
    File-backed SQLite sessions for tests that need several independent
    connections (concurrent units of work).
    """
    file_engine = create_engine(
        f"sqlite:///{tmp_path / 'fulfillment.db'}",
        connect_args={"check_same_thread": False, "timeout": 15},
    )
    Base.metadata.create_all(bind=file_engine)

    yield sessionmaker(autocommit=False, autoflush=False, bind=file_engine)

    file_engine.dispose()


def add_customer(db, name="Ada Lovelace", email=None, **kwargs) -> Customer:
    customer = Customer(
        name=name,
        email=email or f"{name.lower().replace(' ', '.')}@example.com",
        password_hash="x" * 60,
        **kwargs,
    )
    db.add(customer)
    db.commit()
    return customer


def add_category(db, name="Books", **kwargs) -> Category:
    category = Category(name=name, **kwargs)
    db.add(category)
    db.commit()
    return category


def add_author(db, name="Terry Pratchett", **kwargs) -> Author:
    author = Author(name=name, **kwargs)
    db.add(author)
    db.commit()
    return author


def add_product(db, category, name="Mort", price="10.00", stock=10, author=None, description="", **kwargs) -> Product:
    product = Product(
        category_id=category.id,
        author_id=author.id if author else None,
        name=name,
        description=description,
        price=Decimal(price),
        stock_quantity=stock,
        **kwargs,
    )
    db.add(product)
    db.commit()
    return product


@pytest.fixture
def store(db_session):
    """
    A small catalog: customer #7 and products #3 (10.00) and #5 (20.00),
    matching the worked examples used across the order tests.
    """
    books = add_category(db_session, "Books")
    author = add_author(db_session, "Terry Pratchett")
    customer = add_customer(db_session, "Sam Vimes", id=7)
    cheap = add_product(db_session, books, "Guards! Guards!", "10.00", 10, author, id=3)
    dear = add_product(db_session, books, "Night Watch", "20.00", 5, author, id=5)
    return {"customer": customer, "cheap": cheap, "dear": dear, "category": books, "author": author}

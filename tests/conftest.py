"""
Pytest fixtures for the stock ledger test suite.

Provides:
- An in-memory SQLite database per test (StaticPool, so every session shares it)
- Store, ledger and catalogue fixtures wired to that database
- A FastAPI TestClient with database dependencies overridden
"""
import os

# Keep the application module from touching a real database file
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
import models.product  # noqa: F401
import models.transaction  # noqa: F401
import models.partner  # noqa: F401
import models.log  # noqa: F401
from models.product import ProductType
from services import catalog
from services.errors import StorageFailure
from services.ledger import StockLedger
from store.sql import SqlDocumentStore

OWNER = "owner-1"


@pytest.fixture
def owner():
    return OWNER


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(session_factory):
    return SqlDocumentStore(session_factory, max_retries=3)


@pytest.fixture
def ledger(store):
    return StockLedger(store, hard_delete_on_revert=False)


@pytest.fixture
def stock(store):
    """Current stock straight from the database."""
    def _stock(product_id):
        return store.get("products", product_id)["current_stock"]
    return _stock


@pytest.fixture
def make_product(db):
    def _make(name, stock=0, cost=0.0, price=0.0, bom=None, owner_id=OWNER, **extra):
        data = {
            "name": name,
            "current_stock": stock,
            "cost_price": cost,
            "sale_price": price,
            "type": ProductType.FINAL if bom else extra.pop("type", ProductType.INSUMO),
            "bom": [
                {"component_id": component.id, "quantity_per_unit": qty} for component, qty in (bom or [])
            ],
            **extra,
        }
        return catalog.create_product(db, owner_id, data)
    return _make


@pytest.fixture
def client(session_factory, store):
    from fastapi.testclient import TestClient

    from main import app
    from utils.deps import get_store

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as test_client:
        test_client.headers.update({"X-Owner-Id": OWNER})
        yield test_client
    app.dependency_overrides.clear()


class FlakyStore(SqlDocumentStore):
    """Store whose atomic commits (and optionally single writes) can be made to fail."""

    def __init__(self, session_factory):
        super().__init__(session_factory, max_retries=3)
        self.fail_atomic = False
        self.fail_apply = False
        self.fail_collections = set()

    def run_atomic(self, fn):
        if self.fail_atomic:
            raise StorageFailure("database unavailable")
        return super().run_atomic(fn)

    def apply(self, op):
        if self.fail_apply or op.ref.collection in self.fail_collections:
            raise StorageFailure("database unavailable")
        return super().apply(op)


@pytest.fixture
def flaky(session_factory):
    return FlakyStore(session_factory)

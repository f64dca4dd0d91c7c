import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.auth import get_current_actor
from app.database import get_db, init_db
from app.main import app
from app.schemas.ledger import Actor
from app.schemas.product import ProductCreate
from app.services import product_service


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def actor():
    return Actor(username="tester", role="manager")


@pytest.fixture
def make_product(db, actor):
    counter = {"n": 0}

    def _make(sku=None, quantity=0, **fields):
        counter["n"] += 1
        data = {
            "sku": sku or f"SKU-{counter['n']:03d}",
            "name": fields.pop("name", f"Product {counter['n']}"),
            "category": "Other",
            "price": 10.0,
            "cost": 6.0,
            "quantity": quantity,
            "location": "A-01",
        }
        data.update(fields)
        return product_service.create_product(db, ProductCreate(**data), actor)

    return _make


@pytest.fixture
def client(session_factory, actor):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_current_actor] = lambda: actor
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()

# tests/conftest.py
import os

import pytest
from fastapi.testclient import TestClient

# In-memory database must be configured before the service modules are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from stock_service import database, models  # noqa: E402
from stock_service.main import app  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_tables():
    models.Base.metadata.drop_all(bind=database.engine)
    models.Base.metadata.create_all(bind=database.engine)
    yield


@pytest.fixture
def db():
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_product(client):
    def _make(name="Caneta Azul", sku="CAN-1", min_stock=5, initial_stock=0, **extra):
        r = client.post(
            "/api/products",
            json={"name": name, "sku": sku, "min_stock": min_stock, "initial_stock": initial_stock, **extra},
        )
        assert r.status_code == 201, r.text
        return r.json()

    return _make

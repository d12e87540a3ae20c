"""Shared fixtures: in-memory Mongo, caches, a disabled notifier and an ASGI client."""

import os

# Transactions need a replica set; the in-memory store has none.
os.environ["MONGO_TRANSACTIONS"] = "false"

import pytest
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from app.core.config import config
from app.db.mongo import ensure_indexes
from app.features.catalog.caches import build_caches
from app.features.notifications.service import Notifier


@pytest.fixture(autouse=True)
def _no_transactions(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(config, "mongo_transactions", False)


@pytest.fixture
async def db():
    """Fresh in-memory database per test."""
    client = AsyncMongoMockClient()
    database = client["tradein_test"]
    await ensure_indexes(database)
    return database


@pytest.fixture
def caches(db):
    return build_caches(db)


@pytest.fixture
def notifier():
    return Notifier(None)


@pytest.fixture
async def client(db, caches, notifier):
    """ASGI client wired to the in-memory store (lifespan is not run)."""
    from app.main import app

    app.state.db = db
    app.state.caches = caches
    app.state.notifier = notifier

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def price_list(db, caches):
    """Active Phone list: iPhone 13 Pro (id 1, A=500), iPhone 13 (id 2, A=400 B=300); Pixel 7 (id 3) unpriced."""
    from app.features.catalog.schemas import DeviceCreate
    from app.features.catalog.service import create_device
    from app.features.pricing.schemas import PriceListCreate, PriceRow
    from app.features.pricing.service import create_price_list

    result = await create_price_list(
        db,
        caches,
        PriceListCreate(
            name="Phones October",
            activate=True,
            rows=[
                PriceRow(make="Apple", model="iPhone 13 Pro", storage="256GB", A=500),
                PriceRow(make="Apple", model="iPhone 13", storage="128GB", A=400, B=300),
            ],
        ),
    )
    await create_device(db, caches, DeviceCreate(make="Google", model="Pixel 7", storage="128GB"))
    return result.price_list

"""
Test Configuration — Fixtures for async DB, test client, and seeded inventory.

Every test gets its own in-memory SQLite database (StaticPool keeps the one
connection alive for the engine's lifetime), so commits made by routers are
real and nothing leaks between tests.
"""

import uuid
from datetime import date, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from api.deps import get_db
from api.main import app
from db.session import Base

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

LOCATION_ID = uuid.UUID("00000000-0000-0000-0000-0000000000a1")
OTHER_LOCATION_ID = uuid.UUID("00000000-0000-0000-0000-0000000000a2")
CATEGORY_ID = uuid.UUID("00000000-0000-0000-0000-0000000000c1")
UNIT_A_ID = uuid.UUID("00000000-0000-0000-0000-00000000000a")
UNIT_B_ID = uuid.UUID("00000000-0000-0000-0000-00000000000b")


@pytest.fixture
async def test_engine():
    """Create a fresh in-memory database with all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    """Session bound to the per-test engine."""
    SessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with SessionLocal() as session:
        yield session


@pytest.fixture
async def client(test_db):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def seeded_db(test_db):
    """
    Built-in strategies plus one product with two batches at LOCATION_ID:

      A: cost 100, 5 available, acquired 200 days ago
      B: cost  80, 3 available, acquired  50 days ago
    """
    from allocation.defaults import seed_default_strategies
    from db.models import InventoryUnit, Product

    await seed_default_strategies(test_db)

    product = Product(
        sku="ENC-1200",
        name="Control Enclosure 1200",
        category_id=CATEGORY_ID,
        historical_avg_cost=90.0,
    )
    test_db.add(product)
    await test_db.flush()

    today = date.today()
    unit_a = InventoryUnit(
        unit_id=UNIT_A_ID,
        product_id=product.product_id,
        location_id=LOCATION_ID,
        unit_kind="batch",
        reference="B-0001",
        quantity_available=5,
        unit_cost=100.0,
        acquisition_date=today - timedelta(days=200),
        warranty_expiry_date=today + timedelta(days=500),
        performance_rating="good",
    )
    unit_b = InventoryUnit(
        unit_id=UNIT_B_ID,
        product_id=product.product_id,
        location_id=LOCATION_ID,
        unit_kind="batch",
        reference="B-0002",
        quantity_available=3,
        unit_cost=80.0,
        acquisition_date=today - timedelta(days=50),
        warranty_expiry_date=today + timedelta(days=700),
        performance_rating="excellent",
    )
    test_db.add_all([unit_a, unit_b])
    await test_db.flush()
    await test_db.commit()

    return {
        "product": product,
        "unit_a": unit_a,
        "unit_b": unit_b,
        "location_id": LOCATION_ID,
        "category_id": CATEGORY_ID,
    }

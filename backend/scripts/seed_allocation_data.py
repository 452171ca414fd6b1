#!/usr/bin/env python3
"""
Seed Allocation Data — schema, built-in strategies and demo inventory.

Examples:
  python backend/scripts/seed_allocation_data.py
  python backend/scripts/seed_allocation_data.py --database-url sqlite+aiosqlite:///./allocation.db --demo
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import random
import sys
import uuid
from datetime import date, timedelta
from typing import Any

# Add backend/ to path when run as a script.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from allocation.defaults import seed_default_strategies
from core.config import get_settings
from db.models import InventoryUnit, Product
from db.session import Base

DEMO_LOCATION_ID = uuid.UUID("00000000-0000-0000-0000-0000000000a1")
DEMO_CATEGORY_ID = uuid.UUID("00000000-0000-0000-0000-0000000000c1")
DEMO_PRODUCTS = [
    ("ENC-1200", "Control Enclosure 1200", 412.50),
    ("PSU-24V", "24V DIN Power Supply", 86.00),
    ("RLY-8CH", "8-Channel Relay Module", 39.90),
]
RATINGS = ["excellent", "good", "average", "poor", "unrated"]


async def _seed_demo_inventory(db: AsyncSession, seed: int) -> int:
    rng = random.Random(seed)
    today = date.today()
    created = 0
    for sku, name, avg_cost in DEMO_PRODUCTS:
        existing = await db.execute(select(Product).where(Product.sku == sku))
        if existing.scalar_one_or_none() is not None:
            continue
        product = Product(sku=sku, name=name, category_id=DEMO_CATEGORY_ID, historical_avg_cost=avg_cost)
        db.add(product)
        await db.flush()

        for i in range(6):
            is_serial = i % 3 == 0
            acquired = today - timedelta(days=rng.randint(10, 720))
            db.add(
                InventoryUnit(
                    product_id=product.product_id,
                    location_id=DEMO_LOCATION_ID,
                    unit_kind="serial" if is_serial else "batch",
                    reference=f"{'SN' if is_serial else 'B'}-{sku}-{i + 1:03d}",
                    quantity_available=1 if is_serial else rng.randint(5, 40),
                    unit_cost=round(avg_cost * rng.uniform(0.8, 1.25), 2),
                    acquisition_date=acquired,
                    warranty_expiry_date=acquired + timedelta(days=rng.choice([365, 730, 1095])),
                    performance_rating=rng.choice(RATINGS),
                    failure_count=rng.choice([0, 0, 0, 1, 2]),
                )
            )
            created += 1
    await db.flush()
    return created


async def seed(database_url: str, *, demo: bool, seed_value: int) -> dict[str, Any]:
    engine = create_async_engine(database_url)
    SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with SessionLocal() as db:
            strategies = await seed_default_strategies(db)
            units = await _seed_demo_inventory(db, seed_value) if demo else 0
            await db.commit()
    finally:
        await engine.dispose()

    return {"status": "ok", "strategies_created": strategies, "units_created": units}


def main() -> int:
    parser = argparse.ArgumentParser(description="Create schema and seed allocation strategies")
    parser.add_argument("--database-url", default=None, help="Defaults to DATABASE_URL from settings")
    parser.add_argument("--demo", action="store_true", help="Also create demo products and units")
    parser.add_argument("--seed", type=int, default=42, help="Random seed for demo inventory")
    args = parser.parse_args()

    database_url = args.database_url or get_settings().database_url
    summary = asyncio.run(seed(database_url, demo=args.demo, seed_value=args.seed))
    print(json.dumps(summary))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

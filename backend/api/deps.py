"""
Allocation API Dependencies

Dependency injection for DB sessions and the per-request Allocator.
"""

from collections.abc import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from allocation.allocator import Allocator
from allocation.ledger import SqlAllocationLedger
from allocation.pool import SqlInventoryPool
from allocation.strategies import load_strategy_registry
from core.config import get_settings
from db.session import AsyncSessionLocal


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_allocator(db: AsyncSession = Depends(get_db)) -> Allocator:
    """
    Build an Allocator bound to the request's session.

    The strategy registry is snapshotted once here, so edits made while the
    request is in flight do not change the weights it applies.
    """
    registry = await load_strategy_registry(db)
    return Allocator(
        pool=SqlInventoryPool(db),
        registry=registry,
        ledger=SqlAllocationLedger(db),
        settings=get_settings(),
    )

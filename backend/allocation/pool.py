"""
Inventory Pool — the authoritative set of allocatable units.

The allocator only touches the pool through this interface:

  list_available_units()  read-only, lock-free
  reserve()               atomic compare-and-set: succeeds only while the
                          unit is AVAILABLE with enough quantity left
  release()               compensating update for a reservation
  finalize()              drained RESERVED units → ALLOCATED

Two commits racing for the same unit both issue the same conditional
UPDATE; the database lets exactly one of them match the WHERE clause.
No pool-wide lock is held, so unrelated products allocate in parallel.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from allocation.domain import (
    PerformanceRating,
    ProductInfo,
    UnitKind,
    UnitSnapshot,
    UnitStatus,
)
from db.models import InventoryUnit, Product

logger = structlog.get_logger()


class InventoryPool(ABC):
    """Repository interface over InventoryUnit rows."""

    @abstractmethod
    async def get_product(self, product_id: UUID) -> ProductInfo | None:
        """Catalog projection used for category lookup and cost history."""
        ...

    @abstractmethod
    async def list_available_units(
        self,
        product_id: UUID,
        location_id: UUID | None = None,
    ) -> list[UnitSnapshot]:
        """AVAILABLE units with quantity_available > 0, ordered by unit_id."""
        ...

    @abstractmethod
    async def get_units(self, unit_ids: Iterable[UUID]) -> dict[UUID, UnitSnapshot]:
        """Fetch units by id regardless of status. Unknown ids are omitted."""
        ...

    @abstractmethod
    async def reserve(self, unit_id: UUID, quantity: int) -> bool:
        """Take `quantity` from the unit if it is still AVAILABLE with enough stock.

        Returns False (and changes nothing) when the precondition no longer holds.
        """
        ...

    @abstractmethod
    async def release(self, unit_id: UUID, quantity: int) -> None:
        """Return `quantity` to the unit and make it AVAILABLE again."""
        ...

    @abstractmethod
    async def finalize(self, unit_ids: Iterable[UUID]) -> None:
        """Flip drained RESERVED units to ALLOCATED."""
        ...


def unit_to_snapshot(unit: InventoryUnit) -> UnitSnapshot:
    return UnitSnapshot(
        unit_id=unit.unit_id,
        product_id=unit.product_id,
        location_id=unit.location_id,
        quantity_available=unit.quantity_available,
        unit_cost=float(unit.unit_cost),
        acquisition_date=unit.acquisition_date,
        warranty_expiry_date=unit.warranty_expiry_date,
        performance_rating=PerformanceRating(unit.performance_rating),
        failure_count=unit.failure_count or 0,
        status=UnitStatus(unit.status),
        unit_kind=UnitKind(unit.unit_kind),
        reference=unit.reference,
    )


class SqlInventoryPool(InventoryPool):
    """InventoryPool backed by the inventory_units table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_product(self, product_id: UUID) -> ProductInfo | None:
        product = await self.db.get(Product, product_id)
        if product is None:
            return None
        return ProductInfo(
            product_id=product.product_id,
            sku=product.sku,
            name=product.name,
            category_id=product.category_id,
            historical_avg_cost=product.historical_avg_cost,
        )

    async def list_available_units(
        self,
        product_id: UUID,
        location_id: UUID | None = None,
    ) -> list[UnitSnapshot]:
        query = select(InventoryUnit).where(
            InventoryUnit.product_id == product_id,
            InventoryUnit.status == UnitStatus.AVAILABLE.value,
            InventoryUnit.quantity_available > 0,
        )
        if location_id is not None:
            query = query.where(InventoryUnit.location_id == location_id)
        # Conditional UPDATEs bypass the identity map; always reload row state
        query = query.order_by(InventoryUnit.unit_id).execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return [unit_to_snapshot(u) for u in result.scalars().all()]

    async def get_units(self, unit_ids: Iterable[UUID]) -> dict[UUID, UnitSnapshot]:
        ids = list(unit_ids)
        if not ids:
            return {}
        result = await self.db.execute(
            select(InventoryUnit)
            .where(InventoryUnit.unit_id.in_(ids))
            .execution_options(populate_existing=True)
        )
        return {u.unit_id: unit_to_snapshot(u) for u in result.scalars().all()}

    async def reserve(self, unit_id: UUID, quantity: int) -> bool:
        stmt = (
            update(InventoryUnit)
            .where(
                InventoryUnit.unit_id == unit_id,
                InventoryUnit.status == UnitStatus.AVAILABLE.value,
                InventoryUnit.quantity_available >= quantity,
            )
            .values(
                quantity_available=InventoryUnit.quantity_available - quantity,
                # SET expressions see the pre-update row
                status=case(
                    (InventoryUnit.quantity_available == quantity, UnitStatus.RESERVED.value),
                    else_=InventoryUnit.status,
                ),
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        reserved = result.rowcount == 1
        if not reserved:
            logger.info("pool.reserve.rejected", unit_id=str(unit_id), quantity=quantity)
        return reserved

    async def release(self, unit_id: UUID, quantity: int) -> None:
        await self.db.execute(
            update(InventoryUnit)
            .where(
                InventoryUnit.unit_id == unit_id,
                InventoryUnit.status.in_(
                    [UnitStatus.AVAILABLE.value, UnitStatus.RESERVED.value, UnitStatus.ALLOCATED.value]
                ),
            )
            .values(
                quantity_available=InventoryUnit.quantity_available + quantity,
                status=UnitStatus.AVAILABLE.value,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

    async def finalize(self, unit_ids: Iterable[UUID]) -> None:
        ids = list(unit_ids)
        if not ids:
            return
        await self.db.execute(
            update(InventoryUnit)
            .where(
                InventoryUnit.unit_id.in_(ids),
                InventoryUnit.status == UnitStatus.RESERVED.value,
                InventoryUnit.quantity_available == 0,
            )
            .values(status=UnitStatus.ALLOCATED.value, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )

"""
Inventory Router — allocatable units for a product.
"""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from allocation.allocator import Allocator
from allocation.domain import UnitSnapshot
from api.deps import get_allocator

router = APIRouter(prefix="/api/v1/inventory", tags=["inventory"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class UnitResponse(BaseModel):
    unit_id: UUID
    product_id: UUID
    location_id: UUID
    unit_kind: str  # "serial" or "batch"
    reference: str | None
    quantity_available: int
    unit_cost: float
    acquisition_date: date
    warranty_expiry_date: date | None
    performance_rating: str
    failure_count: int
    status: str

    @classmethod
    def from_snapshot(cls, unit: UnitSnapshot) -> "UnitResponse":
        return cls(
            unit_id=unit.unit_id,
            product_id=unit.product_id,
            location_id=unit.location_id,
            unit_kind=unit.unit_kind.value,
            reference=unit.reference,
            quantity_available=unit.quantity_available,
            unit_cost=unit.unit_cost,
            acquisition_date=unit.acquisition_date,
            warranty_expiry_date=unit.warranty_expiry_date,
            performance_rating=unit.performance_rating.value,
            failure_count=unit.failure_count,
            status=unit.status.value,
        )


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/units", response_model=list[UnitResponse])
async def list_available_units(
    product_id: UUID,
    location_id: UUID | None = None,
    allocator: Allocator = Depends(get_allocator),
):
    """AVAILABLE units with stock on hand, ordered by unit_id."""
    units = await allocator.list_available_units(product_id, location_id)
    return [UnitResponse.from_snapshot(u) for u in units]

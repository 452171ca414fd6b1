"""
Allocations Router — preview, compare, execute and release allocations.

Typed allocation errors propagate to the app-level handler in api.main,
which maps them to status codes. Writes are committed only after the
Allocator returns successfully; any exception leaves the session to roll back.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from allocation.allocator import Allocator
from allocation.analytics import summarize_allocations
from allocation.domain import (
    AllocationPlan,
    AllocationRequest,
    BusinessContext,
    TransactionRecord,
    TransactionStatus,
)
from allocation.manual import DEFAULT_ALLOCATION_REASON, ManualPick, ManualSelection
from api.deps import get_allocator, get_db

router = APIRouter(prefix="/api/v1/allocations", tags=["allocations"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class AllocationRequestBody(BaseModel):
    product_id: UUID
    quantity_needed: int = Field(gt=0)
    business_context: BusinessContext
    location_id: UUID | None = None
    customer_tier: str | None = None
    project_priority: str | None = None
    custom_strategy_id: UUID | None = None
    order_value: float | None = Field(default=None, ge=0)
    transaction_id: UUID | None = None

    def to_request(self) -> AllocationRequest:
        return AllocationRequest(**self.model_dump())


class AllocationLineResponse(BaseModel):
    unit_id: UUID
    reference: str | None
    quantity_allocated: int
    unit_cost: float
    line_cost: float
    score: float | None
    reason: str
    sequence_order: int


class AllocationPlanResponse(BaseModel):
    transaction_id: UUID | None
    product_id: UUID
    location_id: UUID | None
    allocation_type: str
    business_context: str | None
    quantity_requested: int
    quantity_allocated: int
    total_cost: float
    average_unit_cost: float
    strategy_used: str | None
    strategy_id: UUID | None
    lines: list[AllocationLineResponse]
    recommendations: list[str]

    @classmethod
    def from_plan(cls, plan: AllocationPlan) -> "AllocationPlanResponse":
        return cls(**plan.to_dict())


class ComparisonResponse(BaseModel):
    preview: AllocationPlanResponse
    comparisons: dict[str, dict[str, Any]]
    recommendation: dict[str, Any]


class TransactionResponse(BaseModel):
    transaction_id: UUID
    status: str
    created_at: datetime
    released_at: datetime | None
    customer_tier: str | None
    project_priority: str | None
    reference: str | None
    allocation: AllocationPlanResponse

    @classmethod
    def from_record(cls, record: TransactionRecord) -> "TransactionResponse":
        return cls(
            transaction_id=record.transaction_id,
            status=record.status.value,
            created_at=record.created_at,
            released_at=record.released_at,
            customer_tier=record.customer_tier,
            project_priority=record.project_priority,
            reference=record.reference,
            allocation=AllocationPlanResponse.from_plan(record.plan),
        )


class ManualPickBody(BaseModel):
    unit_id: UUID
    quantity: int = 1
    allocation_reason: str = DEFAULT_ALLOCATION_REASON


class ManualSelectionBody(BaseModel):
    product_id: UUID
    location_id: UUID
    quantity_needed: int = Field(gt=0)
    selections: list[ManualPickBody] = Field(default_factory=list)
    estimation_item_id: str | None = None
    transaction_id: UUID | None = None

    def to_selection(self) -> ManualSelection:
        return ManualSelection(
            product_id=self.product_id,
            location_id=self.location_id,
            quantity_needed=self.quantity_needed,
            picks=[
                ManualPick(unit_id=s.unit_id, quantity=s.quantity, allocation_reason=s.allocation_reason)
                for s in self.selections
            ],
            estimation_item_id=self.estimation_item_id,
            transaction_id=self.transaction_id,
        )


class SelectionStatusResponse(BaseModel):
    is_complete: bool
    quantity_needed: int
    quantity_selected: int
    quantity_remaining: int
    invalid: list[str]
    unavailable: list[str]


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.post("/preview", response_model=AllocationPlanResponse)
async def preview_allocation(
    body: AllocationRequestBody,
    allocator: Allocator = Depends(get_allocator),
):
    """Rank units and return the plan without reserving anything."""
    plan = await allocator.preview(body.to_request())
    return AllocationPlanResponse.from_plan(plan)


@router.post("/compare", response_model=ComparisonResponse)
async def compare_allocation_contexts(
    body: AllocationRequestBody,
    allocator: Allocator = Depends(get_allocator),
):
    """Preview under the requested context and compare against the others."""
    result = await allocator.compare_contexts(body.to_request())
    return ComparisonResponse(
        preview=AllocationPlanResponse.from_plan(result["preview"]),
        comparisons=result["comparisons"],
        recommendation=result["recommendation"],
    )


@router.post("/execute", response_model=AllocationPlanResponse, status_code=201)
async def execute_allocation(
    body: AllocationRequestBody,
    allocator: Allocator = Depends(get_allocator),
    db: AsyncSession = Depends(get_db),
):
    """Commit an allocation. Retry on 409 allocation_conflict only."""
    try:
        plan = await allocator.execute(body.to_request())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    await db.commit()
    return AllocationPlanResponse.from_plan(plan)


@router.post("/manual/validate", response_model=SelectionStatusResponse)
async def validate_manual_selection(
    body: ManualSelectionBody,
    allocator: Allocator = Depends(get_allocator),
):
    """Report whether a hand-picked selection can be committed yet."""
    status = await allocator.validate_manual(body.to_selection())
    return SelectionStatusResponse(
        is_complete=status.is_complete,
        quantity_needed=status.quantity_needed,
        quantity_selected=status.quantity_selected,
        quantity_remaining=status.quantity_remaining,
        invalid=status.invalid,
        unavailable=status.unavailable,
    )


@router.post("/manual/execute", response_model=AllocationPlanResponse, status_code=201)
async def execute_manual_selection(
    body: ManualSelectionBody,
    allocator: Allocator = Depends(get_allocator),
    db: AsyncSession = Depends(get_db),
):
    """Commit a complete manual selection."""
    try:
        plan = await allocator.execute_manual(body.to_selection())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    await db.commit()
    return AllocationPlanResponse.from_plan(plan)


@router.get("/transactions", response_model=list[TransactionResponse])
async def list_transactions(
    product_id: UUID | None = None,
    location_id: UUID | None = None,
    business_context: BusinessContext | None = None,
    allocation_type: str | None = Query(None, pattern="^(auto|manual)$"),
    status: TransactionStatus | None = None,
    customer_tier: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = Query(50, ge=1, le=200),
    allocator: Allocator = Depends(get_allocator),
):
    """Allocation history, most recent first."""
    records = await allocator.list_transactions(
        product_id=product_id,
        location_id=location_id,
        business_context=business_context,
        allocation_type=allocation_type,
        status=status,
        customer_tier=customer_tier,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
    )
    return [TransactionResponse.from_record(r) for r in records]


@router.get("/transactions/summary")
async def get_transactions_summary(
    product_id: UUID | None = None,
    location_id: UUID | None = None,
    customer_tier: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = Query(1000, ge=1, le=10000),
    allocator: Allocator = Depends(get_allocator),
):
    """Totals and breakdowns by context, strategy and allocation type."""
    records = await allocator.list_transactions(
        product_id=product_id,
        location_id=location_id,
        customer_tier=customer_tier,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
    )
    return summarize_allocations(records)


@router.get("/transactions/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: UUID,
    allocator: Allocator = Depends(get_allocator),
):
    """Look up the outcome of an execute, e.g. after a client timeout."""
    record = await allocator.get_transaction(transaction_id)
    return TransactionResponse.from_record(record)


@router.post("/transactions/{transaction_id}/release", response_model=TransactionResponse)
async def release_transaction(
    transaction_id: UUID,
    allocator: Allocator = Depends(get_allocator),
    db: AsyncSession = Depends(get_db),
):
    """Return a committed allocation's units to the pool."""
    record = await allocator.release(transaction_id)
    await db.commit()
    return TransactionResponse.from_record(record)

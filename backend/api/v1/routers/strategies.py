"""
Strategies Router — strategy catalog and product/category preferences.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from allocation.allocator import Allocator
from allocation.domain import (
    BusinessContext,
    CriterionType,
    RuleSnapshot,
    SortOrder,
    StrategySnapshot,
    StrategyType,
)
from allocation.strategies import (
    MAX_RULE_WEIGHT,
    MIN_RULE_WEIGHT,
    create_strategy,
    list_preferences,
    strategy_to_snapshot,
    upsert_preference,
)
from api.deps import get_allocator, get_db

router = APIRouter(prefix="/api/v1/strategies", tags=["strategies"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class RuleBody(BaseModel):
    criteria_type: CriterionType
    weight: float = Field(ge=MIN_RULE_WEIGHT, le=MAX_RULE_WEIGHT)
    sort_order: SortOrder
    priority: int = Field(default=1, ge=1)
    is_active: bool = True


class StrategyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    code: str = Field(min_length=1, max_length=50, pattern=r"^[A-Z0-9_]+$")
    strategy_type: StrategyType = StrategyType.CUSTOM
    business_context: BusinessContext | None = None
    is_default: bool = False
    is_active: bool = True
    description: str | None = None
    rules: list[RuleBody] = Field(min_length=1)


class RuleResponse(BaseModel):
    criteria_type: str
    weight: float
    sort_order: str
    priority: int
    is_active: bool


class StrategyResponse(BaseModel):
    strategy_id: UUID
    name: str
    code: str
    strategy_type: str
    business_context: str | None
    is_active: bool
    is_default: bool
    description: str | None
    rules: list[RuleResponse]

    @classmethod
    def from_snapshot(cls, strategy: StrategySnapshot) -> "StrategyResponse":
        return cls(
            strategy_id=strategy.strategy_id,
            name=strategy.name,
            code=strategy.code,
            strategy_type=strategy.strategy_type.value,
            business_context=strategy.business_context.value if strategy.business_context else None,
            is_active=strategy.is_active,
            is_default=strategy.is_default,
            description=strategy.description,
            rules=[
                RuleResponse(
                    criteria_type=r.criteria_type.value,
                    weight=r.weight,
                    sort_order=r.sort_order.value,
                    priority=r.priority,
                    is_active=r.is_active,
                )
                for r in sorted(strategy.rules, key=lambda r: r.priority)
            ],
        )


class PreferenceBody(BaseModel):
    product_id: UUID | None = None
    category_id: UUID | None = None
    default_strategy_id: UUID | None = None
    high_value_threshold: float | None = Field(default=None, ge=0)
    high_value_strategy_id: UUID | None = None
    critical_project_strategy_id: UUID | None = None
    premium_customer_strategy_id: UUID | None = None
    is_active: bool = True

    @model_validator(mode="after")
    def exactly_one_scope(self):
        if (self.product_id is None) == (self.category_id is None):
            raise ValueError("Exactly one of product_id or category_id is required")
        return self


class PreferenceResponse(PreferenceBody):
    preference_id: UUID

    model_config = {"from_attributes": True}


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[StrategyResponse])
async def list_strategies(
    strategy_type: StrategyType | None = None,
    active_only: bool = True,
    allocator: Allocator = Depends(get_allocator),
):
    """List strategies, context defaults first within each type."""
    strategies = allocator.list_strategies(strategy_type=strategy_type, active_only=active_only)
    return [StrategyResponse.from_snapshot(s) for s in strategies]


@router.post("/", response_model=StrategyResponse, status_code=201)
async def create_allocation_strategy(
    body: StrategyCreate,
    db: AsyncSession = Depends(get_db),
):
    """Create a strategy. A new context default replaces the previous one."""
    try:
        strategy = await create_strategy(
            db,
            name=body.name,
            code=body.code,
            strategy_type=body.strategy_type,
            business_context=body.business_context,
            is_default=body.is_default,
            is_active=body.is_active,
            description=body.description,
            rules=[
                RuleSnapshot(
                    criteria_type=r.criteria_type,
                    weight=r.weight,
                    sort_order=r.sort_order,
                    priority=r.priority,
                    is_active=r.is_active,
                )
                for r in body.rules
            ],
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    snapshot = strategy_to_snapshot(strategy)
    await db.commit()
    return StrategyResponse.from_snapshot(snapshot)


@router.get("/preferences", response_model=list[PreferenceResponse])
async def get_preferences(db: AsyncSession = Depends(get_db)):
    """List product- and category-level strategy preferences."""
    return await list_preferences(db)


@router.put("/preferences", response_model=PreferenceResponse)
async def put_preference(
    body: PreferenceBody,
    db: AsyncSession = Depends(get_db),
):
    """Create or replace the preference for one product or category."""
    try:
        pref = await upsert_preference(db, **body.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    response = PreferenceResponse.model_validate(pref)
    await db.commit()
    return response

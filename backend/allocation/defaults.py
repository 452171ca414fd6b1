"""
Built-in allocation strategies.

Context defaults:
  estimation    → MARGIN_PROTECTION   (quote against higher-cost stock)
  manufacturing → COST_OPTIMIZATION   (consume the cheapest stock)
  sales         → BALANCED            (cost, age, warranty and performance)

WARRANTY_OPTIMIZATION and INVENTORY_ROTATION are available for preferences
and explicit overrides.
"""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from allocation.domain import BusinessContext, CriterionType, RuleSnapshot, SortOrder, StrategyType
from allocation.strategies import create_strategy
from db.models import AllocationStrategy

logger = structlog.get_logger()

C = CriterionType

BUILT_IN_STRATEGIES = [
    {
        "code": "MARGIN_PROTECTION",
        "name": "Margin Protection",
        "strategy_type": StrategyType.COST_OPTIMIZATION,
        "business_context": BusinessContext.ESTIMATION,
        "is_default": True,
        "description": "Estimate against higher-cost units so quoted margins hold when cheaper stock runs out.",
        "rules": [
            RuleSnapshot(C.UNIT_COST, weight=3.0, sort_order=SortOrder.DESC, priority=1),
            RuleSnapshot(C.AGE_DAYS, weight=1.0, sort_order=SortOrder.DESC, priority=2),
        ],
    },
    {
        "code": "COST_OPTIMIZATION",
        "name": "Cost Optimization",
        "strategy_type": StrategyType.COST_OPTIMIZATION,
        "business_context": BusinessContext.MANUFACTURING,
        "is_default": True,
        "description": "Consume the lowest landed cost first, oldest stock breaking near-ties.",
        "rules": [
            RuleSnapshot(C.UNIT_COST, weight=3.0, sort_order=SortOrder.ASC, priority=1),
            RuleSnapshot(C.AGE_DAYS, weight=1.0, sort_order=SortOrder.DESC, priority=2),
            RuleSnapshot(C.FAILURE_COUNT, weight=0.5, sort_order=SortOrder.ASC, priority=3),
        ],
    },
    {
        "code": "BALANCED",
        "name": "Balanced",
        "strategy_type": StrategyType.CUSTOM,
        "business_context": BusinessContext.SALES,
        "is_default": True,
        "description": "Weigh cost, age, warranty and field performance equally.",
        "rules": [
            RuleSnapshot(C.UNIT_COST, weight=1.0, sort_order=SortOrder.ASC, priority=1),
            RuleSnapshot(C.AGE_DAYS, weight=1.0, sort_order=SortOrder.DESC, priority=2),
            RuleSnapshot(C.WARRANTY_REMAINING_DAYS, weight=1.0, sort_order=SortOrder.DESC, priority=3),
            RuleSnapshot(C.PERFORMANCE_RATING, weight=1.0, sort_order=SortOrder.DESC, priority=4),
            RuleSnapshot(C.FAILURE_COUNT, weight=0.5, sort_order=SortOrder.ASC, priority=5),
        ],
    },
    {
        "code": "WARRANTY_OPTIMIZATION",
        "name": "Warranty Optimization",
        "strategy_type": StrategyType.WARRANTY_OPTIMIZATION,
        "business_context": None,
        "is_default": False,
        "description": "Ship the units with the most warranty left and the best track record.",
        "rules": [
            RuleSnapshot(C.WARRANTY_REMAINING_DAYS, weight=3.0, sort_order=SortOrder.DESC, priority=1),
            RuleSnapshot(C.PERFORMANCE_RATING, weight=1.5, sort_order=SortOrder.DESC, priority=2),
            RuleSnapshot(C.FAILURE_COUNT, weight=1.0, sort_order=SortOrder.ASC, priority=3),
        ],
    },
    {
        "code": "INVENTORY_ROTATION",
        "name": "Inventory Rotation",
        "strategy_type": StrategyType.INVENTORY_ROTATION,
        "business_context": None,
        "is_default": False,
        "description": "Strict FIFO: oldest acquisitions leave first.",
        "rules": [
            RuleSnapshot(C.AGE_DAYS, weight=3.0, sort_order=SortOrder.DESC, priority=1),
            RuleSnapshot(C.UNIT_COST, weight=0.5, sort_order=SortOrder.ASC, priority=2),
        ],
    },
]


async def seed_default_strategies(db: AsyncSession) -> list[str]:
    """Create any built-in strategy that is missing. Returns the codes created."""
    result = await db.execute(select(AllocationStrategy.code))
    existing = set(result.scalars().all())
    default_result = await db.execute(
        select(AllocationStrategy.business_context).where(AllocationStrategy.is_default.is_(True))
    )
    contexts_with_default = set(default_result.scalars().all())

    created = []
    for definition in BUILT_IN_STRATEGIES:
        if definition["code"] in existing:
            continue
        context = definition["business_context"]
        # Never demote a default an operator configured
        is_default = definition["is_default"] and (context is None or context.value not in contexts_with_default)
        await create_strategy(db, **{**definition, "is_default": is_default})
        created.append(definition["code"])

    if created:
        logger.info("strategy.seeded", codes=created)
    return created

"""
Allocation domain types.

Plain dataclasses passed between the pool, the strategy registry, the scorer
and the allocator. ORM rows are converted into these snapshots at the pool
and registry boundaries so that an in-flight allocation never sees a
strategy or unit change underneath it.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID


class UnitStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    ALLOCATED = "allocated"
    UNAVAILABLE = "unavailable"


class UnitKind(str, Enum):
    SERIAL = "serial"
    BATCH = "batch"


class PerformanceRating(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    AVERAGE = "average"
    POOR = "poor"
    UNRATED = "unrated"


class BusinessContext(str, Enum):
    ESTIMATION = "estimation"
    MANUFACTURING = "manufacturing"
    SALES = "sales"


class StrategyType(str, Enum):
    COST_OPTIMIZATION = "cost_optimization"
    WARRANTY_OPTIMIZATION = "warranty_optimization"
    INVENTORY_ROTATION = "inventory_rotation"
    CUSTOM = "custom"


class CriterionType(str, Enum):
    UNIT_COST = "unit_cost"
    WARRANTY_REMAINING_DAYS = "warranty_remaining_days"
    AGE_DAYS = "age_days"
    PERFORMANCE_RATING = "performance_rating"
    FAILURE_COUNT = "failure_count"


class SortOrder(str, Enum):
    ASC = "asc"  # lower raw value is better
    DESC = "desc"  # higher raw value is better


class TransactionStatus(str, Enum):
    ALLOCATED = "allocated"
    RELEASED = "released"


# ── Inventory Pool snapshots ──────────────────────────────────────────────


@dataclass(frozen=True)
class UnitSnapshot:
    """Point-in-time view of one InventoryUnit row."""

    unit_id: UUID
    product_id: UUID
    location_id: UUID
    quantity_available: int
    unit_cost: float
    acquisition_date: date
    warranty_expiry_date: date | None = None
    performance_rating: PerformanceRating = PerformanceRating.UNRATED
    failure_count: int = 0
    status: UnitStatus = UnitStatus.AVAILABLE
    unit_kind: UnitKind = UnitKind.BATCH
    reference: str | None = None

    @property
    def is_allocatable(self) -> bool:
        return self.status == UnitStatus.AVAILABLE and self.quantity_available > 0


@dataclass(frozen=True)
class ProductInfo:
    product_id: UUID
    sku: str
    name: str
    category_id: UUID | None = None
    historical_avg_cost: float | None = None


# ── Strategy Registry snapshots ───────────────────────────────────────────


@dataclass(frozen=True)
class RuleSnapshot:
    criteria_type: CriterionType
    weight: float
    sort_order: SortOrder
    priority: int = 1
    is_active: bool = True


@dataclass(frozen=True)
class StrategySnapshot:
    strategy_id: UUID
    name: str
    code: str
    strategy_type: StrategyType
    rules: tuple[RuleSnapshot, ...]
    business_context: BusinessContext | None = None
    is_active: bool = True
    is_default: bool = False
    description: str | None = None

    @property
    def active_rules(self) -> tuple[RuleSnapshot, ...]:
        return tuple(sorted((r for r in self.rules if r.is_active), key=lambda r: r.priority))

    @property
    def primary_rule(self) -> RuleSnapshot | None:
        """Rule with the highest weight; ties go to the lower priority number."""
        rules = self.active_rules
        if not rules:
            return None
        return min(rules, key=lambda r: (-r.weight, r.priority))

    @property
    def tie_break_rule(self) -> RuleSnapshot | None:
        rules = self.active_rules
        return rules[0] if rules else None

    @property
    def is_usable(self) -> bool:
        return self.is_active and bool(self.active_rules)


@dataclass(frozen=True)
class PreferenceSnapshot:
    """Product- or category-level strategy override."""

    product_id: UUID | None = None
    category_id: UUID | None = None
    default_strategy_id: UUID | None = None
    high_value_threshold: float | None = None
    high_value_strategy_id: UUID | None = None
    critical_project_strategy_id: UUID | None = None
    premium_customer_strategy_id: UUID | None = None
    is_active: bool = True


# ── Requests and plans ────────────────────────────────────────────────────


@dataclass
class AllocationRequest:
    product_id: UUID
    quantity_needed: int
    business_context: BusinessContext
    location_id: UUID | None = None
    customer_tier: str | None = None
    project_priority: str | None = None
    custom_strategy_id: UUID | None = None
    order_value: float | None = None
    transaction_id: UUID | None = None

    def __post_init__(self):
        if isinstance(self.quantity_needed, bool) or not isinstance(self.quantity_needed, int):
            raise ValueError("quantity_needed must be an integer")
        if self.quantity_needed <= 0:
            raise ValueError("quantity_needed must be greater than zero")
        self.business_context = BusinessContext(self.business_context)


@dataclass
class AllocationLine:
    unit_id: UUID
    quantity_allocated: int
    unit_cost: float
    score: float | None
    reason: str
    sequence_order: int
    reference: str | None = None

    @property
    def line_cost(self) -> float:
        return self.quantity_allocated * self.unit_cost

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit_id": str(self.unit_id),
            "reference": self.reference,
            "quantity_allocated": self.quantity_allocated,
            "unit_cost": self.unit_cost,
            "line_cost": round(self.line_cost, 2),
            "score": self.score,
            "reason": self.reason,
            "sequence_order": self.sequence_order,
        }


@dataclass
class AllocationPlan:
    """Preview (transaction_id is None) or committed allocation."""

    product_id: UUID
    quantity_requested: int
    lines: list[AllocationLine]
    strategy_used: str | None
    strategy_id: UUID | None = None
    business_context: BusinessContext | None = None
    location_id: UUID | None = None
    allocation_type: str = "auto"
    recommendations: list[str] = field(default_factory=list)
    transaction_id: UUID | None = None

    @property
    def quantity_allocated(self) -> int:
        return sum(line.quantity_allocated for line in self.lines)

    @property
    def total_cost(self) -> float:
        return round(sum(line.line_cost for line in self.lines), 2)

    @property
    def average_unit_cost(self) -> float:
        qty = self.quantity_allocated
        if qty == 0:
            return 0.0
        return round(sum(line.line_cost for line in self.lines) / qty, 4)

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction_id": str(self.transaction_id) if self.transaction_id else None,
            "product_id": str(self.product_id),
            "location_id": str(self.location_id) if self.location_id else None,
            "allocation_type": self.allocation_type,
            "business_context": self.business_context.value if self.business_context else None,
            "quantity_requested": self.quantity_requested,
            "quantity_allocated": self.quantity_allocated,
            "total_cost": self.total_cost,
            "average_unit_cost": self.average_unit_cost,
            "strategy_used": self.strategy_used,
            "strategy_id": str(self.strategy_id) if self.strategy_id else None,
            "lines": [line.to_dict() for line in self.lines],
            "recommendations": list(self.recommendations),
        }


@dataclass
class TransactionRecord:
    """A committed plan plus its ledger state."""

    plan: AllocationPlan
    status: TransactionStatus
    created_at: datetime
    customer_tier: str | None = None
    project_priority: str | None = None
    reference: str | None = None
    released_at: datetime | None = None

    @property
    def transaction_id(self) -> UUID:
        return self.plan.transaction_id

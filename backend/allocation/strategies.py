"""
Strategy Registry — named, weighted rule sets and their precedence.

Resolution walks RESOLUTION_ORDER; each resolver returns a strategy id or
None and the first hit wins:

  1. custom_strategy_id on the request (if active)
  2. product-level AllocationPreference
  3. category-level AllocationPreference (only when no product preference)
  4. the context default (is_default for the request's business_context)

Inside a preference the sub-rules are checked premium customer → high value
→ critical project → preference default; a sub-rule pointing at an inactive
or missing strategy falls through to the next one.

The registry itself is an immutable snapshot loaded once per request, so a
strategy edited mid-allocation never changes the weights being applied.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from allocation.domain import (
    BusinessContext,
    CriterionType,
    PreferenceSnapshot,
    RuleSnapshot,
    SortOrder,
    StrategySnapshot,
    StrategyType,
)
from allocation.errors import NoStrategyAvailable
from core.config import get_settings
from db.models import AllocationPreference, AllocationRule, AllocationStrategy

logger = structlog.get_logger()

MIN_RULE_WEIGHT = 0.1
MAX_RULE_WEIGHT = 5.0


@dataclass(frozen=True)
class ResolutionContext:
    product_id: UUID
    business_context: BusinessContext
    category_id: UUID | None = None
    customer_tier: str | None = None
    project_priority: str | None = None
    custom_strategy_id: UUID | None = None
    estimated_value: float | None = None  # quantity × unit cost estimate


class StrategyRegistry:
    """In-memory snapshot of strategies and preferences."""

    def __init__(
        self,
        strategies: Iterable[StrategySnapshot],
        preferences: Iterable[PreferenceSnapshot] = (),
        premium_customer_tiers: Iterable[str] | None = None,
        critical_project_priority: str | None = None,
    ):
        settings = get_settings()
        self._strategies = {s.strategy_id: s for s in strategies}
        self._product_prefs: dict[UUID, PreferenceSnapshot] = {}
        self._category_prefs: dict[UUID, PreferenceSnapshot] = {}
        for pref in preferences:
            if not pref.is_active:
                continue
            if pref.product_id is not None:
                self._product_prefs[pref.product_id] = pref
            elif pref.category_id is not None:
                self._category_prefs[pref.category_id] = pref
        tiers = premium_customer_tiers if premium_customer_tiers is not None else settings.premium_customer_tiers
        self.premium_customer_tiers = frozenset(t.strip().lower() for t in tiers)
        self.critical_project_priority = (
            critical_project_priority or settings.critical_project_priority
        ).strip().lower()

    def get(self, strategy_id: UUID | None) -> StrategySnapshot | None:
        if strategy_id is None:
            return None
        return self._strategies.get(strategy_id)

    def usable(self, strategy_id: UUID | None) -> UUID | None:
        """Return the id if it names an active strategy with at least one active rule."""
        strategy = self.get(strategy_id)
        return strategy.strategy_id if strategy and strategy.is_usable else None

    def product_preference(self, product_id: UUID) -> PreferenceSnapshot | None:
        return self._product_prefs.get(product_id)

    def category_preference(self, category_id: UUID | None) -> PreferenceSnapshot | None:
        if category_id is None:
            return None
        return self._category_prefs.get(category_id)

    def context_default(self, business_context: BusinessContext) -> StrategySnapshot | None:
        candidates = [
            s
            for s in self._strategies.values()
            if s.is_default and s.is_usable and s.business_context == BusinessContext(business_context)
        ]
        # Two defaults for one context is a configuration error; pick deterministically
        return min(candidates, key=lambda s: s.code) if candidates else None

    def list_strategies(
        self,
        strategy_type: StrategyType | None = None,
        active_only: bool = True,
    ) -> list[StrategySnapshot]:
        strategies = self._strategies.values()
        if strategy_type is not None:
            strategies = [s for s in strategies if s.strategy_type == StrategyType(strategy_type)]
        if active_only:
            strategies = [s for s in strategies if s.is_active]
        return sorted(
            strategies,
            key=lambda s: (s.strategy_type.value, not s.is_default, s.name),
        )

    def resolve(self, ctx: ResolutionContext) -> StrategySnapshot:
        for resolver in RESOLUTION_ORDER:
            strategy_id = resolver(self, ctx)
            if strategy_id is not None:
                strategy = self._strategies[strategy_id]
                logger.debug(
                    "strategy.resolved",
                    product_id=str(ctx.product_id),
                    resolver=resolver.__name__,
                    strategy=strategy.code,
                )
                return strategy
        logger.warning(
            "strategy.unresolved",
            product_id=str(ctx.product_id),
            business_context=BusinessContext(ctx.business_context).value,
        )
        raise NoStrategyAvailable(ctx.product_id, BusinessContext(ctx.business_context).value)


# ── Resolvers (precedence order) ──────────────────────────────────────────


def pick_from_preference(
    registry: StrategyRegistry,
    preference: PreferenceSnapshot,
    ctx: ResolutionContext,
) -> UUID | None:
    """Apply a preference's conditional overrides, then its default."""
    tier = (ctx.customer_tier or "").strip().lower()
    if tier in registry.premium_customer_tiers:
        hit = registry.usable(preference.premium_customer_strategy_id)
        if hit:
            return hit

    if (
        preference.high_value_threshold is not None
        and ctx.estimated_value is not None
        and ctx.estimated_value > preference.high_value_threshold
    ):
        hit = registry.usable(preference.high_value_strategy_id)
        if hit:
            return hit

    if (ctx.project_priority or "").strip().lower() == registry.critical_project_priority:
        hit = registry.usable(preference.critical_project_strategy_id)
        if hit:
            return hit

    return registry.usable(preference.default_strategy_id)


def resolve_custom_strategy(registry: StrategyRegistry, ctx: ResolutionContext) -> UUID | None:
    return registry.usable(ctx.custom_strategy_id)


def resolve_product_preference(registry: StrategyRegistry, ctx: ResolutionContext) -> UUID | None:
    preference = registry.product_preference(ctx.product_id)
    if preference is None:
        return None
    return pick_from_preference(registry, preference, ctx)


def resolve_category_preference(registry: StrategyRegistry, ctx: ResolutionContext) -> UUID | None:
    if registry.product_preference(ctx.product_id) is not None:
        return None
    preference = registry.category_preference(ctx.category_id)
    if preference is None:
        return None
    return pick_from_preference(registry, preference, ctx)


def resolve_context_default(registry: StrategyRegistry, ctx: ResolutionContext) -> UUID | None:
    strategy = registry.context_default(ctx.business_context)
    return strategy.strategy_id if strategy else None


Resolver = Callable[[StrategyRegistry, ResolutionContext], UUID | None]

RESOLUTION_ORDER: tuple[Resolver, ...] = (
    resolve_custom_strategy,
    resolve_product_preference,
    resolve_category_preference,
    resolve_context_default,
)


# ── Persistence ───────────────────────────────────────────────────────────


def strategy_to_snapshot(strategy: AllocationStrategy) -> StrategySnapshot:
    return StrategySnapshot(
        strategy_id=strategy.strategy_id,
        name=strategy.name,
        code=strategy.code,
        strategy_type=StrategyType(strategy.strategy_type),
        rules=tuple(
            RuleSnapshot(
                criteria_type=CriterionType(rule.criteria_type),
                weight=float(rule.weight),
                sort_order=SortOrder(rule.sort_order),
                priority=rule.priority,
                is_active=bool(rule.is_active),
            )
            for rule in strategy.rules
        ),
        business_context=BusinessContext(strategy.business_context) if strategy.business_context else None,
        is_active=bool(strategy.is_active),
        is_default=bool(strategy.is_default),
        description=strategy.description,
    )


def preference_to_snapshot(pref: AllocationPreference) -> PreferenceSnapshot:
    return PreferenceSnapshot(
        product_id=pref.product_id,
        category_id=pref.category_id,
        default_strategy_id=pref.default_strategy_id,
        high_value_threshold=pref.high_value_threshold,
        high_value_strategy_id=pref.high_value_strategy_id,
        critical_project_strategy_id=pref.critical_project_strategy_id,
        premium_customer_strategy_id=pref.premium_customer_strategy_id,
        is_active=bool(pref.is_active),
    )


async def load_strategy_registry(db: AsyncSession) -> StrategyRegistry:
    """Snapshot every strategy and preference into a StrategyRegistry."""
    strategy_result = await db.execute(
        select(AllocationStrategy)
        .options(selectinload(AllocationStrategy.rules))
        .execution_options(populate_existing=True)
    )
    pref_result = await db.execute(select(AllocationPreference))
    return StrategyRegistry(
        strategies=[strategy_to_snapshot(s) for s in strategy_result.scalars().all()],
        preferences=[preference_to_snapshot(p) for p in pref_result.scalars().all()],
    )


def validate_rules(rules: list[RuleSnapshot]) -> None:
    if not rules:
        raise ValueError("A strategy needs at least one rule")
    seen: set[CriterionType] = set()
    for rule in rules:
        if not MIN_RULE_WEIGHT <= rule.weight <= MAX_RULE_WEIGHT:
            raise ValueError(
                f"Weight {rule.weight} for '{rule.criteria_type.value}' outside {MIN_RULE_WEIGHT}-{MAX_RULE_WEIGHT}"
            )
        if rule.priority < 1:
            raise ValueError(f"Priority for '{rule.criteria_type.value}' must be >= 1")
        if rule.criteria_type in seen:
            raise ValueError(f"Criterion '{rule.criteria_type.value}' appears more than once")
        seen.add(rule.criteria_type)


async def create_strategy(
    db: AsyncSession,
    *,
    name: str,
    code: str,
    rules: list[RuleSnapshot],
    strategy_type: StrategyType = StrategyType.CUSTOM,
    business_context: BusinessContext | None = None,
    is_default: bool = False,
    is_active: bool = True,
    description: str | None = None,
) -> AllocationStrategy:
    """
    Create a strategy and its rules.

    A new default for a business context demotes the previous default so
    context resolution stays unambiguous.
    """
    validate_rules(rules)
    if is_default and business_context is None:
        raise ValueError("A default strategy must name its business_context")

    existing = await db.execute(select(AllocationStrategy.strategy_id).where(AllocationStrategy.code == code))
    if existing.scalar_one_or_none() is not None:
        raise ValueError(f"Strategy code '{code}' already exists")

    context_value = BusinessContext(business_context).value if business_context else None
    if is_default:
        await db.execute(
            update(AllocationStrategy)
            .where(
                AllocationStrategy.business_context == context_value,
                AllocationStrategy.is_default.is_(True),
            )
            .values(is_default=False)
        )

    strategy = AllocationStrategy(
        name=name,
        code=code,
        strategy_type=StrategyType(strategy_type).value,
        description=description,
        business_context=context_value,
        is_default=is_default,
        is_active=is_active,
        rules=[
            AllocationRule(
                criteria_type=rule.criteria_type.value,
                weight=rule.weight,
                sort_order=SortOrder(rule.sort_order).value,
                priority=rule.priority,
                is_active=rule.is_active,
            )
            for rule in rules
        ],
    )
    db.add(strategy)
    await db.flush()
    logger.info(
        "strategy.created",
        strategy_id=str(strategy.strategy_id),
        code=code,
        business_context=context_value,
        is_default=is_default,
    )
    return strategy


async def upsert_preference(
    db: AsyncSession,
    *,
    product_id: UUID | None = None,
    category_id: UUID | None = None,
    default_strategy_id: UUID | None = None,
    high_value_threshold: float | None = None,
    high_value_strategy_id: UUID | None = None,
    critical_project_strategy_id: UUID | None = None,
    premium_customer_strategy_id: UUID | None = None,
    is_active: bool = True,
) -> AllocationPreference:
    """Create or replace the preference for one product or one category."""
    if (product_id is None) == (category_id is None):
        raise ValueError("Exactly one of product_id or category_id is required")
    if high_value_strategy_id is not None and high_value_threshold is None:
        raise ValueError("high_value_strategy_id requires high_value_threshold")

    referenced = {
        sid
        for sid in (
            default_strategy_id,
            high_value_strategy_id,
            critical_project_strategy_id,
            premium_customer_strategy_id,
        )
        if sid is not None
    }
    if referenced:
        found = await db.execute(
            select(AllocationStrategy.strategy_id).where(AllocationStrategy.strategy_id.in_(referenced))
        )
        missing = referenced - set(found.scalars().all())
        if missing:
            raise ValueError(f"Unknown strategy ids: {sorted(str(m) for m in missing)}")

    if product_id is not None:
        query = select(AllocationPreference).where(AllocationPreference.product_id == product_id)
    else:
        query = select(AllocationPreference).where(AllocationPreference.category_id == category_id)
    result = await db.execute(query)
    pref = result.scalar_one_or_none()
    if pref is None:
        pref = AllocationPreference(product_id=product_id, category_id=category_id)
        db.add(pref)

    pref.default_strategy_id = default_strategy_id
    pref.high_value_threshold = high_value_threshold
    pref.high_value_strategy_id = high_value_strategy_id
    pref.critical_project_strategy_id = critical_project_strategy_id
    pref.premium_customer_strategy_id = premium_customer_strategy_id
    pref.is_active = is_active
    await db.flush()
    return pref


async def list_preferences(db: AsyncSession) -> list[AllocationPreference]:
    result = await db.execute(select(AllocationPreference))
    return list(result.scalars().all())

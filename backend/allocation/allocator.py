"""
Allocator — preview and commit allocations against the Inventory Pool.

Preview:
  1. Pull AVAILABLE units for the product (and location, when given)
  2. Resolve the strategy (custom → product pref → category pref → context default)
  3. Refuse with InsufficientInventory if the pool cannot cover the request
  4. Score and rank the candidates, then greedily take
     min(unit.quantity_available, remaining) from the top
  5. Attach reasons and advisory recommendations

  No side effects: running preview twice against an unchanged pool returns
  the same lines, scores and ordering.

Execute:
  Re-runs the preview against the *current* pool (never replays a stale
  plan), then reserves every line with the pool's compare-and-set update.
  One failed reservation, or any storage error, releases what this attempt
  already reserved and raises AllocationConflict; partial commits never
  survive. The reservation phase is shielded from task cancellation so it
  always ends committed or fully rolled back.
"""

import asyncio
import dataclasses
import uuid
from collections.abc import Callable
from datetime import date
from typing import Any
from uuid import UUID

import structlog

from allocation.criteria import reason_for_rule
from allocation.domain import (
    AllocationLine,
    AllocationPlan,
    AllocationRequest,
    BusinessContext,
    ProductInfo,
    StrategySnapshot,
    StrategyType,
    TransactionRecord,
    TransactionStatus,
    UnitSnapshot,
)
from allocation.errors import (
    AllocationConflict,
    InsufficientInventory,
    NoStrategyAvailable,
    TransactionNotFound,
    TransactionNotReleasable,
)
from allocation.ledger import AllocationLedger
from allocation.manual import ManualOverrideSelector, ManualSelection, SelectionStatus
from allocation.pool import InventoryPool
from allocation.recommendations import build_comparison_recommendation, build_plan_recommendations
from allocation.scoring import score_units
from allocation.strategies import ResolutionContext, StrategyRegistry
from core.config import Settings, get_settings

logger = structlog.get_logger()


class Allocator:
    """Inventory allocation engine entry point."""

    def __init__(
        self,
        pool: InventoryPool,
        registry: StrategyRegistry,
        ledger: AllocationLedger,
        settings: Settings | None = None,
        clock: Callable[[], date] = date.today,
    ):
        self.pool = pool
        self.registry = registry
        self.ledger = ledger
        self.settings = settings or get_settings()
        self.manual = ManualOverrideSelector(pool)
        self._clock = clock

    # ── Preview ───────────────────────────────────────────────────────────

    async def preview(self, request: AllocationRequest) -> AllocationPlan:
        plan = await self._build_plan(request)
        logger.info(
            "allocation.preview",
            product_id=str(request.product_id),
            business_context=request.business_context.value,
            quantity=request.quantity_needed,
            strategy=plan.strategy_used,
            units_used=len(plan.lines),
            total_cost=plan.total_cost,
        )
        return plan

    async def _build_plan(self, request: AllocationRequest) -> AllocationPlan:
        today = self._clock()
        product = await self.pool.get_product(request.product_id)
        units = [
            u
            for u in await self.pool.list_available_units(request.product_id, request.location_id)
            if u.is_allocatable
        ]

        strategy = self._resolve_strategy(request, product, units)

        total_available = sum(u.quantity_available for u in units)
        if total_available < request.quantity_needed:
            logger.info(
                "allocation.insufficient",
                product_id=str(request.product_id),
                quantity_needed=request.quantity_needed,
                quantity_available=total_available,
            )
            raise InsufficientInventory(request.product_id, request.quantity_needed, total_available)

        ranked = score_units(strategy, units, today)
        reason = reason_for_rule(strategy.primary_rule)

        lines: list[AllocationLine] = []
        remaining = request.quantity_needed
        for scored in ranked:
            if remaining <= 0:
                break
            take = min(scored.unit.quantity_available, remaining)
            lines.append(
                AllocationLine(
                    unit_id=scored.unit_id,
                    quantity_allocated=take,
                    unit_cost=scored.unit.unit_cost,
                    score=scored.score,
                    reason=reason,
                    sequence_order=len(lines) + 1,
                    reference=scored.unit.reference,
                )
            )
            remaining -= take

        plan = AllocationPlan(
            product_id=request.product_id,
            quantity_requested=request.quantity_needed,
            lines=lines,
            strategy_used=strategy.name,
            strategy_id=strategy.strategy_id,
            business_context=request.business_context,
            location_id=request.location_id,
        )
        plan.recommendations = build_plan_recommendations(
            plan, {u.unit_id: u for u in units}, product, today, self.settings
        )
        return plan

    def _resolve_strategy(
        self,
        request: AllocationRequest,
        product: ProductInfo | None,
        units: list[UnitSnapshot],
    ) -> StrategySnapshot:
        if request.order_value is not None:
            estimated_value = request.order_value
        elif units:
            mean_cost = sum(u.unit_cost for u in units) / len(units)
            estimated_value = request.quantity_needed * mean_cost
        else:
            estimated_value = None

        ctx = ResolutionContext(
            product_id=request.product_id,
            business_context=request.business_context,
            category_id=product.category_id if product else None,
            customer_tier=request.customer_tier,
            project_priority=request.project_priority,
            custom_strategy_id=request.custom_strategy_id,
            estimated_value=estimated_value,
        )
        return self.registry.resolve(ctx)

    async def compare_contexts(self, request: AllocationRequest) -> dict[str, Any]:
        """Preview the request under every business context and compare costs."""
        plan = await self.preview(request)

        comparisons: dict[str, dict[str, Any]] = {}
        for context in BusinessContext:
            if context == request.business_context:
                continue
            alternative = dataclasses.replace(request, business_context=context, custom_strategy_id=None)
            try:
                alt_plan = await self._build_plan(alternative)
            except NoStrategyAvailable as exc:
                comparisons[context.value] = {"error": exc.code, "cost_difference": None}
                continue

            diff = round(alt_plan.total_cost - plan.total_cost, 2)
            comparisons[context.value] = {
                "strategy_used": alt_plan.strategy_used,
                "total_cost": alt_plan.total_cost,
                "average_unit_cost": alt_plan.average_unit_cost,
                "units_used": len(alt_plan.lines),
                "cost_difference": diff,
                "cost_difference_pct": round(diff / plan.total_cost * 100, 2) if plan.total_cost else 0.0,
            }

        return {
            "preview": plan,
            "comparisons": comparisons,
            "recommendation": build_comparison_recommendation(
                request.business_context, plan, comparisons, self.settings
            ),
        }

    # ── Execute ───────────────────────────────────────────────────────────

    async def execute(self, request: AllocationRequest) -> AllocationPlan:
        existing = await self._existing_transaction(request.transaction_id, request.product_id)
        if existing is not None:
            return existing.plan

        plan = await self._build_plan(request)
        plan.transaction_id = request.transaction_id or uuid.uuid4()
        record = await asyncio.shield(
            self._commit(
                plan,
                customer_tier=request.customer_tier,
                project_priority=request.project_priority,
            )
        )
        return record.plan

    async def validate_manual(self, selection: ManualSelection) -> SelectionStatus:
        return await self.manual.validate(selection)

    async def execute_manual(self, selection: ManualSelection) -> AllocationPlan:
        existing = await self._existing_transaction(selection.transaction_id, selection.product_id)
        if existing is not None:
            return existing.plan

        plan = await self.manual.build_plan(selection)
        plan.transaction_id = selection.transaction_id or uuid.uuid4()

        product = await self.pool.get_product(selection.product_id)
        units = await self.pool.get_units(line.unit_id for line in plan.lines)
        plan.recommendations = build_plan_recommendations(plan, units, product, self._clock(), self.settings)

        record = await asyncio.shield(self._commit(plan, reference=selection.estimation_item_id))
        return record.plan

    async def _existing_transaction(
        self,
        transaction_id: UUID | None,
        product_id: UUID,
    ) -> TransactionRecord | None:
        if transaction_id is None:
            return None
        record = await self.ledger.get(transaction_id)
        if record is None:
            return None
        if record.plan.product_id != product_id:
            raise ValueError(f"transaction_id {transaction_id} already belongs to another product")
        logger.info("allocation.replayed", transaction_id=str(transaction_id))
        return record

    async def _commit(self, plan: AllocationPlan, **ledger_fields) -> TransactionRecord:
        log = logger.bind(
            transaction_id=str(plan.transaction_id),
            product_id=str(plan.product_id),
            allocation_type=plan.allocation_type,
        )
        reserved: list[AllocationLine] = []
        try:
            # Row locks are taken in unit_id order so concurrent commits cannot deadlock
            for line in sorted(plan.lines, key=lambda l: l.unit_id):
                if not await self.pool.reserve(line.unit_id, line.quantity_allocated):
                    raise AllocationConflict(line.unit_id)
                reserved.append(line)

            await self.pool.finalize(sorted(line.unit_id for line in plan.lines))
            record = await self.ledger.record(plan, **ledger_fields)
        except AllocationConflict as exc:
            await self._release_lines(reserved, log)
            log.info("allocation.conflict", unit_id=str(exc.unit_id) if exc.unit_id else None)
            raise
        except Exception as exc:
            # Storage failures are conflict-equivalent: nothing may stay RESERVED
            log.error("allocation.commit.failed", error=str(exc), exc_info=True)
            await self._release_lines(reserved, log)
            raise AllocationConflict(message=f"Reservation failed: {exc}") from exc

        log.info(
            "allocation.committed",
            quantity=plan.quantity_allocated,
            units_used=len(plan.lines),
            total_cost=plan.total_cost,
            strategy=plan.strategy_used,
        )
        return record

    async def _release_lines(self, lines: list[AllocationLine], log) -> None:
        for line in reversed(lines):
            try:
                await self.pool.release(line.unit_id, line.quantity_allocated)
            except Exception as exc:
                # The caller's transaction rollback is the last line of defense here
                log.error("allocation.release.failed", unit_id=str(line.unit_id), error=str(exc), exc_info=True)

    # ── Committed transactions ────────────────────────────────────────────

    async def get_transaction(self, transaction_id: UUID) -> TransactionRecord:
        record = await self.ledger.get(transaction_id)
        if record is None:
            raise TransactionNotFound(transaction_id)
        return record

    async def release(self, transaction_id: UUID) -> TransactionRecord:
        """Return a committed allocation's units to the pool."""
        record = await self.get_transaction(transaction_id)
        if record.status != TransactionStatus.ALLOCATED:
            raise TransactionNotReleasable(transaction_id, record.status.value)

        for line in record.plan.lines:
            await self.pool.release(line.unit_id, line.quantity_allocated)
        released = await self.ledger.mark_released(transaction_id)
        logger.info(
            "allocation.released",
            transaction_id=str(transaction_id),
            quantity=record.plan.quantity_allocated,
        )
        return released

    async def list_transactions(self, **filters) -> list[TransactionRecord]:
        return await self.ledger.list_transactions(**filters)

    # ── Read-only projections ─────────────────────────────────────────────

    async def list_available_units(
        self,
        product_id: UUID,
        location_id: UUID | None = None,
    ) -> list[UnitSnapshot]:
        return await self.pool.list_available_units(product_id, location_id)

    def list_strategies(
        self,
        strategy_type: StrategyType | None = None,
        active_only: bool = True,
    ) -> list[StrategySnapshot]:
        return self.registry.list_strategies(strategy_type=strategy_type, active_only=active_only)

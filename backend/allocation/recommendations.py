"""
Advisory notes attached to allocation plans.

Nothing here changes which units are allocated; the strings are surfaced to
the planner next to the preview so they can adjust the request.
"""

from datetime import date, timedelta
from typing import Any
from uuid import UUID

from allocation.domain import (
    AllocationPlan,
    BusinessContext,
    PerformanceRating,
    ProductInfo,
    UnitSnapshot,
)
from core.config import Settings

CONTEXT_FOCUS = {
    BusinessContext.ESTIMATION: "Margin protection: quote against higher-cost units",
    BusinessContext.MANUFACTURING: "Cost optimization: consume the lowest-cost units",
    BusinessContext.SALES: "Balanced: cost, age, warranty and performance",
}


def _units_label(count: int) -> str:
    return f"{count} unit" if count == 1 else f"{count} units"


def build_plan_recommendations(
    plan: AllocationPlan,
    units: dict[UUID, UnitSnapshot],
    product: ProductInfo | None,
    today: date,
    settings: Settings,
) -> list[str]:
    expired = expiring = warning = failed = poor = 0
    expiring_cutoff = today + timedelta(days=settings.warranty_expiring_days)
    warning_cutoff = today + timedelta(days=settings.warranty_warning_days)

    for line in plan.lines:
        unit = units.get(line.unit_id)
        if unit is None:
            continue
        qty = line.quantity_allocated
        expiry = unit.warranty_expiry_date
        if expiry is not None:
            if expiry < today:
                expired += qty
            elif expiry <= expiring_cutoff:
                expiring += qty
            elif expiry < warning_cutoff:
                warning += qty
        if unit.failure_count > 0:
            failed += qty
        if unit.performance_rating == PerformanceRating.POOR:
            poor += qty

    notes: list[str] = []
    if expired:
        notes.append(f"Warranty has already expired on {_units_label(expired)}")
    if expiring:
        notes.append(f"Warranty on {_units_label(expiring)} expires within {settings.warranty_expiring_days} days")
    if warning:
        notes.append(f"Warranty on {_units_label(warning)} expires within {settings.warranty_warning_days} days")
    if failed:
        notes.append(f"{_units_label(failed)} allocated with recorded failures")
    if poor:
        notes.append(f"{_units_label(poor)} allocated with a poor performance rating")

    if len(plan.lines) > settings.max_batches_before_warning:
        notes.append(f"Plan draws from {len(plan.lines)} different units/batches; picking may be complicated")

    historical = product.historical_avg_cost if product else None
    if historical and historical > 0:
        variance = (plan.average_unit_cost - historical) / historical
        if variance > settings.cost_variance_threshold:
            notes.append(
                f"Average unit cost {plan.average_unit_cost:.2f} is {variance * 100:.1f}% above "
                f"the historical average of {historical:.2f}"
            )

    return notes


def build_comparison_recommendation(
    requested: BusinessContext,
    plan: AllocationPlan,
    comparisons: dict[str, dict[str, Any]],
    settings: Settings,
) -> dict[str, Any]:
    """Reasoning, warnings and cheaper/dearer alternatives for a context comparison."""
    requested = BusinessContext(requested)
    recommendation: dict[str, Any] = {
        "recommended_context": requested.value,
        "optimization_focus": CONTEXT_FOCUS[requested],
        "reasoning": [],
        "warnings": [],
        "alternatives": [],
    }

    manufacturing = comparisons.get(BusinessContext.MANUFACTURING.value)
    estimation = comparisons.get(BusinessContext.ESTIMATION.value)

    if requested == BusinessContext.ESTIMATION:
        recommendation["reasoning"].append("Higher-cost units in the estimate protect the quoted margin")
        if manufacturing and manufacturing.get("cost_difference") is not None:
            diff = manufacturing["cost_difference"]
            if diff < 0:
                recommendation["reasoning"].append(
                    f"Estimate is {abs(diff):.2f} above the manufacturing cost, margin is protected"
                )
            else:
                recommendation["warnings"].append(
                    "Estimate is not above the manufacturing cost; quoted margin may not hold"
                )
    elif requested == BusinessContext.MANUFACTURING:
        recommendation["reasoning"].append("Lowest-cost units maximize production profitability")
        if estimation and estimation.get("cost_difference") is not None:
            recommendation["reasoning"].append(
                f"Manufacturing saves {abs(estimation['cost_difference']):.2f} against estimation pricing"
            )
    else:
        recommendation["reasoning"].append("Balanced selection trades a little cost for warranty and reliability")

    if len(plan.lines) > settings.max_batches_before_warning:
        recommendation["warnings"].append(
            f"Requires {len(plan.lines)} different units/batches; may complicate logistics"
        )

    threshold = plan.total_cost * settings.comparison_alternative_threshold
    for context, comparison in comparisons.items():
        diff = comparison.get("cost_difference")
        if diff is None or abs(diff) <= threshold:
            continue
        if diff < 0:
            description = f"{context} strategy would save {abs(diff):.2f}"
        else:
            description = f"{context} strategy would cost {diff:.2f} more"
        recommendation["alternatives"].append(
            {"context": context, "cost_difference": diff, "description": description}
        )

    return recommendation

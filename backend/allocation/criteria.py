"""
Scoring criteria.

Each CriterionType maps to exactly one Criterion descriptor: how to read the
raw attribute off a unit, and how to phrase the plan line reason when the
criterion dominates a strategy. test_criteria asserts the mapping covers the
whole enum.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

from allocation.domain import CriterionType, PerformanceRating, RuleSnapshot, SortOrder, UnitSnapshot

# Ordinal scale applied before min-max normalization
PERFORMANCE_SCORES = {
    PerformanceRating.EXCELLENT: 100.0,
    PerformanceRating.GOOD: 75.0,
    PerformanceRating.AVERAGE: 50.0,
    PerformanceRating.POOR: 25.0,
    PerformanceRating.UNRATED: 0.0,
}


@dataclass(frozen=True)
class Criterion:
    criterion_type: CriterionType
    extract: Callable[[UnitSnapshot, date], float]
    reasons: dict[SortOrder, str]

    def raw_value(self, unit: UnitSnapshot, today: date) -> float:
        return float(self.extract(unit, today))

    def reason(self, sort_order: SortOrder) -> str:
        return self.reasons[SortOrder(sort_order)]


def _unit_cost(unit: UnitSnapshot, today: date) -> float:
    return unit.unit_cost


def _age_days(unit: UnitSnapshot, today: date) -> float:
    return max((today - unit.acquisition_date).days, 0)


def _warranty_remaining_days(unit: UnitSnapshot, today: date) -> float:
    if unit.warranty_expiry_date is None:
        return 0
    return max((unit.warranty_expiry_date - today).days, 0)


def _performance_rating(unit: UnitSnapshot, today: date) -> float:
    return PERFORMANCE_SCORES[PerformanceRating(unit.performance_rating)]


def _failure_count(unit: UnitSnapshot, today: date) -> float:
    return unit.failure_count


CRITERIA: dict[CriterionType, Criterion] = {
    CriterionType.UNIT_COST: Criterion(
        criterion_type=CriterionType.UNIT_COST,
        extract=_unit_cost,
        reasons={
            SortOrder.ASC: "lowest landed cost",
            SortOrder.DESC: "highest landed cost (margin protection)",
        },
    ),
    CriterionType.AGE_DAYS: Criterion(
        criterion_type=CriterionType.AGE_DAYS,
        extract=_age_days,
        reasons={
            SortOrder.ASC: "newest stock",
            SortOrder.DESC: "oldest stock first (FIFO rotation)",
        },
    ),
    CriterionType.WARRANTY_REMAINING_DAYS: Criterion(
        criterion_type=CriterionType.WARRANTY_REMAINING_DAYS,
        extract=_warranty_remaining_days,
        reasons={
            SortOrder.ASC: "shortest remaining warranty used first",
            SortOrder.DESC: "longest remaining warranty",
        },
    ),
    CriterionType.PERFORMANCE_RATING: Criterion(
        criterion_type=CriterionType.PERFORMANCE_RATING,
        extract=_performance_rating,
        reasons={
            SortOrder.ASC: "lowest performance rating used first",
            SortOrder.DESC: "best performance rating",
        },
    ),
    CriterionType.FAILURE_COUNT: Criterion(
        criterion_type=CriterionType.FAILURE_COUNT,
        extract=_failure_count,
        reasons={
            SortOrder.ASC: "fewest recorded failures",
            SortOrder.DESC: "most recorded failures used first",
        },
    ),
}


def get_criterion(criterion_type: CriterionType | str) -> Criterion:
    return CRITERIA[CriterionType(criterion_type)]


def reason_for_rule(rule: RuleSnapshot | None) -> str:
    """Human-readable justification for a plan line chosen under `rule`."""
    if rule is None:
        return "best available match"
    return get_criterion(rule.criteria_type).reason(rule.sort_order)

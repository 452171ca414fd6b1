"""
Allocation Scorer — weighted multi-criteria ranking of inventory units.

Algorithm:
  For each active rule r in the strategy:
    raw_r(u)  = criterion value of unit u (cost, age, warranty days, ...)
    sub_r(u)  = 100 × (raw_r(u) − min_r) / (max_r − min_r)     (desc criteria)
              = 100 × (max_r − raw_r(u)) / (max_r − min_r)     (asc criteria)
              = 50 when every candidate shares the same raw value
  Composite(u) = Σ weight_r × sub_r(u) / Σ weight_r               (0-100)

Min and max are taken over the *current eligible candidate set*, so a unit's
score is relative to what else is on the shelf for this request and is
recomputed on every preview.

Ranking is composite DESC, then the priority-1 rule's raw value (most
favorable first), then unit_id ASC. Scoring never raises.
"""

from dataclasses import dataclass, field
from datetime import date
from uuid import UUID

from allocation.criteria import get_criterion
from allocation.domain import RuleSnapshot, SortOrder, StrategySnapshot, UnitSnapshot

MIDPOINT_SCORE = 50.0
SCORE_PRECISION = 4


@dataclass(frozen=True)
class ScoredUnit:
    unit: UnitSnapshot
    score: float
    sub_scores: dict[str, float] = field(default_factory=dict)

    @property
    def unit_id(self) -> UUID:
        return self.unit.unit_id


def normalize(raw: float, low: float, high: float, sort_order: SortOrder) -> float:
    """Map a raw value onto 0-100 where 100 is the most favorable candidate."""
    if high == low:
        return MIDPOINT_SCORE
    fraction = (raw - low) / (high - low)
    if SortOrder(sort_order) == SortOrder.ASC:
        fraction = 1.0 - fraction
    return fraction * 100.0


def score_units(
    strategy: StrategySnapshot,
    units: list[UnitSnapshot],
    today: date | None = None,
) -> list[ScoredUnit]:
    """Score every candidate under `strategy` and return them ranked best-first."""
    today = today or date.today()
    rules = strategy.active_rules
    if not units:
        return []
    if not rules:
        scored = [ScoredUnit(unit=u, score=MIDPOINT_SCORE) for u in units]
        return rank_scored_units(strategy, scored, today)

    raw_by_rule: list[list[float]] = []
    for rule in rules:
        criterion = get_criterion(rule.criteria_type)
        raw_by_rule.append([criterion.raw_value(u, today) for u in units])

    total_weight = sum(rule.weight for rule in rules)
    scored: list[ScoredUnit] = []
    for idx, unit in enumerate(units):
        weighted = 0.0
        sub_scores: dict[str, float] = {}
        for rule, raws in zip(rules, raw_by_rule):
            sub = normalize(raws[idx], min(raws), max(raws), rule.sort_order)
            sub_scores[rule.criteria_type.value] = round(sub, SCORE_PRECISION)
            weighted += rule.weight * sub
        composite = round(weighted / total_weight, SCORE_PRECISION)
        scored.append(ScoredUnit(unit=unit, score=composite, sub_scores=sub_scores))

    return rank_scored_units(strategy, scored, today)


def rank_scored_units(
    strategy: StrategySnapshot,
    scored: list[ScoredUnit],
    today: date,
) -> list[ScoredUnit]:
    tie_rule = strategy.tie_break_rule
    return sorted(scored, key=lambda s: (-s.score, _tie_break_value(tie_rule, s.unit, today), s.unit_id))


def _tie_break_value(rule: RuleSnapshot | None, unit: UnitSnapshot, today: date) -> float:
    if rule is None:
        return 0.0
    raw = get_criterion(rule.criteria_type).raw_value(unit, today)
    # Sort key is ascending, so flip desc criteria to put the favorable value first
    return raw if SortOrder(rule.sort_order) == SortOrder.ASC else -raw


def score_unit(
    strategy: StrategySnapshot,
    unit: UnitSnapshot,
    candidates: list[UnitSnapshot],
    today: date | None = None,
) -> float:
    """Composite score of one unit relative to a candidate set (the unit is added if absent)."""
    pool = list(candidates)
    if all(c.unit_id != unit.unit_id for c in pool):
        pool.append(unit)
    for scored in score_units(strategy, pool, today):
        if scored.unit_id == unit.unit_id:
            return scored.score
    return MIDPOINT_SCORE

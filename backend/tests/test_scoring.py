"""
Tests for scoring criteria and the weighted Scorer.

Covers:
  - Criterion descriptor coverage and raw value extraction
  - Min-max normalization (direction, degenerate ranges)
  - Composite ranking, tie-breaks and determinism
"""

import dataclasses
import uuid

import pytest

from allocation.criteria import CRITERIA, PERFORMANCE_SCORES, get_criterion, reason_for_rule
from allocation.domain import CriterionType, PerformanceRating, RuleSnapshot, SortOrder
from allocation.scoring import MIDPOINT_SCORE, normalize, score_unit, score_units
from fakes import TODAY, make_strategy, make_unit

C = CriterionType

# ── Criteria ───────────────────────────────────────────────────────────


class TestCriteria:
    def test_every_criterion_type_has_a_descriptor(self):
        assert set(CRITERIA) == set(CriterionType)
        for criterion in CRITERIA.values():
            assert set(criterion.reasons) == {SortOrder.ASC, SortOrder.DESC}

    def test_every_rating_has_an_ordinal(self):
        assert set(PERFORMANCE_SCORES) == set(PerformanceRating)
        assert PERFORMANCE_SCORES[PerformanceRating.EXCELLENT] > PERFORMANCE_SCORES[PerformanceRating.POOR]

    def test_age_days(self):
        unit = make_unit(1, age_days=45)
        assert get_criterion(C.AGE_DAYS).raw_value(unit, TODAY) == 45

    def test_future_acquisition_floors_at_zero(self):
        unit = make_unit(1, age_days=-10)
        assert get_criterion(C.AGE_DAYS).raw_value(unit, TODAY) == 0

    def test_missing_warranty_counts_as_zero_days(self):
        unit = make_unit(1, warranty_days=None)
        assert get_criterion(C.WARRANTY_REMAINING_DAYS).raw_value(unit, TODAY) == 0

    def test_expired_warranty_floors_at_zero(self):
        unit = make_unit(1, warranty_days=-30)
        assert get_criterion(C.WARRANTY_REMAINING_DAYS).raw_value(unit, TODAY) == 0

    def test_performance_rating_is_ordinal(self):
        unit = make_unit(1, performance_rating=PerformanceRating.GOOD)
        assert get_criterion("performance_rating").raw_value(unit, TODAY) == 75.0

    def test_unknown_criterion_rejected(self):
        with pytest.raises(ValueError):
            get_criterion("shelf_color")

    def test_reason_follows_sort_order(self):
        assert reason_for_rule(RuleSnapshot(C.UNIT_COST, 1.0, SortOrder.ASC)) == "lowest landed cost"
        assert "margin" in reason_for_rule(RuleSnapshot(C.UNIT_COST, 1.0, SortOrder.DESC))
        assert reason_for_rule(None) == "best available match"


# ── Normalization ──────────────────────────────────────────────────────


class TestNormalize:
    def test_desc_maps_max_to_100(self):
        assert normalize(10, 0, 10, SortOrder.DESC) == 100.0
        assert normalize(0, 0, 10, SortOrder.DESC) == 0.0

    def test_asc_inverts(self):
        assert normalize(0, 0, 10, SortOrder.ASC) == 100.0
        assert normalize(10, 0, 10, SortOrder.ASC) == 0.0
        assert normalize(2.5, 0, 10, SortOrder.ASC) == 75.0

    def test_degenerate_range_is_midpoint(self):
        assert normalize(7, 7, 7, SortOrder.ASC) == MIDPOINT_SCORE
        assert normalize(7, 7, 7, SortOrder.DESC) == MIDPOINT_SCORE


# ── Scorer ─────────────────────────────────────────────────────────────


class TestScoreUnits:
    def test_cost_ascending_prefers_cheapest(self):
        strategy = make_strategy("COST", [(C.UNIT_COST, 1.0, SortOrder.ASC)])
        units = [make_unit(1, cost=100), make_unit(2, cost=80), make_unit(3, cost=90)]

        ranked = score_units(strategy, units, TODAY)

        assert [s.unit.unit_cost for s in ranked] == [80, 90, 100]
        assert [s.score for s in ranked] == [100.0, 50.0, 0.0]

    def test_weighted_composite(self):
        strategy = make_strategy(
            "MIX",
            [(C.UNIT_COST, 3.0, SortOrder.ASC), (C.AGE_DAYS, 1.0, SortOrder.DESC)],
        )
        cheap_new = make_unit(1, cost=80, age_days=50)
        dear_old = make_unit(2, cost=100, age_days=200)

        ranked = score_units(strategy, [cheap_new, dear_old], TODAY)

        assert ranked[0].unit_id == cheap_new.unit_id
        assert ranked[0].score == 75.0  # (3*100 + 1*0) / 4
        assert ranked[1].score == 25.0
        assert ranked[0].sub_scores == {"unit_cost": 100.0, "age_days": 0.0}

    def test_scores_stay_in_range(self):
        strategy = make_strategy(
            "ALL",
            [
                (C.UNIT_COST, 5.0, SortOrder.ASC),
                (C.AGE_DAYS, 0.1, SortOrder.DESC),
                (C.WARRANTY_REMAINING_DAYS, 2.0, SortOrder.DESC),
                (C.PERFORMANCE_RATING, 1.0, SortOrder.DESC),
                (C.FAILURE_COUNT, 1.0, SortOrder.ASC),
            ],
        )
        units = [
            make_unit(i, cost=50 + i * 7, age_days=i * 13, warranty_days=400 - i * 20, failure_count=i % 3)
            for i in range(1, 9)
        ]
        for scored in score_units(strategy, units, TODAY):
            assert 0.0 <= scored.score <= 100.0

    def test_single_candidate_scores_midpoint(self):
        strategy = make_strategy("COST", [(C.UNIT_COST, 1.0, SortOrder.ASC)])
        ranked = score_units(strategy, [make_unit(1, cost=42)], TODAY)
        assert ranked[0].score == MIDPOINT_SCORE

    def test_no_active_rules_scores_midpoint(self):
        strategy = make_strategy("EMPTY", [])
        ranked = score_units(strategy, [make_unit(2), make_unit(1)], TODAY)
        assert [s.score for s in ranked] == [MIDPOINT_SCORE, MIDPOINT_SCORE]
        assert [s.unit_id for s in ranked] == [uuid.UUID(int=1), uuid.UUID(int=2)]

    def test_empty_candidates(self):
        strategy = make_strategy("COST", [(C.UNIT_COST, 1.0, SortOrder.ASC)])
        assert score_units(strategy, [], TODAY) == []

    def test_identical_scores_break_on_lower_unit_id(self):
        strategy = make_strategy("COST", [(C.UNIT_COST, 1.0, SortOrder.ASC)])
        units = [make_unit(9, cost=80), make_unit(3, cost=80), make_unit(5, cost=80)]

        ranked = score_units(strategy, units, TODAY)

        assert [s.unit_id.int for s in ranked] == [3, 5, 9]

    def test_equal_composite_breaks_on_primary_criterion_first(self):
        # cost asc and age desc cancel out at equal weights: both score 50
        strategy = make_strategy(
            "TIE",
            [(C.UNIT_COST, 1.0, SortOrder.ASC), (C.AGE_DAYS, 1.0, SortOrder.DESC)],
        )
        cheap_new = make_unit(2, cost=80, age_days=10)
        dear_old = make_unit(1, cost=100, age_days=100)

        ranked = score_units(strategy, [dear_old, cheap_new], TODAY)

        assert ranked[0].score == ranked[1].score == 50.0
        assert ranked[0].unit_id == cheap_new.unit_id

    def test_equal_composite_prefers_favorable_value_on_desc_primary(self):
        strategy = make_strategy(
            "WARRANTY_TIE",
            [(C.WARRANTY_REMAINING_DAYS, 1.0, SortOrder.DESC), (C.AGE_DAYS, 1.0, SortOrder.ASC)],
        )
        short_new = make_unit(1, warranty_days=100, age_days=10)
        long_old = make_unit(2, warranty_days=200, age_days=100)

        ranked = score_units(strategy, [short_new, long_old], TODAY)

        assert ranked[0].score == ranked[1].score == 50.0
        assert ranked[0].unit_id == long_old.unit_id

    def test_deterministic_regardless_of_input_order(self):
        strategy = make_strategy(
            "MIX",
            [(C.UNIT_COST, 2.0, SortOrder.ASC), (C.WARRANTY_REMAINING_DAYS, 1.0, SortOrder.DESC)],
        )
        units = [make_unit(i, cost=100 - (i % 4) * 5, warranty_days=100 + (i % 3) * 50) for i in range(1, 13)]

        first = [s.unit_id for s in score_units(strategy, units, TODAY)]
        second = [s.unit_id for s in score_units(strategy, list(reversed(units)), TODAY)]

        assert first == second

    def test_inactive_rules_are_ignored(self):
        strategy = make_strategy("COST", [(C.UNIT_COST, 1.0, SortOrder.ASC)])
        strategy = dataclasses.replace(
            strategy,
            rules=strategy.rules + (RuleSnapshot(C.AGE_DAYS, 5.0, SortOrder.DESC, 2, is_active=False),),
        )
        ranked = score_units(strategy, [make_unit(1, cost=100, age_days=500), make_unit(2, cost=80)], TODAY)
        assert ranked[0].unit.unit_cost == 80

    def test_score_is_relative_to_candidate_set(self):
        strategy = make_strategy("COST", [(C.UNIT_COST, 1.0, SortOrder.ASC)])
        unit = make_unit(1, cost=90)

        against_cheaper = score_unit(strategy, unit, [make_unit(2, cost=80), make_unit(3, cost=100)], TODAY)
        against_dearer = score_unit(strategy, unit, [make_unit(4, cost=95)], TODAY)

        assert against_cheaper == 50.0
        assert against_dearer == 100.0

"""
Tests for the Manual Override Selector.
"""

import uuid

import pytest

from allocation.allocator import Allocator
from allocation.domain import UnitStatus
from allocation.errors import AllocationConflict, InvalidSelection, SelectionIncomplete
from allocation.manual import DEFAULT_ALLOCATION_REASON, ManualPick, ManualSelection
from allocation.strategies import StrategyRegistry
from core.config import Settings
from fakes import LOCATION_ID, PRODUCT_ID, TODAY, InMemoryInventoryPool, InMemoryLedger, make_unit

SERIALS = [make_unit(i, cost=100.0 + i, qty=1, reference=f"SN-{i:03d}") for i in range(1, 5)]
BATCH = make_unit(0x10, cost=50.0, qty=10)


def _allocator(units=(*SERIALS, BATCH)):
    pool = InMemoryInventoryPool(units)
    ledger = InMemoryLedger()
    allocator = Allocator(pool, StrategyRegistry([]), ledger, settings=Settings(), clock=lambda: TODAY)
    return allocator, pool, ledger


def _selection(needed: int, *picks: ManualPick, **kwargs) -> ManualSelection:
    return ManualSelection(
        product_id=PRODUCT_ID,
        location_id=LOCATION_ID,
        quantity_needed=needed,
        picks=list(picks),
        **kwargs,
    )


@pytest.mark.asyncio
class TestValidateSelection:
    async def test_partial_selection_is_not_an_error(self):
        allocator, _, _ = _allocator()

        status = await allocator.validate_manual(
            _selection(3, ManualPick(SERIALS[0].unit_id), ManualPick(SERIALS[1].unit_id))
        )

        assert status.is_complete is False
        assert status.quantity_selected == 2
        assert status.quantity_remaining == 1
        assert status.problems == []

    async def test_complete_selection(self):
        allocator, _, _ = _allocator()

        status = await allocator.validate_manual(
            _selection(4, ManualPick(SERIALS[0].unit_id), ManualPick(BATCH.unit_id, quantity=3))
        )

        assert status.is_complete is True

    async def test_reports_each_problem(self):
        other_product = make_unit(0x20, product_id=uuid.uuid4())
        other_location = make_unit(0x21, location_id=uuid.uuid4())
        taken = make_unit(0x22, status=UnitStatus.ALLOCATED, qty=0)
        allocator, _, _ = _allocator(units=(*SERIALS, other_product, other_location, taken))
        missing = uuid.uuid4()

        status = await allocator.validate_manual(
            _selection(
                6,
                ManualPick(SERIALS[0].unit_id),
                ManualPick(SERIALS[0].unit_id),
                ManualPick(missing),
                ManualPick(other_product.unit_id),
                ManualPick(other_location.unit_id),
                ManualPick(taken.unit_id),
            )
        )

        assert len(status.invalid) == 4
        assert any("more than once" in p for p in status.invalid)
        assert any("does not exist" in p for p in status.invalid)
        assert any("different product" in p for p in status.invalid)
        assert any("not at the selected location" in p for p in status.invalid)
        assert status.unavailable == [f"Unit {taken.unit_id} is allocated"]

    async def test_over_selection_is_invalid(self):
        allocator, _, _ = _allocator()

        status = await allocator.validate_manual(_selection(2, ManualPick(BATCH.unit_id, quantity=5)))

        assert any("only 2 are needed" in p for p in status.invalid)


@pytest.mark.asyncio
class TestExecuteManual:
    async def test_partial_selection_raises_incomplete(self):
        allocator, pool, ledger = _allocator()
        before = dict(pool.units)

        with pytest.raises(SelectionIncomplete) as exc_info:
            await allocator.execute_manual(
                _selection(3, ManualPick(SERIALS[0].unit_id), ManualPick(SERIALS[1].unit_id))
            )

        assert exc_info.value.quantity_selected == 2
        assert exc_info.value.quantity_needed == 3
        assert exc_info.value.details()["quantity_remaining"] == 1
        assert pool.units == before
        assert ledger.records == {}

    async def test_invalid_pick_raises(self):
        allocator, _, _ = _allocator()

        with pytest.raises(InvalidSelection) as exc_info:
            await allocator.execute_manual(_selection(1, ManualPick(uuid.uuid4())))

        assert "does not exist" in exc_info.value.problems[0]

    async def test_commits_selected_units_in_pick_order(self):
        allocator, pool, ledger = _allocator()

        plan = await allocator.execute_manual(
            _selection(
                3,
                ManualPick(SERIALS[2].unit_id, allocation_reason="customer_request"),
                ManualPick(SERIALS[0].unit_id),
                ManualPick(BATCH.unit_id),
                estimation_item_id="EST-42-7",
            )
        )

        assert plan.allocation_type == "manual"
        assert plan.strategy_used is None
        assert [line.unit_id for line in plan.lines] == [SERIALS[2].unit_id, SERIALS[0].unit_id, BATCH.unit_id]
        assert [line.reason for line in plan.lines] == [
            "customer_request",
            DEFAULT_ALLOCATION_REASON,
            DEFAULT_ALLOCATION_REASON,
        ]
        assert all(line.score is None for line in plan.lines)
        assert plan.lines[0].reference == "SN-003"
        assert plan.total_cost == 103.0 + 101.0 + 50.0
        assert pool.units[SERIALS[2].unit_id].status == UnitStatus.ALLOCATED
        assert pool.units[BATCH.unit_id].quantity_available == 9
        assert ledger.records[plan.transaction_id].reference == "EST-42-7"

    async def test_reserves_in_unit_id_order_whatever_the_pick_order(self):
        allocator, pool, _ = _allocator()
        reserved = []
        pool.before_reserve = reserved.append

        plan = await allocator.execute_manual(
            _selection(2, ManualPick(SERIALS[1].unit_id), ManualPick(SERIALS[0].unit_id))
        )

        assert reserved == [SERIALS[0].unit_id, SERIALS[1].unit_id]
        assert [line.unit_id for line in plan.lines] == [SERIALS[1].unit_id, SERIALS[0].unit_id]

    async def test_unit_taken_since_selection_is_conflict(self):
        allocator, pool, _ = _allocator()
        await allocator.execute_manual(_selection(1, ManualPick(SERIALS[0].unit_id)))

        with pytest.raises(AllocationConflict):
            await allocator.execute_manual(_selection(1, ManualPick(SERIALS[0].unit_id)))

    async def test_conflict_during_reserve_releases_earlier_picks(self):
        allocator, pool, _ = _allocator()
        pool.failing_units.add(SERIALS[1].unit_id)

        with pytest.raises(AllocationConflict):
            await allocator.execute_manual(
                _selection(2, ManualPick(SERIALS[0].unit_id), ManualPick(SERIALS[1].unit_id))
            )

        assert pool.units[SERIALS[0].unit_id] == SERIALS[0]


def test_quantity_needed_must_be_positive():
    with pytest.raises(ValueError):
        _selection(0)

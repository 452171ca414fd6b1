"""
Manual Override Selector — a planner picks specific units by hand.

Bypasses strategy resolution and scoring. A partial selection is fine while
the planner is still picking (validate() reports what is missing), but the
commit path only accepts a selection that covers quantity_needed exactly.
"""

from dataclasses import dataclass, field
from uuid import UUID

import structlog

from allocation.domain import AllocationLine, AllocationPlan, UnitSnapshot, UnitStatus
from allocation.errors import AllocationConflict, InvalidSelection, SelectionIncomplete
from allocation.pool import InventoryPool

logger = structlog.get_logger()

DEFAULT_ALLOCATION_REASON = "technical_compatibility"


@dataclass
class ManualPick:
    unit_id: UUID
    allocation_reason: str = DEFAULT_ALLOCATION_REASON
    quantity: int = 1


@dataclass
class ManualSelection:
    product_id: UUID
    location_id: UUID
    quantity_needed: int
    picks: list[ManualPick] = field(default_factory=list)
    estimation_item_id: str | None = None
    transaction_id: UUID | None = None

    def __post_init__(self):
        if self.quantity_needed <= 0:
            raise ValueError("quantity_needed must be greater than zero")

    @property
    def quantity_selected(self) -> int:
        return sum(p.quantity for p in self.picks)


@dataclass
class SelectionStatus:
    quantity_needed: int
    quantity_selected: int
    invalid: list[str] = field(default_factory=list)  # can never be committed
    unavailable: list[str] = field(default_factory=list)  # taken by someone else

    @property
    def quantity_remaining(self) -> int:
        return max(self.quantity_needed - self.quantity_selected, 0)

    @property
    def is_complete(self) -> bool:
        return self.quantity_selected == self.quantity_needed and not self.invalid and not self.unavailable

    @property
    def problems(self) -> list[str]:
        return self.invalid + self.unavailable


class ManualOverrideSelector:
    def __init__(self, pool: InventoryPool):
        self.pool = pool

    async def validate(self, selection: ManualSelection) -> SelectionStatus:
        """Check every pick against the current pool. Never raises for selection problems."""
        status, _ = await self._check(selection)
        return status

    async def _check(self, selection: ManualSelection) -> tuple[SelectionStatus, dict[UUID, UnitSnapshot]]:
        status = SelectionStatus(
            quantity_needed=selection.quantity_needed,
            quantity_selected=selection.quantity_selected,
        )
        units = await self.pool.get_units(p.unit_id for p in selection.picks)

        seen: set[UUID] = set()
        for pick in selection.picks:
            label = str(pick.unit_id)
            if pick.unit_id in seen:
                status.invalid.append(f"Unit {label} is selected more than once")
                continue
            seen.add(pick.unit_id)

            if pick.quantity <= 0:
                status.invalid.append(f"Unit {label} has a non-positive quantity")
                continue
            unit = units.get(pick.unit_id)
            if unit is None:
                status.invalid.append(f"Unit {label} does not exist")
                continue
            if unit.product_id != selection.product_id:
                status.invalid.append(f"Unit {label} belongs to a different product")
                continue
            if unit.location_id != selection.location_id:
                status.invalid.append(f"Unit {label} is not at the selected location")
                continue
            if unit.status != UnitStatus.AVAILABLE:
                status.unavailable.append(f"Unit {label} is {unit.status.value}")
                continue
            if unit.quantity_available < pick.quantity:
                status.unavailable.append(
                    f"Unit {label} has {unit.quantity_available} available, {pick.quantity} requested"
                )

        if selection.quantity_selected > selection.quantity_needed:
            status.invalid.append(
                f"Selected {selection.quantity_selected} units but only {selection.quantity_needed} are needed"
            )
        return status, units

    async def build_plan(self, selection: ManualSelection) -> AllocationPlan:
        """Turn a complete selection into a plan ready for the commit protocol."""
        status, units = await self._check(selection)
        if status.invalid:
            raise InvalidSelection(status.invalid)
        if selection.quantity_selected < selection.quantity_needed:
            raise SelectionIncomplete(selection.quantity_selected, selection.quantity_needed)
        if status.unavailable:
            logger.info("manual.selection.unavailable", problems=status.unavailable)
            raise AllocationConflict(message="; ".join(status.unavailable))

        lines = [
            AllocationLine(
                unit_id=pick.unit_id,
                quantity_allocated=pick.quantity,
                unit_cost=units[pick.unit_id].unit_cost,
                score=None,
                reason=pick.allocation_reason or DEFAULT_ALLOCATION_REASON,
                sequence_order=idx,
                reference=units[pick.unit_id].reference,
            )
            for idx, pick in enumerate(selection.picks, start=1)
        ]
        return AllocationPlan(
            product_id=selection.product_id,
            quantity_requested=selection.quantity_needed,
            lines=lines,
            strategy_used=None,
            location_id=selection.location_id,
            allocation_type="manual",
        )

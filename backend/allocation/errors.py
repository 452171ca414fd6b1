"""
Allocation error taxonomy.

Every failure the engine reports is one of these types so callers can
branch on it. Only AllocationConflict is retryable (re-preview against the
current pool, then execute again).
"""

from typing import Any
from uuid import UUID


class AllocationError(Exception):
    """Base class for typed allocation failures."""

    code = "allocation_error"
    retryable = False

    def details(self) -> dict[str, Any]:
        return {}


class NoStrategyAvailable(AllocationError):
    """Configuration gap: no active strategy resolves for the request."""

    code = "no_strategy_available"

    def __init__(self, product_id: UUID, business_context: str):
        self.product_id = product_id
        self.business_context = business_context
        super().__init__(
            f"No active allocation strategy resolves for product {product_id} in context '{business_context}'"
        )

    def details(self) -> dict[str, Any]:
        return {"product_id": str(self.product_id), "business_context": self.business_context}


class InsufficientInventory(AllocationError):
    """The eligible pool holds less than the requested quantity."""

    code = "insufficient_inventory"

    def __init__(self, product_id: UUID, quantity_needed: int, quantity_available: int):
        self.product_id = product_id
        self.quantity_needed = quantity_needed
        self.quantity_available = quantity_available
        self.shortfall = quantity_needed - quantity_available
        super().__init__(
            f"Requested {quantity_needed} of product {product_id} but only {quantity_available} available "
            f"(shortfall {self.shortfall})"
        )

    def details(self) -> dict[str, Any]:
        return {
            "product_id": str(self.product_id),
            "quantity_needed": self.quantity_needed,
            "quantity_available": self.quantity_available,
            "shortfall": self.shortfall,
        }


class AllocationConflict(AllocationError):
    """A unit changed under the commit. Nothing was reserved."""

    code = "allocation_conflict"
    retryable = True

    def __init__(self, unit_id: UUID | None = None, message: str | None = None):
        self.unit_id = unit_id
        super().__init__(message or f"Unit {unit_id} is no longer available for reservation")

    def details(self) -> dict[str, Any]:
        return {"unit_id": str(self.unit_id) if self.unit_id else None}


class SelectionIncomplete(AllocationError):
    """Manual selection does not yet cover the required quantity."""

    code = "selection_incomplete"

    def __init__(self, quantity_selected: int, quantity_needed: int):
        self.quantity_selected = quantity_selected
        self.quantity_needed = quantity_needed
        super().__init__(f"Selected {quantity_selected} of {quantity_needed} required units")

    def details(self) -> dict[str, Any]:
        return {
            "quantity_selected": self.quantity_selected,
            "quantity_needed": self.quantity_needed,
            "quantity_remaining": self.quantity_needed - self.quantity_selected,
        }


class InvalidSelection(AllocationError):
    """Manual pick names a unit that can never satisfy this selection."""

    code = "invalid_selection"

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("; ".join(problems))

    def details(self) -> dict[str, Any]:
        return {"problems": self.problems}


class TransactionNotFound(AllocationError):
    code = "transaction_not_found"

    def __init__(self, transaction_id: UUID):
        self.transaction_id = transaction_id
        super().__init__(f"Allocation transaction {transaction_id} not found")

    def details(self) -> dict[str, Any]:
        return {"transaction_id": str(self.transaction_id)}


class TransactionNotReleasable(AllocationError):
    code = "transaction_not_releasable"

    def __init__(self, transaction_id: UUID, status: str):
        self.transaction_id = transaction_id
        self.status = status
        super().__init__(f"Cannot release allocation {transaction_id} in '{status}' status")

    def details(self) -> dict[str, Any]:
        return {"transaction_id": str(self.transaction_id), "status": self.status}

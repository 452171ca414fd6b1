"""
Allocation Ledger — committed allocation records.

A committed plan is written once, keyed by its transaction_id, and is the
hand-off point to downstream fulfillment and warranty tracking. Callers
whose execute timed out look the outcome up here instead of retrying.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from allocation.domain import (
    AllocationLine,
    AllocationPlan,
    BusinessContext,
    TransactionRecord,
    TransactionStatus,
)
from db.models import AllocationTransaction, AllocationTransactionLine


class AllocationLedger(ABC):
    @abstractmethod
    async def record(
        self,
        plan: AllocationPlan,
        *,
        customer_tier: str | None = None,
        project_priority: str | None = None,
        reference: str | None = None,
    ) -> TransactionRecord:
        ...

    @abstractmethod
    async def get(self, transaction_id: UUID) -> TransactionRecord | None:
        ...

    @abstractmethod
    async def mark_released(self, transaction_id: UUID) -> TransactionRecord:
        ...

    @abstractmethod
    async def list_transactions(
        self,
        *,
        product_id: UUID | None = None,
        location_id: UUID | None = None,
        business_context: BusinessContext | None = None,
        allocation_type: str | None = None,
        status: TransactionStatus | None = None,
        customer_tier: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int = 50,
    ) -> list[TransactionRecord]:
        """Most recent first."""
        ...


def transaction_to_record(tx: AllocationTransaction) -> TransactionRecord:
    plan = AllocationPlan(
        product_id=tx.product_id,
        quantity_requested=tx.quantity_requested,
        lines=[
            AllocationLine(
                unit_id=line.unit_id,
                quantity_allocated=line.quantity_allocated,
                unit_cost=line.unit_cost,
                score=line.score,
                reason=line.reason,
                sequence_order=line.sequence_order,
                reference=line.reference,
            )
            for line in tx.lines
        ],
        strategy_used=tx.strategy_name,
        strategy_id=tx.strategy_id,
        business_context=BusinessContext(tx.business_context) if tx.business_context else None,
        location_id=tx.location_id,
        allocation_type=tx.allocation_type,
        recommendations=list(tx.recommendations or []),
        transaction_id=tx.transaction_id,
    )
    return TransactionRecord(
        plan=plan,
        status=TransactionStatus(tx.status),
        created_at=tx.created_at,
        customer_tier=tx.customer_tier,
        project_priority=tx.project_priority,
        reference=tx.reference,
        released_at=tx.released_at,
    )


class SqlAllocationLedger(AllocationLedger):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        plan: AllocationPlan,
        *,
        customer_tier: str | None = None,
        project_priority: str | None = None,
        reference: str | None = None,
    ) -> TransactionRecord:
        if plan.transaction_id is None:
            raise ValueError("Only committed plans can be recorded")

        tx = AllocationTransaction(
            transaction_id=plan.transaction_id,
            allocation_type=plan.allocation_type,
            product_id=plan.product_id,
            location_id=plan.location_id,
            business_context=plan.business_context.value if plan.business_context else None,
            customer_tier=customer_tier,
            project_priority=project_priority,
            reference=reference,
            quantity_requested=plan.quantity_requested,
            quantity_allocated=plan.quantity_allocated,
            total_cost=plan.total_cost,
            average_unit_cost=plan.average_unit_cost,
            strategy_id=plan.strategy_id,
            strategy_name=plan.strategy_used,
            recommendations=list(plan.recommendations),
            status=TransactionStatus.ALLOCATED.value,
            created_at=datetime.utcnow(),
            lines=[
                AllocationTransactionLine(
                    unit_id=line.unit_id,
                    sequence_order=line.sequence_order,
                    quantity_allocated=line.quantity_allocated,
                    unit_cost=line.unit_cost,
                    score=line.score,
                    reason=line.reason,
                    reference=line.reference,
                )
                for line in plan.lines
            ],
        )
        self.db.add(tx)
        await self.db.flush()
        return TransactionRecord(
            plan=plan,
            status=TransactionStatus.ALLOCATED,
            created_at=tx.created_at,
            customer_tier=customer_tier,
            project_priority=project_priority,
            reference=reference,
        )

    async def _load(self, transaction_id: UUID) -> AllocationTransaction | None:
        result = await self.db.execute(
            select(AllocationTransaction)
            .where(AllocationTransaction.transaction_id == transaction_id)
            .options(selectinload(AllocationTransaction.lines))
        )
        return result.scalar_one_or_none()

    async def get(self, transaction_id: UUID) -> TransactionRecord | None:
        tx = await self._load(transaction_id)
        return transaction_to_record(tx) if tx else None

    async def mark_released(self, transaction_id: UUID) -> TransactionRecord:
        tx = await self._load(transaction_id)
        if tx is None:
            raise ValueError(f"Allocation transaction {transaction_id} not found")
        tx.status = TransactionStatus.RELEASED.value
        tx.released_at = datetime.utcnow()
        await self.db.flush()
        return transaction_to_record(tx)

    async def list_transactions(
        self,
        *,
        product_id: UUID | None = None,
        location_id: UUID | None = None,
        business_context: BusinessContext | None = None,
        allocation_type: str | None = None,
        status: TransactionStatus | None = None,
        customer_tier: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int = 50,
    ) -> list[TransactionRecord]:
        query = select(AllocationTransaction).options(selectinload(AllocationTransaction.lines))
        if product_id:
            query = query.where(AllocationTransaction.product_id == product_id)
        if location_id:
            query = query.where(AllocationTransaction.location_id == location_id)
        if business_context:
            query = query.where(AllocationTransaction.business_context == BusinessContext(business_context).value)
        if allocation_type:
            query = query.where(AllocationTransaction.allocation_type == allocation_type)
        if status:
            query = query.where(AllocationTransaction.status == TransactionStatus(status).value)
        if customer_tier:
            query = query.where(AllocationTransaction.customer_tier == customer_tier)
        if date_from:
            query = query.where(AllocationTransaction.created_at >= date_from)
        if date_to:
            query = query.where(AllocationTransaction.created_at <= date_to)
        query = query.order_by(AllocationTransaction.created_at.desc()).limit(limit)
        result = await self.db.execute(query)
        return [transaction_to_record(tx) for tx in result.scalars().all()]

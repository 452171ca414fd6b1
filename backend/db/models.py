"""
Allocation Engine Database Models

Tables:
  Catalog projection (1):
  1. products                     - Read-only product lookup (name/SKU, category, historical cost)

  Inventory Pool (2):
  2. inventory_units              - Serialized items and batches, the allocatable pool

  Strategy Registry (3-5):
  3. allocation_strategies        - Named, weighted rule sets
  4. allocation_rules             - One weighted criterion per row
  5. allocation_preferences       - Product/category strategy overrides

  Commit ledger (6-7):
  6. allocation_transactions      - One row per committed allocation
  7. allocation_transaction_lines - Units consumed by a committed allocation
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


# Alias so Column(UUID(as_uuid=True)) reads like the PostgreSQL type
def UUID(as_uuid=True):
    return GUID()


from sqlalchemy.orm import relationship

from db.session import Base

# ─── 1. Products ────────────────────────────────────────────────────────────


class Product(Base):
    """Catalog projection owned by the product service. Display and cost history only."""

    __tablename__ = "products"

    product_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sku = Column(String(100), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    category_id = Column(UUID(as_uuid=True), nullable=True)
    historical_avg_cost = Column(Float)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_products_category", "category_id"),
        CheckConstraint("historical_avg_cost >= 0", name="ck_product_hist_cost_positive"),
    )

    units = relationship("InventoryUnit", back_populates="product")


# ─── 2. Inventory Units ─────────────────────────────────────────────────────


class InventoryUnit(Base):
    """One allocatable quantum of stock: a serialized item (qty 1) or a batch (qty N).

    Rows are never deleted. quantity_available and status only change through
    the conditional updates in allocation.pool.SqlInventoryPool.
    """

    __tablename__ = "inventory_units"

    unit_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.product_id"), nullable=False)
    location_id = Column(UUID(as_uuid=True), nullable=False)
    unit_kind = Column(String(10), nullable=False, default="batch")  # serial, batch
    reference = Column(String(100))  # serial number or batch number
    quantity_available = Column(Integer, nullable=False, default=1)
    unit_cost = Column(Float, nullable=False)
    acquisition_date = Column(Date, nullable=False)
    warranty_expiry_date = Column(Date)
    performance_rating = Column(String(20), nullable=False, default="unrated")
    failure_count = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="available")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_units_product_status", "product_id", "status"),
        Index("ix_units_location", "location_id"),
        CheckConstraint("quantity_available >= 0", name="ck_unit_qty_non_negative"),
        CheckConstraint("unit_cost >= 0", name="ck_unit_cost_positive"),
        CheckConstraint("failure_count >= 0", name="ck_unit_failures_non_negative"),
        CheckConstraint("unit_kind IN ('serial', 'batch')", name="ck_unit_kind"),
        CheckConstraint(
            "performance_rating IN ('excellent', 'good', 'average', 'poor', 'unrated')",
            name="ck_unit_performance_rating",
        ),
        CheckConstraint(
            "status IN ('available', 'reserved', 'allocated', 'unavailable')",
            name="ck_unit_status",
        ),
    )

    product = relationship("Product", back_populates="units")


# ─── 3. Allocation Strategies ───────────────────────────────────────────────


class AllocationStrategy(Base):
    __tablename__ = "allocation_strategies"

    strategy_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    code = Column(String(50), nullable=False, unique=True)
    strategy_type = Column(String(30), nullable=False, default="custom")
    description = Column(Text)
    business_context = Column(String(20))  # Null = not a context default
    is_active = Column(Boolean, nullable=False, default=True)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "strategy_type IN ('cost_optimization', 'warranty_optimization', 'inventory_rotation', 'custom')",
            name="ck_strategy_type",
        ),
        CheckConstraint(
            "business_context IS NULL OR business_context IN ('estimation', 'manufacturing', 'sales')",
            name="ck_strategy_business_context",
        ),
    )

    rules = relationship(
        "AllocationRule",
        back_populates="strategy",
        cascade="all, delete-orphan",
        order_by="AllocationRule.priority",
    )


# ─── 4. Allocation Rules ────────────────────────────────────────────────────


class AllocationRule(Base):
    __tablename__ = "allocation_rules"

    rule_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    strategy_id = Column(UUID(as_uuid=True), ForeignKey("allocation_strategies.strategy_id"), nullable=False)
    criteria_type = Column(String(40), nullable=False)
    weight = Column(Float, nullable=False, default=1.0)
    sort_order = Column(String(4), nullable=False, default="asc")
    priority = Column(Integer, nullable=False, default=1)  # 1 = evaluated first
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_rules_strategy", "strategy_id"),
        CheckConstraint(
            "criteria_type IN ('unit_cost', 'warranty_remaining_days', 'age_days', 'performance_rating', 'failure_count')",
            name="ck_rule_criteria_type",
        ),
        CheckConstraint("weight >= 0.1 AND weight <= 5.0", name="ck_rule_weight_range"),
        CheckConstraint("sort_order IN ('asc', 'desc')", name="ck_rule_sort_order"),
        CheckConstraint("priority >= 1", name="ck_rule_priority_positive"),
    )

    strategy = relationship("AllocationStrategy", back_populates="rules")


# ─── 5. Allocation Preferences ──────────────────────────────────────────────


class AllocationPreference(Base):
    """Strategy override for one product or one category (exactly one key is set)."""

    __tablename__ = "allocation_preferences"

    preference_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.product_id"), nullable=True, unique=True)
    category_id = Column(UUID(as_uuid=True), nullable=True, unique=True)
    default_strategy_id = Column(UUID(as_uuid=True), ForeignKey("allocation_strategies.strategy_id"))
    high_value_threshold = Column(Float)
    high_value_strategy_id = Column(UUID(as_uuid=True), ForeignKey("allocation_strategies.strategy_id"))
    critical_project_strategy_id = Column(UUID(as_uuid=True), ForeignKey("allocation_strategies.strategy_id"))
    premium_customer_strategy_id = Column(UUID(as_uuid=True), ForeignKey("allocation_strategies.strategy_id"))
    is_active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "(product_id IS NULL) <> (category_id IS NULL)",
            name="ck_preference_single_key",
        ),
        CheckConstraint("high_value_threshold IS NULL OR high_value_threshold >= 0", name="ck_preference_threshold"),
    )


# ─── 6. Allocation Transactions ─────────────────────────────────────────────


class AllocationTransaction(Base):
    """Committed allocation. Downstream fulfillment and warranty tracking key off transaction_id."""

    __tablename__ = "allocation_transactions"

    transaction_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    allocation_type = Column(String(10), nullable=False, default="auto")  # auto, manual
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.product_id"), nullable=False)
    location_id = Column(UUID(as_uuid=True))
    business_context = Column(String(20))
    customer_tier = Column(String(30))
    project_priority = Column(String(30))
    reference = Column(String(100))  # estimation item for manual selections
    quantity_requested = Column(Integer, nullable=False)
    quantity_allocated = Column(Integer, nullable=False)
    total_cost = Column(Float, nullable=False)
    average_unit_cost = Column(Float, nullable=False)
    strategy_id = Column(UUID(as_uuid=True), nullable=True)
    strategy_name = Column(String(255))
    recommendations = Column(JSON, default=list)
    status = Column(String(20), nullable=False, default="allocated")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    released_at = Column(DateTime)

    __table_args__ = (
        Index("ix_alloc_tx_product", "product_id", "created_at"),
        CheckConstraint("allocation_type IN ('auto', 'manual')", name="ck_alloc_tx_type"),
        CheckConstraint("status IN ('allocated', 'released')", name="ck_alloc_tx_status"),
        CheckConstraint("quantity_allocated = quantity_requested", name="ck_alloc_tx_conservation"),
    )

    lines = relationship(
        "AllocationTransactionLine",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="AllocationTransactionLine.sequence_order",
    )


# ─── 7. Allocation Transaction Lines ────────────────────────────────────────


class AllocationTransactionLine(Base):
    __tablename__ = "allocation_transaction_lines"

    line_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_id = Column(
        UUID(as_uuid=True), ForeignKey("allocation_transactions.transaction_id"), nullable=False
    )
    unit_id = Column(UUID(as_uuid=True), ForeignKey("inventory_units.unit_id"), nullable=False)
    sequence_order = Column(Integer, nullable=False)
    quantity_allocated = Column(Integer, nullable=False)
    unit_cost = Column(Float, nullable=False)
    score = Column(Float)  # Null for manual picks
    reason = Column(String(255), nullable=False)
    reference = Column(String(100))  # Serial or batch number at commit time

    __table_args__ = (
        Index("ix_alloc_line_tx", "transaction_id"),
        Index("ix_alloc_line_unit", "unit_id"),
        CheckConstraint("quantity_allocated > 0", name="ck_alloc_line_qty_positive"),
    )

    transaction = relationship("AllocationTransaction", back_populates="lines")

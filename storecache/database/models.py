"""
Database Models - Storefront Cache Schema

Denormalized copy of the remote catalog plus the order history needed for
sales and co-purchase analytics:

Catalog:
- ProductVariant: one row per sellable variant, keyed by the remote variant id
- SalesAggregate: rolling-window unit counts per variant

Orders:
- Order: one row per remote order
- OrderItem: line items, unique per (order, variant)

Derived:
- ProductCorrelation: co-purchase counts per canonical variant pair
- CustomerStats: per-customer order statistics

Remote identifiers are stored as strings. Timestamps are timezone-aware and
written in UTC.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


class RiskLevel(str, Enum):
    """Inventory risk classification"""
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


# =============================================================================
# CATALOG
# =============================================================================

class ProductVariant(Base):
    """
    Product Variant Table

    One row per purchasable variant. Re-syncs overwrite mutable fields via
    upsert on ``variant_id``. Barcodes are indexed but deliberately not unique.
    """
    __tablename__ = "product_variants"

    variant_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)

    product_title: Mapped[str] = mapped_column(String(500), nullable=False)
    variant_title: Mapped[Optional[str]] = mapped_column(String(500))
    barcode: Mapped[Optional[str]] = mapped_column(String(100))
    sku: Mapped[Optional[str]] = mapped_column(String(255))

    # Pricing
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    compare_at_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    cost_is_estimated: Mapped[bool] = mapped_column(Boolean, default=True)

    # Inventory
    inventory_quantity: Mapped[int] = mapped_column(Integer, default=0)
    inventory_item_id: Mapped[Optional[str]] = mapped_column(String(64))

    vendor: Mapped[Optional[str]] = mapped_column(String(255))
    tags: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    sales: Mapped[Optional["SalesAggregate"]] = relationship(
        back_populates="variant", cascade="all, delete-orphan", uselist=False
    )

    __table_args__ = (
        Index("ix_product_variants_barcode", "barcode"),
        Index("ix_product_variants_product", "product_id"),
    )


class SalesAggregate(Base):
    """
    Sales Aggregate Table

    Unit counts over fixed lookback windows. Recomputed wholesale on every
    sales sync, never incremented in place.
    """
    __tablename__ = "sales_aggregates"

    variant_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("product_variants.variant_id", ondelete="CASCADE"),
        primary_key=True,
    )
    units_1d: Mapped[int] = mapped_column(Integer, default=0)
    units_7d: Mapped[int] = mapped_column(Integer, default=0)
    units_30d: Mapped[int] = mapped_column(Integer, default=0)
    units_90d: Mapped[int] = mapped_column(Integer, default=0)
    units_365d: Mapped[int] = mapped_column(Integer, default=0)
    units_all_time: Mapped[int] = mapped_column(Integer, default=0)
    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    variant: Mapped["ProductVariant"] = relationship(back_populates="sales")


# =============================================================================
# ORDERS
# =============================================================================

class Order(Base):
    """
    Order Table

    Inserted once and updated in place by later syncs. ``is_returning_customer``
    is recomputed after every order sync.
    """
    __tablename__ = "orders"

    order_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    order_number: Mapped[Optional[str]] = mapped_column(String(50))

    # Guest checkouts have no customer
    customer_id: Mapped[Optional[str]] = mapped_column(String(64))
    email_hash: Mapped[Optional[str]] = mapped_column(String(64))  # SHA256 hex

    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    subtotal_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total_tax: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    currency: Mapped[Optional[str]] = mapped_column(String(3))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_returning_customer: Mapped[bool] = mapped_column(Boolean, default=False)
    synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_orders_customer", "customer_id"),
        Index("ix_orders_created_at", "created_at"),
    )


class OrderItem(Base):
    """
    Order Item Table

    One row per variant per order. The (order_id, variant_id) constraint is
    what makes replayed syncs idempotent.
    """
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("orders.order_id", ondelete="CASCADE"), nullable=False
    )
    variant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    product_id: Mapped[Optional[str]] = mapped_column(String(64))

    title: Mapped[Optional[str]] = mapped_column(String(500))
    variant_title: Mapped[Optional[str]] = mapped_column(String(500))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    order: Mapped["Order"] = relationship(back_populates="items")

    __table_args__ = (
        UniqueConstraint("order_id", "variant_id", name="uq_order_items_order_variant"),
        Index("ix_order_items_variant", "variant_id"),
    )


# =============================================================================
# DERIVED
# =============================================================================

class ProductCorrelation(Base):
    """
    Product Correlation Table

    One row per unordered variant pair, stored with the lower id first.
    Rebuilt from order_items after each order sync.
    """
    __tablename__ = "product_correlations"

    variant_a: Mapped[str] = mapped_column(String(64), primary_key=True)
    variant_b: Mapped[str] = mapped_column(String(64), primary_key=True)
    co_purchase_count: Mapped[int] = mapped_column(Integer, nullable=False)
    correlation_score: Mapped[float] = mapped_column(Float, nullable=False)
    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("variant_a < variant_b", name="ck_product_correlations_canonical"),
        Index("ix_product_correlations_b", "variant_b"),
    )


class CustomerStats(Base):
    """Per-customer order statistics, replaced on every order sync."""
    __tablename__ = "customer_stats"

    customer_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    order_count: Mapped[int] = mapped_column(Integer, nullable=False)
    total_spent: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    avg_order_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    first_order_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_order_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

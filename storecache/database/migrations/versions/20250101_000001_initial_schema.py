"""Initial storefront cache schema.

Revision ID: 20250101_000001
Revises:
Create Date: 2025-01-01 00:00:00
"""

from alembic import op
import sqlalchemy as sa
from typing import Sequence, Union

# revision identifiers, used by Alembic.
revision: str = "20250101_000001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create catalog, order and derived analytics tables."""
    op.create_table(
        "product_variants",
        sa.Column("variant_id", sa.String(64), primary_key=True),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("product_title", sa.String(500), nullable=False),
        sa.Column("variant_title", sa.String(500)),
        sa.Column("barcode", sa.String(100)),
        sa.Column("sku", sa.String(255)),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("compare_at_price", sa.Numeric(12, 2)),
        sa.Column("cost", sa.Numeric(12, 2)),
        sa.Column("cost_is_estimated", sa.Boolean()),
        sa.Column("inventory_quantity", sa.Integer()),
        sa.Column("inventory_item_id", sa.String(64)),
        sa.Column("vendor", sa.String(255)),
        sa.Column("tags", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.Column("synced_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_product_variants_barcode", "product_variants", ["barcode"])
    op.create_index("ix_product_variants_product", "product_variants", ["product_id"])

    op.create_table(
        "sales_aggregates",
        sa.Column(
            "variant_id",
            sa.String(64),
            sa.ForeignKey("product_variants.variant_id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("units_1d", sa.Integer()),
        sa.Column("units_7d", sa.Integer()),
        sa.Column("units_30d", sa.Integer()),
        sa.Column("units_90d", sa.Integer()),
        sa.Column("units_365d", sa.Integer()),
        sa.Column("units_all_time", sa.Integer()),
        sa.Column("computed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "orders",
        sa.Column("order_id", sa.String(64), primary_key=True),
        sa.Column("order_number", sa.String(50)),
        sa.Column("customer_id", sa.String(64)),
        sa.Column("email_hash", sa.String(64)),
        sa.Column("total_price", sa.Numeric(12, 2)),
        sa.Column("subtotal_price", sa.Numeric(12, 2)),
        sa.Column("total_tax", sa.Numeric(12, 2)),
        sa.Column("currency", sa.String(3)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_returning_customer", sa.Boolean()),
        sa.Column("synced_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_orders_customer", "orders", ["customer_id"])
    op.create_index("ix_orders_created_at", "orders", ["created_at"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "order_id",
            sa.String(64),
            sa.ForeignKey("orders.order_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("variant_id", sa.String(64), nullable=False),
        sa.Column("product_id", sa.String(64)),
        sa.Column("title", sa.String(500)),
        sa.Column("variant_title", sa.String(500)),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2)),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.UniqueConstraint("order_id", "variant_id", name="uq_order_items_order_variant"),
    )
    op.create_index("ix_order_items_variant", "order_items", ["variant_id"])

    op.create_table(
        "product_correlations",
        sa.Column("variant_a", sa.String(64), primary_key=True),
        sa.Column("variant_b", sa.String(64), primary_key=True),
        sa.Column("co_purchase_count", sa.Integer(), nullable=False),
        sa.Column("correlation_score", sa.Float(), nullable=False),
        sa.Column("computed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("variant_a < variant_b", name="ck_product_correlations_canonical"),
    )
    op.create_index("ix_product_correlations_b", "product_correlations", ["variant_b"])

    op.create_table(
        "customer_stats",
        sa.Column("customer_id", sa.String(64), primary_key=True),
        sa.Column("order_count", sa.Integer(), nullable=False),
        sa.Column("total_spent", sa.Numeric(14, 2)),
        sa.Column("avg_order_value", sa.Numeric(12, 2)),
        sa.Column("first_order_at", sa.DateTime(timezone=True)),
        sa.Column("last_order_at", sa.DateTime(timezone=True)),
        sa.Column("computed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    """Drop all tables in dependency order."""
    op.drop_table("customer_stats")
    op.drop_index("ix_product_correlations_b", table_name="product_correlations")
    op.drop_table("product_correlations")
    op.drop_index("ix_order_items_variant", table_name="order_items")
    op.drop_table("order_items")
    op.drop_index("ix_orders_created_at", table_name="orders")
    op.drop_index("ix_orders_customer", table_name="orders")
    op.drop_table("orders")
    op.drop_table("sales_aggregates")
    op.drop_index("ix_product_variants_product", table_name="product_variants")
    op.drop_index("ix_product_variants_barcode", table_name="product_variants")
    op.drop_table("product_variants")

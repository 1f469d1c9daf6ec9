"""
Unit Tests - Schema Migrations
"""
import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError

from storecache.database.schema import apply_migrations, current_revision


@pytest.fixture
def engine():
    engine = create_engine("sqlite://")
    yield engine
    engine.dispose()


class TestMigrations:
    """Tests for the Alembic revisions"""

    def test_creates_schema_and_records_revision(self, engine):
        with engine.begin() as conn:
            apply_migrations(conn)
            revision = current_revision(conn)
            tables = set(inspect(conn).get_table_names())

        assert revision == "20250101_000001"
        assert {
            "product_variants",
            "sales_aggregates",
            "orders",
            "order_items",
            "product_correlations",
            "customer_stats",
            "alembic_version",
        } <= tables

    def test_second_run_is_a_no_op(self, engine):
        with engine.begin() as conn:
            apply_migrations(conn)
        with engine.begin() as conn:
            apply_migrations(conn)
            versions = conn.execute(text("SELECT version_num FROM alembic_version")).all()

        assert versions == [("20250101_000001",)]

    def test_order_items_unique_per_order_and_variant(self, engine):
        with engine.begin() as conn:
            apply_migrations(conn)
            conn.execute(text(
                "INSERT INTO orders (order_id, created_at) VALUES ('1', '2025-01-01 00:00:00')"
            ))
            insert_item = text(
                "INSERT INTO order_items (order_id, variant_id, quantity, position) "
                "VALUES ('1', 'V1', 1, 1)"
            )
            conn.execute(insert_item)

            with pytest.raises(IntegrityError):
                conn.execute(insert_item)

    def test_correlation_pairs_are_canonical(self, engine):
        with engine.begin() as conn:
            apply_migrations(conn)
            with pytest.raises(IntegrityError):
                conn.execute(text(
                    "INSERT INTO product_correlations "
                    "(variant_a, variant_b, co_purchase_count, correlation_score) "
                    "VALUES ('V2', 'V1', 2, 1.0)"
                ))

"""
Unit Tests - Inventory Risk and Calendar Windows

Pure math, no database.
"""
from datetime import datetime, timezone

import pytest

from storecache.database.models import RiskLevel
from storecache.serving.lookup import (
    NO_SALES_DAYS,
    classify_inventory_risk,
    daily_velocity,
    period_starts,
)


class TestClassifyInventoryRisk:
    """Tests for classify_inventory_risk"""

    def test_zero_velocity_with_stock_is_low(self):
        days, risk = classify_inventory_risk(10, 0.0)
        assert days == NO_SALES_DAYS
        assert risk == RiskLevel.LOW

    @pytest.mark.parametrize("quantity", [0, -4])
    def test_out_of_stock_is_critical(self, quantity):
        days, risk = classify_inventory_risk(quantity, 2.0)
        assert days == 0
        assert risk == RiskLevel.CRITICAL

    def test_out_of_stock_without_sales_is_critical(self):
        assert classify_inventory_risk(0, 0.0) == (0.0, RiskLevel.CRITICAL)

    @pytest.mark.parametrize(
        "quantity, velocity, expected_days, expected_risk",
        [
            (3, 1.0, 3.0, RiskLevel.CRITICAL),
            (7, 1.0, 7.0, RiskLevel.HIGH),
            (10, 1.0, 10.0, RiskLevel.MEDIUM),
            (14, 1.0, 14.0, RiskLevel.MEDIUM),
            (15, 1.0, 15.0, RiskLevel.LOW),
            (100, 2.0, 50.0, RiskLevel.LOW),
        ],
    )
    def test_thresholds(self, quantity, velocity, expected_days, expected_risk):
        assert classify_inventory_risk(quantity, velocity) == (expected_days, expected_risk)

    def test_missing_quantity(self):
        assert classify_inventory_risk(None, 1.0) == (0.0, RiskLevel.CRITICAL)

    def test_velocity_from_thirty_days(self):
        assert daily_velocity(60) == 2.0
        assert daily_velocity(None) == 0.0


class TestPeriodStarts:
    """Tests for store-local calendar windows"""

    def test_today_starts_at_store_midnight(self):
        # 2025-03-12 02:00 UTC is still 2025-03-11 in New York (EDT, UTC-4)
        now = datetime(2025, 3, 12, 2, 0, tzinfo=timezone.utc)

        starts = period_starts("America/New_York", now)

        assert starts["today"] == datetime(2025, 3, 11, 4, 0, tzinfo=timezone.utc)

    def test_week_starts_monday(self):
        # Wednesday 2025-03-12 in New York
        now = datetime(2025, 3, 12, 15, 30, tzinfo=timezone.utc)

        starts = period_starts("America/New_York", now)

        assert starts["week"] == datetime(2025, 3, 10, 4, 0, tzinfo=timezone.utc)

    def test_month_and_year_across_dst(self):
        # March 1st and January 1st are both in EST (UTC-5)
        now = datetime(2025, 3, 12, 15, 30, tzinfo=timezone.utc)

        starts = period_starts("America/New_York", now)

        assert starts["month"] == datetime(2025, 3, 1, 5, 0, tzinfo=timezone.utc)
        assert starts["year"] == datetime(2025, 1, 1, 5, 0, tzinfo=timezone.utc)

    def test_utc_store(self):
        now = datetime(2025, 3, 12, 15, 30, tzinfo=timezone.utc)
        assert period_starts("UTC", now)["today"] == datetime(2025, 3, 12, tzinfo=timezone.utc)

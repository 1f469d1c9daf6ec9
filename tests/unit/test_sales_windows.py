"""
Unit Tests - Sales Window Aggregation
"""
from datetime import datetime, timedelta, timezone

from storecache.transformation.aggregations import compute_sales_windows, order_lines

from conftest import make_order

NOW = datetime(2025, 3, 12, 12, 0, tzinfo=timezone.utc)


def _ago(**kwargs) -> str:
    return (NOW - timedelta(**kwargs)).isoformat()


class TestComputeSalesWindows:
    """Tests for compute_sales_windows"""

    def test_counts_per_window(self):
        lines = [
            {"variant_id": "11", "quantity": 2, "created_at": _ago(hours=3)},
            {"variant_id": "11", "quantity": 1, "created_at": _ago(days=5)},
            {"variant_id": "11", "quantity": 4, "created_at": _ago(days=45)},
            {"variant_id": "11", "quantity": 3, "created_at": _ago(days=400)},
            {"variant_id": "12", "quantity": 1, "created_at": _ago(days=20)},
        ]

        windows = {w["variant_id"]: w for w in compute_sales_windows(lines, now=NOW)}

        assert windows["11"] == {
            "variant_id": "11",
            "units_1d": 2,
            "units_7d": 3,
            "units_30d": 3,
            "units_90d": 7,
            "units_365d": 7,
            "units_all_time": 10,
        }
        assert windows["12"]["units_7d"] == 0
        assert windows["12"]["units_30d"] == 1

    def test_offsets_and_naive_timestamps_share_one_basis(self):
        lines = [
            # 23 hours ago expressed in UTC-5
            {"variant_id": "11", "quantity": 1, "created_at": "2025-03-11T08:00:00-05:00"},
            # 25 hours ago, naive UTC
            {"variant_id": "11", "quantity": 1, "created_at": datetime(2025, 3, 11, 11, 0)},
        ]

        [window] = compute_sales_windows(lines, now=NOW)

        assert window["units_1d"] == 1
        assert window["units_7d"] == 2

    def test_empty(self):
        assert compute_sales_windows([], now=NOW) == []

    def test_order_lines_skip_custom_sales(self):
        orders = [make_order(1001, _ago(days=1), [(11, 2), (None, 1)])]

        lines = order_lines(orders)

        assert lines == [{"variant_id": "11", "quantity": 2, "created_at": orders[0]["created_at"]}]

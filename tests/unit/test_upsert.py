"""
Unit Tests - Dialect-aware Upsert
"""
from types import SimpleNamespace

import pytest

from storecache.database.models import ProductVariant
from storecache.database.upsert import upsert


def _session(dialect: str):
    return SimpleNamespace(bind=SimpleNamespace(dialect=SimpleNamespace(name=dialect)))


class TestUpsert:
    """Tests for upsert() dialect selection"""

    async def test_unsupported_dialect(self):
        with pytest.raises(ValueError, match="mysql"):
            await upsert(_session("mysql"), ProductVariant, [{"variant_id": "1"}], ["variant_id"])

    async def test_no_rows_is_a_no_op(self):
        assert await upsert(_session("mysql"), ProductVariant, [], ["variant_id"]) == 0

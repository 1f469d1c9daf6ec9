"""
Unit Tests - Settings, Log Redaction and the Disabled Cache
"""
import pytest
from pydantic import ValidationError

from storecache.config import Settings
from storecache.config.logging import redact_secrets
from storecache.config.settings import DatabaseSettings, SyncSettings
from storecache.serving.cache import CacheManager, get_redis


class TestDatabaseUrl:
    """Tests for DatabaseSettings.async_url"""

    @pytest.mark.parametrize(
        "url, expected",
        [
            ("postgres://u:p@db:5432/shop", "postgresql+asyncpg://u:p@db:5432/shop"),
            ("postgresql://u:p@db:5432/shop", "postgresql+asyncpg://u:p@db:5432/shop"),
            ("postgresql+asyncpg://u:p@db/shop", "postgresql+asyncpg://u:p@db/shop"),
        ],
    )
    def test_provider_urls_use_asyncpg(self, url, expected):
        assert DatabaseSettings(DATABASE_URL=url).async_url == expected

    def test_built_from_parts(self):
        settings = DatabaseSettings(url=None, host="db", port=5433, user="u", password="p", database="shop")
        assert settings.async_url == "postgresql+asyncpg://u:p@db:5433/shop"


class TestSyncSettings:
    """Tests for SyncSettings validation"""

    def test_schedule_target_normalized(self):
        assert SyncSettings(schedule_target="BOTH").schedule_target == "both"

    def test_unknown_schedule_target(self):
        with pytest.raises(ValidationError):
            SyncSettings(schedule_target="everything")

    @pytest.mark.parametrize("ratio", [0, 1.5])
    def test_cost_ratio_bounds(self, ratio):
        with pytest.raises(ValidationError):
            SyncSettings(cost_ratio=ratio)

    def test_unknown_environment(self):
        with pytest.raises(ValidationError):
            Settings(app_env="moon")


class TestRedactSecrets:
    """Tests for the redact_secrets processor"""

    def test_tokens_masked(self):
        event = {"event": "connect", "store": "s.myshopify.com", "access_token": "shpat_abc"}

        redacted = redact_secrets(None, "info", event)

        assert redacted["access_token"] == "***"
        assert redacted["store"] == "s.myshopify.com"


class TestDisabledCache:
    """Without init_redis() the cache is a no-op"""

    async def test_reads_miss_and_writes_skip(self):
        cache = CacheManager("products")

        assert get_redis() is None
        assert await cache.set("barcode:1", {"a": 1}) is False
        assert await cache.get("barcode:1") is None
        assert await cache.invalidate_all() == 0

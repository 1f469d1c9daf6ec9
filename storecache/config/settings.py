"""
Storefront Lookup Service Configuration

pydantic-settings models read from the environment and ``.env``. Each
subsystem has its own prefix (POSTGRES_, REDIS_, SHOPIFY_, SYNC_) and
``Settings`` aggregates them behind the cached ``get_settings()``.
"""

from functools import lru_cache
from typing import Optional, List
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL connection; DATABASE_URL wins over the POSTGRES_* parts."""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_", populate_by_name=True)

    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Full connection URL")
    host: str = Field(default="localhost")
    port: int = Field(default=5432)
    db: str = Field(default="storecache", alias="database")
    user: str = Field(default="storecache")
    password: SecretStr = Field(default="storecache")
    echo: bool = Field(default=False, description="Log every SQL statement")
    run_migrations: bool = Field(default=True, description="Upgrade to the Alembic head at startup")

    @property
    def async_url(self) -> str:
        """SQLAlchemy URL on the asyncpg driver."""
        if self.url:
            # Hosting providers hand out postgres:// and postgresql:// URLs
            scheme, _, rest = self.url.partition("://")
            if scheme in ("postgres", "postgresql"):
                return f"postgresql+asyncpg://{rest}"
            return self.url
        password = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{password}@{self.host}:{self.port}/{self.db}"


class RedisSettings(BaseSettings):
    """Optional response cache."""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    enabled: bool = Field(default=True, description="Cache lookups and analytics in Redis")
    url: str = Field(default="redis://localhost:6379/0")
    max_connections: int = Field(default=20)
    socket_timeout: int = Field(default=5, description="Seconds")
    decode_responses: bool = Field(default=True)


class ShopifySettings(BaseSettings):
    """Shopify Admin API Configuration"""

    model_config = SettingsConfigDict(env_prefix="SHOPIFY_")

    api_version: str = Field(default="2024-01", description="Admin API version")
    page_size: int = Field(default=250, ge=1, le=250, description="Records per page (remote max 250)")
    page_delay_seconds: float = Field(default=0.5, ge=0, description="Fixed delay between page requests")
    request_timeout_seconds: float = Field(default=30.0, description="HTTP timeout per request")
    max_product_records: int = Field(default=10000, description="Safety cap for a full catalog refresh")
    max_order_pages: int = Field(default=200, description="Safety cap on pages for an order sync")
    fetch_unit_costs: bool = Field(default=False, description="Look up inventory unit costs via GraphQL")

    # Default credentials for unattended syncs
    store_domain: Optional[str] = Field(default=None, description="e.g. my-store.myshopify.com")
    access_token: Optional[SecretStr] = Field(default=None, description="Admin API access token")


class SyncSettings(BaseSettings):
    """Sync Engine Configuration"""

    model_config = SettingsConfigDict(env_prefix="SYNC_")

    # Unresolved between 0.5 and 0.6 historically; keep it explicit.
    cost_ratio: float = Field(default=0.6, gt=0, le=1, description="Estimated cost as a fraction of price")
    order_lookback_buffer_minutes: int = Field(default=60, ge=0, description="Re-fetch window before the latest order")
    default_order_window_days: int = Field(default=365, ge=1, description="First sync window")
    sales_lookback_days: int = Field(default=365, ge=1, description="Order window for sales aggregates")
    min_co_purchase_count: int = Field(default=2, ge=1, description="Minimum co-occurrences for a correlation row")
    correlation_limit: int = Field(default=5, ge=0, description="Correlated products returned with a lookup")
    store_timezone: str = Field(default="America/New_York", description="Storefront operating time zone (IANA)")
    clear_products_before_refresh: bool = Field(default=False, description="Truncate variants before a refresh")
    product_cache_max_age_minutes: int = Field(default=60, ge=1, description="Catalog age that triggers a refresh on lookup")

    # Periodic timer
    schedule_enabled: bool = Field(default=True, description="Run the periodic sync job")
    schedule_interval_minutes: int = Field(default=30, ge=1, description="Periodic sync interval")
    schedule_target: str = Field(default="orders", description="orders, products or both")

    @field_validator("schedule_target")
    @classmethod
    def validate_target(cls, v: str) -> str:
        """Validate scheduler target"""
        allowed = ["orders", "products", "both"]
        if v.lower() not in allowed:
            raise ValueError(f"Schedule target must be one of: {allowed}")
        return v.lower()


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="storecache", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=10000, alias="API_PORT", description="API port")
    cors_origins: List[str] = Field(default=["*"], description="Allowed CORS origins")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    shopify: ShopifySettings = Field(default_factory=ShopifySettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()

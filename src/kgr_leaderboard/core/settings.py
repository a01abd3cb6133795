"""Application settings and configuration.

This module defines all configuration options for the KGR leaderboard service.
Settings are loaded from environment variables with sensible defaults. The
ledger constants (asset, issuer, treasury) are the server-side source of truth
for what counts as a qualifying payment.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="KGR Leaderboard API", alias="APP_NAME")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    port: int = Field(default=8787, alias="PORT")

    # Database configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./kgr_leaderboard.db",
        alias="DATABASE_URL",
    )
    database_ssl: bool = Field(default=False, alias="DATABASE_SSL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Ledger (Stellar Horizon) query service
    horizon_url: str = Field(default="https://horizon.stellar.org", alias="HORIZON_URL")
    ledger_timeout_seconds: float = Field(default=10.0, alias="LEDGER_TIMEOUT_SECONDS")

    # Qualifying payment
    asset_code: str = Field(default="KALE", alias="KALE_CODE")
    asset_issuer: str = Field(
        default="GBDVX4VELCDSQ54KQJYTNHXAHFLBCA77ZY2USQBM4CSHTTV7DME7KALE",
        alias="KALE_ISSUER",
    )
    treasury_address: str = Field(
        default="GDIH6XE3UZ5CW37X3OKVS3SYKHG32PRPXPT3722NJ2AY3MOLCQNMUUTT",
        alias="TREASURY",
    )
    payment_amount: str = Field(default="1.0000000", alias="PAYMENT_AMOUNT")
    recency_window_minutes: int = Field(default=30, alias="RECENCY_WINDOW_MINUTES")

    # Leaderboard shape
    leaderboard_capacity: int = Field(default=100, alias="LEADERBOARD_CAPACITY")
    snapshot_size: int = Field(default=10, alias="SNAPSHOT_SIZE")

    # Submission rate limiting (per address, falling back to client IP)
    rate_limit_max: int = Field(default=12, alias="SUBMIT_RATE_LIMIT")
    rate_limit_window_seconds: int = Field(default=60, alias="SUBMIT_RATE_WINDOW_SECONDS")
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    trust_proxy_hops: int = Field(default=1, alias="TRUST_PROXY_HOPS")

    # CORS configuration; empty means every origin is allowed
    cors_origins: str = Field(default="", alias="KGR_CORS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def async_database_url(self) -> str:
        """Return the database URL with an async driver.

        Hosting providers hand out ``postgres://`` URLs; those are rewritten
        to use asyncpg so the engine can be created with SQLAlchemy's asyncio
        extension.
        """
        url = self.database_url
        for prefix in ("postgres://", "postgresql://"):
            if url.startswith(prefix):
                return "postgresql+asyncpg://" + url[len(prefix):]
        return url

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling such as Alembic."""
        url = self.async_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        if url.startswith("sqlite+aiosqlite"):
            return url.replace("sqlite+aiosqlite", "sqlite", 1)
        return url

    @property
    def cors_origin_list(self) -> list[str]:
        """Return the allowed CORS origins parsed from the comma separated list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


def get_settings() -> Settings:
    """Build a settings instance from the current environment."""
    return Settings()  # type: ignore[call-arg]

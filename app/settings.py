from decimal import Decimal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        enable_decoding=False,
    )

    ENV: str = "dev"
    DATABASE_URL: str
    REDIS_URL: str
    DB_STATEMENT_TIMEOUT_SECONDS: float = 0
    CORS_ALLOW_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    KALSHI_BASE_URL: str = "https://api.elections.kalshi.com/trade-api/v2"
    KALSHI_PAGE_LIMIT: int = 100
    KALSHI_MAX_PAGES: int | None = 1
    KALSHI_TIMEOUT_SECONDS: float = 15.0
    KALSHI_MAX_CONCURRENT_CALLS: int | None = 4
    KALSHI_CIRCUIT_MAX_FAILURES: int = 5
    KALSHI_CIRCUIT_RESET_SECONDS: int = 60

    SYNC_INTERVAL_SECONDS: int = 300
    SYNC_SCHEDULED_SCOPE: str = "catalog"

    TRADE_MAX_QUANTITY: int = 10_000
    TRADE_MAX_ATTEMPTS: int = 3
    STARTING_BALANCE: Decimal = Decimal("10000.00")
    HISTORY_DEFAULT_LIMIT: int = 100

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    HTTPX_SLOW_REQUEST_THRESHOLD_SECONDS: float = 2.0

    @field_validator("CORS_ALLOW_ORIGINS", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if value is None:
            return value
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(",") if part.strip()]
            return parts
        return value

    @field_validator("KALSHI_MAX_PAGES", "KALSHI_MAX_CONCURRENT_CALLS", mode="before")
    @classmethod
    def _none_str_to_none(cls, value):
        if value is None:
            return None
        if isinstance(value, str) and value.strip().lower() in {"", "none", "null"}:
            return None
        return value

    @field_validator("SYNC_SCHEDULED_SCOPE", mode="before")
    @classmethod
    def _normalize_scope(cls, value):
        if isinstance(value, str):
            return value.strip().lower() or "catalog"
        return value

settings = Settings()

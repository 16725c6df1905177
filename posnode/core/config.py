"""
POS Node — Configuration
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Service ──────────────────────────────────────────────
    SERVICE_NAME: str = "pos-node"
    SERVICE_VERSION: str = "1.0.0"
    DEBUG: bool = False
    HOST: str = "127.0.0.1"
    PORT: int = 9002
    LOG_LEVEL: str = "INFO"

    # ── Local store (embedded SQLite) ─────────────────────────
    DATABASE_PATH: str = "pos.db"

    @property
    def database_url(self) -> str:
        return f"sqlite+aiosqlite:///{self.DATABASE_PATH}"

    # ── Orders ────────────────────────────────────────────────
    STORE_TIMEZONE: str = "America/Lima"   # "today" for the per-day order counter
    DEFAULT_CUSTOMER_NAME: str = "Cliente General"
    MAX_COMBO_DEPTH: int = 10

    # ── Cloud replica ─────────────────────────────────────────
    CLOUD_API_URL: str = "http://localhost:3000/api"
    CLOUD_HTTP_TIMEOUT_SECONDS: float = 10.0

    # ── Background reconciliation ─────────────────────────────
    SYNC_ENABLED: bool = True
    SYNC_INTERVAL_SECONDS: float = 30.0
    SYNC_INITIAL_DELAY_SECONDS: float = 2.0
    SYNC_CATALOG_EVERY_PASSES: int = 10     # full product/staff push cadence

    # ── Redis (order events + idempotency keys) ───────────────
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    EVENTS_ENABLED: bool = True
    EVENTS_CHANNEL: str = "pos:events"
    IDEMPOTENCY_KEY_TTL_SECONDS: int = 86400

    # ── SSE (monitor screens) ─────────────────────────────────
    SSE_KEEPALIVE_INTERVAL_SECONDS: int = 15
    SSE_RETRY_MILLISECONDS: int = 3000

    # ── Observability ─────────────────────────────────────────
    METRICS_ENABLED: bool = True
    HEALTH_CHECK_TIMEOUT: float = 5.0


@lru_cache()
def get_settings() -> Settings:
    return Settings()

import warnings
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ── Known insecure default tokens (must never be used in production) ──
_INSECURE_TOKENS = {
    "",
    "change_this",
    "admin",
    "secret",
}


class Settings(BaseSettings):
    APP_NAME: str = "Marketplace Ops"
    APP_ENV: str = "development"
    API_V1_STR: str = "/api/v1"

    # Admin API (shared token sent as X-Admin-Token; empty = no check in dev)
    ADMIN_API_TOKEN: str = ""

    # CORS
    BACKEND_CORS_ORIGINS: str = ""

    # Database
    DATABASE_URL: str = ""  # overrides POSTGRES_* when set
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "marketplace"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_ECHO: bool = False

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"

    # Feature flags
    FEATURE_FLAG_CACHE_TTL: float = 60.0  # seconds

    # Health monitoring
    HEALTH_CHECK_BASE_URL: str = "http://localhost:3000"
    HEALTH_CHECK_TIMEOUT: float = 10.0          # seconds per HTTP probe
    HEALTH_LATENCY_WARNING_MS: int = 2000       # slower than this = WARNING
    HEALTH_LOG_RETENTION_DAYS: int = 30
    HEALTH_CHECK_MAX_RETRIES: int = 3           # scheduled runs only
    HEALTH_CHECK_RETRY_DELAY: float = 5.0       # seconds between attempts

    # SLA
    SLA_CHECK_INTERVAL_MINUTES: int = 5         # must match the scheduler interval
    SLA_MIN_YEAR: int = 2020
    SLA_MAX_YEAR: int = 2100
    SLA_REPORT_LIMIT: int = 24

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @model_validator(mode="after")
    def _validate_production_security(self) -> "Settings":
        """Block startup if critical secrets are insecure in production / staging."""
        if self.APP_ENV in ("production", "staging"):
            if self.ADMIN_API_TOKEN in _INSECURE_TOKENS or len(self.ADMIN_API_TOKEN) < 32:
                raise ValueError(
                    "ADMIN_API_TOKEN is missing or insecure. "
                    "Set a strong random token (≥ 32 chars) in .env or environment."
                )
            if not self.DATABASE_URL and self.POSTGRES_PASSWORD in ("postgres", ""):
                raise ValueError(
                    "POSTGRES_PASSWORD is set to default 'postgres'. "
                    "Set a strong password in .env or environment."
                )
            if self.HEALTH_CHECK_BASE_URL.startswith("http://localhost"):
                warnings.warn(
                    "HEALTH_CHECK_BASE_URL still points at localhost. "
                    "Probes will not exercise the public deployment.",
                    UserWarning,
                    stacklevel=2,
                )
        return self

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/0"

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_staging(self) -> bool:
        return self.APP_ENV == "staging"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

settings = Settings()

# consultbook/core/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict
import urllib.parse

class Settings(BaseSettings):
    # Read env from .env; ignore unknown keys so extra lines don't crash startup
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Database ---
    # Full async URL wins over the POSTGRES_* parts (e.g. sqlite+aiosqlite:///./consult.db)
    DATABASE_URL: str | None = None
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "consultbook"
    POSTGRES_USER: str = "consultbook"
    POSTGRES_PASSWORD: str = ""

    # --- Scheduling ---
    BUSINESS_TIMEZONE: str = "America/Los_Angeles"
    MINIMUM_NOTICE_HOURS: int = 20
    NEXT_AVAILABLE_HORIZON_DAYS: int = 30
    UPCOMING_LIMIT: int = 500
    MAX_BULK_BLOCK_PAIRS: int = 1000
    MAX_RECURRING_WEEKS: int = 52

    # --- Admin bootstrap ---
    ADMIN_EMAIL: str = "admin@example.com"
    ADMIN_INITIAL_PASSWORD: str | None = None

    # --- Email ---
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 465
    SMTP_USER: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_USE_SSL: bool = True
    EMAIL_FROM: str | None = None
    ADMIN_NOTIFY_EMAIL: str | None = None
    FRONTEND_URL: str = "http://localhost:5173"
    PASSWORD_RESET_TTL_MINUTES: int = 60

    # --- Cache ---
    REDIS_URL: str | None = None
    AVAILABILITY_CACHE_TTL: int = 30

    # --- Monitoring & Logging ---
    APP_ENV: str = "production"
    LOG_LEVEL: str = "INFO"
    LOG_REQUESTS: bool = False
    MAX_LOG_LENGTH: int = 200
    SLOW_REQUEST_THRESHOLD: float = 2.0
    ERROR_AGGREGATION_THRESHOLD: int = 10

    ALLOWED_CORS_ORIGINS: str = "*"  # comma-separated list, e.g. "http://localhost:5173,https://book.example.com"

    # Sync URI (Alembic)
    @property
    def sync_db_uri(self) -> str:
        if self.DATABASE_URL:
            return (
                self.DATABASE_URL
                .replace("+asyncpg", "+psycopg2")
                .replace("+aiosqlite", "")
            )
        pwd = urllib.parse.quote_plus(self.POSTGRES_PASSWORD)
        return f"postgresql://{self.POSTGRES_USER}:{pwd}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Async URI (SQLAlchemy engine)
    @property
    def async_db_uri(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        pwd = urllib.parse.quote_plus(self.POSTGRES_PASSWORD)
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{pwd}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_CORS_ORIGINS.split(",") if o.strip()]

    @property
    def smtp_configured(self) -> bool:
        return bool(self.SMTP_HOST and self.SMTP_USER and self.SMTP_PASSWORD)

    @property
    def is_development(self) -> bool:
        return self.APP_ENV.lower() in ("development", "dev", "local")

# Singleton
settings = Settings()

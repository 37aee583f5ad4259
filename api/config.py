from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+asyncpg://elixr:elixr@db:5432/elixr"
    DB_ECHO_SQL: bool = False
    REDIS_URL: str = "redis://redis:6379/0"

    # Operational calendar
    TIMEZONE: str = "Asia/Kolkata"
    DELIVERY_HOUR: int = 8
    CUTOFF_HOUR: int = 18
    REACTIVATION_WINDOW_MONTHS: int = 3
    RENEWAL_NOTIFICATION_DAYS: int = 5
    INDEFINITE_ADMIN_PAUSE_DAYS: int = 7
    SETTINGS_CACHE_TTL_SEC: int = 300

    CRON_SECRET: str = ""
    APP_URL: str = "http://localhost:3000"

    # Email (Resend-compatible HTTP API)
    EMAIL_API_URL: str = "https://api.resend.com/emails"
    EMAIL_API_KEY: str | None = None
    EMAIL_FROM: str = "Elixr <subscriptions@elixr.in>"

    # WhatsApp Cloud API
    WHATSAPP_ACCESS_TOKEN: str | None = None
    WHATSAPP_PHONE_NUMBER_ID: str | None = None
    WHATSAPP_API_VERSION: str = "v17.0"

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = "Campus Booking API"
    database_url: str = (
        "postgresql+psycopg2://campus:campus@db:5432/campus"  # pragma: allowlist secret
    )
    redis_url: str = "redis://redis:6379/0"
    timezone: str = "Atlantic/Canary"
    cors_origins: list[str] = ["http://localhost:5173"]
    rate_limit_requests: int = 120
    rate_limit_window_seconds: int = 60
    log_level: str = "INFO"

    slot_granularity_minutes: int = 30
    availability_horizon_days: int = 14
    max_horizon_days: int = 60
    reservation_min_hours: float = 0.5
    reservation_max_hours: float = 8.0
    user_reservation_list_limit: int = 50
    list_page_size: int = 100
    list_max_page_size: int = 1000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()


settings = get_settings()

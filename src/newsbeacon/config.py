# src/newsbeacon/config.py
"""
Application settings, loaded from the environment (and an optional .env file).

Settings are built once at process start and handed to `boot.build_services`;
nothing else in the package reads the environment directly.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment / DB
    ENV: str = Field(default="dev")
    DATABASE_URL: str = Field(default="sqlite:///./dev.db")

    # Queue broker (Redis Streams)
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    SCHEDULE_TASK_QUEUE: str = "schedule_tasks"
    NEWS_ALERT_QUEUE: str = "news_alerts"
    QUEUE_CONSUMER_GROUP: str = "newsbeacon"
    QUEUE_CONSUMER_NAME: str = "consumer-1"
    QUEUE_PREFETCH: int = Field(default=10, ge=1)
    QUEUE_BLOCK_MS: int = Field(default=5000, ge=100)
    REQUEUE_DELAY_SECONDS: float = Field(default=1.0, ge=0)

    # Discord
    DISCORD_BOT_TOKEN: str | None = None

    # News source
    FF_CALENDAR_URL: str = "https://nfs.faireconomy.media/ff_calendar_thisweek.json"
    NEWS_SOURCE_NAME: str = "ForexFactory"

    # Alerting / housekeeping
    DEDUP_MAX_ENTRIES: int = Field(default=1000, ge=1)
    RETENTION_DAYS: int = Field(default=30, ge=1)
    RUN_INITIAL_SYNC: bool = True

    # Health / observability
    HEALTH_HOST: str = "0.0.0.0"
    HEALTH_PORT: int | None = None
    METRICS_ENABLED: bool = True


@lru_cache
def get_settings() -> Settings:
    return Settings()

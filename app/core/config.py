from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.version import __version__


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
    )

    PORT: int = 8000
    APP_NAME: str = "News Curator"
    APP_ENV: Literal["development", "production", "vercel"] = "production"
    REDIS_URL: str = "redis://redis:6379/0"
    # Maximum number of connections Redis client will open per process
    REDIS_MAX_CONNECTIONS: int = 20
    REDIS_KEY_PREFIX: str = "newscurator"

    # Shared secret the scheduler sends as "Authorization: Bearer <secret>"
    CRON_SECRET: str | None = None

    # AI
    DEFAULT_GEMINI_MODEL: str = "gemini-2.0-flash"
    GEMINI_API_KEY: str | None = None

    # Memory
    MEM0_API_KEY: str | None = None
    MEM0_BASE_URL: str = "https://api.mem0.ai"

    # Curation
    NEWS_BATCH_SIZE: int = 10  # users per cron run
    NEWS_MIN_RELEVANCE_SCORE: int = 60
    NEWS_MAX_ARTICLES_PER_DAY: int = 10
    NEWS_MAX_ARTICLES_PER_CHECK: int = 5
    NEWS_INACTIVITY_THRESHOLD_DAYS: int = 7


settings = Settings()

APP_VERSION = __version__

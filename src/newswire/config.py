import os
from pathlib import Path
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings
from dotenv import load_dotenv


dotenv_path = Path(__file__).resolve().parents[2] / '.env'
load_dotenv(dotenv_path)


class Settings(BaseSettings):
    """Global configurations."""

    # Provider credentials. An API provider without a key is disabled.
    SERPAPI_API_KEY: Optional[str] = Field(None, env='SERPAPI_API_KEY')
    SERPAPI_BASE_URL: str = "https://serpapi.com/search.json"
    SERPAPI_QUOTA_LIMIT: int = int(os.getenv("SERPAPI_QUOTA_LIMIT", 100))  # free tier, per month

    MEDIASTACK_API_KEY: Optional[str] = Field(None, env='MEDIASTACK_API_KEY')
    MEDIASTACK_BASE_URL: str = "http://api.mediastack.com/v1/news"
    MEDIASTACK_QUOTA_LIMIT: int = int(os.getenv("MEDIASTACK_QUOTA_LIMIT", 500))  # free tier, per month

    RSS_ENABLED: bool = Field(True, env='RSS_ENABLED')

    # Timeouts, in seconds
    PROVIDER_TIMEOUT_SECONDS: float = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", 10))
    AGGREGATION_TIMEOUT_SECONDS: float = float(os.getenv("AGGREGATION_TIMEOUT_SECONDS", 15))
    WEBHOOK_TIMEOUT_SECONDS: float = float(os.getenv("WEBHOOK_TIMEOUT_SECONDS", 5))

    # Config Redis database
    NEWS_CACHE_BACKEND: str = os.getenv("NEWS_CACHE_BACKEND", "redis")  # redis | memory | none
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", 6379))
    REDIS_PASSWORD: str = os.getenv("REDIS_PASSWORD", '')
    REDIS_DB: int = int(os.getenv("REDIS_DB", 0))

    # TTL (Time-To-Live) for aggregated results, in seconds
    CACHE_TTL_NEWS: int = int(os.getenv("CACHE_TTL_NEWS", 60 * 5))

    # Monitors
    MONITOR_DEFAULT_INTERVAL_MS: int = int(os.getenv("MONITOR_DEFAULT_INTERVAL_MS", 5 * 60 * 1000))
    MONITOR_MIN_INTERVAL_MS: int = int(os.getenv("MONITOR_MIN_INTERVAL_MS", 1000))

    # Provider circuit breaker
    CIRCUIT_FAILURE_THRESHOLD: int = int(os.getenv("CIRCUIT_FAILURE_THRESHOLD", 3))
    CIRCUIT_RESET_TIMEOUT_SECONDS: float = float(os.getenv("CIRCUIT_RESET_TIMEOUT_SECONDS", 300))

    # Logging (see newswire.core.logging)
    ENV_STATE: str = Field('dev', env='ENV_STATE')  # "production" forces JSON logs
    LOG_LEVEL: str = Field('INFO', env='LOG_LEVEL')
    LOG_FORMAT: str = Field('text', env='LOG_FORMAT')
    LOG_DIR: Optional[str] = Field(None, env='LOG_DIR')
    LOG_RETENTION_DAYS: int = int(os.getenv("LOG_RETENTION_DAYS", 15))
    LOG_CONSOLE: bool = Field(True, env='LOG_CONSOLE')

    def redis_url(self) -> str:
        """Build Redis URL from settings"""
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


# Avoid having to re-read the .env file and create the Settings object every time you access it
@lru_cache()
def get_settings() -> Settings:
    return Settings()

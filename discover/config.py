from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Quote providers
    FINNHUB_API_KEY: Optional[str] = None
    ALPHA_VANTAGE_API_KEY: Optional[str] = None

    # Weather
    OPENWEATHERMAP_API_KEY: Optional[str] = None
    DEFAULT_CITY: str = "San Francisco"

    # Articles (WordPress REST)
    WORDPRESS_URL: Optional[str] = None

    # Revalidation windows, seconds
    MARKET_REVALIDATE: int = 300
    WEATHER_REVALIDATE: int = 1800
    POSTS_REVALIDATE: int = 600

    HTTP_TIMEOUT: float = 5.0
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = str(Path(__file__).resolve().parents[1] / ".env")
        case_sensitive = True
        extra = "ignore"

    @field_validator(
        "FINNHUB_API_KEY", "ALPHA_VANTAGE_API_KEY", "OPENWEATHERMAP_API_KEY", "WORDPRESS_URL",
        mode="before",
    )
    @classmethod
    def _blank_is_none(cls, v):
        # an empty env var means "not configured"
        if v is None:
            return None
        v = str(v).strip()
        return v or None


@lru_cache
def get_settings() -> Settings:
    return Settings()

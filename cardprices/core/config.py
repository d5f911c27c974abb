"""
Application configuration settings.

All configuration is loaded from environment variables with sensible defaults.
"""
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "cardprices"
    log_debug: bool = False
    log_json: bool = False

    # Pipeline
    default_max_concurrency: int = 4
    progress_interval_seconds: float = 60.0

    # HTTP
    http_timeout_seconds: float = 30.0
    http_max_retries: int = 3
    http_backoff_factor: float = 2.0
    scraper_user_agent: str = "cardprices/1.0"

    # Card reference data used by the matcher
    card_index_path: str = "data/card_index.json"

    # Output
    output_path: str = "."

    # Affiliate decoration, irrelevant to scraping itself
    cardkingdom_partner: str = ""
    coolstuffinc_partner: str = ""

    # Phase toggles applied to every scraper unless overridden
    disable_retail: bool = False
    disable_buylist: bool = False

    @field_validator("default_max_concurrency")
    @classmethod
    def check_concurrency(cls, v: int) -> int:
        """Worker pools need at least one worker."""
        if v < 1:
            raise ValueError("default_max_concurrency must be a positive integer")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()

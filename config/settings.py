"""Configuration management using pydantic-settings."""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Data store
    database_url: str = "sqlite:///./teamdesk.db"
    database_echo: bool = False

    # Cache settings
    cache_enabled: bool = True
    cache_revalidation_workers: int = 4
    # None: coalesced waiters wait for as long as the fetch takes
    cache_coalesce_timeout: Optional[float] = None

    # Data access
    dashboard_fanout_workers: int = 5

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()

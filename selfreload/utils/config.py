"""
selfreload Configuration Module.

Centralizes all configuration settings using Pydantic Settings.
Requires Python 3.11+.
"""

from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env from the current working directory so nested settings see it
load_dotenv()


class WatcherSettings(BaseSettings):
    """Notification source settings."""

    model_config = SettingsConfigDict(env_prefix="WATCHER_")

    polling: bool = Field(default=False, description="Use the polling observer instead of OS events")
    polling_interval: float = Field(default=1.0, gt=0.0, le=60.0, description="Polling interval in seconds")


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(default="INFO")
    format: Literal["json", "console"] = Field(default="console")

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        """Accept level names in any case."""
        return str(v).strip().upper()


class Settings(BaseSettings):
    """Main settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_prefix="SELFRELOAD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="selfreload")
    app_version: str = Field(default="0.1.0")

    # Exit status used when a timer-triggered restart cannot exec
    exit_code: int = Field(default=70, ge=1, le=255)

    watcher: WatcherSettings = Field(default_factory=WatcherSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings.

    Returns singleton instance of Settings.
    """
    return Settings()

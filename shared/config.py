"""Configuration for the ban lifecycle core."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = "%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s"

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


class Settings(BaseSettings):
    """Settings loaded from BANS_* environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_prefix="BANS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Persistence
    data_dir: Path = Field(default=DEFAULT_DATA_DIR, description="Directory of JSON fixtures")
    delivery_log_path: Optional[Path] = Field(
        default=None, description="JSON lines file for the delivery log (in-memory if unset)"
    )
    templates_path: Optional[Path] = Field(
        default=None, description="JSON file overriding the built-in templates"
    )

    # Customers and bans
    default_country_code: str = Field(default="60", description="Prefix for local phone numbers")
    reason_max_length: int = Field(default=500, description="Max characters in a ban reason")

    # Notifications
    notification_channels: list[str] = Field(
        default_factory=lambda: ["whatsapp"],
        description="Channels every ban notice goes out on",
    )
    channel_timeout_seconds: float = Field(default=10.0, gt=0, description="Per-attempt send timeout")
    notify_async: bool = Field(default=True, description="Dispatch notices off the request thread")
    notification_workers: int = Field(default=4, ge=1, description="Notification worker threads")
    max_notification_attempts: int = Field(default=3, ge=1, description="Attempts before a notice is dropped")

    # WhatsApp Cloud API (mock transport when no token is set)
    whatsapp_api_base_url: str = Field(default="https://graph.facebook.com/v22.0")
    whatsapp_token: Optional[str] = Field(default=None, description="WhatsApp API bearer token")
    whatsapp_phone_number_id: Optional[str] = Field(default=None, description="Sending phone number id")

    # Expiry sweep
    sweep_interval_seconds: float = Field(default=300.0, gt=0, description="Seconds between sweeps")
    sweep_lease_seconds: float = Field(default=600.0, gt=0, description="How long a sweep lease is held")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v_upper


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Set up root logging for CLI and demo entry points."""
    logging.basicConfig(
        level=getattr(logging, level or get_settings().log_level),
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )

# src/share_api/config/settings.py
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class Settings(BaseSettings):
    """
    Single source of truth for all application settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    Usage:
        from share_api.config.settings import get_settings
        settings = get_settings()
        upload_dir = settings.upload_path
    """

    # Application Settings
    app_name: str = Field(
        default="lan-share",
        description="Application name"
    )

    # Network
    host: str = Field(
        default="0.0.0.0",
        description="Interface the server binds to"
    )

    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Listen port"
    )

    # Storage Configuration
    upload_dir: str = Field(
        default="uploads",
        description="Directory holding uploaded files (created on first run)"
    )

    index_filename: str = Field(
        default=".index.json",
        description="Side-index file mapping storage keys to display names"
    )

    # Realtime Configuration
    session_queue_size: int = Field(
        default=100,
        ge=1,
        description="Events buffered per session before the session is dropped"
    )

    cors_origins: List[str] = Field(
        default=["*"],
        description="Origins allowed by the CORS middleware"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v):
        """Upper-case and check the level against the stdlib level names."""
        level = str(v).upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {v}")
        return level

    @field_validator("index_filename")
    @classmethod
    def validate_index_filename(cls, v):
        """The side-index must be a hidden file so it never shows up in listings."""
        if not v.startswith(".") or "/" in v or "\\" in v:
            raise ValueError("index_filename must be a hidden file name like '.index.json'")
        return v

    @property
    def upload_path(self) -> Path:
        return Path(self.upload_dir).expanduser().resolve()

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()

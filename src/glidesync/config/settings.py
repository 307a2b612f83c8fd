"""Application configuration settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables prefixed with GLIDESYNC_.
    For example, GLIDESYNC_SYNC_BATCH_SIZE=250.
    """

    model_config = SettingsConfigDict(
        env_prefix="GLIDESYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".glidesync",
        description="Directory for glidesync data and configuration",
    )

    # Database
    database_url: str | None = Field(
        default=None,
        description="Database URL for mappings and logs (default: {data_dir}/glidesync.db)",
    )
    sink_database_url: str | None = Field(
        default=None,
        description="Database URL holding the synchronized tables (default: database_url)",
    )

    # Glide API
    glide_api_url: str = Field(
        default="https://api.glideapp.io/api/function",
        description="Base URL of the Glide Tables API",
    )
    glide_timeout_seconds: float = Field(
        default=30.0,
        description="HTTP timeout for Glide API requests",
        gt=0,
    )

    # Sync engine
    sync_batch_size: int = Field(
        default=100,
        description="Rows read, coerced and written per batch",
        ge=1,
        le=10000,
    )
    finalize_retries: int = Field(
        default=3,
        description="Attempts to commit the final log/mapping update of a run",
        ge=1,
    )

    # Output
    default_format: Literal["json", "table"] = Field(
        default="json",
        description="Default output format for CLI commands",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    @property
    def resolved_database_url(self) -> str:
        """Get the database URL, with default if not explicitly set."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.data_dir}/glidesync.db"

    @property
    def resolved_sink_database_url(self) -> str:
        """Get the sink database URL, falling back to the main database."""
        return self.sink_database_url or self.resolved_database_url

    def ensure_data_dir(self) -> None:
        """Create the data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

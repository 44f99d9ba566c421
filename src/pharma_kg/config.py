"""
Configuration management for pharma_kg.

Uses pydantic-settings for environment variable loading and validation.
"""

from datetime import timedelta
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PHARMA_KG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Data directories
    data_dir: Path = Field(default=Path("data"), description="Root data directory")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Live API refresh
    http_timeout: float = Field(default=30.0, gt=0, description="API request timeout in seconds")
    http_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts per refresh before the source is marked as errored",
    )
    default_refresh_interval: timedelta = Field(
        default=timedelta(hours=1),
        description="Refresh interval for API sources that do not set one",
    )

    # Graph construction
    max_workers: int = Field(
        default=4,
        ge=1,
        description="Agent worker threads per build (1 = sequential)",
    )
    merge_strategy: Literal["overwrite", "keep_first", "keep_highest_confidence"] = Field(
        default="overwrite",
        description="How entity properties are merged when two agents emit the same id",
    )
    resolver_threshold: float = Field(
        default=90.0,
        ge=0,
        le=100,
        description="Minimum rapidfuzz token_sort_ratio for two names to be linked",
    )

    @property
    def registry_path(self) -> Path:
        """JSON document holding every registered data source."""
        return self.data_dir / "data_sources.json"

    @property
    def records_dir(self) -> Path:
        """Directory for the latest accepted record batch of each source."""
        return self.data_dir / "records"

    @property
    def uploads_dir(self) -> Path:
        """Directory for copies of uploaded files (used for reprocessing)."""
        return self.data_dir / "uploads"

    @property
    def graphs_dir(self) -> Path:
        """Directory for knowledge graph snapshots."""
        return self.data_dir / "graphs"

    def ensure_dirs(self) -> None:
        """Create all data directories."""
        for path in (self.data_dir, self.records_dir, self.uploads_dir, self.graphs_dir):
            path.mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()

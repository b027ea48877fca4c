"""
Centralized configuration for the diagram backend.

Settings are read from environment variables prefixed with DIAGRAM_TOOL_
(or a .env file), with defaults suitable for local development.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from diagram_core.layout import LayoutOptions, DEFAULT_BARYCENTER_PASSES, DEFAULT_GRID_COLUMNS


class Settings(BaseSettings):
    """Settings for the API, storage, logging and layout defaults."""

    model_config = SettingsConfigDict(
        env_prefix="DIAGRAM_TOOL_",
        env_file=".env",
        extra="ignore",
    )

    # === Storage ===
    data_file: Optional[Path] = Field(default=None, description="JSON store path; unset keeps data in memory")

    # === API ===
    api_host: str = Field(default="127.0.0.1", description="API host")
    api_port: int = Field(default=8765, description="API port")
    cors_origins: list[str] = Field(
        default=["http://localhost:5173", "http://localhost:3000", "http://127.0.0.1:5173"],
        description="Origins allowed by CORS",
    )

    # === Logging ===
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[Path] = Field(default=None, description="Optional log file")

    # === Layout ===
    barycenter_passes: int = Field(default=DEFAULT_BARYCENTER_PASSES, ge=0, description="Crossing reduction pass cap")
    grid_columns: int = Field(default=DEFAULT_GRID_COLUMNS, ge=1, description="Columns for grid layout")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    def layout_options(self) -> LayoutOptions:
        return LayoutOptions(
            barycenter_passes=self.barycenter_passes,
            grid_columns=self.grid_columns,
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

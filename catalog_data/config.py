"""
Configuration management for the catalog data layer.

Loads and validates environment variables for the application.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Catalog data layer settings.

    All settings can be overridden via environment variables.
    """

    # Service configuration
    APP_NAME: str = Field(default="catalog-data")
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )
    LOG_JSON: bool = Field(default=True)

    # Database
    DATABASE_URL: str = Field(default="sqlite:///./catalog.db")
    DB_POOL_SIZE: int = Field(default=20, ge=1)
    DB_MAX_OVERFLOW: int = Field(default=10, ge=0)
    DB_POOL_RECYCLE: int = Field(default=3600, ge=-1)
    DB_POOL_TIMEOUT: int = Field(default=30, ge=1)
    DB_POOL_PRE_PING: bool = Field(default=True)
    DB_ECHO: bool = Field(default=False)

    # Query performance
    QUERY_LOG_THRESHOLD_MS: int = Field(default=100, ge=0)

    # Column limits shared by the entity mappings
    NAME_MAX_LENGTH: int = Field(default=100, ge=1)
    FILE_NAME_MAX_LENGTH: int = Field(default=255, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured database is SQLite."""
        return self.DATABASE_URL.startswith("sqlite")


# Global settings instance
settings = Settings()

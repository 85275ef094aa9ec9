import logging
import os
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Configuration for the database driver."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="DATABASE_", extra="ignore"
    )

    backend: Literal["sqlite", "cassandra"] = Field("sqlite", description="Driver adapter to use")
    path: str = Field(":memory:", description="Path to the SQLite database file")
    pool_size: int = Field(5, ge=1, description="Number of pooled SQLite connections")
    pool_timeout: float = Field(30.0, gt=0, description="Seconds to wait for a pooled connection")
    contact_points: List[str] = Field(default_factory=lambda: ["127.0.0.1"], description="Cassandra hosts")
    port: int = Field(9042, description="Cassandra native protocol port")
    keyspace: str = Field("cqldao", description="Cassandra keyspace")


class DaoSettings(BaseSettings):
    """Configuration for the DAO engine."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="DAO_", extra="ignore"
    )

    deserialize: bool = Field(True, description="Decode stored rows to entity values")
    default_page_size: Optional[int] = Field(None, ge=1, description="Page size when callers give none")


class AppSettings(BaseSettings):
    """General application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    debug: bool = Field(False, description="Enable debug mode for development")
    log_level: str = Field("INFO", description="Logging level")

    db: DatabaseSettings = Field(default_factory=DatabaseSettings)
    dao: DaoSettings = Field(default_factory=DaoSettings)

    @property
    def log_level_value(self) -> int:
        """Return the numeric value of the log level."""
        return logging.getLevelName(self.log_level.upper())


@lru_cache
def get_settings() -> AppSettings:
    """
    Get application settings.
    If the TEST_MODE environment variable is set, it returns an in-memory
    configuration suitable for testing, otherwise loads the configuration
    from the environment and the .env file.
    """
    if os.getenv("TEST_MODE"):
        return AppSettings(
            debug=True,
            log_level="DEBUG",
            db=DatabaseSettings(backend="sqlite", path=":memory:"),
            dao=DaoSettings(),
        )
    return AppSettings()

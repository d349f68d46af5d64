"""Settings and configuration management for the container registry."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CREG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # State database configuration
    state_db: str = Field(
        default="./containers.db",
        description="Path to the SQLite state database, or a full SQLAlchemy URL",
    )

    # Connection pool configuration
    pool_size: int = Field(
        default=10,
        ge=1,
        description="Maximum number of pooled database connections",
    )

    pool_timeout_s: float = Field(
        default=5.0,
        gt=0,
        description="Seconds to wait for a free connection before failing",
    )

    statement_timeout_s: float = Field(
        default=10.0,
        gt=0,
        description="Deadline in seconds for a single storage operation",
    )

    # Runtime configuration
    runtime_timeout_s: float = Field(
        default=5.0,
        gt=0,
        description="Deadline in seconds for a single runtime query or command",
    )

    status_cache_ttl_s: float = Field(
        default=3.0,
        ge=0,
        description="Seconds a live runtime status is reused for non-forcing reads",
    )

    docker_host: str | None = Field(
        default=None,
        description="Docker daemon host URL (defaults to Docker's standard detection)",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log format (json or text)",
    )

    @property
    def database_url(self) -> str:
        """Async SQLAlchemy URL for the state database."""
        db_path = self.state_db
        if "://" not in db_path:
            return f"sqlite+aiosqlite:///{db_path}"
        if db_path.startswith("sqlite://"):
            return db_path.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return db_path


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

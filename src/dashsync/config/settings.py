"""Client settings and configuration."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Bounds for the job-status poll interval while a job is RUNNING
JOB_POLL_MIN_MS = 3000
JOB_POLL_MAX_MS = 5000


def get_default_data_dir() -> Path:
    """Return the default data directory for durable client state."""
    return Path.home() / ".dashsync"


class Settings(BaseSettings):
    """Client configuration loaded from environment variables (prefix DASHSYNC_)."""

    model_config = SettingsConfigDict(
        env_prefix="DASHSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Portfolio Dashboard Sync"
    app_version: str = "0.1.0"

    # Remote service
    api_base_url: str = "http://127.0.0.1:8001/api"
    api_token: Optional[str] = None
    request_timeout_seconds: float = Field(10.0, gt=0)

    # Polling
    job_poll_interval_ms: int = 4000
    error_retry_ms: int = Field(10000, gt=0)

    # Cache lifecycle (0 or negative keeps entries for the process lifetime)
    cache_gc_grace_seconds: float = 300.0

    # Valuation
    include_fees_in_cost_basis: bool = False

    # Durable key-value store
    data_dir: Optional[Path] = None
    database_url: Optional[str] = None

    log_level: str = "INFO"
    # Per-logger overrides, e.g. {"dashsync.services": "DEBUG"}
    log_levels: dict[str, str] = Field(default_factory=dict)

    @property
    def effective_job_poll_interval_ms(self) -> int:
        """Job poll interval clamped to the supported window."""
        return max(JOB_POLL_MIN_MS, min(JOB_POLL_MAX_MS, self.job_poll_interval_ms))

    def get_data_dir(self) -> Path:
        """Get the data directory, creating it if needed."""
        data_dir = self.data_dir or get_default_data_dir()
        data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir

    def get_database_url(self) -> str:
        """Get database URL, deriving from data_dir if not set."""
        if self.database_url:
            return self.database_url
        db_path = self.get_data_dir() / "dashsync.db"
        return f"sqlite:///{db_path}"


# Global settings instance (can be replaced at runtime)
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the current settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings) -> None:
    """Set the global settings instance."""
    global _settings
    _settings = settings


def reset_settings() -> None:
    """Reset settings to force reload."""
    global _settings
    _settings = None

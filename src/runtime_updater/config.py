"""Configuration management for the runtime updater."""

import tempfile
from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_BASE_DIR = Path(tempfile.gettempdir()) / "runtime-updater"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    # File logging
    log_to_file: bool = Field(default=True, description="Write logs to a rotating file")
    log_directory: str = Field(
        default=str(_DEFAULT_BASE_DIR / "logs"), description="Directory for log files"
    )
    log_file_max_bytes: int = Field(
        default=10 * 1024 * 1024, ge=1024, description="Rotate log file after this size"
    )
    log_file_backup_count: int = Field(default=5, ge=0, description="Rotated files to keep")
    log_error_file_enabled: bool = Field(
        default=True, description="Also write WARNING+ events to a separate file"
    )
    log_compress_rotated: bool = Field(default=True, description="Gzip rotated log files")

    # Staging area and installation
    staging_directory: str = Field(
        default=str(_DEFAULT_BASE_DIR / "downloads"),
        description="Where installers and checksum files are downloaded",
    )
    installer_log_directory: str | None = Field(
        default=None, description="Where msiexec verbose logs go (default: under staging)"
    )
    keep_downloads: bool = Field(
        default=False, description="Leave staged files in place after the run"
    )
    install_root: str = Field(
        default=r"C:\Program Files\Eclipse Adoptium",
        description="Installation root for fresh installs",
    )
    publisher_filter: str = Field(
        default="Eclipse Adoptium", description="Publisher name used by discovery"
    )

    # Release feed
    feed_base_url: str = Field(
        default="https://api.github.com/repos/adoptium",
        description="Base URL of the per-stream release feeds",
    )
    github_token: SecretStr | None = Field(
        default=None, description="Optional token for the release feed"
    )
    http_timeout: float = Field(default=60.0, gt=0, description="HTTP timeout in seconds")

    # Download retry policy
    download_max_attempts: int = Field(default=5, ge=1, description="Download attempts")
    download_initial_delay: float = Field(
        default=5.0, ge=0, description="Backoff base delay in seconds"
    )

    # In-use process wait
    process_poll_interval: float = Field(
        default=10.0, gt=0, description="Seconds between in-use process checks"
    )
    process_wait_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Give up waiting for in-use processes after this many seconds",
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"

    @property
    def log_file_path(self) -> str:
        return str(Path(self.log_directory) / "runtime_updater.log")

    @property
    def error_log_file_path(self) -> str:
        return str(Path(self.log_directory) / "runtime_updater_error.log")

    @property
    def installer_logs_path(self) -> Path:
        """Directory for installer verbose logs."""
        if self.installer_log_directory:
            return Path(self.installer_log_directory)
        return Path(self.staging_directory) / "installer-logs"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

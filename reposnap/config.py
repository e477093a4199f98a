"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from reposnap.services.batch_service import SyncLimits

_MIB = 1024 * 1024


class Settings(BaseSettings):
    """RepoSnap application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    debug: bool = False
    expose_docs: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///data/db/reposnap.db"

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    # CORS
    cors_origins: list[str] = Field(default_factory=list)
    trusted_hosts: list[str] = Field(default_factory=list)

    # Access: bearer token -> role ("viewer", "editor" or "owner")
    access_tokens: dict[str, str] = Field(default_factory=dict)

    # GitHub
    github_api_url: str = "https://api.github.com"
    github_token: str = ""
    user_agent: str = "RepoSnap-Sync"
    http_timeout_seconds: float = Field(default=60.0, gt=0)
    http_retries: int = Field(default=2, ge=0, le=10)

    # Snapshot sync budgets
    small_file_threshold: int = Field(default=5 * _MIB, ge=1)
    max_batch_bytes: int = Field(default=25 * _MIB, ge=1)
    max_files_per_batch: int = Field(default=50, ge=1)
    max_large_file_bytes: int = Field(default=100 * _MIB, ge=1)

    # Change notification
    notify_webhook_url: str = ""

    @model_validator(mode="after")
    def _check_budgets(self) -> Settings:
        if self.small_file_threshold > self.max_batch_bytes:
            msg = (
                "SMALL_FILE_THRESHOLD must not exceed MAX_BATCH_BYTES "
                f"({self.small_file_threshold} > {self.max_batch_bytes})"
            )
            raise ValueError(msg)
        return self

    def sync_limits(self) -> SyncLimits:
        """Build the immutable budget set used by the snapshot synchronizer."""
        return SyncLimits(
            small_file_threshold=self.small_file_threshold,
            max_batch_bytes=self.max_batch_bytes,
            max_files_per_batch=self.max_files_per_batch,
            max_large_file_bytes=self.max_large_file_bytes,
        )

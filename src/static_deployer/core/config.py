"""Configuration management for the static site deployer."""

import os
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Deployer configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server configuration
    host: str = Field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"), description="Server host")
    port: int = Field(default_factory=lambda: int(os.getenv("PORT", "3000")), description="Server port")
    reload: bool = Field(False, description="Enable auto-reload in development")
    cors_origins: Optional[str] = Field("*", description="Comma-separated list of allowed CORS origins")

    # Storage
    staging_dir: str = Field(
        "/tmp/static-deployer/staging",
        description="Root directory for per-deploy staging directories",
    )
    quota_file: str = Field(
        "quota.json",
        description="JSON file holding the persisted quota counters",
    )
    public_dir: Optional[str] = Field(
        "public",
        description="Directory of front-end assets served at the site root",
    )
    strict_persistence: bool = Field(
        False,
        description="Fail startup when the quota file cannot be read",
    )

    # Admission control
    max_quota: int = Field(50, ge=1, description="Maximum successful deploys per quota window")
    cooldown_seconds: int = Field(300, ge=0, description="Minimum spacing between deploys")
    quota_window_seconds: int = Field(86400, ge=1, description="Idle time after which the quota resets")

    # Staging limits
    max_upload_size_mb: int = Field(50, ge=1, description="Maximum decoded upload size in MB")
    max_extracted_size_mb: int = Field(200, ge=1, description="Maximum uncompressed archive size in MB")
    stage_timeout_seconds: float = Field(60.0, gt=0, description="Maximum time spent staging one upload")

    # Cleanup
    cleanup_delay_seconds: float = Field(5.0, ge=0, description="Delay before staging directories are removed")
    flush_cleanup_on_shutdown: bool = Field(
        True,
        description="Run pending removals at shutdown instead of abandoning them",
    )

    # Publishing
    deploy_domain: str = Field("vercel.app", description="Domain suffix of published deployment URLs")

    # Observability
    log_level: str = Field("INFO")
    log_format: str = Field("json")
    metrics_enabled: bool = Field(True)

    @field_validator("deploy_domain")
    @classmethod
    def strip_domain(cls, v: str) -> str:
        """Drop surrounding dots so URLs are always ``https://name.domain``."""
        v = v.strip().strip(".")
        if not v:
            raise ValueError("deploy_domain must not be empty")
        return v

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list."""
        if not self.cors_origins:
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def max_extracted_bytes(self) -> int:
        return self.max_extracted_size_mb * 1024 * 1024

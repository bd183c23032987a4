"""Preview service configuration."""

import shlex
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PREVIEW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3001

    # CORS - allowed origins for API access
    cors_origins: list[str] = ["http://localhost:3000"]

    # Port pool (inclusive on both ends)
    port_range_start: int = Field(default=3002, ge=1, le=65535)
    port_range_end: int = Field(default=3010, ge=1, le=65535)
    check_os_ports: bool = True  # Also skip ports something outside the manager holds

    # Projects
    projects_dir: str = "generated_projects"
    dev_command: str = "npm run dev -- --port {port}"
    ensure_package_json: bool = True

    # Readiness detection
    readiness_patterns: list[str] = ["Ready in", "Local:"]
    readiness_probe: Literal["log", "http", "both"] = "log"
    http_probe_interval: float = Field(default=1.0, gt=0)
    readiness_timeout: float = Field(default=30.0, ge=0)  # 0 disables the timeout

    # Session lifecycle
    stop_grace_period: float = Field(default=5.0, ge=0)
    log_buffer_size: int = Field(default=200, ge=1)
    public_host: str = "localhost"

    # Health thresholds
    active_soft_cap: int = Field(default=5, ge=1)
    long_running_seconds: int = 3600

    # Redis for best-effort status mirroring (disabled when unset)
    redis_url: str | None = None
    status_ttl_seconds: int = 24 * 60 * 60

    shutdown_timeout: int = 30  # Max seconds for graceful shutdown before forcing exit

    # Sentry (reads from SENTRY_ env vars, not PREVIEW_)
    sentry_dsn: str | None = Field(default=None, validation_alias="SENTRY_DSN")
    sentry_traces_sample_rate: float = Field(
        default=0.2, validation_alias="SENTRY_TRACES_SAMPLE_RATE"
    )
    sentry_profiles_sample_rate: float = Field(
        default=0.1, validation_alias="SENTRY_PROFILES_SAMPLE_RATE"
    )

    @model_validator(mode="after")
    def check_port_range(self) -> "Settings":
        """Reject an empty port pool."""
        if self.port_range_start > self.port_range_end:
            raise ValueError(
                f"port_range_start ({self.port_range_start}) must not exceed "
                f"port_range_end ({self.port_range_end})"
            )
        return self

    @property
    def port_range_label(self) -> str:
        return f"{self.port_range_start}-{self.port_range_end}"

    def build_dev_command(self, port: int) -> list[str]:
        """Render the dev server command for a port."""
        return shlex.split(self.dev_command.format(port=port))


settings = Settings()

"""Controller configuration with pydantic-settings.

Values come from environment variables (case-insensitive) and an optional
``.env`` file in the working directory.

Usage:
    from deployd.config import get_settings

    settings = get_settings()
    settings.base_domain  # "localhost"
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """deployd settings.

    Everything has a development default, so a bare ``deployd serve`` runs
    against a local SQLite file and the local Docker daemon.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Logging ===

    service_name: str = Field(
        default="deployd",
        description="Service name for structured logging",
    )
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )

    # === Record store ===

    database_url: str = Field(
        default="sqlite+aiosqlite:///./deployd.db",
        description="SQLAlchemy async connection URL",
        examples=[
            "sqlite+aiosqlite:///./deployd.db",
            "postgresql+asyncpg://user:pass@db:5432/deployd",
        ],
    )

    # === Addressing ===

    base_domain: str = Field(
        default="localhost",
        description="Domain appended to project slugs, e.g. deploy.example.com",
    )
    public_url: str = Field(
        default="http://",
        description="Prefix used to turn a hostname into a browsable URL",
    )
    max_hostname_probes: int = Field(
        default=10_000,
        ge=1,
        description="Upper bound on suffix probing when a hostname is taken",
    )

    # === Ingestion ===

    webhook_secret: str = Field(
        default="",
        description="HMAC secret for push signatures (empty accepts any signature)",
    )

    # === Build ===

    worker_count: int = Field(default=3, ge=1, description="Concurrent build workers")
    build_root: Path = Field(
        default=Path("/tmp/builds"),
        description="Directory where sources are checked out per deployment",
    )
    keep_build_dirs: bool = Field(
        default=False,
        description="Keep checked-out sources after the image is built",
    )
    image_prefix: str = Field(default="deploy", description="Image repository prefix")
    docker_host: str | None = Field(
        default=None,
        description="Docker daemon URL (defaults to DOCKER_HOST / local socket)",
    )

    # === Publish ===

    publish_enabled: bool = Field(
        default=True,
        description="Publish built images to the cluster (off = build only)",
    )
    kubeconfig: str = Field(
        default="",
        description="Path to kubeconfig; empty uses in-cluster configuration",
    )
    kube_namespace: str = Field(default="default", description="Namespace for workloads")
    container_port: int = Field(default=8080, description="Port the application listens on")
    service_port: int = Field(default=80, description="Port exposed by the internal endpoint")
    default_env: dict[str, str] = Field(
        default_factory=dict,
        description="Environment variables passed to every workload (JSON object)",
    )

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}, got {v!r}")
        return level

    @field_validator("base_domain")
    @classmethod
    def validate_base_domain(cls, v: str) -> str:
        """Strip surrounding dots so hostnames never end up as 'app..example.com'."""
        domain = v.strip().strip(".").lower()
        if not domain:
            raise ValueError("base_domain must not be empty")
        return domain


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, read once from the environment."""
    return Settings()

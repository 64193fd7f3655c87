"""
Configuration for the LogVault server.

Uses pydantic-settings for environment variable loading. Values are read
from ``LOGVAULT_*`` environment variables, then from ``.env`` and
``.env.<env>`` in the working directory.

Invariants:
    - All settings have sensible defaults for local development
    - Environment variables win over values from .env files

How to change safely:
    - Add new settings with defaults that keep existing deployments working
    - Keep Settings.log_config free of anything secret
"""

from __future__ import annotations

import logging
import os

from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """LogVault configuration loaded from environment."""

    env: str = Field(default="dev", description="Runtime environment name")

    # Storage
    db_path: str = Field(default="logvault.db", description="SQLite database file")
    wal_mode: bool = Field(default=True, description="Enable SQLite WAL journal mode")
    busy_timeout_ms: int = Field(default=5000, description="SQLite busy timeout")
    provision_on_startup: bool = Field(
        default=True, description="Provision the schema when the app starts"
    )

    # HTTP
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, description="Bind port")
    cors_origins: list[str] = Field(default=["*"], description="Allowed CORS origins")

    # Requests
    request_timeout: float | None = Field(
        default=10.0, description="Per-request storage deadline in seconds"
    )
    max_page_size: int = Field(default=500, description="Maximum items per page")

    # Observability
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR")
    log_format: str = Field(default="json", description="json or text")

    model_config = {"env_prefix": "LOGVAULT_", "extra": "ignore"}

    @classmethod
    def load(cls, env: str | None = None) -> Settings:
        """Load settings, reading ``.env`` and ``.env.<env>`` when present.

        Args:
            env: Environment name; defaults to $LOGVAULT_ENV or "dev"
        """
        env = env or os.getenv("LOGVAULT_ENV", "dev")
        return cls(_env_file=(".env", f".env.{env}"), env=env)

    def log_config(self) -> None:
        """Log the effective configuration."""
        logger.info(
            "Server configuration loaded",
            extra={
                "env": self.env,
                "db_path": self.db_path,
                "wal_mode": self.wal_mode,
                "bind": f"{self.host}:{self.port}",
                "request_timeout": self.request_timeout,
                "provision_on_startup": self.provision_on_startup,
                "log_level": self.log_level,
            },
        )

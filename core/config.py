"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for authcore happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. session_days -> SESSION_DAYS). Type coercion and validation are
      built in.

  @model_validator(mode="after"): cross-field rules that depend on APP_ENV.

Security notes:
  Production mode turns on the Secure cookie attribute and refuses to start
  with DB_SSL_MODE=off. A database connection in production must be
  encrypted unless the operator picks "auto" against a local socket.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or db/.
"""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authcore.config")

SslMode = Literal["require", "auto", "off"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    app_env: Literal["development", "test", "production"] = "development"
    log_level: str = "INFO"
    cors_origins: list[str] = Field(default_factory=list)

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------

    database_url: str = "sqlite:///./authcore.db"
    db_ssl_mode: SslMode = "auto"
    db_pool_size: int = Field(default=5, ge=1)
    db_probe_timeout_ms: int = Field(default=2000, ge=1)
    auto_migrate_on_boot: bool = True

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    session_days: int = Field(default=14, ge=1)
    # bcrypt cost factor. 12 for production; the test suite lowers it to 4
    # (bcrypt's minimum) so hashing does not dominate test runtime.
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    session_purge_interval_seconds: int = Field(default=3600, ge=1)

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_production_ssl(self) -> "Settings":
        """Refuse to start in production with database TLS explicitly disabled."""
        if self.is_production and self.db_ssl_mode == "off":
            raise ValueError(
                "DB_SSL_MODE=off is not allowed when APP_ENV=production. "
                "Use DB_SSL_MODE=require, or DB_SSL_MODE=auto for a local database."
            )
        if self.bcrypt_rounds < 10 and self.is_production:
            logger.warning("BCRYPT_ROUNDS=%d is below the recommended production cost", self.bcrypt_rounds)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()

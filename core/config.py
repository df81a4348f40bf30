"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for TokenAuth happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. database_url -> DATABASE_URL). Type coercion and validation are
      built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("tokenauth.config")

DEFAULT_DATABASE_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'tokenauth.db'}"


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

    debug: bool = False
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Datastore
    # ------------------------------------------------------------------

    database_url: str = DEFAULT_DATABASE_URL
    # Upper bound for any single datastore operation (seconds). Applied as the
    # SQLite busy timeout, the PostgreSQL statement_timeout and the pool
    # checkout timeout. Not exposed per call.
    db_timeout_seconds: float = 3.0

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 12
    insert_retry_attempts: int = 3
    insert_retry_delay_seconds: float = 2.0

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    token_ttl_seconds: int = 24 * 60 * 60
    # False: every login adds a session, older tokens live until logout/expiry.
    # True: a login revokes the user's previous tokens in the same transaction.
    single_session_per_user: bool = False

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_limits(self) -> "Settings":
        """Reject values that would break hashing, retries or timeouts.

        bcrypt only accepts cost factors 4..31. Zero retry attempts would mean
        create_user() never touches the database.
        """
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        if self.insert_retry_attempts < 1:
            raise ValueError("INSERT_RETRY_ATTEMPTS must be at least 1.")
        if self.insert_retry_delay_seconds < 0:
            raise ValueError("INSERT_RETRY_DELAY_SECONDS must not be negative.")
        if self.db_timeout_seconds <= 0:
            raise ValueError("DB_TIMEOUT_SECONDS must be positive.")
        if self.token_ttl_seconds <= 0:
            raise ValueError("TOKEN_TTL_SECONDS must be positive.")
        if not self.debug and self.database_url == DEFAULT_DATABASE_URL:
            logger.warning("Using the bundled SQLite database outside debug mode. Set DATABASE_URL for production.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()

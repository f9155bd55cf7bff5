"""
core/config.py -- Centralized configuration via pydantic-settings.

All environment variable reads happen here. No module should call
os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file. Field names map to env var names
      (e.g. bcrypt_rounds -> BCRYPT_ROUNDS).

  @field_validator: bounds checks on the two knobs that directly affect the
      strength of stored credentials (bcrypt cost, passcode length).

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authn.config")

_MIN_PASSCODE_LENGTH = 8


class Settings(BaseSettings):
    """Settings loaded from environment variables and .env file.

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
    database_url: str = "sqlite:///authn_identities.db"

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    # bcrypt log2 cost factor. 12 is the library default; tests drop to 4.
    bcrypt_rounds: int = 12
    # Passcodes travel in reset/verify links. 40 chars over 62 symbols is
    # ~238 bits; the legacy 8-char codes are no longer issued.
    passcode_length: int = 40
    # Upper bound for one authorize -> verify -> hash -> persist sequence.
    # 0 disables the bound.
    operation_timeout_seconds: float = 0

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]

    # ------------------------------------------------------------------
    # Derived
    # ------------------------------------------------------------------

    @property
    def log_level(self) -> int:
        """DEBUG when DEBUG=true, INFO otherwise."""
        return logging.DEBUG if self.debug else logging.INFO

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("bcrypt_rounds")
    @classmethod
    def validate_bcrypt_rounds(cls, value: int) -> int:
        """bcrypt accepts cost factors 4..31 only."""
        if not 4 <= value <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        if value < 10:
            logger.warning("WARNING: BCRYPT_ROUNDS=%d is only suitable for tests.", value)
        return value

    @field_validator("passcode_length")
    @classmethod
    def validate_passcode_length(cls, value: int) -> int:
        if value < _MIN_PASSCODE_LENGTH:
            raise ValueError(f"PASSCODE_LENGTH must be at least {_MIN_PASSCODE_LENGTH}.")
        return value


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
